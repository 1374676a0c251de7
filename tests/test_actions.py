"""Advisory aggregation and export tests."""

from datetime import datetime, timedelta, timezone

from gridcopilot.actions import (
    build_operator_contract,
    export_filename,
    format_generated_at,
    format_runway,
    render_operator_update,
    runway_status,
    select_insights,
)
from gridcopilot.policy import evaluate_policy, scenario_from_event
from gridcopilot.schemas import (
    BlockedActionNote,
    CrewInput,
    Insight,
    InsightCategory,
    OperatorContract,
    OutageEvent,
)
from gridcopilot.scoring import compute_weather_risk

NOW = datetime(2025, 3, 7, 14, 5, 9, tzinfo=timezone.utc)


def _event(**overrides) -> OutageEvent:
    fields = {
        "id": "evt-42",
        "name": "Harris County Storm",
        "priority": "high",
        "customers_impacted": 1200,
        "outage_type": "Storm",
        "lifecycle_stage": "Event",
        "service_area": "Harris County",
        "etr_earliest": NOW + timedelta(minutes=150),
        "etr_latest": NOW + timedelta(minutes=210),
        "etr_confidence": "HIGH",
        "has_critical_load": True,
        "critical_load_types": ["Hospital"],
        "backup_runtime_remaining_hours": 3.72,
    }
    fields.update(overrides)
    return OutageEvent(**fields)


def test_first_single_valued_insight_wins() -> None:
    selection = select_insights(
        [
            Insight(category=InsightCategory.SUMMARY, text="first summary"),
            Insight(category=InsightCategory.RECOMMENDATION, text="stage crews"),
            Insight(category=InsightCategory.SUMMARY, text="second summary"),
            Insight(category=InsightCategory.SOURCE, text="NWS"),
        ]
    )
    assert selection.primary[InsightCategory.SUMMARY] == "first summary"
    assert selection.overflow == ["second summary"]
    assert selection.recommendations == ["stage crews"]
    assert selection.sources == ["NWS"]


def test_runway_status() -> None:
    assert runway_status(None) is None
    assert runway_status(0) == "BREACH"
    assert runway_status(3.9) == "AT_RISK"
    assert runway_status(4) == "NORMAL"
    assert runway_status(5, threshold_hours=6) == "AT_RISK"


def test_format_runway() -> None:
    assert format_runway(_event()) == "Hospital: backup runtime 3.5 hrs (AT_RISK)"
    assert format_runway(_event(critical_runway_status="BREACH")) == "Hospital: backup runtime 3.5 hrs (BREACH)"
    assert (
        format_runway(_event(has_critical_load=False, critical_load_types=[], backup_runtime_remaining_hours=None))
        == "No critical load reported."
    )


def test_contract_from_rules_only() -> None:
    event = _event()
    policy = evaluate_policy(scenario_from_event(event, crews=CrewInput(available=1)), now=NOW)
    contract = build_operator_contract(event, 5, compute_weather_risk(event, [], []), policy, now=NOW)

    assert contract.mode == "ACTIVE_EVENT"
    assert contract.situation_summary.startswith("Harris County Storm: Critical severity (5/5), 1,200 customers")
    assert contract.etr_band_confidence == "2.5–3.5 hrs • High (85%)"
    assert contract.critical_load_runway == "Hospital: backup runtime 3.5 hrs (AT_RISK)"
    assert contract.recommendations[0].startswith("dispatch_crews: ")
    assert [note.action for note in contract.blocked_actions] == [item.action for item in policy.blocked_actions]
    assert "Escalation flag: critical_load_at_risk" in contract.operator_notes
    assert "SC-CREW-001 Field crew sufficiency" in contract.operator_notes
    assert contract.source_notes[:3] == ["Event record", "NWS active alerts", "Open-Meteo wind grid"]


def test_contract_prefers_insights_and_keeps_overflow() -> None:
    event = _event(lifecycle_stage="Post-Event")
    policy = evaluate_policy(scenario_from_event(event), now=NOW)
    insights = [
        Insight(category=InsightCategory.SUMMARY, text="Restoration is 80% complete."),
        Insight(category=InsightCategory.ETR, text="ETR holding at 2.5-3.5 hrs."),
        Insight(category=InsightCategory.ETR, text="ETR may slip if gusts return."),
        Insight(category=InsightCategory.CONSTRAINT, text="Hold switching near the hospital feeder."),
        Insight(category=InsightCategory.RECOMMENDATION, text="Pre-stage a generator."),
        Insight(category=InsightCategory.SOURCE, text="Event record"),
    ]
    contract = build_operator_contract(
        event, 5, compute_weather_risk(event, [], []), policy, insights=insights, now=NOW
    )

    assert contract.mode == "POST_EVENT_REVIEW"
    assert contract.situation_summary == "Restoration is 80% complete."
    assert contract.etr_band_confidence == "ETR holding at 2.5-3.5 hrs."
    assert contract.recommendations[-1] == "Pre-stage a generator."
    assert contract.operator_notes[-2:] == [
        "Hold switching near the hospital feeder.",
        "ETR may slip if gusts return.",
    ]
    assert contract.source_notes.count("Event record") == 1


def test_render_operator_update_layout() -> None:
    contract = OperatorContract(
        mode="ACTIVE_EVENT",
        situation_summary="Storm damage across Harris County.",
        etr_band_confidence="2.5–3.5 hrs • High (85%)",
        critical_load_runway="Hospital: backup runtime 3.5 hrs (AT_RISK)",
        recommendations=["dispatch_crews: go"],
        blocked_actions=[BlockedActionNote(action="reroute_load", reason="Crew shortfall.")],
        operator_notes=["Escalation flag: storm_active"],
        source_notes=["Event record"],
    )
    text = render_operator_update(contract, "Harris County Storm", NOW, "deterministic-rules", tz=timezone.utc)

    assert text.split("\n") == [
        "OPERATOR COPILOT — UPDATE DRAFT",
        "═" * 50,
        "Event: Harris County Storm",
        "Generated: 3/7/2025, 2:05:09 PM",
        "Engine: deterministic-rules",
        "",
        "MODE: ACTIVE_EVENT",
        "",
        "SITUATION SUMMARY",
        "Storm damage across Harris County.",
        "",
        "ETR BAND + CONFIDENCE",
        "2.5–3.5 hrs • High (85%)",
        "",
        "CRITICAL LOAD RUNWAY",
        "Hospital: backup runtime 3.5 hrs (AT_RISK)",
        "",
        "RECOMMENDATIONS (ADVISORY)",
        "  • dispatch_crews: go",
        "",
        "BLOCKED ACTIONS",
        "  ✕ reroute_load — Crew shortfall.",
        "",
        "OPERATOR NOTES",
        "  ⚑ Escalation flag: storm_active",
        "",
        "SOURCE NOTES",
        "  • Event record",
        "",
        "─" * 50,
        "Decision Support Only • No SCADA/OMS/ADMS Integration",
        "This document is advisory. All actions require operator approval.",
    ]


def test_generated_at_uses_twelve_hour_clock() -> None:
    assert format_generated_at(datetime(2025, 12, 31, 0, 0, 5)) == "12/31/2025, 12:00:05 AM"
    assert format_generated_at(datetime(2025, 1, 2, 12, 30, 0)) == "1/2/2025, 12:30:00 PM"


def test_export_filename() -> None:
    stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert export_filename("Harris County  Storm", stamp) == "operator-update-harris-county-storm-1735689600000.txt"
    assert export_filename("Ice", datetime(2025, 1, 1)) == "operator-update-ice-1735689600000.txt"


def test_generated_at_converts_aware_timestamps() -> None:
    central = timezone(timedelta(hours=-6))
    assert format_generated_at(NOW, central) == "3/7/2025, 8:05:09 AM"
    assert format_generated_at(NOW, timezone.utc) == "3/7/2025, 2:05:09 PM"
    local = NOW.astimezone()
    assert format_generated_at(NOW) == format_generated_at(local.replace(tzinfo=None))
