"""Policy rule engine tests."""

from datetime import datetime, timezone

import pytest

from gridcopilot.policy import evaluate_policy, normalize_scenario, scenario_from_event
from gridcopilot.rules import estimate_crews_needed, heat_freshness_penalty
from gridcopilot.schemas import (
    AssetInput,
    CrewInput,
    CriticalLoadInput,
    DataQualityInput,
    OutageEvent,
    ScenarioInput,
)

NOW = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)
GOOD_DATA = DataQualityInput(completeness=0.9, freshness_minutes=30)


def _actions(items) -> list[str]:
    return [item.action for item in items]


def _constraint(result, constraint_id):
    return next(c for c in result.safety_constraints if c.id == constraint_id)


def _driver(result, key):
    return next(d.value for d in result.drivers if d.key == key)


def test_active_storm_with_hospital_and_crew_shortfall() -> None:
    result = evaluate_policy(
        ScenarioInput(
            scenario_id="storm-1",
            hazard_type="STORM",
            phase="ACTIVE",
            severity=5,
            customers_affected=3000,
            assets=[AssetInput(id="tx-1", type="transformer", age_years=30, vegetation_exposure=0.6)],
            critical_loads=[CriticalLoadInput(type="HOSPITAL", name="Memorial", backup_hours_remaining=3)],
            crews=CrewInput(available=2, en_route=1),
            data_quality=GOOD_DATA,
        ),
        now=NOW,
    )

    assert _actions(result.allowed_actions) == [
        "dispatch_crews",
        "public_advisory",
        "request_mutual_aid",
        "prioritize_critical_load",
        "generate_restoration_plan",
    ]
    assert _actions(result.blocked_actions) == ["reroute_load", "deenergize_section"]
    assert result.escalation_flags == [
        "critical_load_at_risk",
        "critical_backup_window_short",
        "insufficient_crews",
        "storm_active",
        "low_confidence_etr",
    ]
    assert result.etr_band.band == "LOW"
    assert result.etr_band.confidence == pytest.approx(0.35)
    assert result.data_quality_warnings == []
    assert _constraint(result, "SC-CREW-001").triggered is True
    assert "Estimated crews needed: 8." in _constraint(result, "SC-CREW-001").evidence
    assert _constraint(result, "SC-CRIT-002").evidence == ["HOSPITAL (Memorial) backup < 4h."]
    assert result.evaluated_at == NOW
    assert result.engine_version == "1.0.0"


def test_empty_input_uses_conservative_defaults() -> None:
    result = evaluate_policy(ScenarioInput(), now=NOW)

    assert result.data_quality_warnings == [
        "Missing severity; defaulted to 3.",
        "Missing customersAffected; defaulted to 0.",
        "No assets provided.",
        "Crew object missing; defaulted crew counts to 0.",
        "Data quality missing; using conservative defaults.",
    ]
    assert result.etr_band.band == "LOW"
    assert result.etr_band.confidence == pytest.approx(0.2)
    assert _actions(result.allowed_actions) == [
        "dispatch_crews",
        "public_advisory",
        "request_mutual_aid",
        "generate_restoration_plan",
    ]
    assert _actions(result.blocked_actions) == ["reroute_load", "deenergize_section", "prioritize_critical_load"]
    assert result.escalation_flags == ["insufficient_crews", "low_confidence_etr"]


def test_calm_post_event_gets_high_confidence() -> None:
    result = evaluate_policy(
        ScenarioInput(
            hazard_type="RAIN",
            phase="POST_EVENT",
            severity=2,
            customers_affected=100,
            assets=[AssetInput(id="pole-1", type="pole", age_years=10)],
            crews=CrewInput(available=10, en_route=0),
            data_quality=GOOD_DATA,
        ),
        now=NOW,
    )

    assert result.etr_band.band == "HIGH"
    assert result.etr_band.confidence == pytest.approx(0.85)
    assert "reroute_load" in _actions(result.allowed_actions)
    assert result.blocked_actions[-1].reason == "Action not recommended under current rule state."
    assert _driver(result, "asset_risk_score") == 38
    assert result.escalation_flags == []


def test_stale_heat_data_penalizes_confidence() -> None:
    result = evaluate_policy(
        ScenarioInput(
            hazard_type="HEAT",
            phase="ACTIVE",
            severity=3,
            customers_affected=500,
            assets=[AssetInput(id="tx-9", type="transformer", age_years=40, load_criticality=0.6)],
            crews=CrewInput(available=10),
            data_quality=DataQualityInput(completeness=0.9, freshness_minutes=110),
        ),
        now=NOW,
    )

    assert result.etr_band.band == "MEDIUM"
    assert result.etr_band.confidence == pytest.approx(0.52)
    assert "transformer_thermal_stress" in result.escalation_flags
    assert "HEAT stale-data confidence penalty applied: -10%." in result.etr_band.rationale
    assert _driver(result, "load_criticality_avg") == 0.6


def test_active_ice_blocks_reroute() -> None:
    result = evaluate_policy(
        ScenarioInput(
            hazard_type="ICE",
            phase="ACTIVE",
            severity=3,
            customers_affected=200,
            assets=[AssetInput(id="ln-4", type="line", vegetation_exposure=0.8)],
            crews=CrewInput(available=20),
            data_quality=GOOD_DATA,
        ),
        now=NOW,
    )

    assert "reroute_load" in _actions(result.blocked_actions)
    assert "ice_load_risk" in result.escalation_flags
    assert _constraint(result, "SC-ICE-001").triggered is True
    assert _constraint(result, "SC-ICE-001").severity == "HIGH"
    assert _constraint(result, "SC-ICE-002").evidence == ["Asset ln-4 (line): vegetation exposure 0.80."]


def test_wildfire_vegetation_blocks_deenergize() -> None:
    result = evaluate_policy(
        ScenarioInput(
            hazard_type="WILDFIRE",
            phase="ACTIVE",
            severity=5,
            customers_affected=1000,
            assets=[AssetInput(id="ln-7", type="line", vegetation_exposure=0.7)],
            crews=CrewInput(available=20),
            data_quality=GOOD_DATA,
        ),
        now=NOW,
    )

    blocked = {item.action: item for item in result.blocked_actions}
    assert "vegetation_fire_risk" in result.escalation_flags
    assert "storm_active" in result.escalation_flags
    assert blocked["deenergize_section"].reason.startswith("Vegetation fire risk active")


def test_severe_active_event_allows_deenergize_without_critical_load() -> None:
    result = evaluate_policy(
        ScenarioInput(
            hazard_type="RAIN",
            phase="ACTIVE",
            severity=4,
            customers_affected=100,
            assets=[AssetInput(id="a", type="pole", load_criticality=0.2)],
            crews=CrewInput(available=20),
            data_quality=GOOD_DATA,
        ),
        now=NOW,
    )
    assert "deenergize_section" in _actions(result.allowed_actions)


def test_invalid_enums_are_normalized_with_warnings() -> None:
    scenario, warnings = normalize_scenario(
        ScenarioInput(
            hazard_type="TORNADO",
            phase="LATER",
            severity=9,
            customers_affected=-5,
            critical_loads=[CriticalLoadInput(type="SCHOOL", backup_hours_remaining=-2)],
            last_updated="yesterday",
        )
    )
    assert scenario.hazard_type == "UNKNOWN"
    assert scenario.phase == "UNKNOWN"
    assert scenario.severity == 5
    assert scenario.customers_affected == 0
    assert scenario.critical_loads[0].type == "OTHER"
    assert scenario.critical_loads[0].backup_hours_remaining == 0
    assert scenario.last_updated is None
    assert scenario.scenario_id == "unknown_scenario"
    assert "Invalid hazardType 'TORNADO' normalized to UNKNOWN." in warnings
    assert "Invalid phase 'LATER' normalized to UNKNOWN." in warnings
    assert "Invalid lastUpdated value ignored; expected ISO timestamp." in warnings


def test_hash_is_deterministic_and_clock_independent() -> None:
    payload = ScenarioInput(hazard_type="STORM", phase="ACTIVE", severity=4, customers_affected=900)
    first = evaluate_policy(payload, now=NOW)
    second = evaluate_policy(payload, now=datetime(2030, 1, 1, tzinfo=timezone.utc))
    assert first.deterministic_hash == second.deterministic_hash
    assert first.deterministic_hash.startswith("sha256_")
    assert first.evaluated_at != second.evaluated_at

    other = evaluate_policy(payload.model_copy(update={"severity": 5}), now=NOW)
    assert other.deterministic_hash != first.deterministic_hash


def test_crew_estimate() -> None:
    assert estimate_crews_needed(0, 1) == 2
    assert estimate_crews_needed(3000, 5) == 8
    assert estimate_crews_needed(1501, 3) == 6


def test_heat_penalty_caps() -> None:
    assert heat_freshness_penalty(60) == 0
    assert heat_freshness_penalty(110) == pytest.approx(0.1)
    assert heat_freshness_penalty(10_000) == 0.25


def test_scenario_from_event() -> None:
    event = OutageEvent(
        id="evt-9",
        priority="high",
        customers_impacted=1200,
        outage_type="High Wind",
        lifecycle_stage="Event",
        has_critical_load=True,
        critical_load_types=["Hospital", "Water"],
        backup_runtime_remaining_hours=2.5,
    )
    scenario = scenario_from_event(event, crews=CrewInput(available=4))
    assert scenario.hazard_type == "STORM"
    assert scenario.phase == "ACTIVE"
    assert scenario.severity == 5
    assert scenario.customers_affected == 1200
    assert [load.type for load in scenario.critical_loads] == ["HOSPITAL", "WATER"]
    assert scenario.critical_loads[0].backup_hours_remaining == 2.5
