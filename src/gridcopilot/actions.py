"""Advisory aggregation and the plain-text operator update export."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo

from .etr import format_etr_primary, format_runtime_hours
from .schemas import (
    BlockedActionNote,
    Insight,
    InsightCategory,
    OperatorContract,
    OutageEvent,
    PolicyEvaluation,
    RunwayStatus,
    WeatherRiskResult,
)
from .severity import severity_label

RULE_WIDTH = 50

_MODES = {
    "Pre-Event": "PLANNING",
    "Event": "ACTIVE_EVENT",
    "Post-Event": "POST_EVENT_REVIEW",
}

_SINGLE_VALUED = (InsightCategory.SUMMARY, InsightCategory.ETR, InsightCategory.RUNWAY)

DEFAULT_SOURCE_NOTES = (
    "Event record",
    "NWS active alerts",
    "Open-Meteo wind grid",
)


@dataclass
class InsightSelection:
    """Insights grouped by category.

    Single-valued categories keep their first insight; any later insight of the
    same category lands in ``overflow`` in arrival order.
    """

    primary: dict[InsightCategory, str] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    overflow: list[str] = field(default_factory=list)


def select_insights(insights: list[Insight] | None) -> InsightSelection:
    selection = InsightSelection()
    for insight in insights or []:
        category = insight.category
        if category in _SINGLE_VALUED:
            if category in selection.primary:
                selection.overflow.append(insight.text)
            else:
                selection.primary[category] = insight.text
        elif category == InsightCategory.RECOMMENDATION:
            selection.recommendations.append(insight.text)
        elif category == InsightCategory.CONSTRAINT:
            selection.constraints.append(insight.text)
        else:
            selection.sources.append(insight.text)
    return selection


def runway_status(hours: float | None, threshold_hours: float = 4.0) -> RunwayStatus | None:
    """Classify remaining backup runtime against the escalation threshold."""
    if hours is None:
        return None
    if hours <= 0:
        return "BREACH"
    if hours < threshold_hours:
        return "AT_RISK"
    return "NORMAL"


def format_runway(event: OutageEvent, threshold_hours: float = 4.0) -> str:
    hours = event.backup_runtime_remaining_hours
    if not event.has_critical_load and hours is None:
        return "No critical load reported."

    loads = ", ".join(event.critical_load_types) or "Critical load"
    status = event.critical_runway_status or runway_status(hours, threshold_hours)
    runtime = format_runtime_hours(hours)
    if status is None:
        return f"{loads}: backup runtime {runtime}"
    return f"{loads}: backup runtime {runtime} ({status})"


def _default_summary(event: OutageEvent, severity: int, weather_risk: WeatherRiskResult) -> str:
    label = event.name or event.service_area or event.id
    customers = (
        f"{event.customers_impacted:,} customers impacted"
        if event.customers_impacted is not None
        else "customer impact unknown"
    )
    area = event.service_area or "unknown service area"
    return (
        f"{label}: {severity_label(severity)} severity ({severity}/5), {customers}, "
        f"{event.outage_type or 'Unknown'} outage in {area}. "
        f"Weather risk {weather_risk.tier} ({weather_risk.score}/100)."
    )


def _unique(items: list[str]) -> list[str]:
    seen: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen


def build_operator_contract(
    event: OutageEvent,
    severity: int,
    weather_risk: WeatherRiskResult,
    policy: PolicyEvaluation,
    insights: list[Insight] | None = None,
    now: datetime | None = None,
    backup_threshold_hours: float = 4.0,
) -> OperatorContract:
    """Compose the advisory record shown to operators and written to exports."""
    selection = select_insights(insights)

    etr = format_etr_primary(event.etr_earliest, event.etr_latest, event.etr_confidence, now=now)
    etr_text = selection.primary.get(InsightCategory.ETR) or f"{etr.band} • {etr.confidence}"

    recommendations = [f"{item.action}: {item.reason}" for item in policy.allowed_actions]
    recommendations.extend(selection.recommendations)

    operator_notes = [f"Escalation flag: {flag}" for flag in policy.escalation_flags]
    operator_notes.extend(
        f"{constraint.id} {constraint.title}" for constraint in policy.safety_constraints if constraint.triggered
    )
    operator_notes.extend(selection.constraints)
    operator_notes.extend(selection.overflow)

    source_notes = [
        *DEFAULT_SOURCE_NOTES,
        f"Policy engine {policy.engine_version} ({policy.deterministic_hash[:19]})",
        *selection.sources,
    ]

    return OperatorContract(
        mode=_MODES.get(event.lifecycle_stage, "DEMO"),
        situation_summary=selection.primary.get(InsightCategory.SUMMARY)
        or _default_summary(event, severity, weather_risk),
        etr_band_confidence=etr_text,
        critical_load_runway=selection.primary.get(InsightCategory.RUNWAY)
        or format_runway(event, backup_threshold_hours),
        recommendations=recommendations,
        blocked_actions=[
            BlockedActionNote(action=item.action, reason=item.reason) for item in policy.blocked_actions
        ],
        operator_notes=_unique(operator_notes),
        source_notes=_unique(source_notes),
    )


def format_generated_at(timestamp: datetime, tz: tzinfo | None = None) -> str:
    """Render like an en-US locale string: 3/7/2025, 2:05:09 PM.

    Aware timestamps are shown in ``tz``, or in the host's local zone when
    ``tz`` is None. Naive timestamps are taken as already local.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(tz)
    hour = timestamp.hour % 12 or 12
    meridiem = "AM" if timestamp.hour < 12 else "PM"
    return (
        f"{timestamp.month}/{timestamp.day}/{timestamp.year}, "
        f"{hour}:{timestamp.minute:02d}:{timestamp.second:02d} {meridiem}"
    )


def render_operator_update(
    contract: OperatorContract,
    event_name: str,
    timestamp: datetime,
    model_engine: str,
    tz: tzinfo | None = None,
) -> str:
    lines = [
        "OPERATOR COPILOT — UPDATE DRAFT",
        "═" * RULE_WIDTH,
        f"Event: {event_name}",
        f"Generated: {format_generated_at(timestamp, tz)}",
        f"Engine: {model_engine}",
        "",
        f"MODE: {contract.mode}",
        "",
        "SITUATION SUMMARY",
        contract.situation_summary,
        "",
        "ETR BAND + CONFIDENCE",
        contract.etr_band_confidence,
        "",
        "CRITICAL LOAD RUNWAY",
        contract.critical_load_runway,
        "",
        "RECOMMENDATIONS (ADVISORY)",
        *(f"  • {item}" for item in contract.recommendations),
        "",
        "BLOCKED ACTIONS",
        *(f"  ✕ {item.action} — {item.reason}" for item in contract.blocked_actions),
        "",
        "OPERATOR NOTES",
        *(f"  ⚑ {note}" for note in contract.operator_notes),
        "",
        "SOURCE NOTES",
        *(f"  • {note}" for note in contract.source_notes),
        "",
        "─" * RULE_WIDTH,
        "Decision Support Only • No SCADA/OMS/ADMS Integration",
        "This document is advisory. All actions require operator approval.",
    ]
    return "\n".join(lines)


def export_filename(event_name: str, timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    slug = re.sub(r"\s+", "-", event_name).lower()
    epoch_ms = int(timestamp.timestamp() * 1000)
    return f"operator-update-{slug}-{epoch_ms}.txt"
