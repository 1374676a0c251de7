"""Policy evaluation: normalize a scenario, run every rule, and assemble actions."""

from __future__ import annotations

import hashlib
import json
import math
from datetime import datetime, timezone
from numbers import Real

from .rounding import clamp, round_half_up
from .rules import (
    evaluate_asset_rules,
    evaluate_crew_rules,
    evaluate_critical_rules,
    evaluate_etr_rules,
)
from .schemas import (
    ActionType,
    AllowedAction,
    AssetInput,
    BlockedAction,
    CrewInput,
    CriticalLoadInput,
    DataQualityInput,
    ExplainabilityDriver,
    NormalizedCrews,
    NormalizedDataQuality,
    NormalizedScenario,
    OutageEvent,
    PolicyEvaluation,
    SafetyConstraint,
    ScenarioInput,
)
from .severity import get_event_severity

ENGINE_VERSION = "1.0.0"

ACTIONS: tuple[ActionType, ...] = (
    "dispatch_crews",
    "reroute_load",
    "deenergize_section",
    "public_advisory",
    "request_mutual_aid",
    "prioritize_critical_load",
    "generate_restoration_plan",
)

VALID_HAZARDS = ("STORM", "WILDFIRE", "RAIN", "HEAT", "ICE", "UNKNOWN")
VALID_PHASES = ("PRE_EVENT", "ACTIVE", "POST_EVENT", "UNKNOWN")
VALID_LOAD_TYPES = ("HOSPITAL", "WATER", "TELECOM", "SHELTER", "OTHER")

_LIFECYCLE_PHASES = {"Pre-Event": "PRE_EVENT", "Event": "ACTIVE", "Post-Event": "POST_EVENT"}

_OUTAGE_HAZARDS = {
    "Storm": "STORM",
    "High Wind": "STORM",
    "Lightning": "STORM",
    "Snow Storm": "ICE",
    "Ice Storm": "ICE",
    "Wildfire": "WILDFIRE",
    "Vegetation": "WILDFIRE",
    "Flood": "RAIN",
    "Heavy Rain": "RAIN",
    "Heat Wave": "HEAT",
    "Extreme Heat": "HEAT",
}


def _safe_number(value: object, fallback: float) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        return fallback
    number = float(value)
    return number if math.isfinite(number) else fallback


def _is_iso_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def normalize_scenario(payload: ScenarioInput) -> tuple[NormalizedScenario, list[str]]:
    """Fill missing fields with conservative defaults, collecting a warning for each."""
    warnings: list[str] = []

    hazard = payload.hazard_type or "UNKNOWN"
    if hazard not in VALID_HAZARDS:
        warnings.append(f"Invalid hazardType '{payload.hazard_type}' normalized to UNKNOWN.")
        hazard = "UNKNOWN"

    phase = payload.phase or "UNKNOWN"
    if phase not in VALID_PHASES:
        warnings.append(f"Invalid phase '{payload.phase}' normalized to UNKNOWN.")
        phase = "UNKNOWN"

    severity = int(clamp(round_half_up(_safe_number(payload.severity, 3)), 1, 5))
    if payload.severity is None:
        warnings.append("Missing severity; defaulted to 3.")

    customers = max(0, round_half_up(_safe_number(payload.customers_affected, 0)))
    if payload.customers_affected is None:
        warnings.append("Missing customersAffected; defaulted to 0.")

    assets = [
        AssetInput(
            id=asset.id,
            type=asset.type,
            age_years=None if asset.age_years is None else clamp(asset.age_years, 0, 120),
            vegetation_exposure=(
                None if asset.vegetation_exposure is None else clamp(asset.vegetation_exposure, 0, 1)
            ),
            load_criticality=None if asset.load_criticality is None else clamp(asset.load_criticality, 0, 1),
        )
        for asset in payload.assets or []
    ]
    if not payload.assets:
        warnings.append("No assets provided.")

    critical_loads = [
        CriticalLoadInput(
            type=load.type if load.type in VALID_LOAD_TYPES else "OTHER",
            name=load.name,
            backup_hours_remaining=(
                None if load.backup_hours_remaining is None else max(0.0, load.backup_hours_remaining)
            ),
        )
        for load in payload.critical_loads or []
    ]

    crews_in = payload.crews or CrewInput()
    crews = NormalizedCrews(
        available=max(0, round_half_up(_safe_number(crews_in.available, 0))),
        en_route=max(0, round_half_up(_safe_number(crews_in.en_route, 0))),
        notes=crews_in.notes,
    )
    if payload.crews is None:
        warnings.append("Crew object missing; defaulted crew counts to 0.")

    quality_in = payload.data_quality or DataQualityInput()
    data_quality = NormalizedDataQuality(
        completeness=clamp(_safe_number(quality_in.completeness, 0.5), 0, 1),
        freshness_minutes=max(0, round_half_up(_safe_number(quality_in.freshness_minutes, 120))),
        notes=quality_in.notes,
    )
    if payload.data_quality is None:
        warnings.append("Data quality missing; using conservative defaults.")

    last_updated = payload.last_updated if payload.last_updated and _is_iso_timestamp(payload.last_updated) else None
    if payload.last_updated and last_updated is None:
        warnings.append("Invalid lastUpdated value ignored; expected ISO timestamp.")

    scenario_id = payload.scenario_id if payload.scenario_id and payload.scenario_id.strip() else "unknown_scenario"

    scenario = NormalizedScenario(
        scenario_id=scenario_id,
        hazard_type=hazard,
        phase=phase,
        severity=severity,
        customers_affected=customers,
        assets=assets,
        critical_loads=critical_loads,
        crews=crews,
        last_updated=last_updated,
        data_quality=data_quality,
        operator_context=payload.operator_context or {},
    )
    return scenario, warnings


def scenario_from_event(
    event: OutageEvent,
    crews: CrewInput | None = None,
    assets: list[AssetInput] | None = None,
    data_quality: DataQualityInput | None = None,
) -> ScenarioInput:
    """Project an outage event onto the policy input shape."""
    critical_loads = [
        CriticalLoadInput(
            type=load_type.upper(),
            name=load_type,
            backup_hours_remaining=event.backup_runtime_remaining_hours,
        )
        for load_type in event.critical_load_types
    ]
    if event.has_critical_load and not critical_loads:
        critical_loads.append(
            CriticalLoadInput(type="OTHER", backup_hours_remaining=event.backup_runtime_remaining_hours)
        )

    return ScenarioInput(
        scenario_id=event.id,
        hazard_type=_OUTAGE_HAZARDS.get(event.outage_type or "", "UNKNOWN"),
        phase=_LIFECYCLE_PHASES.get(event.lifecycle_stage, "UNKNOWN"),
        severity=get_event_severity(event),
        customers_affected=event.customers_impacted,
        assets=assets,
        critical_loads=critical_loads,
        crews=crews,
        data_quality=data_quality,
    )


def deterministic_hash(scenario: NormalizedScenario, warnings: list[str]) -> str:
    blob = json.dumps(
        {"scenario": scenario.model_dump(mode="json"), "warnings": warnings},
        sort_keys=True,
        separators=(",", ":"),
    )
    return "sha256_" + hashlib.sha256(blob.encode("utf-8")).hexdigest()


def _merge_unique(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for item in group:
            if item not in merged:
                merged.append(item)
    return merged


def _apply_default_policies(
    scenario: NormalizedScenario,
    allowed: list[AllowedAction],
    blocked: list[BlockedAction],
    critical_load_at_risk: bool,
) -> tuple[list[AllowedAction], list[BlockedAction]]:
    allowed_by_action = {item.action: item for item in allowed}
    # Later blocks for the same action replace earlier ones.
    blocked_by_action = {item.action: item for item in blocked}

    if "public_advisory" not in blocked_by_action:
        allowed_by_action["public_advisory"] = AllowedAction(
            action="public_advisory",
            reason="Public advisory supports transparency and safety messaging.",
            constraints=["Include ETR confidence band and critical service status in message."],
        )

    if critical_load_at_risk:
        allowed_by_action["prioritize_critical_load"] = AllowedAction(
            action="prioritize_critical_load",
            reason="Critical loads require restoration priority.",
            constraints=["Sequence switching/restoration to protect hospital, water, and telecom loads."],
        )

    if scenario.phase == "ACTIVE" and scenario.severity >= 4 and "deenergize_section" not in blocked_by_action:
        allowed_by_action["deenergize_section"] = AllowedAction(
            action="deenergize_section",
            reason="Controlled de-energization may reduce safety risk during severe active events.",
            constraints=["Requires safety officer approval and critical load impact review."],
        )

    if "reroute_load" not in allowed_by_action and "reroute_load" not in blocked_by_action:
        allowed_by_action["reroute_load"] = AllowedAction(
            action="reroute_load",
            reason="Load reroute can reduce customer minutes interrupted when safe switching is available.",
            constraints=["Confirm feeder thermal limits and crew verification prior to switching."],
        )

    for action in ACTIONS:
        if action not in allowed_by_action and action not in blocked_by_action:
            blocked_by_action[action] = BlockedAction(
                action=action,
                reason="Action not recommended under current rule state.",
                remediation=["Review scenario inputs and re-evaluate after operational updates."],
            )

    return (
        [allowed_by_action[action] for action in ACTIONS if action in allowed_by_action],
        [blocked_by_action[action] for action in ACTIONS if action in blocked_by_action],
    )


def evaluate_policy(payload: ScenarioInput, now: datetime | None = None) -> PolicyEvaluation:
    """Run the deterministic rule engine over one scenario.

    The same normalized input always yields the same actions, flags, and hash;
    only ``evaluated_at`` depends on the clock.
    """
    scenario, warnings = normalize_scenario(payload)
    evaluated_at = now or datetime.now(timezone.utc)

    asset_result = evaluate_asset_rules(scenario)
    critical_result = evaluate_critical_rules(scenario, asset_result.avg_load_criticality)
    crew_result = evaluate_crew_rules(scenario)

    hazard_escalating = scenario.phase == "ACTIVE" and scenario.hazard_type in ("STORM", "WILDFIRE")
    etr_band = evaluate_etr_rules(
        scenario,
        crews_sufficient=crew_result.crews_sufficient,
        storm_like_active=hazard_escalating,
        data_quality_warnings=warnings,
    )

    additional_flags: list[str] = []
    if hazard_escalating:
        additional_flags.append("storm_active")
    if etr_band.band == "LOW":
        additional_flags.append("low_confidence_etr")
    additional_flags.extend(asset_result.escalation_flags)

    blocked: list[BlockedAction] = []
    if "vegetation_fire_risk" in asset_result.escalation_flags:
        blocked.append(
            BlockedAction(
                action="deenergize_section",
                reason="Vegetation fire risk active; aerial assessment required before field switching.",
                remediation=[
                    "Complete aerial fire line clearance.",
                    "Obtain confirmation from incident commander.",
                    "Re-evaluate once vegetation exposure drops below 0.60 threshold.",
                ],
            )
        )
    blocked.extend(crew_result.blocked_actions)
    blocked.extend(
        BlockedAction(
            action=action,
            reason="Action blocked due to critical load risk.",
            remediation=["Prioritize critical load restoration path before this action."],
        )
        for action in critical_result.blocked_actions
    )

    allowed_actions, blocked_actions = _apply_default_policies(
        scenario,
        crew_result.allowed_actions,
        blocked,
        critical_result.critical_load_at_risk,
    )

    safety_constraints = [
        *critical_result.safety_constraints,
        SafetyConstraint(
            id="SC-CREW-001",
            title="Field crew sufficiency",
            description="High-risk switching and restoration actions require adequate crew staffing.",
            severity="LOW" if crew_result.crews_sufficient else "HIGH",
            triggered=not crew_result.crews_sufficient,
            evidence=[
                f"Crews available + en-route: {crew_result.crews_available_total}.",
                f"Estimated crews needed: {crew_result.estimated_crews_needed}.",
            ],
        ),
    ]

    drivers = [
        *asset_result.drivers,
        ExplainabilityDriver(key="severity", value=scenario.severity, weight=0.3),
        ExplainabilityDriver(key="customers_affected", value=scenario.customers_affected, weight=0.25),
        ExplainabilityDriver(key="crews_sufficient", value=crew_result.crews_sufficient, weight=0.35),
        ExplainabilityDriver(key="etr_band", value=etr_band.band, weight=0.4),
    ]

    return PolicyEvaluation(
        allowed_actions=allowed_actions,
        blocked_actions=blocked_actions,
        escalation_flags=_merge_unique(
            critical_result.escalation_flags,
            crew_result.escalation_flags,
            additional_flags,
        ),
        etr_band=etr_band,
        safety_constraints=safety_constraints,
        drivers=drivers,
        assumptions=_merge_unique(
            asset_result.assumptions,
            [
                "Estimated crew need is derived from customers affected and severity.",
                "Missing fields are normalized to conservative defaults.",
            ],
        ),
        data_quality_warnings=warnings,
        evaluated_at=evaluated_at,
        input_last_updated=scenario.last_updated,
        engine_version=ENGINE_VERSION,
        deterministic_hash=deterministic_hash(scenario, warnings),
    )
