"""Deterministic policy rules: assets, crews, critical loads, and ETR confidence."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .rounding import clamp, fixed, round_half_up
from .schemas import (
    ActionType,
    AllowedAction,
    BlockedAction,
    EtrBand,
    ExplainabilityDriver,
    NormalizedScenario,
    SafetyConstraint,
)

HAZARD_MULTIPLIERS = {
    "STORM": 1.25,
    "WILDFIRE": 1.4,
    "RAIN": 1.1,
    "HEAT": 1.15,
    "ICE": 1.2,
    "UNKNOWN": 1.0,
}

CRITICAL_TYPES = frozenset({"HOSPITAL", "WATER", "TELECOM"})
BACKUP_WINDOW_HOURS = 4.0
VEGETATION_FIRE_THRESHOLD = 0.60


@dataclass
class AssetRuleResult:
    asset_risk_score: int
    avg_load_criticality: float
    drivers: list[ExplainabilityDriver]
    assumptions: list[str] = field(default_factory=list)
    escalation_flags: list[str] = field(default_factory=list)


@dataclass
class CrewRuleResult:
    crews_available_total: int
    estimated_crews_needed: int
    crews_sufficient: bool
    escalation_flags: list[str]
    allowed_actions: list[AllowedAction]
    blocked_actions: list[BlockedAction]


@dataclass
class CriticalRuleResult:
    critical_load_at_risk: bool
    escalation_flags: list[str]
    safety_constraints: list[SafetyConstraint]
    blocked_actions: list[ActionType]


def _average(values: list[float], default: float) -> float:
    return sum(values) / len(values) if values else default


def evaluate_asset_rules(scenario: NormalizedScenario) -> AssetRuleResult:
    assumptions: list[str] = []
    escalation_flags: list[str] = []
    assets = scenario.assets
    hazard = scenario.hazard_type

    if not assets:
        assumptions.append("No assets provided; using scenario-level defaults for risk scoring.")

    avg_age = _average([clamp(a.age_years if a.age_years is not None else 15, 0, 120) for a in assets], 15.0)
    avg_vegetation = _average(
        [clamp(a.vegetation_exposure if a.vegetation_exposure is not None else 0.4, 0, 1) for a in assets],
        0.4,
    )
    avg_criticality = _average(
        [clamp(a.load_criticality if a.load_criticality is not None else 0.5, 0, 1) for a in assets],
        0.5,
    )

    # HEAT favours cooling-load priority; ICE and WILDFIRE make vegetation the
    # primary failure driver.
    if hazard == "HEAT":
        criticality_weight, vegetation_weight = 0.40, 0.15
        assumptions.append("HEAT hazard: load_criticality_avg weight elevated to 0.40 (cooling load priority).")
        assumptions.append("HEAT hazard: vegetation_exposure_avg weight reduced to 0.15 (less relevant in heat events).")
    elif hazard in ("ICE", "WILDFIRE"):
        criticality_weight, vegetation_weight = 0.15, 0.45
        assumptions.append(
            f"{hazard} hazard: vegetation_exposure_avg weight elevated to 0.45 "
            "(vegetation contact is the primary failure driver)."
        )
        assumptions.append(f"{hazard} hazard: load_criticality_avg weight reduced to 0.15.")
    else:
        criticality_weight, vegetation_weight = 0.30, 0.25

    age_factor = clamp(avg_age / 60, 0, 1)
    raw_score = (
        age_factor * 35
        + avg_vegetation * vegetation_weight * 100
        + avg_criticality * criticality_weight * 100
        + (scenario.severity / 5) * 10
    ) * HAZARD_MULTIPLIERS[hazard]
    asset_risk_score = int(clamp(round_half_up(raw_score), 0, 100))

    if hazard == "HEAT" and scenario.severity >= 3:
        escalation_flags.append("transformer_thermal_stress")
        assumptions.append(
            f"HEAT severity {scenario.severity}/5: transformer_thermal_stress escalation flagged; "
            "ambient heat may accelerate insulation degradation under sustained load."
        )

    if hazard == "WILDFIRE" and assets and avg_vegetation >= VEGETATION_FIRE_THRESHOLD:
        escalation_flags.append("vegetation_fire_risk")
        assumptions.append(
            f"WILDFIRE vegetation exposure {avg_vegetation:.2f} >= {VEGETATION_FIRE_THRESHOLD:.2f}: "
            "vegetation_fire_risk escalation flagged."
        )

    drivers = [
        ExplainabilityDriver(key="asset_age_years_avg", value=float(fixed(avg_age, 1)), weight=0.35),
        ExplainabilityDriver(key="hazard_type", value=hazard, weight=0.25),
        ExplainabilityDriver(key="vegetation_exposure_avg", value=float(fixed(avg_vegetation, 2)), weight=vegetation_weight),
        ExplainabilityDriver(key="load_criticality_avg", value=float(fixed(avg_criticality, 2)), weight=criticality_weight),
        ExplainabilityDriver(key="asset_risk_score", value=asset_risk_score, weight=1.0),
    ]

    return AssetRuleResult(
        asset_risk_score=asset_risk_score,
        avg_load_criticality=avg_criticality,
        drivers=drivers,
        assumptions=assumptions,
        escalation_flags=escalation_flags,
    )


def estimate_crews_needed(customers_affected: int, severity: int) -> int:
    customer_factor = max(0, math.ceil(customers_affected / 1500))
    severity_factor = max(1, math.ceil(severity * 1.2))
    return max(1, customer_factor + severity_factor)


def evaluate_crew_rules(scenario: NormalizedScenario) -> CrewRuleResult:
    total = scenario.crews.available + scenario.crews.en_route
    needed = estimate_crews_needed(scenario.customers_affected, scenario.severity)
    sufficient = total >= needed

    allowed = [
        AllowedAction(
            action="dispatch_crews",
            reason=(
                "Crew coverage meets estimated restoration demand."
                if sufficient
                else "Dispatch is still allowed to optimize available workforce under constrained conditions."
            ),
            constraints=[
                f"Use incident command priority; estimated crews needed: {needed}.",
                "Assign at least one crew to critical load corridors first.",
            ],
        ),
        AllowedAction(
            action="request_mutual_aid",
            reason=(
                "Mutual aid can improve restoration speed even when crews are currently sufficient."
                if sufficient
                else "Mutual aid recommended because available + en-route crews are below estimated need."
            ),
            constraints=["Coordinate with neighboring districts and validate travel ETA before commitment."],
        ),
        AllowedAction(
            action="generate_restoration_plan",
            reason="Planning action is always permitted and improves dispatch sequencing.",
            constraints=["Recompute plan when crew counts or hazard phase changes."],
        ),
    ]

    blocked: list[BlockedAction] = []
    if not sufficient:
        blocked.append(
            BlockedAction(
                action="reroute_load",
                reason="Crew shortfall increases operational switching risk and slows verification loops.",
                remediation=[
                    "Stage additional switching-qualified crews.",
                    "Use mutual aid or postpone reroute until minimum crew threshold is met.",
                ],
            )
        )

    return CrewRuleResult(
        crews_available_total=total,
        estimated_crews_needed=needed,
        crews_sufficient=sufficient,
        escalation_flags=[] if sufficient else ["insufficient_crews"],
        allowed_actions=allowed,
        blocked_actions=blocked,
    )


def evaluate_critical_rules(scenario: NormalizedScenario, avg_load_criticality: float) -> CriticalRuleResult:
    flags: list[str] = []

    critical_present = any(load.type in CRITICAL_TYPES for load in scenario.critical_loads)
    critical_by_score = avg_load_criticality >= 0.7
    at_risk = critical_present or critical_by_score
    if at_risk:
        flags.append("critical_load_at_risk")

    low_backup = [
        load for load in scenario.critical_loads
        if load.backup_hours_remaining is not None and load.backup_hours_remaining < BACKUP_WINDOW_HOURS
    ]
    if low_backup:
        flags.append("critical_backup_window_short")

    is_ice = scenario.hazard_type == "ICE"
    ice_assets = [
        a for a in scenario.assets
        if is_ice and a.vegetation_exposure is not None and a.vegetation_exposure > 0.5
    ]
    ice_load_risk = bool(ice_assets)
    if ice_load_risk:
        flags.append("ice_load_risk")

    # Switching on ice-loaded lines needs crew visual confirmation.
    block_reroute_for_ice = is_ice and scenario.phase == "ACTIVE"

    if at_risk:
        crit_evidence = []
        if critical_present:
            crit_evidence.append("Critical load types (hospital/water/telecom) detected.")
        if critical_by_score:
            crit_evidence.append(f"Average load criticality is {avg_load_criticality:.2f} (>= 0.70).")
    else:
        crit_evidence = ["No critical load indicators crossed threshold."]

    ice_switch_evidence = ["Not triggered: ICE phase not ACTIVE or hazard is not ICE."]
    if block_reroute_for_ice:
        ice_switch_evidence = [
            "Hazard: ICE, phase: ACTIVE.",
            "Remote switching without visual line inspection risks cascading failures on ice-loaded conductors.",
        ]
        if ice_load_risk:
            ice_switch_evidence.append(f"{len(ice_assets)} asset(s) with vegetation exposure > 0.5 identified.")

    constraints = [
        SafetyConstraint(
            id="SC-CRIT-001",
            title="Critical service continuity",
            description="Actions must prioritize restoration and continuity for critical services.",
            severity="HIGH",
            triggered=at_risk,
            evidence=crit_evidence,
        ),
        SafetyConstraint(
            id="SC-CRIT-002",
            title="Backup power depletion risk",
            description="If backup windows are short, defer non-essential switching work and accelerate support.",
            severity="HIGH",
            triggered=bool(low_backup),
            evidence=(
                [f"{load.type}{f' ({load.name})' if load.name else ''} backup < 4h." for load in low_backup]
                or ["No backup duration under 4 hours provided."]
            ),
        ),
        SafetyConstraint(
            id="SC-ICE-001",
            title="Ice storm switching prohibition",
            description=(
                "Load rerouting via switching is prohibited during active ICE events without crew "
                "visual confirmation of line state."
            ),
            severity="HIGH" if block_reroute_for_ice else "LOW",
            triggered=block_reroute_for_ice,
            evidence=ice_switch_evidence,
        ),
        SafetyConstraint(
            id="SC-ICE-002",
            title="Ice vegetation line loading",
            description=(
                "Assets with high vegetation exposure are at elevated risk of conductor failure under "
                "ice accumulation."
            ),
            severity="HIGH" if ice_load_risk else "LOW",
            triggered=ice_load_risk,
            evidence=(
                [
                    f"Asset {a.id} ({a.type}): vegetation exposure {a.vegetation_exposure:.2f}."
                    for a in ice_assets
                ]
                or ["No ICE hazard or all assets below 0.5 vegetation exposure threshold."]
            ),
        ),
    ]

    blocked: list[ActionType] = []
    if at_risk:
        blocked.append("deenergize_section")
    if block_reroute_for_ice:
        blocked.append("reroute_load")

    return CriticalRuleResult(
        critical_load_at_risk=at_risk,
        escalation_flags=flags,
        safety_constraints=constraints,
        blocked_actions=blocked,
    )


def heat_freshness_penalty(freshness_minutes: int) -> float:
    """Stale thermal data costs 0.2% confidence per minute past 60, capped at 25%."""
    if freshness_minutes <= 60:
        return 0.0
    return clamp((freshness_minutes - 60) * 0.002, 0.0, 0.25)


def evaluate_etr_rules(
    scenario: NormalizedScenario,
    crews_sufficient: bool,
    storm_like_active: bool,
    data_quality_warnings: list[str],
) -> EtrBand:
    rationale: list[str] = []
    completeness = scenario.data_quality.completeness
    freshness = scenario.data_quality.freshness_minutes
    is_heat = scenario.hazard_type == "HEAT"
    penalty = heat_freshness_penalty(freshness) if is_heat else 0.0

    data_good = completeness >= 0.75 and freshness <= 60 and not data_quality_warnings
    key_inputs_missing = not scenario.assets or scenario.customers_affected == 0
    severe_active = storm_like_active and scenario.severity >= 4

    if is_heat and freshness > 60:
        rationale.append(
            f"Thermal grid data is {freshness} minutes old; stale load readings degrade HEAT ETR accuracy."
        )

    if data_good and crews_sufficient and not storm_like_active:
        rationale.extend([
            "Data quality is strong and current.",
            "Crew capacity meets estimated demand.",
            "Hazard conditions are not rapidly escalating.",
        ])
        return EtrBand(band="HIGH", confidence=clamp(0.85 - penalty, 0.5, 0.85), rationale=rationale)

    if key_inputs_missing or severe_active or not crews_sufficient:
        if key_inputs_missing:
            rationale.append("Missing key operational inputs (assets or customers affected).")
        if severe_active:
            rationale.append("Active severe hazard creates uncertain restoration path.")
        if not crews_sufficient:
            rationale.append("Crew availability is below estimated need.")
        if data_quality_warnings:
            rationale.append("Data quality warnings reduce confidence in precision.")
        confidence = clamp(0.35 - len(data_quality_warnings) * 0.03 - penalty, 0.1, 0.45)
        return EtrBand(band="LOW", confidence=confidence, rationale=rationale)

    rationale.append("Conditions are mixed across hazard, workforce, and data quality.")
    rationale.append(f"Data completeness={completeness:.2f}, freshness={freshness} minutes.")
    rationale.append(f"Crews sufficient={str(crews_sufficient).lower()}.")
    if is_heat and penalty > 0:
        rationale.append(f"HEAT stale-data confidence penalty applied: -{penalty * 100:.0f}%.")
    return EtrBand(band="MEDIUM", confidence=clamp(0.62 - penalty, 0.35, 0.62), rationale=rationale)
