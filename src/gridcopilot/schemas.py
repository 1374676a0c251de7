"""Data schemas for gridcopilot."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


LifecycleStage = Literal["Pre-Event", "Event", "Post-Event"]
RunwayStatus = Literal["NORMAL", "AT_RISK", "BREACH"]
RiskTier = Literal["Low", "Moderate", "High", "Severe"]
ConfidenceLabel = Literal["High", "Medium", "Low"]

HazardType = Literal["STORM", "WILDFIRE", "RAIN", "HEAT", "ICE", "UNKNOWN"]
Phase = Literal["PRE_EVENT", "ACTIVE", "POST_EVENT", "UNKNOWN"]
CriticalLoadType = Literal["HOSPITAL", "WATER", "TELECOM", "SHELTER", "OTHER"]
ActionType = Literal[
    "dispatch_crews",
    "reroute_load",
    "deenergize_section",
    "public_advisory",
    "request_mutual_aid",
    "prioritize_critical_load",
    "generate_restoration_plan",
]


class GeoPoint(BaseModel):
    lat: float
    lng: float


class OutageEvent(BaseModel):
    """Outage event record as returned by the events store."""

    id: str
    name: str = ""
    description: str | None = None
    priority: str | None = None
    customers_impacted: int | None = None
    outage_type: str | None = None
    lifecycle_stage: LifecycleStage = "Event"
    geo_center: GeoPoint | None = None
    service_area: str | None = None
    etr_earliest: datetime | None = None
    etr_expected: datetime | None = None
    etr_latest: datetime | None = None
    etr_confidence: str | float | None = None
    etr_band_hours: float | None = None
    has_critical_load: bool = False
    critical_load_types: list[str] = Field(default_factory=list)
    backup_runtime_remaining_hours: float | None = None
    critical_runway_status: RunwayStatus | None = None
    requires_escalation: bool = False
    etr_uncertainty_drivers: list[str] = Field(default_factory=list)
    notes: str | None = None


class WeatherAlert(BaseModel):
    """Hazard alert normalized from the NWS active alerts feed."""

    id: str
    severity: str = "Unknown"
    certainty: str = "Unknown"
    urgency: str = "Unknown"
    event: str = "Unknown"
    headline: str = ""
    area_desc: str = ""
    effective: str | None = None
    expires: str | None = None
    description: str = ""
    instruction: str = ""
    geometry: dict[str, Any] | None = None


class WindPoint(BaseModel):
    """Sampled wind observation (mph)."""

    lat: float
    lng: float
    speed: float = Field(ge=0.0)
    gusts: float | None = None


class EffectiveLocation(BaseModel):
    lat: float
    lng: float
    is_approx: bool


class ConfidenceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: ConfidenceLabel
    pct: int = Field(ge=0, le=100)


class EtrPrimary(BaseModel):
    band: str
    confidence: str


class RiskDrivers(BaseModel):
    """Weighted sub-scores that explain a weather risk score."""

    model_config = ConfigDict(frozen=True)

    alert_score: int = Field(ge=0, le=100)
    wind_score: int = Field(ge=0, le=100)
    density_score: int = Field(ge=0, le=100)


class WeatherRiskResult(BaseModel):
    """Composite weather risk for one event."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    tier: RiskTier
    tier_color: str
    alert_count: int = Field(ge=0)
    max_alert_severity: str | None = None
    wind_speed: float | None = None
    wind_gusts: float | None = None
    drivers: RiskDrivers


# ── Policy evaluation ────────────────────────────────────────


class AssetInput(BaseModel):
    id: str
    type: str
    age_years: float | None = None
    vegetation_exposure: float | None = None
    load_criticality: float | None = None


class CriticalLoadInput(BaseModel):
    type: str
    name: str | None = None
    backup_hours_remaining: float | None = None


class CrewInput(BaseModel):
    available: int | None = None
    en_route: int | None = None
    notes: str | None = None


class DataQualityInput(BaseModel):
    completeness: float | None = None
    freshness_minutes: float | None = None
    notes: list[str] | None = None


class ScenarioInput(BaseModel):
    """Loosely-typed policy input; normalized before any rule runs."""

    scenario_id: str | None = None
    hazard_type: str | None = None
    phase: str | None = None
    severity: float | None = None
    customers_affected: float | None = None
    assets: list[AssetInput] | None = None
    critical_loads: list[CriticalLoadInput] | None = None
    crews: CrewInput | None = None
    last_updated: str | None = None
    data_quality: DataQualityInput | None = None
    operator_context: dict[str, str] | None = None


class NormalizedCrews(BaseModel):
    available: int = Field(ge=0)
    en_route: int = Field(ge=0)
    notes: str | None = None


class NormalizedDataQuality(BaseModel):
    completeness: float = Field(ge=0.0, le=1.0)
    freshness_minutes: int = Field(ge=0)
    notes: list[str] | None = None


class NormalizedScenario(BaseModel):
    scenario_id: str
    hazard_type: HazardType
    phase: Phase
    severity: int = Field(ge=1, le=5)
    customers_affected: int = Field(ge=0)
    assets: list[AssetInput]
    critical_loads: list[CriticalLoadInput]
    crews: NormalizedCrews
    last_updated: str | None = None
    data_quality: NormalizedDataQuality
    operator_context: dict[str, str] = Field(default_factory=dict)


class ExplainabilityDriver(BaseModel):
    key: str
    value: str | int | float | bool
    weight: float


class SafetyConstraint(BaseModel):
    id: str
    title: str
    description: str
    severity: Literal["LOW", "MEDIUM", "HIGH"]
    triggered: bool
    evidence: list[str]


class AllowedAction(BaseModel):
    action: ActionType
    reason: str
    constraints: list[str]


class BlockedAction(BaseModel):
    action: ActionType
    reason: str
    remediation: list[str]


class EtrBand(BaseModel):
    band: Literal["HIGH", "MEDIUM", "LOW", "UNKNOWN"]
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: list[str]


class PolicyEvaluation(BaseModel):
    """Deterministic rule engine output."""

    allowed_actions: list[AllowedAction]
    blocked_actions: list[BlockedAction]
    escalation_flags: list[str]
    etr_band: EtrBand
    safety_constraints: list[SafetyConstraint]
    drivers: list[ExplainabilityDriver]
    assumptions: list[str]
    data_quality_warnings: list[str]
    evaluated_at: datetime
    input_last_updated: str | None = None
    engine_version: str
    deterministic_hash: str


# ── Advisory ─────────────────────────────────────────────────


class InsightCategory(str, Enum):
    SUMMARY = "summary"
    ETR = "etr"
    RUNWAY = "runway"
    RECOMMENDATION = "recommendation"
    CONSTRAINT = "constraint"
    SOURCE = "source"


class Insight(BaseModel):
    category: InsightCategory
    text: str = Field(min_length=1)


class CopilotInsights(BaseModel):
    """Strictly validated LLM insight payload."""

    insights: list[Insight]
    assumptions: list[str] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class BlockedActionNote(BaseModel):
    action: str
    reason: str


class OperatorContract(BaseModel):
    """Advisory payload consumed by presentation and the text exporter."""

    mode: str
    situation_summary: str
    etr_band_confidence: str
    critical_load_runway: str
    recommendations: list[str]
    blocked_actions: list[BlockedActionNote]
    operator_notes: list[str]
    source_notes: list[str]


class AdvisoryResult(BaseModel):
    """Final per-event decision-support output."""

    event_id: str
    severity: int = Field(ge=1, le=5)
    severity_label: str
    severity_color: str
    weather_risk: WeatherRiskResult
    policy: PolicyEvaluation
    contract: OperatorContract
    model_engine: str
    requires_escalation: bool
    evaluated_at: datetime
