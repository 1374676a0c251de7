"""Main orchestration engine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .actions import build_operator_contract
from .policy import evaluate_policy, scenario_from_event
from .reasoning import AdvisoryReasoner, ReasoningError
from .schemas import (
    AdvisoryResult,
    CopilotInsights,
    CrewInput,
    OutageEvent,
    WeatherAlert,
    WindPoint,
)
from .scoring import compute_weather_risk
from .severity import get_event_severity, severity_color, severity_label
from .storage import Storage

logger = logging.getLogger(__name__)

DETERMINISTIC_ENGINE = "deterministic-rules"


class AdvisoryEngine:
    """Coordinates scoring, policy evaluation, reasoning, and caching."""

    def __init__(
        self,
        storage: Storage,
        reasoner: AdvisoryReasoner | None = None,
        llm_trigger_severity: int = 4,
        backup_threshold_hours: float = 4.0,
    ):
        self.storage = storage
        self.reasoner = reasoner
        self.llm_trigger_severity = llm_trigger_severity
        self.backup_threshold_hours = backup_threshold_hours

    async def _draft_insights(self, event, severity, weather_risk, policy) -> CopilotInsights | None:
        prompt_payload = self.reasoner.build_cache_payload(event, severity, weather_risk, policy)
        key = self.storage.cache_key(event.id, prompt_payload)
        cached = await self.storage.get_cached_insights(key)
        if cached:
            return cached

        try:
            insights, _ = await self.reasoner.evaluate(event, severity, weather_risk, policy)
        except ReasoningError as exc:
            logger.warning("Reasoning output rejected for event %s: %s", event.id, exc)
            return None
        except Exception as exc:  # provider outage
            logger.warning("Reasoning provider failed for event %s: %s", event.id, exc)
            return None

        await self.storage.set_cached_insights(key, insights)
        return insights

    async def evaluate_event(
        self,
        event: OutageEvent,
        alerts: list[WeatherAlert],
        wind_points: list[WindPoint],
        crews: CrewInput | None = None,
        now: datetime | None = None,
    ) -> AdvisoryResult:
        now = now or datetime.now(timezone.utc)

        severity = get_event_severity(event)
        weather_risk = compute_weather_risk(event, alerts, wind_points)
        policy = evaluate_policy(scenario_from_event(event, crews=crews), now=now)

        insights = None
        wants_reasoning = severity >= self.llm_trigger_severity or event.requires_escalation
        if self.reasoner is not None and wants_reasoning:
            insights = await self._draft_insights(event, severity, weather_risk, policy)

        contract = build_operator_contract(
            event,
            severity,
            weather_risk,
            policy,
            insights=insights.insights if insights else None,
            now=now,
            backup_threshold_hours=self.backup_threshold_hours,
        )

        requires_escalation = (
            event.requires_escalation
            or "critical_load_at_risk" in policy.escalation_flags
            or "critical_backup_window_short" in policy.escalation_flags
            or weather_risk.tier == "Severe"
            or (insights is not None and insights.confidence_score < 0.55)
        )

        return AdvisoryResult(
            event_id=event.id,
            severity=severity,
            severity_label=severity_label(severity),
            severity_color=severity_color(severity),
            weather_risk=weather_risk,
            policy=policy,
            contract=contract,
            model_engine=self.reasoner.engine_name if insights else DETERMINISTIC_ENGINE,
            requires_escalation=requires_escalation,
            evaluated_at=now,
        )
