"""LLM advisory insights with provider support and strict output validation."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .etr import format_confidence_full, format_runtime_hours
from .schemas import CopilotInsights, OutageEvent, PolicyEvaluation, WeatherRiskResult

try:
    import google.generativeai as genai
except ImportError:  # pragma: no cover - optional runtime provider
    genai = None

try:
    from ollama import AsyncClient
except ImportError:  # pragma: no cover - optional runtime provider
    AsyncClient = None


class ReasoningError(RuntimeError):
    """Raised when model response is invalid."""


class AdvisoryReasoner:
    """Drafts operator insights through Gemini or a local Ollama model."""

    def __init__(
        self,
        llm_provider: str = "gemini",
        api_key: str = "",
        model_name: str = "gemini-1.5-pro",
        ollama_model: str = "llama3",
        ollama_base_url: str = "http://localhost:11434",
    ):
        self.llm_provider = llm_provider.strip().lower()
        self.ollama_model = ollama_model.strip() or "llama3"
        self.model = None
        self.ollama_client = None

        if self.llm_provider not in {"gemini", "ollama"}:
            raise ValueError("LLM_PROVIDER must be either 'gemini' or 'ollama'.")

        if self.llm_provider == "gemini":
            if not api_key:
                raise ValueError("Missing GEMINI_API_KEY for Gemini provider.")
            if genai is None:
                raise ValueError("google-generativeai package is not installed.")
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)
            self.engine_name = f"gemini:{model_name}"
            return

        if AsyncClient is None:
            raise ValueError("ollama package is not installed.")
        self.ollama_client = AsyncClient(host=ollama_base_url.strip() or "http://localhost:11434")
        self.engine_name = f"ollama:{self.ollama_model}"

    @staticmethod
    def _build_prompt(
        event: OutageEvent,
        severity: int,
        weather_risk: WeatherRiskResult,
        policy: PolicyEvaluation,
    ) -> str:
        allowed = "\n".join(f"- {a.action}: {a.reason}" for a in policy.allowed_actions) or "- none"
        blocked = "\n".join(f"- {b.action}: {b.reason}" for b in policy.blocked_actions) or "- none"
        drivers = ", ".join(event.etr_uncertainty_drivers) or "None identified"

        return f"""
Role: Utility outage operations advisor (decision support only)
Event: {event.name or event.id} | {event.outage_type or 'Unknown'} | {event.service_area or 'Unknown area'}
Lifecycle: {event.lifecycle_stage}
Severity: {severity}/5
CustomersImpacted: {event.customers_impacted if event.customers_impacted is not None else 'Unknown'}
EtrConfidence: {format_confidence_full(event.etr_confidence)}
UncertaintyDrivers: {drivers}
CriticalLoad: {', '.join(event.critical_load_types) or 'None'} | backup {format_runtime_hours(event.backup_runtime_remaining_hours)}
WeatherRisk: {weather_risk.tier} ({weather_risk.score}/100), alerts={weather_risk.alert_count}
EscalationFlags: {', '.join(policy.escalation_flags) or 'none'}
PolicyEtrBand: {policy.etr_band.band} ({policy.etr_band.confidence:.2f})

Allowed actions:
{allowed}

Blocked actions:
{blocked}

Task:
1) Write a 2-3 sentence situation summary
2) Describe the ETR band and its confidence
3) Describe the critical load runway
4) Give up to 3 advisory recommendations consistent with the allowed actions
5) Note any constraints the operator must respect
6) Cite the data fields used

Output constraints:
- Return JSON only
- No markdown, no extra keys
- Advisory language only; never instruct switching of blocked actions

Schema:
{{
  "insights": [{{"category": "summary|etr|runway|recommendation|constraint|source", "text": "string"}}],
  "assumptions": ["string"],
  "confidence_score": float
}}
""".strip()

    @staticmethod
    def build_cache_payload(
        event: OutageEvent,
        severity: int,
        weather_risk: WeatherRiskResult,
        policy: PolicyEvaluation,
    ) -> dict[str, Any]:
        """Build deterministic cache payload; unchanged signals reuse the cached draft."""
        return {
            "event_id": event.id,
            "lifecycle_stage": event.lifecycle_stage,
            "severity": severity,
            "weather_tier": weather_risk.tier,
            "weather_score": weather_risk.score,
            "policy_hash": policy.deterministic_hash,
            "escalation_flags": sorted(policy.escalation_flags),
        }

    async def evaluate(
        self,
        event: OutageEvent,
        severity: int,
        weather_risk: WeatherRiskResult,
        policy: PolicyEvaluation,
    ) -> tuple[CopilotInsights, dict[str, Any]]:
        """Return validated insights and the prompt payload for caching."""
        prompt = self._build_prompt(event, severity, weather_risk, policy)
        payload = self.build_cache_payload(event, severity, weather_risk, policy)
        raw_text = ""

        if self.llm_provider == "gemini":
            raw = await self.model.generate_content_async(prompt)
            raw_text = getattr(raw, "text", "") or ""
        else:
            response = await self.ollama_client.chat(
                model=self.ollama_model,
                messages=[{"role": "user", "content": prompt}],
                format="json",
            )
            raw_text = str((response.get("message") or {}).get("content") or "")

        try:
            parsed = json.loads(raw_text)
            validated = CopilotInsights.model_validate(parsed)
        except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
            raise ReasoningError(f"Invalid model response: {exc}") from exc

        return validated, payload
