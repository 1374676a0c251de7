"""Persistence helpers for PostgreSQL: events, insight cache, and the advisory log."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg

from .schemas import AdvisoryResult, CopilotInsights, GeoPoint, OutageEvent, WeatherRiskResult

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = """
    id,
    name,
    description,
    priority,
    customers_impacted,
    outage_type,
    lifecycle_stage,
    geo_lat,
    geo_lng,
    service_area,
    etr_earliest,
    etr_expected,
    etr_latest,
    etr_confidence,
    etr_band_hours,
    has_critical_load,
    critical_load_types,
    backup_runtime_remaining_hours,
    critical_runway_status,
    requires_escalation,
    etr_uncertainty_drivers,
    notes
"""


def event_from_row(row: dict[str, Any]) -> OutageEvent:
    data = dict(row)
    lat = data.pop("geo_lat", None)
    lng = data.pop("geo_lng", None)
    if lat is not None and lng is not None:
        data["geo_center"] = GeoPoint(lat=lat, lng=lng)
    data["id"] = str(data["id"])
    data["name"] = data.get("name") or ""
    data["critical_load_types"] = list(data.get("critical_load_types") or [])
    data["etr_uncertainty_drivers"] = list(data.get("etr_uncertainty_drivers") or [])
    data["has_critical_load"] = bool(data.get("has_critical_load"))
    data["requires_escalation"] = bool(data.get("requires_escalation"))
    return OutageEvent.model_validate(data)


class Storage:
    """Thin async storage wrapper; every call is a no-op until connected."""

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        self._pool = await asyncpg.create_pool(self._database_url, min_size=1, max_size=5)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def fetch_events(self, active_only: bool = True) -> list[OutageEvent]:
        if self._pool is None:
            return []

        query = f"SELECT {_EVENT_COLUMNS} FROM outage_events"
        if active_only:
            query += " WHERE lifecycle_stage <> 'Post-Event'"
        query += " ORDER BY updated_at DESC"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [event_from_row(dict(row)) for row in rows]

    async def get_event(self, event_id: str) -> OutageEvent | None:
        if self._pool is None:
            return None

        query = f"SELECT {_EVENT_COLUMNS} FROM outage_events WHERE id::text = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, event_id)
        return event_from_row(dict(row)) if row else None

    @staticmethod
    def cache_key(event_id: str, prompt_payload: dict[str, Any]) -> str:
        blob = json.dumps({"event_id": event_id, "payload": prompt_payload}, sort_keys=True)
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()

    async def get_cached_insights(self, key: str) -> CopilotInsights | None:
        if self._pool is None:
            return None

        query = """
            SELECT response_json
            FROM insight_cache
            WHERE cache_key = $1 AND expires_at > NOW()
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, key)

        if not row:
            return None
        payload = row["response_json"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return CopilotInsights.model_validate(payload)

    async def set_cached_insights(
        self,
        key: str,
        insights: CopilotInsights,
        ttl_minutes: int = 30,
    ) -> None:
        if self._pool is None:
            return

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)
        query = """
            INSERT INTO insight_cache (cache_key, response_json, expires_at)
            VALUES ($1, $2::jsonb, $3)
            ON CONFLICT (cache_key)
            DO UPDATE SET
                response_json = EXCLUDED.response_json,
                expires_at = EXCLUDED.expires_at
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, key, insights.model_dump_json(), expires_at)

    async def save_weather_risks(self, risks: dict[str, WeatherRiskResult]) -> None:
        if not risks or self._pool is None:
            return

        query = """
            INSERT INTO weather_risk_snapshots (
                event_id,
                score,
                tier,
                alert_count,
                max_alert_severity,
                wind_speed,
                drivers
            ) VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                for event_id, risk in risks.items():
                    await conn.execute(
                        query,
                        event_id,
                        risk.score,
                        risk.tier,
                        risk.alert_count,
                        risk.max_alert_severity,
                        risk.wind_speed,
                        risk.drivers.model_dump_json(),
                    )

    async def log_advisory(self, result: AdvisoryResult) -> None:
        """Append one advisory evaluation to the decision log."""
        if self._pool is None:
            return

        query = """
            INSERT INTO advisory_log (
                event_id,
                severity,
                weather_score,
                etr_band,
                escalation_flags,
                requires_escalation,
                model_engine,
                deterministic_hash,
                payload
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
        """
        async with self._pool.acquire() as conn:
            await conn.execute(
                query,
                result.event_id,
                result.severity,
                result.weather_risk.score,
                result.policy.etr_band.band,
                result.policy.escalation_flags,
                result.requires_escalation,
                result.model_engine,
                result.policy.deterministic_hash,
                result.model_dump_json(),
            )
        logger.debug("Logged advisory for event %s", result.event_id)
