"""Async collectors for NWS hazard alerts and the Open-Meteo wind grid."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

import aiohttp

from .schemas import WeatherAlert, WindPoint

logger = logging.getLogger(__name__)

NWS_ALERTS_URL = "https://api.weather.gov/alerts/active"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
DEFAULT_USER_AGENT = "OutageCommandMap/1.0 (operator-copilot)"
DEFAULT_ALERT_TTL_SECONDS = 90.0

# Houston service territory sample points (lat, lng).
WIND_GRID_POINTS: tuple[tuple[float, float], ...] = (
    (29.7604, -95.3698),
    (29.55, -94.95),
    (29.77, -95.44),
    (29.62, -95.63),
    (30.17, -95.46),
    (29.79, -95.82),
    (29.69, -95.21),
    (30.31, -95.46),
    (29.95, -95.35),
)


class TTLCache:
    """Small time-bounded cache; entries older than ``ttl_seconds`` miss."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_ALERT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()


def normalize_alert_feature(feature: dict[str, Any]) -> WeatherAlert:
    """Slim a GeoJSON alert feature down to the fields scoring needs."""
    props = feature.get("properties") or {}
    return WeatherAlert(
        id=str(feature.get("id") or props.get("id") or ""),
        severity=props.get("severity") or "Unknown",
        certainty=props.get("certainty") or "Unknown",
        urgency=props.get("urgency") or "Unknown",
        event=props.get("event") or "Unknown",
        headline=props.get("headline") or "",
        area_desc=props.get("areaDesc") or "",
        effective=props.get("effective") or None,
        expires=props.get("expires") or None,
        description=props.get("description") or "",
        instruction=props.get("instruction") or "",
        geometry=feature.get("geometry") or None,
    )


def parse_wind_response(payload: Any) -> list[WindPoint]:
    """Map an Open-Meteo batch response back onto the grid points.

    A multi-location request returns a list, one entry per point, in request order.
    """
    entries = payload if isinstance(payload, list) else [payload]
    points: list[WindPoint] = []
    for (lat, lng), entry in zip(WIND_GRID_POINTS, entries):
        current = (entry or {}).get("current") or {}
        speed = current.get("wind_speed_10m")
        if speed is None:
            continue
        points.append(
            WindPoint(
                lat=lat,
                lng=lng,
                speed=max(0.0, float(speed)),
                gusts=current.get("wind_gusts_10m"),
            )
        )
    return points


async def fetch_nws_alerts(
    session: aiohttp.ClientSession,
    cache: TTLCache | None = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> list[WeatherAlert]:
    if cache is not None:
        cached = cache.get(NWS_ALERTS_URL)
        if cached is not None:
            return cached

    headers = {"User-Agent": user_agent, "Accept": "application/geo+json"}
    async with session.get(NWS_ALERTS_URL, headers=headers, timeout=15) as response:
        response.raise_for_status()
        payload = await response.json(content_type=None)

    alerts = [normalize_alert_feature(feature) for feature in payload.get("features") or []]
    if cache is not None:
        cache.set(NWS_ALERTS_URL, alerts)
    return alerts


async def fetch_wind_grid(session: aiohttp.ClientSession) -> list[WindPoint]:
    params = {
        "latitude": ",".join(str(lat) for lat, _ in WIND_GRID_POINTS),
        "longitude": ",".join(str(lng) for _, lng in WIND_GRID_POINTS),
        "current": "wind_speed_10m,wind_gusts_10m",
        "wind_speed_unit": "mph",
    }
    async with session.get(OPEN_METEO_URL, params=params, timeout=15) as response:
        response.raise_for_status()
        payload = await response.json()
    return parse_wind_response(payload)


async def ingest_weather(
    cache: TTLCache | None = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> tuple[list[WeatherAlert], list[WindPoint]]:
    """Collect alerts and wind in parallel; a failed collector yields an empty list."""
    async with aiohttp.ClientSession(headers={"User-Agent": user_agent}) as session:
        alerts, wind = await asyncio.gather(
            fetch_nws_alerts(session, cache=cache, user_agent=user_agent),
            fetch_wind_grid(session),
            return_exceptions=True,
        )

    for outcome in (alerts, wind):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome
    if isinstance(alerts, Exception):
        logger.warning("NWS alerts unavailable: %s", alerts)
        alerts = []
    if isinstance(wind, Exception):
        logger.warning("Wind grid unavailable: %s", wind)
        wind = []
    return alerts, wind
