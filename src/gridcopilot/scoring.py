"""Weather risk score per outage event.

Combines three weather signals into a 0-100 composite score:
  1. Alert severity  - max severity of alerts whose polygon contains the event
  2. Wind speed      - speed at the nearest wind grid point
  3. Alert density   - number of overlapping alerts

Weights: alert severity 50%, wind 35%, alert density 15%.
"""

from __future__ import annotations

from typing import Iterable

from .geometry import point_in_geometry
from .rounding import clamp, round_half_up
from .schemas import OutageEvent, RiskDrivers, WeatherAlert, WeatherRiskResult, WindPoint
from .severity import get_effective_location

ALERT_WEIGHT = 0.50
WIND_WEIGHT = 0.35
DENSITY_WEIGHT = 0.15

_ALERT_SEVERITY_SCORES = {
    "Extreme": 100,
    "Severe": 75,
    "Moderate": 50,
    "Minor": 25,
}

_TIERS = (
    (75, "Severe", "#dc2626"),
    (50, "High", "#f97316"),
    (25, "Moderate", "#eab308"),
)


def alert_severity_score(severity: str) -> int:
    return _ALERT_SEVERITY_SCORES.get(severity, 10)


def wind_speed_score(mph: float) -> int:
    """Piecewise 0-100 wind score with a linear ramp below 10 mph."""
    if mph >= 60:
        return 100
    if mph >= 40:
        return 75
    if mph >= 25:
        return 50
    if mph >= 10:
        return 25
    return int(clamp(round_half_up(mph / 10 * 25), 0, 25))


def nearest_wind(lat: float, lng: float, points: list[WindPoint]) -> WindPoint | None:
    """Nearest point by squared (lat, lng) distance; ties keep the first point."""
    if not points:
        return None
    return min(points, key=lambda p: (p.lat - lat) ** 2 + (p.lng - lng) ** 2)


def risk_tier(score: int) -> tuple[str, str]:
    for threshold, tier, color in _TIERS:
        if score >= threshold:
            return tier, color
    return "Low", "#22c55e"


def compute_weather_risk(
    event: OutageEvent,
    alerts: list[WeatherAlert],
    wind_points: list[WindPoint],
) -> WeatherRiskResult:
    loc = get_effective_location(event)

    intersecting = [
        alert for alert in alerts
        if alert.geometry and point_in_geometry(loc.lat, loc.lng, alert.geometry)
    ]
    alert_count = len(intersecting)
    max_severity = (
        max(intersecting, key=lambda a: alert_severity_score(a.severity)).severity
        if intersecting
        else None
    )
    alert_score = alert_severity_score(max_severity) if max_severity is not None else 0

    wind = nearest_wind(loc.lat, loc.lng, wind_points)
    wind_score = wind_speed_score(wind.speed) if wind is not None else 0

    density_score = min(100, alert_count * 20)

    raw = alert_score * ALERT_WEIGHT + wind_score * WIND_WEIGHT + density_score * DENSITY_WEIGHT
    score = round_half_up(clamp(raw, 0.0, 100.0))
    tier, tier_color = risk_tier(score)

    return WeatherRiskResult(
        score=score,
        tier=tier,
        tier_color=tier_color,
        alert_count=alert_count,
        max_alert_severity=max_severity,
        wind_speed=wind.speed if wind is not None else None,
        wind_gusts=wind.gusts if wind is not None else None,
        drivers=RiskDrivers(
            alert_score=alert_score,
            wind_score=wind_score,
            density_score=density_score,
        ),
    )


def compute_all_weather_risks(
    events: Iterable[OutageEvent],
    alerts: list[WeatherAlert],
    wind_points: list[WindPoint],
) -> dict[str, WeatherRiskResult]:
    """Score every event independently, keyed by event id."""
    return {event.id: compute_weather_risk(event, alerts, wind_points) for event in events}
