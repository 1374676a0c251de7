"""Deterministic event severity scoring (1-5) and event placement.

Severity = priority_score + impact_score
  priority_score: high=3, medium=2, low=1 (anything else 1)
  impact_score: customers_impacted / 500, rounded, clamped 0-2
"""

from __future__ import annotations

from typing import Literal

from .rounding import clamp, round_half_up
from .schemas import EffectiveLocation, OutageEvent

HazardOverlay = Literal["Storm", "Wildfire", "Flood"]

HAZARD_OVERLAYS: tuple[HazardOverlay, ...] = ("Storm", "Wildfire", "Flood")

_PRIORITY_SCORES = {"high": 3, "medium": 2, "low": 1}

_SEVERITY_COLORS = {
    5: "#dc2626",
    4: "#ef4444",
    3: "#f59e0b",
    2: "#3b82f6",
    1: "#22c55e",
}

_SEVERITY_LABELS = {
    5: "Critical",
    4: "High",
    3: "Moderate",
    2: "Low",
    1: "Minimal",
}

_OUTAGE_HAZARDS: dict[str, HazardOverlay] = {
    "Storm": "Storm",
    "High Wind": "Storm",
    "Lightning": "Storm",
    "Snow Storm": "Storm",
    "Wildfire": "Wildfire",
    "Vegetation": "Wildfire",
    "Flood": "Flood",
    "Heavy Rain": "Flood",
}

_HAZARD_COLORS: dict[HazardOverlay, dict[str, str]] = {
    "Storm": {"fill": "rgba(59, 130, 246, 0.15)", "stroke": "#3b82f6"},
    "Wildfire": {"fill": "rgba(239, 68, 68, 0.15)", "stroke": "#ef4444"},
    "Flood": {"fill": "rgba(6, 182, 212, 0.15)", "stroke": "#06b6d4"},
}

# Houston metro service-area centroids.
SERVICE_AREA_CENTROIDS: dict[str, tuple[float, float]] = {
    "Fort Bend County": (29.55, -95.75),
    "Harris County": (29.76, -95.37),
    "Galveston County": (29.30, -94.80),
    "Montgomery County": (30.30, -95.50),
    "Brazoria County": (29.20, -95.45),
}

REGION_CENTER = (29.7604, -95.3698)


def get_event_severity(event: OutageEvent) -> int:
    priority_score = _PRIORITY_SCORES.get(event.priority or "", 1)
    impact_score = int(clamp(round_half_up((event.customers_impacted or 0) / 500), 0, 2))
    return int(clamp(priority_score + impact_score, 1, 5))


def severity_color(severity: int) -> str:
    return _SEVERITY_COLORS.get(severity, "#6b7280")


def severity_label(severity: int) -> str:
    return _SEVERITY_LABELS.get(severity, "Unknown")


def outage_to_hazard(outage_type: str | None) -> HazardOverlay | None:
    """Map an outage type to its hazard overlay category."""
    if not outage_type:
        return None
    return _OUTAGE_HAZARDS.get(outage_type)


def hazard_overlay_color(hazard: HazardOverlay) -> dict[str, str]:
    return dict(_HAZARD_COLORS[hazard])


def _id_hash(event_id: str) -> int:
    return sum(ord(char) for char in event_id[:2])


def get_effective_location(event: OutageEvent) -> EffectiveLocation:
    """Resolve where an event sits on the map.

    Falls back from the recorded center to the service-area centroid, then to a
    stable offset from the region center derived from the first two id characters
    so that unplaced events do not stack on one pin.
    """
    if event.geo_center is not None:
        return EffectiveLocation(lat=event.geo_center.lat, lng=event.geo_center.lng, is_approx=False)

    centroid = SERVICE_AREA_CENTROIDS.get(event.service_area or "")
    if centroid is not None:
        return EffectiveLocation(lat=centroid[0], lng=centroid[1], is_approx=True)

    seed = _id_hash(event.id)
    center_lat, center_lng = REGION_CENTER
    return EffectiveLocation(
        lat=center_lat + (seed % 10 - 5) * 0.01,
        lng=center_lng + (seed % 7 - 3) * 0.01,
        is_approx=True,
    )
