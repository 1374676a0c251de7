"""ETR display formatting.

Every ETR string shown to operators or written into exports comes from here:
  - durations are rounded to the nearest 5 minutes before converting to hours
  - hours are the only unit ("2.5–3.5 hrs")
  - confidence is a label plus percentage: High >= 80%, Medium 60-79%, Low < 60%
  - chip format: "ETR (80%): 2.5–3.5 hrs"
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone

from .rounding import clamp, fixed, round_half_up
from .schemas import ConfidenceResult, EtrPrimary

Timestamp = datetime | str | None
RawConfidence = str | float | int | None

PLACEHOLDER = "—"

_TOKEN_PCT = {"HIGH": 85, "MEDIUM": 70, "LOW": 40}
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

_BADGE_CLASSES = {
    "High": "bg-emerald-500/10 text-emerald-700 dark:text-emerald-400 border-emerald-500/30",
    "Medium": "bg-amber-500/10 text-amber-700 dark:text-amber-400 border-amber-500/30",
    "Low": "bg-red-500/10 text-red-700 dark:text-red-400 border-red-500/30",
}


def _from_pct(pct: int) -> ConfidenceResult:
    pct = int(clamp(pct, 0, 100))
    if pct >= 80:
        return ConfidenceResult(label="High", pct=pct)
    if pct >= 60:
        return ConfidenceResult(label="Medium", pct=pct)
    return ConfidenceResult(label="Low", pct=pct)


def parse_confidence(raw: RawConfidence) -> ConfidenceResult:
    """Map a stored confidence token or a raw number to a label and percentage.

    Accepts "HIGH" | "MEDIUM" | "LOW" (any case), a 0-1 fraction such as 0.32,
    or a 0-100 percentage as a number or numeric string.
    """
    if raw is None or isinstance(raw, bool):
        return ConfidenceResult(label="Low", pct=0)

    if isinstance(raw, str):
        token = raw.upper()
        if token in _TOKEN_PCT:
            return _from_pct(_TOKEN_PCT[token])
        match = _LEADING_NUMBER.match(raw)
        if match is None:
            return ConfidenceResult(label="Low", pct=0)
        return parse_confidence(float(match.group(1)))

    try:
        value = float(raw)
    except OverflowError:
        return _from_pct(100 if raw > 0 else 0)
    if not math.isfinite(value):
        return ConfidenceResult(label="Low", pct=0)
    scaled = value if value > 1 else value * 100
    return _from_pct(round_half_up(clamp(scaled, 0, 100)))


def format_confidence_full(raw: RawConfidence) -> str:
    result = parse_confidence(raw)
    return f"{result.label} ({result.pct}%)"


def format_confidence_pct(raw: RawConfidence) -> str:
    return f"{parse_confidence(raw).pct}%"


def confidence_badge_class(raw: RawConfidence) -> str:
    return _BADGE_CLASSES[parse_confidence(raw).label]


def round_to_nearest_5(minutes: float) -> int:
    return round_half_up(minutes / 5) * 5


def _hours_str(minutes: int) -> str:
    if minutes % 60 == 0:
        return str(minutes // 60)
    return fixed(minutes / 60, 1)


def _to_datetime(value: Timestamp) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _minutes_until(target: datetime, now: datetime) -> int:
    """Whole minutes from now to target, truncated toward zero and floored at 0."""
    return max(0, int((target - now).total_seconds() / 60))


def format_etr_band(earliest: Timestamp, latest: Timestamp, now: datetime | None = None) -> str | None:
    """Format "2.5–3.5 hrs" from the earliest/latest ETR timestamps.

    Returns None when either side is missing; callers show a placeholder.
    """
    early = _to_datetime(earliest)
    late = _to_datetime(latest)
    if early is None or late is None:
        return None

    current = _to_datetime(now) or datetime.now(timezone.utc)
    early_mins = round_to_nearest_5(_minutes_until(early, current))
    late_mins = round_to_nearest_5(_minutes_until(late, current))
    return f"{_hours_str(early_mins)}–{_hours_str(late_mins)} hrs"


def format_etr_chip(
    earliest: Timestamp,
    latest: Timestamp,
    confidence: RawConfidence,
    now: datetime | None = None,
) -> str:
    band = format_etr_band(earliest, latest, now=now)
    if not band:
        return f"ETR: {PLACEHOLDER}"
    return f"ETR ({format_confidence_pct(confidence)}): {band}"


def format_etr_primary(
    earliest: Timestamp,
    latest: Timestamp,
    confidence: RawConfidence,
    now: datetime | None = None,
) -> EtrPrimary:
    return EtrPrimary(
        band=format_etr_band(earliest, latest, now=now) or PLACEHOLDER,
        confidence=format_confidence_full(confidence),
    )


def _scaled(value: float | None, factor: int) -> float | None:
    """value * factor as a finite float, or None when missing or out of range."""
    if value is None:
        return None
    try:
        scaled = float(value) * factor
    except OverflowError:
        return None
    return scaled if math.isfinite(scaled) else None


def format_runtime_hours(hours: float | None) -> str:
    """Backup runtime to the nearest 0.5 hr, e.g. 3.72 -> "3.5 hrs"."""
    halves = _scaled(hours, 2)
    if halves is None:
        return PLACEHOLDER
    return f"{fixed(round_half_up(halves) / 2, 1)} hrs"


def format_band_width(band_hours: float | None) -> str | None:
    """Band width to the nearest 0.25 hr."""
    quarters = _scaled(band_hours, 4)
    if quarters is None:
        return None
    return f"{fixed(round_half_up(quarters) / 4, 1)} hrs"
