"""Rounding helpers shared by the scorers and formatters.

Displayed values follow half-up rounding (2.5 -> 3, 0.25 -> "0.3"), not Python's
round-half-even, so the same event renders identically across every consumer.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Context, Decimal


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward positive infinity."""
    return math.floor(value + 0.5)


def fixed(value: float, digits: int = 1) -> str:
    """Format with a fixed number of decimals, ties rounded away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    exact = Decimal(value)
    context = Context(prec=max(28, exact.adjusted() + digits + 2))
    return str(exact.quantize(quantum, rounding=ROUND_HALF_UP, context=context))
