"""Rounding helpers shared by the classifiers and chart builders."""

import math


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round halves away from zero on the positive side, like ``Math.round``.

    Python's built-in ``round`` uses banker's rounding (``round(2.5) == 2``),
    which disagrees with the clinical tables this package reproduces.

    Args:
        value: Number to round
        ndigits: Decimal places to keep

    Returns:
        Rounded value as float
    """
    factor = 10.0**ndigits
    return math.floor(value * factor + 0.5) / factor


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5 step (half-up)."""
    return math.floor(value * 2 + 0.5) / 2


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
