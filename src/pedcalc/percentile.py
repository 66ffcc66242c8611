"""
Conversion between Z-scores and percentiles.

percentile_from_z uses the Abramowitz-Stegun 7.1.26 rational approximation of the
error function (absolute error about 1.5e-7). Stored percentiles were computed
with these coefficients, so math.erf and scipy are not used here.
"""

import math
from typing import Mapping, Optional, Sequence, Tuple

from scipy import stats

# Abramowitz & Stegun 7.1.26
A1 = 0.254829592
A2 = -0.284496736
A3 = 1.421413741
A4 = -1.453152027
A5 = 1.061405429
P = 0.3275911


def erf(x: float) -> float:
    """Error function approximation (Abramowitz & Stegun 7.1.26)."""
    sign = -1 if x < 0 else 1
    x = abs(x)
    t = 1.0 / (1.0 + P * x)
    y = 1.0 - ((((A5 * t + A4) * t + A3) * t + A2) * t + A1) * t * math.exp(-x * x)
    return sign * y


def percentile_from_z(z: float) -> float:
    """
    Cumulative percentile (0-100) of a Z-score under the standard normal.

    Args:
        z: Z-score

    Returns:
        100 * Phi(z), with Phi(z) = 0.5 * (1 + erf(z / sqrt(2)))
    """
    return 0.5 * (1 + erf(z / math.sqrt(2))) * 100


def z_from_percentile(percentile: float) -> float:
    """
    Z-score lying at a percentile, via the inverse normal CDF.

    Raises:
        ValueError: If percentile is not strictly between 0 and 100
    """
    if not 0 < percentile < 100:
        raise ValueError(f"Percentile must be between 0 and 100 (got {percentile})")
    return float(stats.norm.ppf(percentile / 100))


def _sorted_columns(columns: Mapping[float, float]) -> Sequence[Tuple[float, float]]:
    return sorted(columns.items())


def percentile_from_columns(value: float, columns: Mapping[float, float]) -> float:
    """
    Percentile of a value from tabulated percentile columns, without a Z-score.

    Interpolates linearly between the two columns that bracket the value. Values
    below the lowest column map to 0 and values above the highest to 100. If the
    columns are not monotone and no bracket is found, the median (50) is returned.

    Args:
        value: Measurement
        columns: Mapping of percentile -> measurement, e.g. {3: 1.9, 50: 3.3, ...}

    Returns:
        Percentile in [0, 100]

    Raises:
        ValueError: If fewer than two columns are given
    """
    ladder = _sorted_columns(columns)
    if len(ladder) < 2:
        raise ValueError("At least two percentile columns are required")

    if value < ladder[0][1]:
        return 0.0
    if value > ladder[-1][1]:
        return 100.0

    for (lower_p, lower_v), (upper_p, upper_v) in zip(ladder, ladder[1:]):
        if lower_v <= value <= upper_v:
            if upper_v == lower_v:
                return lower_p
            return lower_p + (value - lower_v) / (upper_v - lower_v) * (
                upper_p - lower_p
            )
    return 50.0


def value_from_columns(percentile: float, columns: Mapping[float, float]) -> Optional[float]:
    """
    Measurement at a percentile read from tabulated percentile columns.

    Interpolates linearly between the bracketing columns.

    Returns:
        The measurement, or None when the percentile lies outside the tabulated
        columns
    """
    ladder = _sorted_columns(columns)
    if percentile in columns:
        return columns[percentile]
    for (lower_p, lower_v), (upper_p, upper_v) in zip(ladder, ladder[1:]):
        if lower_p < percentile < upper_p:
            return lower_v + (percentile - lower_p) / (upper_p - lower_p) * (
                upper_v - lower_v
            )
    return None
