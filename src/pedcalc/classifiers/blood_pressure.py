"""
Pediatric blood pressure classification.

Office readings are screened against the simplified AAP 2017 table (by sex and
completed year of age), adjusted for height percentile. Ambulatory (ABPM)
readings are ranked against injected percentile ladders per period, since
reference ladders vary by source and are not bundled.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from ..errors import DomainRangeError, NoReferenceDataError
from ..rounding import clamp, round_half_up
from ..tables import sex_code

logger = logging.getLogger(__name__)

# 2017 AAP simplified screening values: age (years) -> (systolic, diastolic)
AAP_SCREENING_TABLE: Dict[int, Dict[int, Tuple[int, int]]] = {
    1: {
        1: (98, 52), 2: (100, 55), 3: (101, 58), 4: (102, 60), 5: (103, 63),
        6: (105, 66), 7: (106, 68), 8: (107, 69), 9: (107, 70), 10: (108, 72),
        11: (110, 74), 12: (113, 75), 13: (120, 80), 14: (120, 80),
        15: (120, 80), 16: (120, 80), 17: (120, 80),
    },
    2: {
        1: (98, 54), 2: (101, 58), 3: (102, 60), 4: (103, 62), 5: (104, 64),
        6: (105, 67), 7: (106, 68), 8: (107, 69), 9: (108, 71), 10: (109, 72),
        11: (111, 74), 12: (114, 75), 13: (120, 80), 14: (120, 80),
        15: (120, 80), 16: (120, 80), 17: (120, 80),
    },
}

MIN_AGE_MONTHS = 12
MAX_AGE_MONTHS = 17 * 12 + 11
SYSTOLIC_RANGE = (50, 250)
DIASTOLIC_RANGE = (30, 150)
HEIGHT_PERCENTILE_RANGE = (1.0, 99.9)
ADOLESCENT_FROM_YEARS = 13

NORMAL = "Normal"
ELEVATED = "Elevated BP"
STAGE_1 = "Stage 1 HTN"
STAGE_2 = "Stage 2 HTN"


class BPReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    percentile: float
    z_score: float


class OfficeBPAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    systolic: BPReading
    diastolic: BPReading
    classification: str
    description: str
    height_percentile: float
    references: Dict[str, float]


def validate_bp(systolic: float, diastolic: float) -> None:
    """
    Raises:
        ValueError: For physiologically implausible readings
    """
    if not (SYSTOLIC_RANGE[0] <= systolic <= SYSTOLIC_RANGE[1]) or not (
        DIASTOLIC_RANGE[0] <= diastolic <= DIASTOLIC_RANGE[1]
    ):
        raise ValueError(f"BP {systolic}/{diastolic} is outside the plausible range")
    if diastolic >= systolic:
        raise ValueError(
            f"Diastolic ({diastolic}) must be less than systolic ({systolic})"
        )


def reference_percentiles(
    sex: Union[str, int], age_in_years: int, height_percentile: float
) -> Dict[str, float]:
    """
    Height-adjusted 50th/90th/95th percentile BP for a sex and age.

    Returns:
        Keys "systolic_p50", "systolic_p90", "systolic_p95" and the diastolic
        counterparts
    """
    systolic, diastolic = AAP_SCREENING_TABLE[sex_code(sex)][age_in_years]
    height_z = clamp((height_percentile - 50) / 25, -2.5, 2.5)
    adjustment = height_z * 1.5

    systolic_p90 = max(75, systolic + adjustment)
    diastolic_p90 = max(45, diastolic + adjustment)
    return {
        "systolic_p50": max(60, systolic_p90 - 15),
        "systolic_p90": systolic_p90,
        "systolic_p95": max(80, systolic + adjustment + 8),
        "diastolic_p50": max(35, diastolic_p90 - 12),
        "diastolic_p90": diastolic_p90,
        "diastolic_p95": max(50, diastolic + adjustment + 6),
    }


def robust_percentile(value: float, p50: float, p90: float, p95: float) -> float:
    """Piecewise-linear percentile from the 50th/90th/95th reference values."""
    if p50 >= p90 or p90 >= p95:
        logger.warning("Invalid reference percentiles, using fallback calculation")
        if value <= p90:
            return clamp(90 * (value / p90), 1, 89)
        return clamp(90 + 9 * ((value - p90) / (p95 - p90)), 90, 99)

    if value <= p50:
        return max(1, 50 * (value / p50))
    elif value <= p90:
        return 50 + 40 * ((value - p50) / (p90 - p50))
    elif value <= p95:
        return 90 + 5 * ((value - p90) / (p95 - p90))
    excess_ratio = min(2, (value - p95) / (p95 * 0.1))
    return min(99.9, 95 + 4 * excess_ratio)


def bp_zscore(value: float, p50: float, p95: float) -> float:
    return clamp(((value - p50) / (p95 - p50)) * 1.645, -3, 5)


def _classify_office(
    systolic: float,
    diastolic: float,
    age_in_years: int,
    max_percentile: float,
    refs: Mapping[str, float],
) -> Tuple[str, str]:
    if age_in_years >= ADOLESCENT_FROM_YEARS:
        if systolic >= 140 or diastolic >= 90:
            return STAGE_2, ">=140/90 mmHg"
        if systolic >= 130 or diastolic >= 80:
            return STAGE_1, "130/80 to 139/89 mmHg"
        if 120 <= systolic < 130 and diastolic < 80:
            return ELEVATED, "120/<80 to 129/<80 mmHg"
        return NORMAL, "<120/<80 mmHg"

    stage2_systolic = min(140, refs["systolic_p95"] + 12)
    stage2_diastolic = min(90, refs["diastolic_p95"] + 12)
    if systolic >= stage2_systolic or diastolic >= stage2_diastolic:
        return STAGE_2, ">=95th percentile + 12 mmHg or >=140/90 mmHg"
    if max_percentile >= 95:
        return STAGE_1, ">=95th percentile"
    if max_percentile >= 90:
        return ELEVATED, "90th-95th percentile"
    return NORMAL, "<90th percentile"


def assess_office_bp(
    systolic: float,
    diastolic: float,
    sex: Union[str, int],
    age_in_months: int,
    height_percentile: float,
) -> OfficeBPAssessment:
    """
    Percentiles, Z-scores and AAP category for an office BP reading.

    Args:
        systolic: Systolic pressure (mmHg)
        diastolic: Diastolic pressure (mmHg)
        sex: "male" or "female"
        age_in_months: Completed months of age (12-215)
        height_percentile: Height-for-age percentile; clamped to 1-99.9

    Returns:
        OfficeBPAssessment with percentiles rounded to 1 decimal and Z-scores to 2

    Raises:
        DomainRangeError: Outside 1 year to 17 years 11 months
        ValueError: For implausible readings
    """
    if not MIN_AGE_MONTHS <= age_in_months <= MAX_AGE_MONTHS:
        raise DomainRangeError(
            f"Age {age_in_months // 12} years {age_in_months % 12} months is outside "
            "the valid range (1 year - 17 years 11 months)"
        )
    validate_bp(systolic, diastolic)

    clamped_height = clamp(height_percentile, *HEIGHT_PERCENTILE_RANGE)
    if clamped_height != height_percentile:
        logger.warning(
            f"Height percentile clamped from {height_percentile}% to {clamped_height}%"
        )

    age_in_years = age_in_months // 12
    refs = reference_percentiles(sex, age_in_years, clamped_height)
    systolic_pct = robust_percentile(
        systolic, refs["systolic_p50"], refs["systolic_p90"], refs["systolic_p95"]
    )
    diastolic_pct = robust_percentile(
        diastolic, refs["diastolic_p50"], refs["diastolic_p90"], refs["diastolic_p95"]
    )
    category, description = _classify_office(
        systolic, diastolic, age_in_years, max(systolic_pct, diastolic_pct), refs
    )

    return OfficeBPAssessment(
        systolic=BPReading(
            value=systolic,
            percentile=round_half_up(systolic_pct, 1),
            z_score=round_half_up(
                bp_zscore(systolic, refs["systolic_p50"], refs["systolic_p95"]), 2
            ),
        ),
        diastolic=BPReading(
            value=diastolic,
            percentile=round_half_up(diastolic_pct, 1),
            z_score=round_half_up(
                bp_zscore(diastolic, refs["diastolic_p50"], refs["diastolic_p95"]), 2
            ),
        ),
        classification=category,
        description=description,
        height_percentile=clamped_height,
        references=refs,
    )


# Ambulatory blood pressure monitoring

AMBULATORY_PERIODS = ("day", "night", "24h")
# Adult ABPM thresholds (systolic, diastolic) applied from 13 years
ADULT_ABPM_THRESHOLDS: Dict[str, Tuple[float, float]] = {
    "24h": (125, 75),
    "day": (130, 80),
    "night": (110, 65),
}
AMBULATORY_HYPERTENSION = "Ambulatory hypertension"
NORMAL_AMBULATORY_DESCRIPTION = "Ambulatory BP within normal limits"
ADOLESCENT_DESCRIPTION = "Ambulatory BP at or above adult thresholds"
PEDIATRIC_DESCRIPTION = "Ambulatory BP at or above the 95th percentile"


class PercentileLadder(BaseModel):
    """Reference BP values at the 5th..99th percentiles for one period."""

    model_config = ConfigDict(frozen=True)

    p5: float
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    p95: float
    p99: float

    @field_validator("p99", mode="after")
    @classmethod
    def ascending(cls, v: float, info: ValidationInfo) -> float:
        values = [info.data.get(k) for k in ("p5", "p10", "p25", "p50", "p75", "p90", "p95")]
        values.append(v)
        if any(a is None for a in values) or any(a >= b for a, b in zip(values, values[1:])):
            raise ValueError("Percentile ladder must be strictly increasing")
        return v


class AmbulatoryReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    systolic: PercentileLadder
    diastolic: PercentileLadder


class AmbulatoryReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    percentile: float
    normal: bool
    percentile_category: str


class AmbulatoryPeriodResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: str
    systolic: AmbulatoryReading
    diastolic: AmbulatoryReading


class DippingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    percentage: float
    category: str
    normal: bool


class AmbulatoryAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: Dict[str, AmbulatoryPeriodResult]
    dipping: Optional[Dict[str, DippingResult]] = None
    classification: str
    description: str


def ambulatory_percentile(value: float, ladder: PercentileLadder) -> float:
    """Piecewise-linear percentile along the p5..p99 ladder."""
    steps = (
        (5, ladder.p5),
        (10, ladder.p10),
        (25, ladder.p25),
        (50, ladder.p50),
        (75, ladder.p75),
        (90, ladder.p90),
        (95, ladder.p95),
        (99, ladder.p99),
    )
    if value <= ladder.p5:
        return 5.0
    for (lower_p, lower_v), (upper_p, upper_v) in zip(steps, steps[1:]):
        if value <= upper_v:
            return lower_p + (upper_p - lower_p) * (value - lower_v) / (upper_v - lower_v)
    return min(99.9, 99 + (value - ladder.p99) / 5)


def percentile_category(percentile: float) -> str:
    if percentile < 10:
        return "<10th percentile"
    if percentile < 25:
        return "10th-25th percentile"
    if percentile < 50:
        return "25th-50th percentile"
    if percentile < 75:
        return "50th-75th percentile"
    if percentile < 90:
        return "75th-90th percentile"
    if percentile < 95:
        return "90th-95th percentile"
    if percentile < 99:
        return "95th-99th percentile"
    return ">99th percentile"


def dipping_status(daytime: float, nighttime: float) -> DippingResult:
    """
    Nocturnal dipping, (day - night) / day * 100.

    Only a 10-20% dip is normal; extreme dipping can be pathological too.
    """
    if daytime <= 0:
        raise ValueError("Daytime BP must be positive")
    dipping = (daytime - nighttime) / daytime * 100
    if dipping >= 20:
        category, normal = "Extreme dipper", False
    elif dipping >= 10:
        category, normal = "Normal dipper", True
    elif dipping >= 0:
        category, normal = "Non-dipper", False
    else:
        category, normal = "Reverse dipper", False
    return DippingResult(percentage=dipping, category=category, normal=normal)


def _ambulatory_reading(value: float, ladder: PercentileLadder) -> AmbulatoryReading:
    percentile = ambulatory_percentile(value, ladder)
    return AmbulatoryReading(
        value=value,
        percentile=round_half_up(percentile, 1),
        normal=percentile < 95,
        percentile_category=percentile_category(percentile),
    )


def analyze_period(
    systolic: float, diastolic: float, period: str, reference: AmbulatoryReference
) -> AmbulatoryPeriodResult:
    return AmbulatoryPeriodResult(
        period=period,
        systolic=_ambulatory_reading(systolic, reference.systolic),
        diastolic=_ambulatory_reading(diastolic, reference.diastolic),
    )


def assess_ambulatory_bp(
    measurements: Mapping[str, Tuple[float, float]],
    references: Mapping[str, AmbulatoryReference],
    age_in_years: int,
) -> AmbulatoryAssessment:
    """
    Rank ABPM period means and classify the study.

    Args:
        measurements: Period ("day", "night", "24h") -> (systolic, diastolic)
        references: Period -> reference ladders for the patient's height or age
        age_in_years: Completed years; from 13 a period at or above the adult
            thresholds is hypertensive even below the 95th percentile

    Returns:
        AmbulatoryAssessment; dipping is reported when day and night are present

    Raises:
        ValueError: For unknown periods or implausible readings
        NoReferenceDataError: If a measured period has no reference ladder
    """
    if not measurements:
        raise ValueError("At least one ambulatory period is required")

    results: Dict[str, AmbulatoryPeriodResult] = {}
    for period, (systolic, diastolic) in measurements.items():
        if period not in AMBULATORY_PERIODS:
            raise ValueError(f"Unknown ambulatory period {period!r}")
        validate_bp(systolic, diastolic)
        if period not in references:
            raise NoReferenceDataError(f"No ambulatory reference data for period {period}")
        results[period] = analyze_period(systolic, diastolic, period, references[period])

    dipping = None
    if "day" in measurements and "night" in measurements:
        dipping = {
            "systolic": dipping_status(measurements["day"][0], measurements["night"][0]),
            "diastolic": dipping_status(measurements["day"][1], measurements["night"][1]),
        }

    adult_exceeded = age_in_years >= ADOLESCENT_FROM_YEARS and any(
        r.systolic.value >= ADULT_ABPM_THRESHOLDS[r.period][0]
        or r.diastolic.value >= ADULT_ABPM_THRESHOLDS[r.period][1]
        for r in results.values()
    )
    max_percentile = max(
        max(r.systolic.percentile, r.diastolic.percentile) for r in results.values()
    )
    if adult_exceeded:
        classification, description = AMBULATORY_HYPERTENSION, ADOLESCENT_DESCRIPTION
    elif max_percentile >= 95:
        classification, description = AMBULATORY_HYPERTENSION, PEDIATRIC_DESCRIPTION
    else:
        classification, description = NORMAL, NORMAL_AMBULATORY_DESCRIPTION

    return AmbulatoryAssessment(
        results=results,
        dipping=dipping,
        classification=classification,
        description=description,
    )
