"""
Neonatal hyperbilirubinemia phototherapy thresholds.

Thresholds (mg/dL) follow the AAP hour-specific tables for infants of 35 or more
weeks' gestation. Each risk category is a sorted run of (hour, threshold) pairs;
a measurement uses the last listed hour at or before its age. Ages before the
first listed hour use the first row and carry a warning. There is no
interpolation between listed hours.
"""

import bisect
import logging
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..errors import DomainRangeError

logger = logging.getLogger(__name__)

RISK_CATEGORIES = ("lowerRisk", "mediumRisk", "higherRisk")

PHOTOTHERAPY_THRESHOLDS: Dict[str, Tuple[Tuple[int, float], ...]] = {
    # >=38 weeks without neurotoxicity risk factors
    "lowerRisk": (
        (24, 12.0),
        (36, 15.0),
        (48, 18.0),
        (60, 20.0),
        (72, 21.0),
        (84, 22.0),
        (96, 22.5),
        (108, 23.0),
        (120, 23.5),
        (132, 24.0),
        (144, 24.0),
    ),
    # >=38 weeks with risk factors, or 35-37 6/7 weeks without
    "mediumRisk": (
        (24, 10.0),
        (36, 13.0),
        (48, 15.0),
        (60, 17.0),
        (72, 18.0),
        (84, 19.0),
        (96, 20.0),
        (108, 20.5),
        (120, 21.0),
        (132, 21.5),
        (144, 21.5),
    ),
    # 35-37 6/7 weeks with risk factors
    "higherRisk": (
        (24, 8.0),
        (36, 11.0),
        (48, 13.0),
        (60, 14.0),
        (72, 15.0),
        (84, 16.0),
        (96, 17.0),
        (108, 17.5),
        (120, 18.0),
        (132, 18.5),
        (144, 18.5),
    ),
}

MIN_GESTATIONAL_WEEKS = 35
TERM_GESTATIONAL_WEEKS = 38
ETCOC_RISK_THRESHOLD = 1.5  # ppm; only values above this count as a risk factor
CONFIRM_WITH_TSB_CEILING = 15.0
CONFIRM_WITH_TSB_MARGIN = 3.0

PHOTOTHERAPY_INDICATED = "Phototherapy indicated"
BELOW_THRESHOLD = "Below phototherapy threshold"


class BilirubinInput(BaseModel):
    """Validated bilirubin calculator input."""

    tsb: float
    age_in_hours: int
    risk_category: str

    @field_validator("tsb")
    @classmethod
    def validate_tsb(cls, v: float) -> float:
        if not 0 < v <= 50:
            raise ValueError("Total serum bilirubin must be > 0 and <= 50 mg/dL")
        return v

    @field_validator("age_in_hours")
    @classmethod
    def validate_age(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Age in hours must not be negative")
        return v

    @field_validator("risk_category")
    @classmethod
    def validate_risk(cls, v: str) -> str:
        if v not in RISK_CATEGORIES:
            raise ValueError(f"Risk category must be one of {RISK_CATEGORIES}")
        return v


class BilirubinAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    tsb: float
    age_in_hours: int
    risk_category: str
    threshold_hour: int
    phototherapy_threshold: float
    confirm_with_tsb_threshold: float
    at_or_above_threshold: bool
    classification: str
    warning: Optional[str] = None


def has_neurotoxicity_risk_factors(
    isoimmune_disease: bool = False,
    g6pd_deficiency: bool = False,
    asphyxia: bool = False,
    lethargy: bool = False,
    temperature_instability: bool = False,
    sepsis: bool = False,
    acidosis: bool = False,
    low_albumin: bool = False,
    etcoc: Optional[float] = None,
) -> bool:
    """Any listed condition, or ETCOc above 1.5 ppm, is a risk factor."""
    return bool(
        isoimmune_disease
        or g6pd_deficiency
        or asphyxia
        or lethargy
        or temperature_instability
        or sepsis
        or acidosis
        or low_albumin
        or (etcoc is not None and etcoc > ETCOC_RISK_THRESHOLD)
    )


def resolve_risk_category(gestational_weeks: float, has_risk_factors: bool) -> str:
    """
    Map gestational age and risk factors to a threshold curve.

    Raises:
        DomainRangeError: Below 35 weeks, where these thresholds do not apply
    """
    if gestational_weeks < MIN_GESTATIONAL_WEEKS:
        raise DomainRangeError(
            f"Bilirubin thresholds apply from {MIN_GESTATIONAL_WEEKS} weeks' gestation "
            f"(got {gestational_weeks})"
        )
    if gestational_weeks >= TERM_GESTATIONAL_WEEKS:
        return "mediumRisk" if has_risk_factors else "lowerRisk"
    return "higherRisk" if has_risk_factors else "mediumRisk"


def phototherapy_threshold(age_in_hours: int, risk_category: str) -> Tuple[int, float]:
    """
    Threshold row for an age: the last listed hour at or before it.

    Returns:
        (listed hour, threshold in mg/dL)

    Raises:
        KeyError: For unknown risk categories
    """
    pairs = PHOTOTHERAPY_THRESHOLDS[risk_category]
    hours = [hour for hour, _ in pairs]
    idx = bisect.bisect_right(hours, age_in_hours) - 1
    return pairs[max(idx, 0)]


def assess_bilirubin(tsb: float, age_in_hours: int, risk_category: str) -> BilirubinAssessment:
    """
    Compare a total serum bilirubin against the phototherapy threshold.

    Args:
        tsb: Total serum bilirubin (mg/dL)
        age_in_hours: Completed hours since birth
        risk_category: "lowerRisk", "mediumRisk" or "higherRisk"

    Returns:
        BilirubinAssessment; a TSB equal to the threshold counts as at/above

    Raises:
        ValueError: If the inputs are invalid
    """
    try:
        data = BilirubinInput(
            tsb=tsb, age_in_hours=age_in_hours, risk_category=risk_category
        )
    except ValidationError as e:
        raise ValueError(f"Invalid bilirubin input: {e}") from e

    hour, threshold = phototherapy_threshold(data.age_in_hours, data.risk_category)
    warning = None
    if data.age_in_hours < hour:
        warning = (
            f"Age {data.age_in_hours} h is before the first tabulated hour; "
            f"using the {hour} h threshold"
        )
        logger.warning(warning)

    at_or_above = data.tsb >= threshold
    return BilirubinAssessment(
        tsb=data.tsb,
        age_in_hours=data.age_in_hours,
        risk_category=data.risk_category,
        threshold_hour=hour,
        phototherapy_threshold=threshold,
        confirm_with_tsb_threshold=min(
            threshold - CONFIRM_WITH_TSB_MARGIN, CONFIRM_WITH_TSB_CEILING
        ),
        at_or_above_threshold=at_or_above,
        classification=PHOTOTHERAPY_INDICATED if at_or_above else BELOW_THRESHOLD,
        warning=warning,
    )
