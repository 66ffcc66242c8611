"""
Measurement unit normalization.

Reference tables are indexed in kg (weight), cm (length, height, head
circumference) and kg/m2 (BMI). Values are converted before any lookup.
"""

import logging
import math
from typing import Dict, Optional

from .config import MEASUREMENT_LIMITS

logger = logging.getLogger(__name__)

UNIT_FACTORS: Dict[str, Dict[str, float]] = {
    "weight": {"kg": 1.0, "g": 0.001, "lb": 0.45359237, "lbs": 0.45359237, "oz": 0.028349523125},
    "height": {"cm": 1.0, "mm": 0.1, "m": 100.0, "in": 2.54},
    "head_circumference": {"cm": 1.0, "mm": 0.1, "in": 2.54},
    "bmi": {"kg/m2": 1.0, "kg/m^2": 1.0, "kg/m²": 1.0},
}

CANONICAL_UNITS = {"weight": "kg", "height": "cm", "head_circumference": "cm", "bmi": "kg/m2"}


def normalize_value(value: float, unit: Optional[str], kind: str) -> float:
    """
    Convert a measurement to the unit of the reference tables.

    Args:
        value: Measurement as entered
        unit: Unit of ``value``; None means it is already canonical
        kind: Normalized calculator kind

    Returns:
        Value in kg, cm or kg/m2

    Raises:
        ValueError: For unknown units or implausible values
    """
    factors = UNIT_FACTORS[kind]
    unit_key = CANONICAL_UNITS[kind] if unit is None else unit.strip().lower()
    if unit_key not in factors:
        raise ValueError(
            f"Unsupported unit {unit!r} for {kind}; expected one of {sorted(factors)}"
        )
    normalized = float(value) * factors[unit_key]
    validate_measurement(normalized, kind)
    return normalized


def validate_measurement(value: float, kind: str) -> None:
    """
    Raises:
        ValueError: If the value is non-finite, non-positive or above the
            plausibility ceiling for its kind
    """
    lower, upper = MEASUREMENT_LIMITS[kind]
    if not math.isfinite(value) or value <= lower or value > upper:
        raise ValueError(
            f"Invalid {kind.replace('_', ' ')} measurement: {value} "
            f"(must be > {lower:g} and <= {upper:g} {CANONICAL_UNITS[kind]})"
        )


def log_unit_warnings(value: float, kind: str, age_months: Optional[float] = None) -> None:
    """Flag values that look like they were entered in the wrong unit."""
    if kind == "height" and value < 3:
        logger.warning(
            f"Height {value} cm is implausibly small; value may be in metres instead of cm"
        )
    elif kind == "height" and age_months is not None and age_months >= 24 and value < 60:
        logger.warning(
            f"Height {value} cm at {age_months} months suggests inches instead of cm"
        )
    elif kind == "weight" and age_months is not None and age_months < 24 and value > 30:
        logger.warning(
            f"Weight {value} kg at {age_months} months suggests lbs instead of kg"
        )
    elif kind == "bmi" and value > 60:
        logger.warning(f"BMI {value} is unusually high; check weight and height units")


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """
    Body mass index in kg/m2.

    Raises:
        ValueError: For implausible weight or height
    """
    validate_measurement(weight_kg, "weight")
    validate_measurement(height_cm, "height")
    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)
