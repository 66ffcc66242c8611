"""
Weight- and body-surface-area-based dose calculation.

A prescribed dose is given per kg, per m² or in total, and per day or per
administration. Daily amounts are split evenly across the administrations of
the chosen frequency. With a drug concentration (mass per ml or per tablet) an
mg dose is also expressed as a volume or tablet count.

Body surface area uses the Mosteller formula, sqrt(height_cm * weight_kg / 3600).
"""

import logging
import math
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from ..units import normalize_value

logger = logging.getLogger(__name__)

# Administrations per day
FREQUENCY_DOSES: Dict[str, int] = {
    "qD": 1,
    "BID": 2,
    "TID": 3,
    "QID": 4,
    "q4hr": 6,
    "q6hr": 4,
    "q8hr": 3,
}
DOSAGE_TYPES = ("/kg/day", "/kg/dose", "/m2/day", "/m2/dose", "/day", "/dose")
DOSE_UNITS = ("mg", "ml", "tablet")
MASS_UNITS: Dict[str, float] = {"mg": 1.0, "g": 1000.0}
VOLUME_UNITS = ("ml", "tablet")


class DoseCalculation(BaseModel):
    """
    Calculated dose.

    Attributes:
        per_dose (float): Amount per administration, in ``dose_unit``
        daily (float): Amount per day, in ``dose_unit``
        body_surface_area (Optional[float]): Mosteller BSA (m²) for /m2 dosing
        concentration (Optional[float]): mg per ml or per tablet
        per_dose_volume (Optional[float]): ml per administration
        daily_volume (Optional[float]): ml per day
        tablets_per_dose (Optional[float]): Tablets per administration
        tablets_per_day (Optional[float]): Tablets per day
    """

    model_config = ConfigDict(frozen=True)

    dosage_type: str
    frequency: str
    doses_per_day: int
    dose_unit: str
    per_dose: float
    daily: float
    weight_kg: Optional[float] = None
    body_surface_area: Optional[float] = None
    concentration: Optional[float] = None
    per_dose_volume: Optional[float] = None
    daily_volume: Optional[float] = None
    tablets_per_dose: Optional[float] = None
    tablets_per_day: Optional[float] = None


def body_surface_area(height_cm: float, weight_kg: float) -> float:
    """
    Mosteller body surface area in m².

    Raises:
        ValueError: For non-positive height or weight
    """
    if not (height_cm > 0 and weight_kg > 0):
        raise ValueError(
            f"Height and weight must be positive (got {height_cm} cm, {weight_kg} kg)"
        )
    return math.sqrt(height_cm * weight_kg / 3600)


def normalize_dosage_type(dosage_type: str) -> str:
    """
    Raises:
        ValueError: For unknown dosage types
    """
    key = str(dosage_type).strip().replace("²", "2").replace(" ", "")
    if key not in DOSAGE_TYPES:
        raise ValueError(f"Unknown dosage type {dosage_type!r}; expected one of {DOSAGE_TYPES}")
    return key


def _concentration(mass: Optional[float], mass_unit: str, volume: Optional[float]) -> Optional[float]:
    if mass is None and volume is None:
        return None
    if mass is None or volume is None:
        raise ValueError("Drug concentration needs both mass and volume")
    if mass_unit not in MASS_UNITS:
        raise ValueError(f"Unsupported mass unit {mass_unit!r}; expected one of {sorted(MASS_UNITS)}")
    if not (mass > 0 and volume > 0):
        raise ValueError(f"Mass and volume must be positive (got {mass}, {volume})")
    return mass * MASS_UNITS[mass_unit] / volume


def calculate_dose(
    dose: float,
    dosage_type: str,
    frequency: str = "qD",
    weight: Optional[float] = None,
    height: Optional[float] = None,
    weight_unit: Optional[str] = None,
    height_unit: Optional[str] = None,
    dose_unit: str = "mg",
    mass: Optional[float] = None,
    mass_unit: str = "mg",
    volume: Optional[float] = None,
    volume_unit: str = "ml",
) -> DoseCalculation:
    """
    Per-administration and daily amounts for a prescribed dose.

    Args:
        dose: Prescribed amount, e.g. 10 for "10 mg/kg/day"
        dosage_type: "/kg/day", "/kg/dose", "/m2/day", "/m2/dose", "/day" or
            "/dose" ("/m²/..." is accepted)
        frequency: Key of FREQUENCY_DOSES
        weight: Body weight; required for /kg and /m2 dosing
        height: Body length or height; required for /m2 dosing
        weight_unit: Unit of ``weight``; kg when None
        height_unit: Unit of ``height``; cm when None
        dose_unit: "mg", "ml" or "tablet"
        mass: Drug mass in ``volume`` of the preparation
        mass_unit: "mg" or "g"
        volume: ml of solution, or number of tablets, holding ``mass``
        volume_unit: "ml" or "tablet"

    Returns:
        DoseCalculation; volume and tablet fields are set when the dose unit or
        the concentration allows them

    Raises:
        ValueError: For unknown options, missing body measurements or
            non-positive amounts
    """
    dosage_type = normalize_dosage_type(dosage_type)
    if frequency not in FREQUENCY_DOSES:
        raise ValueError(
            f"Unknown frequency {frequency!r}; expected one of {list(FREQUENCY_DOSES)}"
        )
    if dose_unit not in DOSE_UNITS:
        raise ValueError(f"Unsupported dose unit {dose_unit!r}; expected one of {DOSE_UNITS}")
    if volume_unit not in VOLUME_UNITS:
        raise ValueError(f"Unsupported volume unit {volume_unit!r}; expected one of {VOLUME_UNITS}")
    if not (math.isfinite(dose) and dose > 0):
        raise ValueError(f"Dose must be positive (got {dose})")

    weight_kg = None
    if weight is not None:
        weight_kg = normalize_value(weight, weight_unit, "weight")
    bsa = None
    factor = 1.0
    if dosage_type.startswith("/kg"):
        if weight_kg is None:
            raise ValueError(f"Weight is required for {dosage_type} dosing")
        factor = weight_kg
    elif dosage_type.startswith("/m2"):
        if weight_kg is None or height is None:
            raise ValueError(f"Weight and height are required for {dosage_type} dosing")
        bsa = body_surface_area(normalize_value(height, height_unit, "height"), weight_kg)
        factor = bsa

    doses_per_day = FREQUENCY_DOSES[frequency]
    if dosage_type.endswith("/day"):
        daily = dose * factor
        per_dose = daily / doses_per_day
    else:
        per_dose = dose * factor
        daily = per_dose * doses_per_day

    concentration = _concentration(mass, mass_unit, volume)
    amounts: Dict[str, Optional[float]] = {}
    if dose_unit == "ml":
        amounts.update(per_dose_volume=per_dose, daily_volume=daily)
    elif dose_unit == "tablet":
        amounts.update(tablets_per_dose=per_dose, tablets_per_day=daily)
    elif concentration is not None:
        if volume_unit == "ml":
            amounts.update(
                per_dose_volume=per_dose / concentration, daily_volume=daily / concentration
            )
        else:
            amounts.update(
                tablets_per_dose=per_dose / concentration, tablets_per_day=daily / concentration
            )

    logger.debug(
        f"{dose} {dose_unit}{dosage_type} {frequency}: {per_dose:.3f} per dose, {daily:.3f} daily"
    )
    return DoseCalculation(
        dosage_type=dosage_type,
        frequency=frequency,
        doses_per_day=doses_per_day,
        dose_unit=dose_unit,
        per_dose=per_dose,
        daily=daily,
        weight_kg=weight_kg,
        body_surface_area=bsa,
        concentration=concentration,
        **amounts,
    )
