"""
Age resolution for reference-table lookups.

Chronological ages are expressed in completed calendar months. A child who is
11 months and 29 days old is 11 months old, and table lookups rely on that
convention. Newborn standards are keyed by gestational age as a "weeks+days"
string instead.
"""

from datetime import date, datetime
from typing import Tuple

from .config import GESTATIONAL_DAYS_RANGE, GESTATIONAL_WEEKS_RANGE
from .errors import DomainRangeError
from .rounding import round_to_half


def resolve_age_months(date_of_birth: date, date_of_measurement: date) -> int:
    """
    Calculate completed months between birth and measurement.

    months = (dYear * 12) + dMonth - (1 if measurement day < birth day else 0)

    Args:
        date_of_birth: Date (or datetime) of birth
        date_of_measurement: Date (or datetime) of the measurement

    Returns:
        Age in whole months, floor-truncated

    Raises:
        ValueError: If the measurement precedes birth
    """
    months = (date_of_measurement.year - date_of_birth.year) * 12 + (
        date_of_measurement.month - date_of_birth.month
    )
    if date_of_measurement.day < date_of_birth.day:
        months -= 1
    if months < 0:
        raise ValueError("Measurement date must not be before date of birth")
    return months


def resolve_age_years(date_of_birth: date, date_of_measurement: date) -> int:
    """Completed years between birth and measurement."""
    return resolve_age_months(date_of_birth, date_of_measurement) // 12


def resolve_age_hours(birth: datetime, measurement: datetime) -> int:
    """
    Whole hours elapsed since birth, truncated.

    Raises:
        ValueError: If the measurement precedes birth
    """
    seconds = (measurement - birth).total_seconds()
    if seconds < 0:
        raise ValueError("Measurement time must not be before time of birth")
    return int(seconds // 3600)


def round_to_half_month(age_months: float) -> float:
    """Infant charts place ages on a half-month grid."""
    return round_to_half(age_months)


def age_in_years(age_months: float) -> float:
    return age_months / 12


def resolve_gestational_key(weeks: int, days: int) -> str:
    """
    Build the "weeks+days" key used by INTERGROWTH-21st tables.

    Args:
        weeks: Completed gestational weeks
        days: Additional days (0-6)

    Returns:
        Key such as "36+4"

    Raises:
        ValueError: If weeks or days are not integers
        DomainRangeError: If weeks fall outside 24-42 or days outside 0-6
    """
    if isinstance(weeks, bool) or isinstance(days, bool):
        raise ValueError("Gestational weeks and days must be integers")
    if int(weeks) != weeks or int(days) != days:
        raise ValueError("Gestational weeks and days must be integers")
    weeks, days = int(weeks), int(days)

    min_weeks, max_weeks = GESTATIONAL_WEEKS_RANGE
    if weeks < min_weeks or weeks > max_weeks:
        raise DomainRangeError(
            f"Gestational age must be between {min_weeks} and {max_weeks} weeks "
            f"(got {weeks})"
        )
    min_days, max_days = GESTATIONAL_DAYS_RANGE
    if days < min_days or days > max_days:
        raise DomainRangeError(
            f"Gestational days must be between {min_days} and {max_days} (got {days})"
        )
    return f"{weeks}+{days}"


def parse_gestational_key(key: str) -> Tuple[int, int]:
    """Split a "weeks+days" key into integers."""
    try:
        weeks, days = key.split("+")
        return int(weeks), int(days)
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Malformed gestational age key: {key!r}") from e
