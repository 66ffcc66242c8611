"""
Endotracheal tube sizing by age.

Internal diameter (mm):  uncuffed = age/4 + 4, cuffed = age/4 + 3.5, both rounded
to the nearest 0.5 mm. Insertion depth (cm): oral = age/2 + 12,
nasal = age/2 + 15, rounded to the nearest centimetre. All rounding is half-up.
Cuffed tubes are recommended from 2 years (PALS).
"""

from pydantic import BaseModel, ConfigDict

from ..rounding import round_half_up, round_to_half

CUFFED_FROM_YEARS = 2


class ETTRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    age_in_years: float
    uncuffed_size: float
    cuffed_size: float
    oral_depth: float
    nasal_depth: float
    recommended_type: str


def size_endotracheal_tube(age_in_years: float) -> ETTRecommendation:
    """
    Tube sizes and insertion depths for a child's age.

    Raises:
        ValueError: For negative or implausible ages
    """
    if not 0 <= age_in_years <= 18:
        raise ValueError(f"Age must be between 0 and 18 years (got {age_in_years})")

    return ETTRecommendation(
        age_in_years=age_in_years,
        uncuffed_size=round_to_half(age_in_years / 4 + 4),
        cuffed_size=round_to_half(age_in_years / 4 + 3.5),
        oral_depth=round_half_up(age_in_years / 2 + 12),
        nasal_depth=round_half_up(age_in_years / 2 + 15),
        recommended_type="cuffed" if age_in_years >= CUFFED_FROM_YEARS else "uncuffed",
    )
