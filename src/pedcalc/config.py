"""
Configuration constants and engine settings for pedcalc.
"""

import os
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ValidationError, field_validator

# Standards and calculator kinds
STANDARDS = ("cdc", "cdc_infant", "who", "intergrowth")
CALCULATOR_KINDS = ("weight", "height", "bmi", "head_circumference")
SEX_CODES = {"male": 1, "female": 2}

# Column layout of LMS reference tables (CDC naming, also used for WHO)
SEX_COLUMN = "Sex"
AGE_COLUMN = "Agemos"
LMS_COLUMNS = ("L", "M", "S")
PERCENTILE_COLUMNS: Dict[str, float] = {
    "P01": 0.1,
    "P1": 1.0,
    "P3": 3.0,
    "P5": 5.0,
    "P10": 10.0,
    "P15": 15.0,
    "P25": 25.0,
    "P50": 50.0,
    "P75": 75.0,
    "P85": 85.0,
    "P90": 90.0,
    "P95": 95.0,
    "P97": 97.0,
    "P99": 99.0,
    "P999": 99.9,
}

# INTERGROWTH-21st tables carry direct percentile columns keyed by "weeks+days"
GESTATIONAL_SEX_COLUMN = "sex"
GESTATIONAL_AGE_COLUMN = "age"
GESTATIONAL_PERCENTILE_COLUMNS: Dict[str, float] = {
    "3rd": 3.0,
    "5th": 5.0,
    "10th": 10.0,
    "50th": 50.0,
    "90th": 90.0,
    "95th": 95.0,
    "97th": 97.0,
}
GESTATIONAL_WEEKS_RANGE = (24, 42)
GESTATIONAL_DAYS_RANGE = (0, 6)


class TableSpec(NamedTuple):
    standard: str
    measure: str
    age_unit: str  # "months" or "gestational"


TABLE_CATALOG: Dict[str, TableSpec] = {
    "cdc_weight": TableSpec("cdc", "weight", "months"),
    "cdc_height": TableSpec("cdc", "height", "months"),
    "cdc_bmi": TableSpec("cdc", "bmi", "months"),
    "cdc_infant_weight": TableSpec("cdc_infant", "weight", "months"),
    "cdc_infant_height": TableSpec("cdc_infant", "height", "months"),
    "cdc_infant_head_circumference": TableSpec(
        "cdc_infant", "head_circumference", "months"
    ),
    "who_weight": TableSpec("who", "weight", "months"),
    "who_height": TableSpec("who", "height", "months"),
    "who_head_circumference": TableSpec("who", "head_circumference", "months"),
    "who_bmi": TableSpec("who", "bmi", "months"),
    "intergrowth_weight": TableSpec("intergrowth", "weight", "gestational"),
    "intergrowth_height": TableSpec("intergrowth", "height", "gestational"),
    "intergrowth_head_circumference": TableSpec(
        "intergrowth", "head_circumference", "gestational"
    ),
}


class AgeDomain(NamedTuple):
    start: float
    stop: float
    step: float
    unit: str


# Fixed per standard so every chart of a standard spans the same axis
AGE_DOMAINS: Dict[str, AgeDomain] = {
    "cdc": AgeDomain(24, 240, 1, "months"),
    "cdc_infant": AgeDomain(0, 36, 1, "months"),
    "who": AgeDomain(0, 24, 1, "months"),
    "intergrowth": AgeDomain(24, 42, 1, "weeks"),
}

DEFAULT_CHART_PERCENTILES: Tuple[float, ...] = (3, 5, 10, 25, 50, 75, 90, 95, 97)
REFERENCE_RANGE_PERCENTILES: Tuple[float, ...] = (3, 50, 97)

# Plausibility limits for normalized measurements (kg, cm)
MEASUREMENT_LIMITS: Dict[str, Tuple[float, float]] = {
    "weight": (0.0, 300.0),
    "height": (0.0, 250.0),
    "head_circumference": (0.0, 100.0),
    "bmi": (0.0, 150.0),
}

ROW_MATCHING_STRATEGIES = ("exact", "interpolate")


class EngineConfig(BaseModel):
    """
    Engine settings.

    Attributes:
        row_matching (str): "exact" matches the half-up rounded age against the
            rounded table key and reports no data when nothing matches.
            "interpolate" interpolates L, M and S between the bracketing rows.
        data_dir (Optional[Path]): Directory with CSV tables that override or
            extend the bundled ones.
        strict_integrity (bool): Raise DataIntegrityError for malformed tables at
            load time instead of only logging them.
    """

    row_matching: str = "exact"
    data_dir: Optional[Path] = None
    strict_integrity: bool = False

    @field_validator("row_matching")
    @classmethod
    def validate_row_matching(cls, v: str) -> str:
        if v not in ROW_MATCHING_STRATEGIES:
            raise ValueError(
                f"row_matching must be one of {ROW_MATCHING_STRATEGIES}, got {v!r}"
            )
        return v

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not v.is_dir():
            raise ValueError(f"Reference data directory does not exist: {v}")
        return v

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build settings from PEDCALC_* environment variables."""
        values = {}
        if os.environ.get("PEDCALC_ROW_MATCHING"):
            values["row_matching"] = os.environ["PEDCALC_ROW_MATCHING"]
        if os.environ.get("PEDCALC_DATA_DIR"):
            values["data_dir"] = Path(os.environ["PEDCALC_DATA_DIR"])
        if os.environ.get("PEDCALC_STRICT_INTEGRITY"):
            values["strict_integrity"] = os.environ[
                "PEDCALC_STRICT_INTEGRITY"
            ].lower() in ("1", "true", "yes")
        return build_config(**values)


def build_config(**values) -> EngineConfig:
    """Validate settings, raising ValueError like the rest of the public API."""
    try:
        return EngineConfig(**values)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
