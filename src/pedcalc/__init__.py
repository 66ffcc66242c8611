"""
Pediatric reference-standard percentile and Z-score engine.

Places a child's weight, height, BMI or head circumference on the CDC, WHO or
INTERGROWTH-21st reference standards using the LMS method, and hosts the
bilirubin, blood-pressure and endotracheal-tube calculators.
"""

from .charts import ChartSeries, ChartSeriesBuilder, age_grid, progression
from .config import EngineConfig, build_config
from .engine import (
    CalculationResult,
    Measurement,
    PediatricCalculator,
    calculate,
    default_calculator,
)
from .errors import (
    DataIntegrityError,
    DomainRangeError,
    NoReferenceDataError,
    PedCalcError,
)
from .lms import value_from_z, zscore
from .percentile import percentile_from_z, z_from_percentile
from .tables import ReferenceTableStore, default_store, load_reference_store

__version__ = "0.1.0"

__all__ = [
    "CalculationResult",
    "ChartSeries",
    "ChartSeriesBuilder",
    "DataIntegrityError",
    "DomainRangeError",
    "EngineConfig",
    "Measurement",
    "NoReferenceDataError",
    "PedCalcError",
    "PediatricCalculator",
    "ReferenceTableStore",
    "age_grid",
    "build_config",
    "calculate",
    "default_calculator",
    "default_store",
    "load_reference_store",
    "percentile_from_z",
    "progression",
    "value_from_z",
    "z_from_percentile",
    "zscore",
]
