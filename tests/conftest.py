import pandas as pd
import pytest

from pedcalc.config import EngineConfig
from pedcalc.engine import PediatricCalculator
from pedcalc.tables import ReferenceRow, ReferenceTable, ReferenceTableStore


@pytest.fixture
def lms_frame() -> pd.DataFrame:
    """Small month-keyed LMS table with an L == 0 row."""
    return pd.DataFrame(
        {
            "Sex": [1, 1, 1, 2, 2],
            "Agemos": [24.0, 25.0, 36.0, 24.0, 36.0],
            "L": [-0.5, 0.0, 1.0, -0.4, 0.5],
            "M": [12.0, 12.5, 14.0, 11.5, 13.5],
            "S": [0.1, 0.1, 0.12, 0.11, 0.12],
        }
    )


@pytest.fixture
def gestational_rows() -> list:
    """Percentile-only newborn rows keyed by "weeks+days"."""
    return [
        ReferenceRow(
            sex=1,
            age_key="40+0",
            percentiles=((3.0, 2.8), (10.0, 3.0), (50.0, 3.5), (90.0, 4.0), (97.0, 4.3)),
        ),
        ReferenceRow(
            sex=2,
            age_key="40+0",
            percentiles=((3.0, 2.7), (10.0, 2.9), (50.0, 3.4), (90.0, 3.9), (97.0, 4.1)),
        ),
    ]


@pytest.fixture
def synthetic_store(gestational_rows) -> ReferenceTableStore:
    """Store with a CDC weight table and an INTERGROWTH weight table."""
    weight = ReferenceTable(
        "cdc_weight",
        [
            ReferenceRow(sex=1, age_key=24.0, L=-0.5, M=12.0, S=0.1),
            ReferenceRow(sex=1, age_key=36.0, L=0.0, M=14.0, S=0.12),
            ReferenceRow(sex=2, age_key=24.0, L=-0.4, M=11.5, S=0.11),
        ],
    )
    newborn = ReferenceTable("intergrowth_weight", gestational_rows)
    return ReferenceTableStore([weight, newborn])


@pytest.fixture
def synthetic_calculator(synthetic_store) -> PediatricCalculator:
    return PediatricCalculator(synthetic_store, EngineConfig())


@pytest.fixture
def calculator() -> PediatricCalculator:
    """Calculator over the bundled tables with exact row matching."""
    return PediatricCalculator(config=EngineConfig())


@pytest.fixture
def interpolating_calculator() -> PediatricCalculator:
    return PediatricCalculator(config=EngineConfig(row_matching="interpolate"))
