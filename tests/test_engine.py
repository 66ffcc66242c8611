import math
from datetime import date, datetime

import pytest

from pedcalc.config import EngineConfig
from pedcalc.engine import PediatricCalculator, calculate, default_calculator
from pedcalc.errors import DataIntegrityError
from pedcalc.tables import ReferenceRow, ReferenceTable, ReferenceTableStore, default_store


def _reference_z(value: float, L: float, M: float, S: float) -> float:
    return ((value / M) ** L - 1) / (L * S)


def test_tc001_bmi_end_to_end(calculator) -> None:
    """32 kg / 142 cm boy at 132 months against CDC BMI-for-age"""
    result = calculator.calculate_bmi_percentile(32, 142, "male", age_in_months=132)
    bmi = 32 / 1.42**2
    expected_z = _reference_z(bmi, -1.3563, 17.44, 0.1311)

    assert result.standard_used == "cdc_bmi"
    assert result.value == pytest.approx(bmi)
    assert result.z_score == pytest.approx(expected_z, abs=1e-6)
    assert result.z_score == pytest.approx(-0.7677, abs=1e-3)
    assert result.percentile == pytest.approx(22.13, abs=0.05)
    assert result.percentile == pytest.approx(
        50 * (1 + math.erf(expected_z / math.sqrt(2))), abs=1e-4
    )
    assert result.classification == "Healthy weight (5th-85th percentile)"
    assert result.warning is None


def test_tc002_dates_resolve_to_completed_months(calculator) -> None:
    """Birth and measurement dates give the same result as the month count"""
    by_dates = calculator.calculate(
        value=15.0,
        sex="female",
        calculator_kind="weight",
        standard="cdc",
        date_of_birth=date(2018, 3, 20),
        date_of_measurement=date(2021, 3, 20),
    )
    by_months = calculator.calculate(
        value=15.0, sex="female", calculator_kind="weight", standard="cdc", age_in_months=36
    )
    assert by_dates.age_key == 36.0
    assert by_dates.z_score == pytest.approx(by_months.z_score)


def test_tc003_median_value_is_fiftieth(calculator) -> None:
    """The CDC weight median at 24 months sits at about the 50th percentile"""
    result = calculator.calculate(
        value=12.59, sex=1, calculator_kind="weight", standard="cdc", age_in_months=24
    )
    assert result.z_score == pytest.approx(0.0, abs=1e-9)
    assert result.percentile == pytest.approx(50.0, abs=1e-6)
    assert result.classification.startswith("Normal weight")


def test_tc004_units_are_normalized(calculator) -> None:
    """Values in grams match the same value in kilograms"""
    grams = calculator.calculate(
        value=12590, unit="g", sex="male", calculator_kind="weight", standard="cdc", age_in_months=24
    )
    assert grams.value == pytest.approx(12.59)
    assert grams.z_score == pytest.approx(0.0, abs=1e-9)


def test_tc005_untabulated_age_has_no_data(calculator) -> None:
    """Exact matching reports missing rows instead of guessing"""
    result = calculator.calculate(
        value=13.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=30
    )
    assert result.z_score is None
    assert result.percentile is None
    assert not result.has_data
    assert result.warning.startswith("No reference data")
    assert result.standard_used == "cdc_weight"


def test_tc006_interpolation_fills_gaps(interpolating_calculator) -> None:
    """Interpolated matching covers ages between tabulated rows"""
    result = interpolating_calculator.calculate(
        value=13.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=30
    )
    assert result.z_score is not None
    assert 0 < result.percentile < 100


def test_tc007_out_of_domain_age(calculator) -> None:
    """Ages outside the standard's domain give a warning, not an exception"""
    result = calculator.calculate(
        value=9.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=12
    )
    assert result.percentile is None
    assert "outside the cdc range" in result.warning


def test_tc008_intergrowth_bmi_is_unsupported(synthetic_calculator) -> None:
    """INTERGROWTH has no BMI reference; the result carries a warning"""
    result = synthetic_calculator.calculate(
        value=12.0,
        sex="male",
        calculator_kind="bmi",
        standard="intergrowth",
        gestational_weeks=40,
        gestational_days=0,
    )
    assert result.z_score is None
    assert "no bmi reference data" in result.warning


def test_tc009_intergrowth_uses_percentile_columns(synthetic_calculator) -> None:
    """Percentile-only rows give a percentile without a Z-score"""
    result = synthetic_calculator.calculate(
        value=3.25,
        sex="male",
        calculator_kind="weight",
        standard="intergrowth",
        gestational_weeks=40,
        gestational_days=0,
    )
    assert result.z_score is None
    assert result.percentile == pytest.approx(30.0)
    assert result.age_key == "40+0"
    assert result.reference_range == {"P3": 2.8, "P50": 3.5, "P97": 4.3}


def test_tc010_intergrowth_out_of_range(synthetic_calculator) -> None:
    """Gestational ages outside 24-42 weeks are a domain warning"""
    result = synthetic_calculator.calculate(
        value=1.0,
        sex="male",
        calculator_kind="weight",
        standard="intergrowth",
        gestational_weeks=22,
        gestational_days=0,
    )
    assert result.percentile is None
    assert "between 24 and 42 weeks" in result.warning


def test_tc011_intergrowth_requires_gestational_age(synthetic_calculator) -> None:
    """INTERGROWTH requests need weeks and days"""
    with pytest.raises(ValueError, match="Gestational weeks and days"):
        synthetic_calculator.calculate(
            value=3.0, sex="male", calculator_kind="weight", standard="intergrowth", age_in_months=0
        )


@pytest.mark.parametrize(
    "fields",
    [
        {"sex": "unknown", "age_in_months": 24},
        {"sex": "male"},
        {"sex": "male", "age_in_months": -1},
        {"sex": "male", "age_in_months": 24, "calculator_kind": "skinfold"},
    ],
)
def test_tc012_invalid_requests(synthetic_calculator, fields) -> None:
    """Invalid input raises ValueError"""
    request = {"value": 12.0, "calculator_kind": "weight", "standard": "cdc", **fields}
    with pytest.raises(ValueError):
        synthetic_calculator.calculate(**request)


def test_tc013_malformed_row_propagates() -> None:
    """Invalid LMS rows raise DataIntegrityError instead of a null result"""
    store = ReferenceTableStore(
        [ReferenceTable("cdc_weight", [ReferenceRow(sex=1, age_key=24.0, L=0.5, M=0.0, S=0.1)])]
    )
    calculator = PediatricCalculator(store, EngineConfig())
    with pytest.raises(DataIntegrityError):
        calculator.calculate(
            value=12.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=24
        )


def test_tc014_log_form_row(synthetic_calculator) -> None:
    """A row with L == 0 uses the log transform"""
    result = synthetic_calculator.calculate(
        value=15.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=36
    )
    assert result.z_score == pytest.approx(math.log(15.0 / 14.0) / 0.12)


def test_tc015_reference_range_from_lms(calculator) -> None:
    """P50 of an LMS row is its median"""
    result = calculator.calculate(
        value=12.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=24
    )
    assert result.reference_range["P50"] == pytest.approx(12.59)
    assert result.reference_range["P3"] < 12.59 < result.reference_range["P97"]


def test_tc016_camel_case_output(calculator) -> None:
    """Serialized results use camelCase keys"""
    data = calculator.calculate(
        value=12.0, sex="male", calculator_kind="weight", standard="cdc", age_in_months=24
    ).to_dict()
    assert {"zScore", "percentile", "classification", "standardUsed", "warning"} <= set(data)


def test_tc017_height_percentile_switches_standard(calculator) -> None:
    """Height percentile uses WHO below 24 months and CDC from 24"""
    assert calculator.height_percentile(87.78, "male", 24) == pytest.approx(50.0, abs=1e-4)
    assert calculator.height_percentile(87.8161, "male", 23.999) == pytest.approx(50.0, abs=0.5)
    assert calculator.height_percentile(100.0, "male", 300) is None


def test_tc018_blood_pressure_with_height(calculator) -> None:
    """Office BP derives the height percentile from height in cm"""
    assessment = calculator.assess_blood_pressure(
        100, 60, "male", age_in_months=60, height_cm=calculator_median_height(calculator)
    )
    assert assessment.height_percentile == pytest.approx(50.0, abs=1e-3)
    assert assessment.classification == "Normal"


def calculator_median_height(calculator) -> float:
    return calculator.store.find_row("cdc_height", "male", 60).M


def test_tc019_blood_pressure_needs_height(calculator) -> None:
    """Without any height input the BP assessment cannot run"""
    with pytest.raises(ValueError):
        calculator.assess_blood_pressure(100, 60, "male", age_in_months=60)


def test_tc020_bilirubin_from_timestamps(calculator) -> None:
    """Birth and sample times resolve to hours and a risk curve"""
    assessment = calculator.assess_bilirubin(
        18.0,
        datetime(2024, 1, 1, 6, 0),
        datetime(2024, 1, 3, 6, 30),
        gestational_weeks=39,
    )
    assert assessment.age_in_hours == 48
    assert assessment.risk_category == "lowerRisk"
    assert assessment.at_or_above_threshold


def test_tc021_ett_from_dates(calculator) -> None:
    """ETT sizing from dates uses completed years"""
    recommendation = calculator.size_ett(
        date_of_birth=date(2016, 5, 1), date_of_measurement=date(2021, 4, 30)
    )
    assert recommendation.age_in_years == 4
    assert recommendation.uncuffed_size == 5.0


def test_tc022_module_level_calculate() -> None:
    """The module shortcut uses the bundled tables"""
    result = calculate(
        value=17.44, sex="male", calculator_kind="bmi", standard="cdc", age_in_months=132
    )
    assert result.percentile == pytest.approx(50.0, abs=1e-6)


def test_tc023_who_bmi_from_data_dir(tmp_path) -> None:
    """A downloaded who_bmi table serves WHO BMI-for-age"""
    (tmp_path / "who_bmi.csv").write_text(
        "Sex,Agemos,L,M,S\n1,6,-0.1913,17.3422,0.08234\n2,6,-0.1648,16.9,0.0849\n"
    )
    calculator = PediatricCalculator(config=EngineConfig(data_dir=tmp_path))
    result = calculator.calculate_bmi_percentile(7.5, 66, "male", standard="who", age_in_months=6)
    assert result.standard_used == "who_bmi"
    assert result.percentile is not None
    assert result.z_score == pytest.approx(
        ((7.5 / 0.66**2 / 17.3422) ** -0.1913 - 1) / (-0.1913 * 0.08234)
    )


def test_tc024_default_calculator_shares_bundled_store() -> None:
    """The default calculator reuses the memoized bundled store"""
    default_calculator.cache_clear()
    try:
        assert default_calculator().store is default_store()
    finally:
        default_calculator.cache_clear()


def test_tc025_engine_without_who_bmi_reports_no_data(calculator) -> None:
    """Without a who_bmi table WHO BMI requests return a warning, not a result"""
    result = calculator.calculate_bmi_percentile(7.5, 66, "male", standard="who", age_in_months=6)
    assert result.percentile is None
    assert result.warning is not None
