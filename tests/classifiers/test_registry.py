import pytest

from pedcalc.classifiers import classify, registry


def test_tc001_registry_kinds() -> None:
    """All calculator kinds are registered"""
    assert set(registry) == {
        "growth", "bmi", "bilirubin", "ett", "office_bp", "ambulatory_bp", "dose",
    }


def test_tc002_dispatch() -> None:
    """classify forwards keyword inputs to the registered function"""
    assert classify("bmi", percentile=97) == "Obese (≥95th percentile)"
    assert classify("growth", percentile=2, measure="head_circumference") == (
        "Very low head circumference (<3rd percentile)"
    )
    assert classify("ett", age_in_years=8).uncuffed_size == 6.0
    assert classify("dose", dose=10, dosage_type="/kg/day", weight=20).daily == 200


def test_tc003_unknown_kind() -> None:
    """Unregistered kinds raise KeyError"""
    with pytest.raises(KeyError, match="Unsupported classifier"):
        classify("apgar", score=9)


@pytest.mark.parametrize(
    "percentile,label",
    [(4.9, "Underweight (<5th percentile)"), (5, "Healthy weight (5th-85th percentile)"), (85, "Overweight (85th-95th percentile)"), (95, "Obese (≥95th percentile)")],
)
def test_tc004_bmi_cut_offs(percentile, label) -> None:
    """BMI cut-offs are inclusive at the lower bound of each band"""
    assert classify("bmi", percentile=percentile) == label
