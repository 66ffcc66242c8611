import pytest

from pedcalc.errors import DomainRangeError, NoReferenceDataError
from pedcalc.selector import (
    StandardSelector,
    check_domain,
    normalize_kind,
    normalize_standard,
    standard_for_age,
)


@pytest.mark.parametrize(
    "kind,expected",
    [("weight", "weight"), ("Length", "height"), ("head-circumference", "head_circumference"), ("HC", "head_circumference")],
)
def test_tc001_kind_aliases(kind, expected) -> None:
    """Kind spellings normalize to catalog measures"""
    assert normalize_kind(kind) == expected


def test_tc002_unknown_kind_and_standard() -> None:
    """Unknown kinds and standards raise ValueError"""
    with pytest.raises(ValueError):
        normalize_kind("skinfold")
    with pytest.raises(ValueError):
        normalize_standard("fenton")


def test_tc003_select_table(synthetic_store) -> None:
    """Selection returns the table, sex subset and strategy"""
    selection = StandardSelector(synthetic_store).select_table("weight", "cdc", "male")
    assert selection.table.name == "cdc_weight"
    assert selection.sex == 1
    assert len(selection.rows) == 2
    assert selection.matching == "exact"
    assert not selection.is_gestational


def test_tc004_gestational_always_exact(synthetic_store) -> None:
    """Gestational tables ignore the interpolate setting"""
    selector = StandardSelector(synthetic_store, "interpolate")
    assert selector.select_table("weight", "intergrowth", "female").matching == "exact"
    assert selector.select_table("weight", "cdc", "female").matching == "interpolate"


def test_tc005_unsupported_combination(synthetic_store) -> None:
    """INTERGROWTH has no BMI table"""
    with pytest.raises(NoReferenceDataError, match="no bmi reference data"):
        StandardSelector(synthetic_store).select_table("bmi", "intergrowth", "male")


def test_tc006_table_not_loaded(synthetic_store) -> None:
    """Supported combinations without a loaded table report no data"""
    with pytest.raises(NoReferenceDataError):
        StandardSelector(synthetic_store).select_table("height", "cdc", "male")


def test_tc007_find_row_missing_age(synthetic_store) -> None:
    """An untabulated age raises NoReferenceDataError"""
    selector = StandardSelector(synthetic_store)
    selection = selector.select_table("weight", "cdc", "female")
    assert selector.find_row(selection, 24).M == 11.5
    with pytest.raises(NoReferenceDataError):
        selector.find_row(selection, 36)


def test_tc008_invalid_strategy(synthetic_store) -> None:
    """Only exact and interpolate strategies exist"""
    with pytest.raises(ValueError):
        StandardSelector(synthetic_store, "nearest")


@pytest.mark.parametrize("standard,age", [("cdc", 23), ("cdc", 241), ("who", 25), ("cdc_infant", 37)])
def test_tc009_check_domain_rejects(standard, age) -> None:
    """Ages outside a standard's fixed domain are rejected"""
    with pytest.raises(DomainRangeError):
        check_domain(standard, age)


@pytest.mark.parametrize("standard,age", [("cdc", 24), ("cdc", 240), ("who", 0), ("cdc_infant", 36)])
def test_tc010_check_domain_accepts_bounds(standard, age) -> None:
    """Domain bounds are inclusive"""
    check_domain(standard, age)


def test_tc011_standard_for_age() -> None:
    """WHO below 24 months, CDC from 24"""
    assert standard_for_age(23.9) == "who"
    assert standard_for_age(24) == "cdc"
