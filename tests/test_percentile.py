import math

import pytest
from hypothesis import given, strategies as st

from pedcalc.percentile import (
    erf,
    percentile_from_columns,
    percentile_from_z,
    value_from_columns,
    z_from_percentile,
)


def test_tc001_median_is_fifty() -> None:
    """Z = 0 lands at the 50th percentile (within the approximation error)"""
    assert percentile_from_z(0.0) == pytest.approx(50.0, abs=1e-6)


@pytest.mark.parametrize("z,expected", [(-1.8808, 3.0), (-1.0, 15.8655), (1.0, 84.1345), (1.8808, 97.0)])
def test_tc002_known_percentiles(z, expected) -> None:
    """Standard normal percentiles at familiar Z-scores"""
    assert percentile_from_z(z) == pytest.approx(expected, abs=1e-3)


@given(st.floats(min_value=-6, max_value=6))
def test_tc003_erf_close_to_math_erf(x) -> None:
    """Rational approximation stays within its published error of math.erf"""
    assert abs(erf(x) - math.erf(x)) < 2e-7


@given(st.floats(min_value=-6, max_value=6))
def test_tc004_erf_is_odd(x) -> None:
    """erf(-x) == -erf(x)"""
    assert erf(-x) == pytest.approx(-erf(x), abs=1e-8)


@given(st.floats(min_value=-5, max_value=5), st.floats(min_value=-5, max_value=5))
def test_tc005_percentile_is_monotone(a, b) -> None:
    """Higher Z-scores never give lower percentiles"""
    low, high = sorted((a, b))
    assert percentile_from_z(low) <= percentile_from_z(high) + 1e-12


def test_tc006_percentile_bounds() -> None:
    """Extreme Z-scores stay within [0, 100]"""
    assert 0.0 <= percentile_from_z(-40) <= percentile_from_z(40) <= 100.0


@pytest.mark.parametrize("p", [3, 50, 97])
def test_tc007_z_from_percentile_inverts(p) -> None:
    """z_from_percentile is the inverse of percentile_from_z"""
    assert percentile_from_z(z_from_percentile(p)) == pytest.approx(p, abs=1e-4)


@pytest.mark.parametrize("p", [0, 100, -1, 101])
def test_tc008_z_from_percentile_rejects_bounds(p) -> None:
    """Percentiles must lie strictly inside (0, 100)"""
    with pytest.raises(ValueError):
        z_from_percentile(p)


COLUMNS = {3.0: 2.8, 10.0: 3.0, 50.0: 3.5, 90.0: 4.0, 97.0: 4.3}


def test_tc009_columns_interpolate_between_brackets() -> None:
    """Value between two columns is linearly interpolated"""
    assert percentile_from_columns(3.25, COLUMNS) == pytest.approx(30.0)


def test_tc010_columns_exact_hit() -> None:
    """Value equal to a column returns that column's percentile"""
    assert percentile_from_columns(3.5, COLUMNS) == pytest.approx(50.0)


def test_tc011_columns_outside_range() -> None:
    """Values below/above the ladder map to 0 and 100"""
    assert percentile_from_columns(2.0, COLUMNS) == 0.0
    assert percentile_from_columns(5.0, COLUMNS) == 100.0


def test_tc012_columns_need_two_entries() -> None:
    """A single column cannot be interpolated"""
    with pytest.raises(ValueError):
        percentile_from_columns(3.0, {50.0: 3.5})


@given(st.floats(min_value=0.01, max_value=10.0))
def test_tc013_columns_stay_within_bounds(value) -> None:
    """Column-derived percentiles always lie in [0, 100]"""
    assert 0.0 <= percentile_from_columns(value, COLUMNS) <= 100.0


def test_tc014_value_from_columns() -> None:
    """Values between tabulated percentiles are interpolated; outside them there is none"""
    columns = {3.0: 2.8, 10.0: 3.0, 50.0: 3.5, 90.0: 4.0, 97.0: 4.3}
    assert value_from_columns(50, columns) == 3.5
    assert value_from_columns(25, columns) == pytest.approx(3.1875)
    assert value_from_columns(1, columns) is None
    assert value_from_columns(99, columns) is None
