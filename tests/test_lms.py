import logging
import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from pedcalc.errors import DataIntegrityError
from pedcalc.lms import (
    lms_values,
    lms_zscores,
    value_from_z,
    values_from_z,
    zscore,
    zscores,
)

L_VALUES = st.one_of(
    st.just(0.0),
    st.floats(min_value=0.05, max_value=2.0),
    st.floats(min_value=-2.0, max_value=-0.05),
)
M_VALUES = st.floats(min_value=1.0, max_value=100.0)
S_VALUES = st.floats(min_value=0.01, max_value=0.2)
Z_VALUES = st.floats(min_value=-2.0, max_value=2.0)


def test_tc001_zscore_power_form() -> None:
    """Z-score for L != 0 uses the Box-Cox power form"""
    z = zscore(17.9, 0.5, 18.0, 0.1)
    expected = ((17.9 / 18.0) ** 0.5 - 1) / (0.5 * 0.1)
    assert z == pytest.approx(expected, abs=1e-12)
    assert z == pytest.approx(-0.0556, abs=1e-4)


def test_tc002_zscore_log_form_for_exact_zero() -> None:
    """Z-score for L == 0 uses ln(X/M)/S"""
    z = zscore(20.0, 0.0, 18.0, 0.1)
    assert z == pytest.approx(math.log(20.0 / 18.0) / 0.1, abs=1e-12)


def test_tc003_small_nonzero_l_keeps_power_form() -> None:
    """A tiny non-zero L is not treated as zero"""
    z = zscore(20.0, 1e-4, 18.0, 0.1)
    expected = ((20.0 / 18.0) ** 1e-4 - 1) / (1e-4 * 0.1)
    assert z == pytest.approx(expected, abs=1e-12)


@pytest.mark.parametrize("L", [-1.5, 0.0, 0.8])
def test_tc004_median_has_zero_zscore(L) -> None:
    """The median M always maps to Z = 0"""
    assert zscore(15.0, L, 15.0, 0.12) == pytest.approx(0.0, abs=1e-12)


@given(z=Z_VALUES, L=L_VALUES, M=M_VALUES, S=S_VALUES)
@settings(max_examples=200)
def test_tc005_inverse_round_trip(z, L, M, S) -> None:
    """zscore(value_from_z(z)) recovers z"""
    value = value_from_z(z, L, M, S)
    assert zscore(value, L, M, S) == pytest.approx(z, abs=1e-9)


@given(L=L_VALUES, M=M_VALUES, S=S_VALUES, a=st.floats(0.5, 1.5), b=st.floats(0.5, 1.5))
def test_tc006_zscore_is_monotone_in_value(L, M, S, a, b) -> None:
    """Larger measurements never get smaller Z-scores"""
    low, high = sorted((a * M, b * M))
    assert zscore(low, L, M, S) <= zscore(high, L, M, S)


@pytest.mark.parametrize(
    "L,M,S",
    [(0.5, 0.0, 0.1), (0.5, -1.0, 0.1), (0.5, 10.0, 0.0), (0.5, 10.0, -0.1), (float("nan"), 10.0, 0.1)],
)
def test_tc007_malformed_rows_raise_integrity_error(L, M, S, caplog) -> None:
    """M <= 0, S <= 0 or non-finite parameters raise and are logged"""
    with caplog.at_level(logging.ERROR, logger="pedcalc.lms"):
        with pytest.raises(DataIntegrityError):
            zscore(10.0, L, M, S)
    assert any(r.levelno == logging.ERROR for r in caplog.records)


def test_tc008_integrity_error_is_value_error() -> None:
    """DataIntegrityError can be caught as ValueError"""
    with pytest.raises(ValueError):
        value_from_z(0.0, 1.0, 0.0, 0.1)


def test_tc009_non_positive_value_rejected() -> None:
    """The transform is undefined for non-positive measurements"""
    with pytest.raises(DataIntegrityError):
        zscore(0.0, 1.0, 10.0, 0.1)


def test_tc010_value_from_z_outside_support() -> None:
    """Z beyond the power-transform support raises ValueError"""
    with pytest.raises(ValueError, match="outside the LMS support"):
        value_from_z(-5.0, 2.0, 10.0, 0.2)


def test_tc011_value_from_z_log_form() -> None:
    """L == 0 inverse is M * exp(S * z)"""
    assert value_from_z(1.5, 0.0, 10.0, 0.1) == pytest.approx(10.0 * math.exp(0.15))


def test_tc012_kernel_matches_scalar() -> None:
    """Vectorized Z-scores agree with the scalar transform"""
    X = np.array([10.0, 12.0, 14.0, 16.0])
    L = np.array([-0.5, 0.0, 0.5, 1.2])
    M = np.array([11.0, 12.0, 13.0, 14.0])
    S = np.array([0.1, 0.11, 0.12, 0.13])
    z = lms_zscores(X, L, M, S)
    expected = [zscore(x, l, m, s) for x, l, m, s in zip(X, L, M, S)]
    assert np.allclose(z, expected, atol=1e-12)


def test_tc013_kernel_marks_invalid_entries_nan() -> None:
    """Kernel entries that cannot be transformed come back NaN"""
    X = np.array([10.0, -1.0, 10.0])
    L = np.array([0.5, 0.5, 0.5])
    M = np.array([10.0, 10.0, 0.0])
    S = np.array([0.1, 0.1, 0.1])
    z = lms_zscores(X, L, M, S)
    assert z[0] == pytest.approx(0.0)
    assert np.isnan(z[1]) and np.isnan(z[2])


def test_tc014_inverse_kernel_preserves_shape() -> None:
    """Inverse kernel keeps the input shape"""
    Z = np.zeros((2, 2))
    L = np.full((2, 2), 0.5)
    M = np.array([[10.0, 11.0], [12.0, 13.0]])
    S = np.full((2, 2), 0.1)
    values = lms_values(Z, L, M, S)
    assert values.shape == (2, 2)
    assert np.allclose(values, M)


def test_tc015_values_from_z_validates_rows() -> None:
    """Array inverse rejects malformed rows before computing"""
    with pytest.raises(DataIntegrityError):
        values_from_z(0.0, np.array([0.5]), np.array([-1.0]), np.array([0.1]))


def test_tc016_values_from_z_matches_scalar() -> None:
    """Array inverse agrees with value_from_z"""
    L = np.array([-1.3563, 0.0, 1.0])
    M = np.array([17.44, 12.0, 50.0])
    S = np.array([0.1311, 0.1, 0.04])
    values = values_from_z(1.2, L, M, S)
    expected = [value_from_z(1.2, l, m, s) for l, m, s in zip(L, M, S)]
    assert np.allclose(values, expected, atol=1e-9)


def test_tc017_zscores_empty_input() -> None:
    """Empty arrays produce an empty result"""
    result = zscores(np.array([]), np.array([]), np.array([]), np.array([]))
    assert result.size == 0
