"""
LMS (Lambda-Mu-Sigma) transformation.

Implements Cole's LMS method for converting a measurement to a Z-score against
an age/sex-specific reference row, and the inverse used to draw percentile
curves. Scalar functions serve single calculations; the numba kernels serve
chart series where the same transform runs across a whole age grid.

For L != 0: z = ((X/M)^L - 1) / (L * S)
For L == 0: z = ln(X/M) / S

References:
- Cole, T.J. (1990). "The LMS method for constructing normalized growth standards."
  European Journal of Clinical Nutrition, 44(1), 45-60.
- Kuczmarski RJ et al. (2002). 2000 CDC Growth Charts for the United States.
"""

import logging
import math

import numpy as np
from numba import jit

from .errors import DataIntegrityError

logger = logging.getLogger(__name__)


def _integrity_error(message: str) -> DataIntegrityError:
    logger.error(message)
    return DataIntegrityError(message)


def validate_lms(L: float, M: float, S: float) -> None:
    """
    Reject reference rows that cannot be transformed.

    Raises:
        DataIntegrityError: If any parameter is non-finite, M <= 0 or S <= 0
    """
    if not (math.isfinite(L) and math.isfinite(M) and math.isfinite(S)):
        raise _integrity_error(f"Non-finite LMS parameters: L={L}, M={M}, S={S}")
    if M <= 0:
        raise _integrity_error(f"Invalid LMS row: M must be positive (M={M})")
    if S <= 0:
        raise _integrity_error(f"Invalid LMS row: S must be positive (S={S})")


def zscore(value: float, L: float, M: float, S: float) -> float:
    """
    Calculate the Z-score of a measurement from LMS parameters.

    L is compared to zero exactly, so published rows with tiny non-zero L values
    keep using the power form.

    Args:
        value: Measurement in the table's unit (kg, cm, kg/m2)
        L: Box-Cox power
        M: Median
        S: Coefficient of variation

    Returns:
        Z-score (0 at the median)

    Raises:
        DataIntegrityError: For malformed rows or a non-positive value
    """
    validate_lms(L, M, S)
    if not math.isfinite(value) or value <= 0:
        raise _integrity_error(
            f"LMS transform undefined for non-positive value {value}"
        )
    if L == 0:
        return math.log(value / M) / S
    return (math.pow(value / M, L) - 1) / (L * S)


def value_from_z(z: float, L: float, M: float, S: float) -> float:
    """
    Inverse LMS transform: the measurement lying at Z-score ``z``.

    Raises:
        DataIntegrityError: For malformed rows
        ValueError: If ``z`` lies beyond the support of the power transform
            (1 + L*S*z <= 0)
    """
    validate_lms(L, M, S)
    if L == 0:
        return M * math.exp(S * z)
    base = 1 + L * S * z
    if base <= 0:
        raise ValueError(f"Z-score {z} is outside the LMS support for L={L}, S={S}")
    return M * math.pow(base, 1 / L)


@jit(nopython=True, cache=True)
def lms_zscores(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Vectorized LMS Z-scores. Entries that cannot be transformed become NaN.

    Args:
        X: Observed values
        L: Box-Cox powers
        M: Medians
        S: Coefficients of variation

    Returns:
        Z-scores with the shape of X
    """
    X_flat = X.ravel()
    L_flat = L.ravel()
    M_flat = M.ravel()
    S_flat = S.ravel()
    z_flat = np.full(X_flat.shape[0], np.nan, dtype=np.float64)
    for i in range(X_flat.shape[0]):
        x = X_flat[i]
        if not (np.isfinite(x) and x > 0 and M_flat[i] > 0 and S_flat[i] > 0):
            continue
        if L_flat[i] == 0.0:
            z_flat[i] = np.log(x / M_flat[i]) / S_flat[i]
        else:
            z_flat[i] = ((x / M_flat[i]) ** L_flat[i] - 1.0) / (L_flat[i] * S_flat[i])
    return z_flat.reshape(X.shape)


@jit(nopython=True, cache=True)
def lms_values(
    Z: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Vectorized inverse LMS. Entries outside the power-transform support become NaN.

    Args:
        Z: Z-scores
        L: Box-Cox powers
        M: Medians
        S: Coefficients of variation

    Returns:
        Measurements with the shape of Z
    """
    Z_flat = Z.ravel()
    L_flat = L.ravel()
    M_flat = M.ravel()
    S_flat = S.ravel()
    out = np.full(Z_flat.shape[0], np.nan, dtype=np.float64)
    for i in range(Z_flat.shape[0]):
        if not (M_flat[i] > 0 and S_flat[i] > 0):
            continue
        if L_flat[i] == 0.0:
            out[i] = M_flat[i] * np.exp(S_flat[i] * Z_flat[i])
        else:
            base = 1.0 + L_flat[i] * S_flat[i] * Z_flat[i]
            if base > 0.0:
                out[i] = M_flat[i] * base ** (1.0 / L_flat[i])
    return out.reshape(Z.shape)


def validate_lms_arrays(L: np.ndarray, M: np.ndarray, S: np.ndarray) -> None:
    """
    Array counterpart of validate_lms, run before handing arrays to the kernels.

    Raises:
        DataIntegrityError: If any row is non-finite or has M <= 0 or S <= 0
    """
    if not (np.all(np.isfinite(L)) and np.all(np.isfinite(M)) and np.all(np.isfinite(S))):
        raise _integrity_error("Non-finite LMS parameters in reference rows")
    if np.any(M <= 0):
        raise _integrity_error("Invalid LMS rows: non-positive M values")
    if np.any(S <= 0):
        raise _integrity_error("Invalid LMS rows: non-positive S values")


def values_from_z(z: float, L: np.ndarray, M: np.ndarray, S: np.ndarray) -> np.ndarray:
    """Measurements at a single Z-score across a run of reference rows."""
    L = np.asarray(L, dtype=np.float64)
    M = np.asarray(M, dtype=np.float64)
    S = np.asarray(S, dtype=np.float64)
    validate_lms_arrays(L, M, S)
    Z = np.full(L.shape, float(z), dtype=np.float64)
    return lms_values(Z, L, M, S)


def zscores(X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray) -> np.ndarray:
    """Z-scores for many measurements after validating their reference rows."""
    X = np.asarray(X, dtype=np.float64)
    L = np.asarray(L, dtype=np.float64)
    M = np.asarray(M, dtype=np.float64)
    S = np.asarray(S, dtype=np.float64)
    if X.size == 0:
        return np.full_like(X, np.nan)
    validate_lms_arrays(L, M, S)
    return lms_zscores(X, L, M, S)
