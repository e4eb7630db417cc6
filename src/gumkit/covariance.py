from __future__ import annotations

import logging
from typing import Sequence, Union, cast

import numpy as np
from numpy.typing import NDArray
from scipy import sparse

from .errors import (
    AsymmetricCovariance,
    CorrelationOutOfRange,
    NegativeVariance,
    ShapeMismatch,
)

logger = logging.getLogger(__name__)

# Relative tolerance on |cov[r,c] - cov[c,r]| in units of sqrt(var[r] * var[c])
DEFAULT_TOLERANCE = 1.0e-6
# Correlation coefficients within 1 + CORRELATION_EPSILON are clamped, not rejected
CORRELATION_EPSILON = 1.0e-8

# Flexible input types the user may pass for a covariance
CovInput = Union[
    None, float, int, np.ndarray, Sequence[float], Sequence[Sequence[float]]
]


def coerce_covariance(cov: object, n: int) -> NDArray[np.float64] | sparse.spmatrix:
    """
    Accept covariance in several convenient forms and produce an (n,n) matrix:

    - None            -> zeros((n,n)), i.e. exactly known values
    - scalar          -> scalar * identity(n)
    - 1D shape (n,)   -> diag(vector), independent variances
    - 2D shape (n,n)  -> copied as float64
    - scipy.sparse    -> copied, kept sparse (LIL, so validation can edit it)

    Only shapes are checked here; see `check_covariance` for the content.
    """
    if sparse.issparse(cov):
        sp = sparse.lil_matrix(cov, dtype=float, copy=True)
        if sp.shape != (n, n):
            raise ShapeMismatch(f"covariance shape {sp.shape} != (n,n)={(n, n)}")
        return sp
    if cov is None:
        return np.zeros((n, n), dtype=float)
    arr = np.array(cov, dtype=float)
    if arr.ndim == 0:
        return float(arr) * np.eye(n, dtype=float)
    if arr.ndim == 1:
        if arr.size != n:
            raise ShapeMismatch(f"1D covariance length {arr.size} != n={n}")
        return np.diag(arr)
    if arr.ndim == 2:
        if arr.shape != (n, n):
            raise ShapeMismatch(f"2D covariance shape {arr.shape} != (n,n)={(n, n)}")
        return cast(NDArray[np.float64], arr)
    raise ShapeMismatch("covariance must be None, scalar, (n,), or (n,n)")


def _check_square(shape: tuple[int, ...]) -> int:
    if len(shape) != 2:
        raise ShapeMismatch(f"the covariance must be a matrix, got shape {shape}")
    if shape[0] != shape[1]:
        raise ShapeMismatch(f"the covariance matrix must be square, got {shape}")
    return shape[0]


def _check_diagonal(diag: np.ndarray) -> None:
    bad = np.flatnonzero(diag < 0.0)
    if bad.size:
        i = int(bad[0])
        raise NegativeVariance(
            f"the diagonal elements must all be non-negative: cov[{i},{i}] = {diag[i]}"
        )


def _check_pair(
    r: int, c: int, lower: float, upper: float, scale: float, tol: float
) -> float:
    """
    Validate one off-diagonal pair (r > c) and return the canonical value.

    Shared by the sparse check so it decides exactly like the dense one.
    """
    if abs(lower - upper) > tol * scale:
        raise AsymmetricCovariance(
            f"the covariance must be symmetric: cov[{r},{c}] = {lower} "
            f"!= cov[{c},{r}] = {upper}"
        )
    if lower == 0.0:
        return lower
    if scale == 0.0:
        raise CorrelationOutOfRange(
            f"nonzero covariance cov[{r},{c}] = {lower} between zero-variance variables"
        )
    cc = lower / scale
    if abs(cc) > 1.0 + CORRELATION_EPSILON:
        raise CorrelationOutOfRange(
            f"the correlation coefficient must lie in [-1, 1]: rho[{r},{c}] = {cc}"
        )
    if abs(cc) > 1.0:
        return float(np.clip(cc, -1.0, 1.0)) * scale
    return lower


def check_covariance(cov: np.ndarray, tol: float = DEFAULT_TOLERANCE) -> bool:
    """
    Check that `cov` is a covariance matrix and canonicalize it in place.

    The matrix must be square with a non-negative diagonal, symmetric to within
    `tol * sqrt(var[r] * var[c])` and imply correlation coefficients in [-1, 1].
    Rounding noise is repaired rather than rejected: near-symmetric pairs are
    made exactly equal (the lower triangle wins) and coefficients just outside
    [-1, 1] are clamped. Anything larger raises.
    """
    n = _check_square(cov.shape)
    diag = np.array(np.diagonal(cov), dtype=float)
    _check_diagonal(diag)
    if n < 2:
        return True

    scale = np.sqrt(np.outer(diag, diag))
    lower = np.tril(cov, -1)
    upper_t = np.tril(cov.T, -1)
    asym = np.abs(lower - upper_t) > tol * scale
    if asym.any():
        r, c = (int(i) for i in np.argwhere(asym)[0])
        _check_pair(r, c, float(cov[r, c]), float(cov[c, r]), float(scale[r, c]), tol)

    # Correlation range on the (now authoritative) lower triangle
    with np.errstate(divide="ignore", invalid="ignore"):
        cc = np.where(lower != 0.0, lower / scale, 0.0)
    out = np.abs(cc) > 1.0
    if out.any():
        rows, cols = np.nonzero(out)
        for r, c in zip(rows.tolist(), cols.tolist()):
            lower[r, c] = _check_pair(r, c, lower[r, c], lower[r, c], scale[r, c], tol)
        logger.debug("clamped %d correlation coefficient(s) into [-1, 1]", rows.size)

    n_sym = int(np.count_nonzero(lower != upper_t))
    if n_sym:
        logger.debug("symmetrised %d covariance pair(s)", n_sym)
    cov[...] = lower + lower.T + np.diag(diag)
    return True


def check_covariance_sparse(
    cov: sparse.spmatrix, tol: float = DEFAULT_TOLERANCE
) -> bool:
    """
    Sparse counterpart of `check_covariance`.

    Visits only the stored nonzeros, which matters for large, mostly
    independent sets of variables. Canonicalizing may add entries that are
    not stored yet, so pass a LIL or DOK matrix and convert it afterwards;
    CSR and CSC work but scipy warns about the changed sparsity structure.
    """
    n = _check_square(cov.shape)
    diag = np.asarray(cov.diagonal(), dtype=float)
    _check_diagonal(diag)

    rows, cols = cov.nonzero()
    pairs = sorted(
        {(max(r, c), min(r, c)) for r, c in zip(rows.tolist(), cols.tolist()) if r != c}
    )
    changed = 0
    for r, c in pairs:
        lower, upper = float(cov[r, c]), float(cov[c, r])
        scale = float(np.sqrt(diag[r] * diag[c]))
        canonical = _check_pair(r, c, lower, upper, scale, tol)
        if canonical != lower or canonical != upper:
            cov[r, c] = canonical
            cov[c, r] = canonical
            changed += 1
    if changed:
        logger.debug("canonicalized %d sparse covariance pair(s) of %d", changed, n)
    return True
