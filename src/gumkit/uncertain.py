from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union, cast

import numpy as np
from numpy.typing import NDArray
from scipy import linalg, sparse

from .covariance import (
    CovInput,
    DEFAULT_TOLERANCE,
    check_covariance,
    check_covariance_sparse,
    coerce_covariance,
)
from .errors import DisjointnessViolation, ShapeMismatch, UnknownLabel
from .labels import Label, LabeledValues, LabelLike, _index_of, as_labels, label

Matrix = Union[NDArray[np.float64], sparse.spmatrix]


@dataclass(frozen=True)
class UncertainValue:
    """A single value with its standard (1σ) uncertainty."""

    value: float
    sigma: float

    def uncertainty(self, k: float = 1.0) -> float:
        """Expanded uncertainty k·σ."""
        return k * self.sigma

    def fractional(self) -> float:
        if self.value == 0.0:
            return math.inf
        return self.sigma / abs(self.value)

    def __str__(self) -> str:
        return f"{self.value:0.6g} ± {self.sigma:0.3g}"


class UncertainValues:
    """
    A set of labeled values together with the full covariance matrix.

    Attributes
    ----------
    labels : tuple[Label, ...]
        Natural order: row/column order of `values` and `covariance_matrix`.
    values : np.ndarray, shape (n,)
        Read-only value vector.
    covariance_matrix : np.ndarray | scipy.sparse matrix, shape (n, n)
        Validated covariance. Dense matrices are read-only; sparse ones are
        private copies that must not be modified.

    Instances never change after construction; `apply`, `subset` and
    `concatenate` return new instances.
    """

    __slots__ = ("_labels", "_index", "_values", "_cov")

    def __init__(
        self,
        labels: Iterable[LabelLike],
        values: Iterable[float] | np.ndarray,
        covariance: CovInput | sparse.spmatrix = None,
        tol: float = DEFAULT_TOLERANCE,
    ) -> None:
        self._labels = as_labels(labels)
        n = len(self._labels)
        vals = np.array(values, dtype=float).reshape(-1)
        if vals.size != n:
            raise ShapeMismatch(
                f"the number of labels ({n}) != number of values ({vals.size})"
            )
        cov = coerce_covariance(covariance, n)
        if sparse.issparse(cov):
            check_covariance_sparse(cov, tol)
            cov = cov.tocsr()
        else:
            check_covariance(cov, tol)
            cov.setflags(write=False)
        self._index = _index_of(self._labels)
        vals.setflags(write=False)
        self._values: NDArray[np.float64] = vals
        self._cov: Matrix = cov

    @classmethod
    def from_sigmas(
        cls,
        labels: Iterable[LabelLike],
        values: Iterable[float] | np.ndarray,
        sigmas: Iterable[float] | np.ndarray,
    ) -> "UncertainValues":
        """Independent values with the given standard uncertainties."""
        s = np.array(list(sigmas), dtype=float)
        return cls(labels, values, s * s)

    # --- natural-order views ------------------------------------------------

    @property
    def labels(self) -> tuple[Label, ...]:
        return self._labels

    @property
    def values(self) -> NDArray[np.float64]:
        return self._values

    @property
    def covariance_matrix(self) -> Matrix:
        return self._cov

    def sorted_labels(self) -> list[Label]:
        """Labels in display order (sorted by their string form)."""
        return sorted(self._labels)

    def to_labeled_values(self) -> LabeledValues:
        return LabeledValues(self._labels, self._values)

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, lbl: object) -> bool:
        if isinstance(lbl, str):
            lbl = Label(lbl)
        return lbl in self._index

    def __iter__(self):
        return iter(self._labels)

    # --- accessors ------------------------------------------------------------

    def index(self, lbl: LabelLike) -> int:
        try:
            return self._index[label(lbl)]
        except KeyError:
            raise UnknownLabel(f"label {lbl} is not in this set of values") from None

    def _entry(self, r: int, c: int) -> float:
        return float(self._cov[r, c])

    def value(self, lbl: LabelLike) -> float:
        return float(self._values[self.index(lbl)])

    def variance(self, lbl: LabelLike) -> float:
        i = self.index(lbl)
        return self._entry(i, i)

    def covariance(self, lbl1: LabelLike, lbl2: LabelLike) -> float:
        return self._entry(self.index(lbl1), self.index(lbl2))

    def sigma(self, lbl: LabelLike) -> float:
        """The 1σ uncertainty, sqrt(variance)."""
        return math.sqrt(self.variance(lbl))

    def uncertainty(self, lbl: LabelLike, k: float = 1.0) -> float:
        """The expanded uncertainty k·σ."""
        return k * self.sigma(lbl)

    def correlation(self, a: LabelLike, b: LabelLike) -> float:
        """
        Pearson correlation coefficient between `a` and `b`.

        Zero when either variable has zero variance, as in `correlation_matrix`.
        """
        if self.index(a) == self.index(b):
            return 1.0
        scale = self.sigma(a) * self.sigma(b)
        if scale == 0.0:
            return 0.0
        return self.covariance(a, b) / scale

    def correlation_matrix(self) -> NDArray[np.float64]:
        cov = _dense(self._cov)
        s = np.sqrt(np.diagonal(cov))
        with np.errstate(divide="ignore", invalid="ignore"):
            cc = cov / np.outer(s, s)
        cc[~np.isfinite(cc)] = 0.0
        np.fill_diagonal(cc, 1.0)
        return cast(NDArray[np.float64], cc)

    def __getitem__(self, lbl: LabelLike) -> UncertainValue:
        i = self.index(lbl)
        return UncertainValue(float(self._values[i]), math.sqrt(self._entry(i, i)))

    def get(
        self, lbl: LabelLike, default: Optional[UncertainValue] = None
    ) -> Optional[UncertainValue]:
        if lbl not in self:
            return default
        return self[lbl]

    def extract(self, labels: Sequence[LabelLike]) -> NDArray[np.float64]:
        """Covariance submatrix for `labels`, in the order given."""
        idx = [self.index(lbl) for lbl in labels]
        if sparse.issparse(self._cov):
            return cast(NDArray[np.float64], self._cov[idx, :][:, idx].toarray())
        return np.array(self._cov[np.ix_(idx, idx)], dtype=float)

    def subset(self, labels: Sequence[LabelLike]) -> "UncertainValues":
        """The values and covariance of `labels` as a new UncertainValues."""
        lbls = as_labels(labels)
        idx = [self.index(lbl) for lbl in lbls]
        return UncertainValues(lbls, self._values[idx], self.extract(lbls))

    # --- algebra ----------------------------------------------------------------

    def apply(
        self, matrix: np.ndarray, labels: Optional[Iterable[LabelLike]] = None
    ) -> "UncertainValues":
        """
        Linear transform: values' = M·values and covariance' = M·covariance·Mᵀ.

        A scalar is read as scalar·I and a 1-D `matrix` as the diagonal of M.
        A non-square M maps onto a different set of variables, which must then
        be named by `labels`.
        """
        m = np.asarray(matrix, dtype=float)
        if m.ndim == 0:
            m = float(m) * np.eye(len(self), dtype=float)
        elif m.ndim == 1:
            m = np.diag(m)
        if m.ndim != 2 or m.shape[1] != len(self):
            raise ShapeMismatch(
                f"cannot apply a {m.shape} matrix to {len(self)} values"
            )
        new_labels = self._labels if labels is None else as_labels(labels)
        if m.shape[0] != len(new_labels):
            raise ShapeMismatch(
                f"{m.shape[0]} result rows but {len(new_labels)} labels"
            )
        cov = m @ np.asarray(self._cov @ m.T)
        return UncertainValues(new_labels, m @ self._values, cov)

    # --- display ----------------------------------------------------------------

    def __str__(self) -> str:
        items = (
            f"{lbl} = {self.value(lbl):<0.3g} ± {self.sigma(lbl):<0.3g}"
            for lbl in self.sorted_labels()
        )
        return "UVS[" + ", ".join(items) + "]"

    def __repr__(self) -> str:
        names = ", ".join(str(lbl) for lbl in self._labels)
        return f"UncertainValues({len(self)} values: {names})"

    def summary(self, width: int = 12) -> str:
        """Text table of values and the covariance matrix in display order."""

        def trim(s: str) -> str:
            return s[:width].ljust(width)

        lbls = self.sorted_labels()
        header = trim("Variable") + trim("Value")
        lines = [header + "".join(trim(str(lbl)) for lbl in lbls)]
        for rl in lbls:
            row = [trim(str(rl)), trim(f"{self.value(rl):0.4g}")]
            row += [trim(f"{self.covariance(rl, cl):0.4g}") for cl in lbls]
            lines.append("".join(row))
        return "\n".join(line.rstrip() for line in lines)


def _dense(cov: Matrix) -> NDArray[np.float64]:
    if sparse.issparse(cov):
        return cast(NDArray[np.float64], cov.toarray())
    return np.array(cov, dtype=float)


def uvs(
    labels: Iterable[LabelLike],
    values: Iterable[float] | np.ndarray,
    covariance: CovInput | sparse.spmatrix = None,
) -> UncertainValues:
    """Shorthand for `UncertainValues(labels, values, covariance)`."""
    return UncertainValues(labels, values, covariance)


def concatenate(*parts: UncertainValues) -> UncertainValues:
    """
    Combine disjoint UncertainValues into one.

    The sets are assumed independent: each keeps its own covariance block and
    every cross term is zero. A label shared by two parts raises
    `DisjointnessViolation`.
    """
    if len(parts) == 1 and not isinstance(parts[0], UncertainValues):
        parts = tuple(cast(Iterable[UncertainValues], parts[0]))
    seen: dict[Label, int] = {}
    for i, part in enumerate(parts):
        for lbl in part.labels:
            if lbl in seen:
                raise DisjointnessViolation(
                    f"label {lbl} appears in both part {seen[lbl]} and part {i}"
                )
            seen[lbl] = i
    labels = [lbl for part in parts for lbl in part.labels]
    values = np.concatenate([part.values for part in parts]) if parts else np.zeros(0)
    blocks = [part.covariance_matrix for part in parts]
    if any(sparse.issparse(b) for b in blocks):
        cov: Matrix = sparse.block_diag(blocks, format="csr")
    elif blocks:
        cov = linalg.block_diag(*blocks)
    else:
        cov = np.zeros((0, 0))
    return UncertainValues(labels, values, cov)
