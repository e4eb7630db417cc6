from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, Iterator, Mapping, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from .errors import DuplicateLabel, ShapeMismatch, UnknownLabel


@total_ordering
@dataclass(frozen=True, eq=True)
class Label:
    """
    Identity token naming a scalar variable.

    Labels compare equal by type and fields, and are ordered by their display
    form so any collection of labels has a deterministic sort order.
    """

    name: str

    def __str__(self) -> str:
        return self.name

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Label):
            return NotImplemented
        return str(self) < str(other)


LabelLike = Union[Label, str]


def label(name: LabelLike) -> Label:
    """Return `name` as a Label (Labels pass through unchanged)."""
    if isinstance(name, Label):
        return name
    return Label(str(name))


def as_labels(names: Iterable[LabelLike]) -> tuple[Label, ...]:
    return tuple(label(n) for n in names)


def _index_of(labels: Sequence[Label]) -> dict[Label, int]:
    index: dict[Label, int] = {}
    for i, lbl in enumerate(labels):
        if lbl in index:
            raise DuplicateLabel(f"label {lbl} appears more than once")
        index[lbl] = i
    return index


class LabeledValues(Mapping[Label, float]):
    """
    Ordered, duplicate-free mapping from Label to a plain float.

    The insertion order is the order of `array`, and so the row/column order of
    any Jacobian computed from these values.
    """

    __slots__ = ("_labels", "_index", "_values")

    def __init__(
        self, labels: Iterable[LabelLike], values: Iterable[float] | np.ndarray
    ) -> None:
        self._labels = as_labels(labels)
        arr = np.array(values, dtype=float).reshape(-1)
        if arr.size != len(self._labels):
            raise ShapeMismatch(
                f"{len(self._labels)} labels but {arr.size} values"
            )
        self._index = _index_of(self._labels)
        arr.setflags(write=False)
        self._values: NDArray[np.float64] = arr

    @classmethod
    def from_dict(cls, values: Mapping[LabelLike, float]) -> "LabeledValues":
        return cls(list(values.keys()), list(values.values()))

    @property
    def labels(self) -> tuple[Label, ...]:
        return self._labels

    @property
    def array(self) -> NDArray[np.float64]:
        """Read-only value vector in label order."""
        return self._values

    def index(self, lbl: LabelLike) -> int:
        try:
            return self._index[label(lbl)]
        except KeyError:
            raise UnknownLabel(f"no value for label {lbl}") from None

    def __getitem__(self, lbl: LabelLike) -> float:
        return float(self._values[self.index(lbl)])

    def __contains__(self, lbl: object) -> bool:
        if isinstance(lbl, str):
            lbl = Label(lbl)
        return lbl in self._index

    def __iter__(self) -> Iterator[Label]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        body = ", ".join(f"{lbl}={v:.6g}" for lbl, v in zip(self._labels, self._values))
        return f"LabeledValues({body})"

    def merge(self, other: "LabeledValues") -> "LabeledValues":
        """Append `other` after these values; any shared label is an error."""
        common = [lbl for lbl in other.labels if lbl in self._index]
        if common:
            names = ", ".join(str(c) for c in common)
            raise DuplicateLabel(f"labels already present: {names}")
        return LabeledValues(
            self._labels + other.labels, np.concatenate([self._values, other.array])
        )

    def take(self, labels: Iterable[LabelLike]) -> "LabeledValues":
        """Subset (and reorder) to `labels`."""
        lbls = as_labels(labels)
        idx = [self.index(lbl) for lbl in lbls]
        return LabeledValues(lbls, self._values[idx])
