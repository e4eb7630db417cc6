from __future__ import annotations


class UncertaintyError(Exception):
    """Base class for every error raised by gumkit."""


class ShapeMismatch(UncertaintyError, ValueError):
    """A matrix or vector does not have the dimensions its labels imply."""


class NegativeVariance(UncertaintyError, ValueError):
    """A diagonal element of a covariance matrix is negative."""


class AsymmetricCovariance(UncertaintyError, ValueError):
    """cov[r, c] and cov[c, r] differ by more than the tolerance."""


class CorrelationOutOfRange(UncertaintyError, ValueError):
    """An implied correlation coefficient lies outside [-1, 1]."""


class UnknownLabel(UncertaintyError, KeyError):
    """A label lookup missed."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class DuplicateLabel(UncertaintyError, ValueError):
    """The same label was produced twice while merging values."""


class DisjointnessViolation(DuplicateLabel):
    """Sets that must be disjoint (parallel outputs, concatenated values) overlap."""
