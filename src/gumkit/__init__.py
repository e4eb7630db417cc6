"""
gumkit — GUM uncertainty propagation utilities:
- Labeled values and validated covariance sets (UncertainValues)
- Measurement models with analytic Jacobians, composed sequentially or in parallel
- First-order (J·Σ·Jᵀ) propagation and a Monte Carlo cross-check
"""

import logging

from .labels import Label, LabeledValues, label
from .errors import (
    UncertaintyError,
    ShapeMismatch,
    NegativeVariance,
    AsymmetricCovariance,
    CorrelationOutOfRange,
    UnknownLabel,
    DuplicateLabel,
    DisjointnessViolation,
)
from .covariance import check_covariance, check_covariance_sparse
from .uncertain import UncertainValue, UncertainValues, uvs, concatenate
from .context import ExecutionContext
from .models import (
    MeasurementModel,
    ModelResult,
    LeafModel,
    PassThrough,
    ParallelGroup,
    SequentialChain,
    compose_sequential,
    combine_parallel,
    compute,
    compute_values,
    project,
)
from .propagate import propagate, mc_propagate
from .utils import make_rng

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Label",
    "LabeledValues",
    "label",
    "UncertaintyError",
    "ShapeMismatch",
    "NegativeVariance",
    "AsymmetricCovariance",
    "CorrelationOutOfRange",
    "UnknownLabel",
    "DuplicateLabel",
    "DisjointnessViolation",
    "check_covariance",
    "check_covariance_sparse",
    "UncertainValue",
    "UncertainValues",
    "uvs",
    "concatenate",
    "ExecutionContext",
    "MeasurementModel",
    "ModelResult",
    "LeafModel",
    "PassThrough",
    "ParallelGroup",
    "SequentialChain",
    "compose_sequential",
    "combine_parallel",
    "compute",
    "compute_values",
    "project",
    "propagate",
    "mc_propagate",
    "make_rng",
]

__version__ = "2026.10.0"
