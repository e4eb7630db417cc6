from __future__ import annotations

import logging

import numpy as np

from .context import SERIAL, ExecutionContext
from .labels import LabeledValues
from .models import Model, compute
from .uncertain import UncertainValues, _dense
from .utils import RngLike, make_rng

logger = logging.getLogger(__name__)


def propagate(
    model: Model,
    inputs: UncertainValues,
    context: ExecutionContext | None = None,
) -> UncertainValues:
    """
    Propagate `inputs` through `model` with the GUM first-order law.

    The output covariance is J·Σ·Jᵀ with J the model's Jacobian at the input
    values: exact when every step is affine in its inputs, a local linear
    approximation otherwise (see `mc_propagate` to check it).
    """
    outputs, jac = compute(model, inputs.to_labeled_values(), True, context)
    assert jac is not None  # for type-checkers
    # Σ·Jᵀ first keeps a sparse input covariance sparse until the last product
    cov = jac @ np.asarray(inputs.covariance_matrix @ jac.T)
    logger.debug("propagated %d inputs to %d outputs", len(inputs), len(outputs))
    return UncertainValues(outputs.labels, outputs.array, cov)


def mc_propagate(
    model: Model,
    inputs: UncertainValues,
    n: int,
    rng: RngLike = None,
    context: ExecutionContext | None = None,
) -> UncertainValues:
    """
    Propagate `inputs` through `model` by Monte Carlo.

    The inputs are taken to be multivariate normal with mean `inputs.values`
    and covariance `inputs.covariance_matrix`. `n` samples are drawn from `rng`
    (a Generator or a seed) and pushed through `model` without computing
    Jacobians; the outputs are summarised by a fitted multivariate normal
    (sample mean and maximum likelihood covariance).

    Samples are drawn up front on the calling thread, so for a given `rng`
    state the result does not depend on the number of workers in `context`.
    """
    if n < 2:
        raise ValueError(f"Monte Carlo propagation needs at least 2 samples, got {n}")
    rng = make_rng(rng)
    ctx = SERIAL if context is None else context

    in_labels = inputs.labels
    out_labels = compute(model, inputs.to_labeled_values(), False, ctx).outputs.labels
    draws = rng.multivariate_normal(
        mean=inputs.values, cov=_dense(inputs.covariance_matrix), size=n
    )
    samples = np.empty((len(out_labels), n), dtype=float)

    def perform(cols: range) -> None:
        # each call owns a disjoint range of sample columns
        for i in cols:
            sample = LabeledValues(in_labels, draws[i])
            samples[:, i] = compute(model, sample, False, SERIAL).outputs.array

    chunk = -(-n // ctx.workers)
    ctx.map(perform, [range(s, min(s + chunk, n)) for s in range(0, n, chunk)])
    logger.debug(
        "Monte Carlo: %d samples of %d inputs -> %d outputs on %d worker(s)",
        n,
        len(inputs),
        len(out_labels),
        ctx.workers,
    )

    mean = samples.mean(axis=1)
    cov = np.atleast_2d(np.cov(samples, bias=True))
    return UncertainValues(out_labels, mean, cov)
