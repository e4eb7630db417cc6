from __future__ import annotations

from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    Mapping,
    NamedTuple,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .context import SERIAL, ExecutionContext
from .errors import DisjointnessViolation, ShapeMismatch
from .labels import Label, LabeledValues, LabelLike, _index_of, as_labels

if TYPE_CHECKING:  # pragma: no cover
    from .uncertain import UncertainValues


class ModelResult(NamedTuple):
    """Output values of a model and, when requested, d(outputs)/d(inputs)."""

    outputs: LabeledValues
    jacobian: Optional[NDArray[np.float64]]


@runtime_checkable
class MeasurementModel(Protocol):
    """
    Anything that maps LabeledValues to LabeledValues (plus a Jacobian).

    `compute(inputs, want_jacobian)` returns `(outputs, jacobian)` where the
    outputs' labels do not depend on `want_jacobian`, and the Jacobian, when
    requested, is a `len(outputs) x len(inputs)` matrix whose row i holds the
    partial derivatives of output i with respect to each input in `inputs`'
    order. With `want_jacobian=False` the Jacobian may be None.

    User models only need this one method; no base class is involved.
    """

    def compute(
        self, inputs: LabeledValues, want_jacobian: bool
    ) -> tuple[LabeledValues, Optional[ArrayLike]]: ...


Model = Union[
    MeasurementModel, "LeafModel", "PassThrough", "ParallelGroup", "SequentialChain"
]


class _Propagates:
    """Lets a built-in model be applied to UncertainValues like a function."""

    def __call__(
        self, inputs: "UncertainValues", context: ExecutionContext | None = None
    ) -> "UncertainValues":
        from .propagate import propagate

        return propagate(self, inputs, context=context)


def _checked(
    model: Any, inputs: LabeledValues, result: Any, want_jacobian: bool
) -> ModelResult:
    outputs, jac = result
    if not isinstance(outputs, LabeledValues):
        outputs = LabeledValues.from_dict(outputs)
    if not want_jacobian:
        return ModelResult(outputs, None)
    if jac is None:
        raise ShapeMismatch(f"{model!r} did not return the requested Jacobian")
    jac = np.asarray(jac, dtype=float)
    expected = (len(outputs), len(inputs))
    if jac.shape != expected:
        raise ShapeMismatch(
            f"{model!r} returned a Jacobian of shape {jac.shape}, "
            f"expected {expected} (outputs x inputs)"
        )
    return ModelResult(outputs, jac)


def compute(
    model: Model,
    inputs: LabeledValues | Mapping[LabelLike, float],
    want_jacobian: bool = False,
    context: ExecutionContext | None = None,
) -> ModelResult:
    """
    Evaluate `model` at `inputs`.

    Composite models receive the execution context so their members can run
    on worker threads; leaves are called through their own `compute` and the
    shape of whatever they return is checked against the declared contract.
    """
    if not isinstance(inputs, LabeledValues):
        inputs = LabeledValues.from_dict(inputs)
    ctx = SERIAL if context is None else context
    if isinstance(model, (ParallelGroup, SequentialChain)):
        return model._evaluate(inputs, want_jacobian, ctx)
    result = model.compute(inputs, want_jacobian)
    return _checked(model, inputs, result, want_jacobian)


def compute_values(
    model: Model, inputs: LabeledValues | Mapping[LabelLike, float]
) -> LabeledValues:
    """Evaluate `model` at `inputs` without a Jacobian."""
    return compute(model, inputs, False).outputs


@dataclass(frozen=True)
class LeafModel(_Propagates):
    """
    A user function of some declared inputs with its analytic partials.

    `function(x)` receives the values of `inputs` (in declared order) as a
    1-D array and returns one value per label in `outputs`. `partials(x)`
    returns the `len(outputs) x len(inputs)` matrix of partial derivatives.
    The leaf scatters those columns into the full width of whatever values it
    is evaluated against, leaving zeros for inputs it does not use.
    """

    inputs: tuple[Label, ...]
    outputs: tuple[Label, ...]
    function: Callable[[NDArray[np.float64]], ArrayLike]
    partials: Optional[Callable[[NDArray[np.float64]], ArrayLike]] = None
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", as_labels(self.inputs))
        object.__setattr__(self, "outputs", as_labels(self.outputs))
        _index_of(self.inputs)
        _index_of(self.outputs)

    def __repr__(self) -> str:
        ins = ", ".join(str(lbl) for lbl in self.inputs)
        outs = ", ".join(str(lbl) for lbl in self.outputs)
        return f"LeafModel{'[' + self.name + ']' if self.name else ''}({ins} -> {outs})"

    def compute(self, inputs: LabeledValues, want_jacobian: bool) -> ModelResult:
        cols = [inputs.index(lbl) for lbl in self.inputs]
        x = inputs.array[cols]
        y = np.asarray(self.function(x), dtype=float).reshape(-1)
        if y.size != len(self.outputs):
            raise ShapeMismatch(
                f"{self!r} produced {y.size} values for {len(self.outputs)} outputs"
            )
        outputs = LabeledValues(self.outputs, y)
        if not want_jacobian:
            return ModelResult(outputs, None)
        if self.partials is None:
            raise ShapeMismatch(
                f"{self!r} has no partials for the requested Jacobian"
            )
        d = np.asarray(self.partials(x), dtype=float)
        if d.ndim == 1 and len(self.outputs) == 1:
            d = d.reshape(1, -1)
        if d.shape != (len(self.outputs), len(self.inputs)):
            raise ShapeMismatch(
                f"{self!r} returned partials of shape {d.shape}, "
                f"expected {(len(self.outputs), len(self.inputs))}"
            )
        jac = np.zeros((len(self.outputs), len(inputs)), dtype=float)
        jac[:, cols] = d
        return ModelResult(outputs, jac)


@dataclass(frozen=True)
class PassThrough(_Propagates):
    """
    Carry a subset of the inputs over unchanged.

    Typically a member of a ParallelGroup, so values needed by a later step
    survive a step that does not touch them.
    """

    labels: tuple[Label, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", as_labels(self.labels))
        _index_of(self.labels)

    @classmethod
    def of(cls, values: "UncertainValues | LabeledValues") -> "PassThrough":
        """Pass every label of `values` through, in natural order."""
        return cls(tuple(values.labels))

    def compute(self, inputs: LabeledValues, want_jacobian: bool) -> ModelResult:
        outputs = inputs.take(self.labels)
        if not want_jacobian:
            return ModelResult(outputs, None)
        jac = np.zeros((len(self.labels), len(inputs)), dtype=float)
        cols = [inputs.index(lbl) for lbl in self.labels]
        jac[np.arange(len(self.labels)), cols] = 1.0
        return ModelResult(outputs, jac)


@dataclass(frozen=True)
class ParallelGroup(_Propagates):
    """
    Models evaluated independently against the same inputs.

    Member outputs must be disjoint; the group's outputs are the members'
    outputs in member order and its Jacobian their Jacobians stacked row-wise.
    With `multithread=True` members run on the context's worker threads, which
    only pays off when each member is expensive.
    """

    models: tuple[Model, ...]
    multithread: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "models", tuple(self.models))
        if not self.models:
            raise ValueError("a ParallelGroup needs at least one model")

    def compute(self, inputs: LabeledValues, want_jacobian: bool) -> ModelResult:
        return self._evaluate(inputs, want_jacobian, SERIAL)

    def _evaluate(
        self, inputs: LabeledValues, want_jacobian: bool, ctx: ExecutionContext
    ) -> ModelResult:
        runner = ctx if self.multithread else SERIAL
        results = runner.map(
            lambda m: compute(m, inputs, want_jacobian, ctx), list(self.models)
        )
        labels: list[Label] = []
        seen: set[Label] = set()
        for i, res in enumerate(results):
            for lbl in res.outputs.labels:
                if lbl in seen:
                    raise DisjointnessViolation(
                        f"output {lbl} of member {i} is also produced by an "
                        "earlier member"
                    )
                seen.add(lbl)
                labels.append(lbl)
        values = np.concatenate([r.outputs.array for r in results])
        outputs = LabeledValues(labels, values)
        if not want_jacobian:
            return ModelResult(outputs, None)
        return ModelResult(outputs, np.vstack([r.jacobian for r in results]))


@dataclass(frozen=True)
class SequentialChain(_Propagates):
    """
    Models applied one after another.

    Step i sees the chain's inputs plus every output of steps 0..i-1. The
    Jacobian is accumulated by the chain rule,
    J <- vstack(I, J_step) @ J, so it always maps the chain's original inputs
    to everything computed so far. With `keep_inputs=False` the original
    inputs are dropped from the result.
    """

    models: tuple[Model, ...]
    keep_inputs: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "models", tuple(self.models))
        if not self.models:
            raise ValueError("a SequentialChain needs at least one model")

    def compute(self, inputs: LabeledValues, want_jacobian: bool) -> ModelResult:
        return self._evaluate(inputs, want_jacobian, SERIAL)

    def _evaluate(
        self, inputs: LabeledValues, want_jacobian: bool, ctx: ExecutionContext
    ) -> ModelResult:
        current = inputs
        jac = np.eye(len(inputs)) if want_jacobian else None
        for step in self.models:
            outputs, step_jac = compute(step, current, want_jacobian, ctx)
            current = current.merge(outputs)
            if jac is not None:
                # rows already computed are unchanged; new rows by the chain rule
                jac = np.vstack([jac, step_jac @ jac])
        if not self.keep_inputs:
            n = len(inputs)
            current = LabeledValues(current.labels[n:], current.array[n:])
            if jac is not None:
                jac = jac[n:, :]
        return ModelResult(current, jac)


def _flattenable(model: Model) -> bool:
    return isinstance(model, SequentialChain) and model.keep_inputs


def compose_sequential(g: Model, f: Model) -> SequentialChain:
    """
    Apply `f`, then `g` (g ∘ f).

    Composing onto a chain that keeps its inputs extends that chain instead of
    nesting it, so `compose_sequential(h, compose_sequential(g, f))` and
    `compose_sequential(compose_sequential(h, g), f)` are both the chain
    [f, g, h]. Neither argument is modified.
    """
    if _flattenable(g) and _flattenable(f):
        return SequentialChain(f.models + g.models)  # type: ignore[union-attr]
    if _flattenable(g):
        return SequentialChain((f,) + g.models)  # type: ignore[union-attr]
    if _flattenable(f):
        return SequentialChain(f.models + (g,))  # type: ignore[union-attr]
    return SequentialChain((f, g))


def combine_parallel(f: Model, g: Model, multithread: bool = False) -> ParallelGroup:
    """
    Evaluate `f` and `g` on the same inputs (f | g).

    Combining onto an existing group extends it, keeping member order. The
    result is thread-eligible if requested or if either group already was.
    """
    members: list[Model] = []
    multi = multithread
    for m in (f, g):
        if isinstance(m, ParallelGroup):
            members.extend(m.models)
            multi = multi or m.multithread
        else:
            members.append(m)
    return ParallelGroup(tuple(members), multi)


def project(labels: Iterable[LabelLike], result: ModelResult) -> ModelResult:
    """
    Trim an evaluated result to `labels`, in that order.

    Jacobian rows follow the kept outputs; every input column is retained.
    Useful for discarding intermediates a long calculation no longer needs.
    """
    lbls = as_labels(labels)
    outputs = result.outputs.take(lbls)
    if result.jacobian is None:
        return ModelResult(outputs, None)
    rows = [result.outputs.index(lbl) for lbl in lbls]
    return ModelResult(outputs, result.jacobian[rows, :])
