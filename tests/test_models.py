# tests/test_models.py
import numpy as np
import pytest

from gumkit import (
    DisjointnessViolation,
    DuplicateLabel,
    ExecutionContext,
    LabeledValues,
    LeafModel,
    ParallelGroup,
    PassThrough,
    SequentialChain,
    ShapeMismatch,
    UnknownLabel,
    combine_parallel,
    compose_sequential,
    compute,
    compute_values,
    label,
    project,
)

A, B, C, D, E = (label(n) for n in "ABCDE")


def _inputs() -> LabeledValues:
    return LabeledValues([A, B, C], [2.0, 3.0, 5.0])


def _sum_ab() -> LeafModel:
    # D = A + B
    return LeafModel(
        inputs=(A, B),
        outputs=(D,),
        function=lambda x: [x[0] + x[1]],
        partials=lambda x: [[1.0, 1.0]],
        name="sum",
    )


def _times_c() -> LeafModel:
    # E = D * C
    return LeafModel(
        inputs=(D, C),
        outputs=(E,),
        function=lambda x: [x[0] * x[1]],
        partials=lambda x: [[x[1], x[0]]],
        name="times",
    )


def test_labeled_values_mapping():
    lv = _inputs()
    assert len(lv) == 3
    assert list(lv) == [A, B, C]
    assert lv["B"] == 3.0
    assert dict(lv) == {A: 2.0, B: 3.0, C: 5.0}
    assert lv.take(["C", "A"]).labels == (C, A)
    with pytest.raises(UnknownLabel):
        lv["Z"]
    with pytest.raises(DuplicateLabel):
        lv.merge(LabeledValues(["B"], [1.0]))
    with pytest.raises(DuplicateLabel):
        LabeledValues(["A", "A"], [1.0, 2.0])
    with pytest.raises(ShapeMismatch):
        LabeledValues(["A", "B"], [1.0])


def test_leaf_scatters_partials_into_input_columns():
    leaf = LeafModel(
        inputs=(C, A),
        outputs=(D,),
        function=lambda x: [2.0 * x[0] + 3.0 * x[1]],
        partials=lambda x: [[2.0, 3.0]],
    )
    outputs, jac = compute(leaf, _inputs(), True)
    assert outputs[D] == 16.0
    np.testing.assert_array_equal(jac, [[3.0, 0.0, 2.0]])
    # no Jacobian unless asked for
    assert compute(leaf, _inputs()).jacobian is None
    assert compute_values(leaf, {"A": 1.0, "C": 1.0})[D] == 5.0


def test_leaf_shape_errors():
    bad_values = LeafModel((A,), (D, E), lambda x: [x[0]], lambda x: [[1.0], [1.0]])
    with pytest.raises(ShapeMismatch):
        compute(bad_values, _inputs())
    bad_partials = LeafModel((A, B), (D,), lambda x: [x[0]], lambda x: [[1.0]])
    with pytest.raises(ShapeMismatch):
        compute(bad_partials, _inputs(), True)


def test_leaf_without_partials_only_gives_values():
    leaf = LeafModel((A, B), (D,), lambda x: [x[0] * x[1]])
    assert compute_values(leaf, _inputs())[D] == 6.0
    with pytest.raises(ShapeMismatch):
        compute(leaf, _inputs(), True)
    # same error kind when it sits inside a composite
    with pytest.raises(ShapeMismatch):
        compute(SequentialChain((leaf, PassThrough((C,)))), _inputs(), True)


class _UserModel:
    """A leaf implemented directly against the compute contract."""

    def __init__(self, jacobian_columns: int) -> None:
        self.jacobian_columns = jacobian_columns

    def compute(self, inputs, want_jacobian):
        outputs = LabeledValues([D], [inputs[A] * inputs[B]])
        if not want_jacobian:
            return outputs, None
        jac = np.zeros((1, self.jacobian_columns))
        jac[0, inputs.index(A)] = inputs[B]
        jac[0, inputs.index(B)] = inputs[A]
        return outputs, jac


def test_user_model_contract_is_checked():
    outputs, jac = compute(_UserModel(3), _inputs(), True)
    assert outputs[D] == 6.0
    np.testing.assert_array_equal(jac, [[3.0, 2.0, 0.0]])
    with pytest.raises(ShapeMismatch):
        compute(_UserModel(2), _inputs(), True)
    # without a Jacobian the model is not asked to be consistent
    assert compute(_UserModel(2), _inputs(), False).outputs[D] == 6.0


def test_pass_through_is_a_selection():
    outputs, jac = compute(PassThrough(("C", "A")), _inputs(), True)
    assert outputs.labels == (C, A)
    np.testing.assert_array_equal(outputs.array, [5.0, 2.0])
    np.testing.assert_array_equal(jac, [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0]])
    assert PassThrough.of(_inputs()).labels == (A, B, C)
    with pytest.raises(UnknownLabel):
        compute(PassThrough(("Z",)), _inputs())


def test_parallel_group_stacks_members():
    group = ParallelGroup((_sum_ab(), PassThrough((C,))))
    outputs, jac = compute(group, _inputs(), True)
    assert outputs.labels == (D, C)
    np.testing.assert_array_equal(outputs.array, [5.0, 5.0])
    np.testing.assert_array_equal(jac, [[1.0, 1.0, 0.0], [0.0, 0.0, 1.0]])


def test_parallel_group_outputs_must_be_disjoint():
    group = ParallelGroup((_sum_ab(), _sum_ab()))
    with pytest.raises(DisjointnessViolation):
        compute(group, _inputs())


def test_multithreaded_group_matches_serial():
    members = tuple(
        LeafModel(
            inputs=(A, B, C),
            outputs=(label(f"y{i}"),),
            function=lambda x, i=i: [i * x[0] + x[1] * x[2]],
            partials=lambda x, i=i: [[float(i), x[2], x[1]]],
        )
        for i in range(8)
    )
    serial = compute(ParallelGroup(members), _inputs(), True)
    threaded = compute(
        ParallelGroup(members, multithread=True),
        _inputs(),
        True,
        ExecutionContext(workers=4),
    )
    assert threaded.outputs.labels == serial.outputs.labels
    np.testing.assert_array_equal(threaded.outputs.array, serial.outputs.array)
    np.testing.assert_array_equal(threaded.jacobian, serial.jacobian)


def test_chain_applies_the_chain_rule():
    chain = SequentialChain((_sum_ab(), _times_c()))
    outputs, jac = compute(chain, _inputs(), True)
    assert outputs.labels == (A, B, C, D, E)
    assert outputs[E] == 25.0
    # dE/dA = dE/dB = C, dE/dC = D
    np.testing.assert_allclose(jac[4], [5.0, 5.0, 5.0])
    np.testing.assert_allclose(jac[:3], np.eye(3))


def test_chain_keep_inputs_flag():
    steps = (_sum_ab(), _times_c())
    kept = compute(SequentialChain(steps, keep_inputs=True), _inputs(), True)
    dropped = compute(SequentialChain(steps, keep_inputs=False), _inputs(), True)
    assert dropped.outputs.labels == (D, E)
    assert not set(_inputs().labels) & set(dropped.outputs.labels)
    assert set(_inputs().labels) <= set(kept.outputs.labels)
    np.testing.assert_array_equal(dropped.outputs.array, kept.outputs.array[3:])
    np.testing.assert_array_equal(dropped.jacobian, kept.jacobian[3:])
    assert dropped.jacobian.shape == (2, 3)


def test_chain_rejects_recomputed_labels():
    overwrite = LeafModel((A,), (B,), lambda x: [x[0]], lambda x: [[1.0]])
    with pytest.raises(DuplicateLabel):
        compute(SequentialChain((overwrite,)), _inputs())


def test_compose_flattens_and_is_associative():
    f, g, h = _sum_ab(), _times_c(), PassThrough((E,))
    gf = compose_sequential(g, f)
    assert gf.models == (f, g)
    left = compose_sequential(h, gf)
    right = compose_sequential(compose_sequential(h, g), f)
    assert left.models == right.models == (f, g, h)
    # builders never modify their arguments
    assert gf.models == (f, g)
    both = compose_sequential(SequentialChain((h,)), gf)
    assert both.models == (f, g, h)


def test_compose_nests_chains_that_drop_inputs():
    inner = SequentialChain((_sum_ab(),), keep_inputs=False)
    outer = compose_sequential(_times_c(), inner)
    assert len(outer.models) == 2 and outer.models[0] is inner
    outputs = compute_values(outer, _inputs())
    assert outputs.labels == (A, B, C, D, E)


def test_combine_parallel_flattens_in_order():
    f, g, h = PassThrough((A,)), PassThrough((B,)), PassThrough((C,))
    left = combine_parallel(combine_parallel(f, g), h)
    right = combine_parallel(f, combine_parallel(g, h))
    assert left.models == right.models == (f, g, h)
    assert not left.multithread
    assert combine_parallel(combine_parallel(f, g, multithread=True), h).multithread


def test_project_trims_and_reorders():
    result = compute(SequentialChain((_sum_ab(), _times_c())), _inputs(), True)
    trimmed = project(["E", "A"], result)
    assert trimmed.outputs.labels == (E, A)
    assert trimmed.jacobian.shape == (2, 3)
    np.testing.assert_array_equal(trimmed.jacobian[0], result.jacobian[4])
    np.testing.assert_array_equal(trimmed.jacobian[1], result.jacobian[0])
    values_only = project([D], compute(SequentialChain((_sum_ab(),)), _inputs()))
    assert values_only.jacobian is None
    assert values_only.outputs[D] == 5.0


def test_empty_compositions_are_rejected():
    with pytest.raises(ValueError):
        SequentialChain(())
    with pytest.raises(ValueError):
        ParallelGroup(())
    with pytest.raises(ValueError):
        ExecutionContext(workers=0)
