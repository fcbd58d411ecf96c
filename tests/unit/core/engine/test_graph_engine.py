import logging

import numpy as np
import pytest

from tests.shared.data_utils import RecordingRelu, generate_regression_data
from wiregraph.core.data import SequentialDataSource, VectorDataSource
from wiregraph.core.engine import GraphEngine, LearningContext
from wiregraph.core.graph import GraphData
from wiregraph.core.nodes import FeedForward, FlowThrough, Identity, MemoryFeeder, Relu, WriteToMemory
from wiregraph.core.nodes.activation import ActivationBackpropagation
from wiregraph.linalg import Matrix
from wiregraph.utils.exceptions import GraphConstructionError, PreconditionError


# ==========================================================
# Construction
# ==========================================================
@pytest.mark.unit
def test_engine_wires_nodes_in_order():
    a, b, c = FlowThrough("in"), Relu("relu"), Relu("out")
    engine = GraphEngine([a, b, c])
    assert a.outputs == [b]
    assert b.outputs == [c]
    assert c.outputs == []
    assert engine.input_node is a
    assert engine.find_by_name("relu") is b
    assert engine.find_by_name("missing") is None


@pytest.mark.unit
def test_engine_accepts_matching_prewired_chain():
    a, b = FlowThrough(), Relu()
    a.add_output(b)
    GraphEngine([a, b])
    assert a.outputs == [b]


@pytest.mark.unit
def test_engine_rejects_bad_graphs():
    with pytest.raises(GraphConstructionError, match="at least one node"):
        GraphEngine([])

    node = Relu()
    with pytest.raises(GraphConstructionError, match="more than once"):
        GraphEngine([FlowThrough(), node, node])

    a, b, other = FlowThrough(), Relu(), Relu()
    a.add_output(other)
    with pytest.raises(GraphConstructionError, match="already connected"):
        GraphEngine([a, b])

    last, dangling = Relu(), Relu()
    last.add_output(dangling)
    with pytest.raises(GraphConstructionError, match="must not have downstream"):
        GraphEngine([FlowThrough(), last])


@pytest.mark.unit
def test_engine_rejects_unknown_metric():
    with pytest.raises(ValueError, match="Unknown error metric"):
        GraphEngine([FlowThrough()], error_metric="hinge")


# ==========================================================
# Inference
# ==========================================================
@pytest.mark.unit
def test_flow_through_relu_end_to_end():
    source = VectorDataSource(np.array([[-1.0, 2.0], [3.0, -4.0]]))
    engine = GraphEngine([FlowThrough(), Relu()])

    (result,) = engine.execute(source)
    assert result.rows == (0, 1)
    np.testing.assert_array_equal(result.output, [[0.0, 2.0], [3.0, 0.0]])
    assert result.targets == [None]


@pytest.mark.unit
def test_memory_nodes_carry_state_within_a_sequence_only():
    source = SequentialDataSource(
        [
            np.array([[1.0], [2.0], [3.0]]),
            np.array([[10.0], [20.0], [30.0]]),
            np.array([[5.0], [5.0]]),
        ],
    )
    engine = GraphEngine(
        [
            FlowThrough(),
            MemoryFeeder("h", 1),
            FeedForward(2, 1, weight=np.ones((2, 1))),
            WriteToMemory("h"),
        ],
    )

    first, second = engine.execute(source)
    assert first.rows == (0, 1)
    np.testing.assert_array_equal(np.stack(first.outputs)[:, :, 0], [[1, 10], [3, 30], [6, 60]])
    # A new sequence starts from empty memory
    assert second.rows == (2,)
    np.testing.assert_array_equal(np.stack(second.outputs)[:, 0, 0], [5, 10])


@pytest.mark.unit
def test_execute_releases_every_intermediate_output():
    relu = RecordingRelu()
    layer = FeedForward(2, 3, seed=0)
    engine = GraphEngine([FlowThrough(), layer, relu])
    engine.execute(VectorDataSource(np.ones((10, 2))), batch_size=4)

    assert len(relu.produced) == 3
    assert not any(m.is_valid for m in relu.produced)
    assert layer.weight.ref_count == 1


@pytest.mark.unit
def test_test_requires_targets():
    engine = GraphEngine([FlowThrough()])
    with pytest.raises(PreconditionError, match="without targets"):
        engine.test(VectorDataSource(np.zeros((2, 2))))


@pytest.mark.unit
def test_test_scores_identity_graph():
    features = np.array([[1.0], [2.0]])
    engine = GraphEngine([FlowThrough()])
    assert engine.test(VectorDataSource(features, features)) == pytest.approx(0.0)
    assert engine.test(VectorDataSource(features, features + 1), error_metric="rmse") == pytest.approx(1.0)


# ==========================================================
# Training
# ==========================================================
@pytest.mark.unit
def test_train_releases_every_intermediate_output(linear_source):
    relu = RecordingRelu()
    engine = GraphEngine([FlowThrough(), FeedForward(2, 4, seed=0), relu, FeedForward(4, 1, seed=1)])
    lc = LearningContext(0.05, 32)

    error = engine.train(linear_source, lc, seed=3)

    assert error is not None
    assert len(relu.produced) == linear_source.mini_batch_count(32)
    assert not any(m.is_valid for m in relu.produced)
    assert lc.pending_update_count == 0
    assert lc.current_epoch == 1


@pytest.mark.unit
def test_train_applies_updates_after_each_batch():
    layer = FeedForward(2, 1, seed=0)
    engine = GraphEngine([FlowThrough(), layer])
    lc = LearningContext(0.1, 50)
    snapshots = []

    class SnapshotSource(VectorDataSource):
        def on_batch_processed(self, mini_batch):
            snapshots.append(layer.weight.as_numpy())

    x, y = generate_regression_data(200, weights=np.array([[1.0], [1.0]]))
    engine.train(SnapshotSource(x, y), lc, shuffle=False)

    assert len(snapshots) == 4
    assert all(not np.array_equal(a, b) for a, b in zip(snapshots, snapshots[1:]))


@pytest.mark.unit
def test_train_error_not_reported_when_disabled(linear_source):
    engine = GraphEngine([FlowThrough(), FeedForward(2, 1, seed=0)])
    lc = LearningContext(0.1, 64, calculate_training_error=False)
    assert engine.train(linear_source, lc) is None


def _count_stores(monkeypatch, learning_context):
    calls = []
    original = learning_context.store

    def spy(error, updater):
        calls.append(error)
        original(error, updater)

    monkeypatch.setattr(learning_context, "store", spy)
    return calls


@pytest.mark.unit
def test_bptt_unrolls_every_timestep_by_default(monkeypatch):
    source = SequentialDataSource([np.ones((3, 1))] * 4, [np.ones((3, 1))] * 4)
    engine = GraphEngine([FlowThrough(), FeedForward(1, 1, seed=0)])
    lc = LearningContext(0.1, 2)
    calls = _count_stores(monkeypatch, lc)

    engine.train(source, lc, shuffle=False)
    # 2 mini-batches x 3 timesteps
    assert len(calls) == 6
    assert lc.deferred_backpropagation_count == 0


@pytest.mark.unit
def test_bptt_max_depth_discards_older_timesteps(monkeypatch, caplog):
    source = SequentialDataSource([np.ones((3, 1))] * 4, [np.ones((3, 1))] * 4)
    engine = GraphEngine([FlowThrough(), FeedForward(1, 1, seed=0)])
    lc = LearningContext(0.1, 2)
    calls = _count_stores(monkeypatch, lc)

    with caplog.at_level(logging.WARNING, logger="wiregraph"):
        engine.train(source, lc, shuffle=False, bptt_max_depth=1)

    assert len(calls) == 2
    assert caplog.text.count("Discarding 2 deferred backpropagation") == 2


@pytest.mark.unit
def test_bptt_max_depth_with_retain_replays_in_chunks(monkeypatch, caplog):
    source = SequentialDataSource([np.ones((3, 1))] * 4, [np.ones((3, 1))] * 4)
    engine = GraphEngine([FlowThrough(), FeedForward(1, 1, seed=0)])
    lc = LearningContext(0.1, 2, truncation_policy="retain")
    calls = _count_stores(monkeypatch, lc)

    with caplog.at_level(logging.WARNING, logger="wiregraph"):
        engine.train(source, lc, shuffle=False, bptt_max_depth=1)

    assert len(calls) == 6
    assert "Discarding" not in caplog.text


@pytest.mark.unit
def test_train_without_targets_uses_zero_error():
    source = SequentialDataSource([np.ones((2, 1))] * 2)
    layer = FeedForward(1, 1, weight=np.ones((1, 1)))
    engine = GraphEngine([FlowThrough(), layer])
    lc = LearningContext(0.1, 2)

    assert engine.train(source, lc) is None
    np.testing.assert_array_equal(layer.weight.data, [[1.0]])


# ==========================================================
# Failed batches
# ==========================================================
class FailOnStep(Identity):
    """Identity node whose forward pass raises on the given call."""

    def __init__(self, failing_call: int):
        super().__init__()
        self.failing_call = failing_call
        self.calls = 0

    def execute_forward(self, context):
        self.calls += 1
        if self.calls == self.failing_call:
            raise RuntimeError("forward failed")
        super().execute_forward(context)


class FailingBackpropagation(ActivationBackpropagation):
    def _backward(self, error_signal, context):
        raise RuntimeError("backward failed")


class FailInBackward(Identity):
    def execute_forward(self, context):
        inputs = context.data.decompose()
        output = GraphData.compose(Matrix(m.data.copy()) for m in inputs)
        self._add_next_graph_action(context, output, lambda: FailingBackpropagation(self, inputs))


@pytest.mark.unit
def test_failed_forward_step_leaves_no_deferred_continuations():
    source = SequentialDataSource([np.ones((3, 1))], [np.zeros((3, 1))])
    layer = FeedForward(1, 1, weight=np.ones((1, 1)))
    engine = GraphEngine([FlowThrough(), layer, FailOnStep(2)])
    lc = LearningContext(0.1, 1)

    with pytest.raises(RuntimeError, match="forward failed"):
        engine.train(source, lc, shuffle=False)

    assert lc.deferred_backpropagation_count == 0
    assert lc.pending_update_count == 0
    lc.end_epoch()
    np.testing.assert_array_equal(layer.weight.data, [[1.0]])
    assert layer.weight.ref_count == 1


@pytest.mark.unit
def test_failed_backward_step_discards_partial_updates(monkeypatch):
    source = VectorDataSource(np.ones((2, 1)), np.zeros((2, 1)))
    layer = FeedForward(1, 1, weight=np.ones((1, 1)))
    engine = GraphEngine([FlowThrough(), FailInBackward(), layer])
    lc = LearningContext(0.1, 2)
    stored = _count_stores(monkeypatch, lc)

    with pytest.raises(RuntimeError, match="backward failed"):
        engine.train(source, lc, shuffle=False)

    # The layer's update was queued before the failure, then dropped
    assert len(stored) == 1
    assert lc.pending_update_count == 0
    weight_delta, bias_delta, _ = stored[0]
    assert not weight_delta.is_valid
    assert not bias_delta.is_valid

    lc.end_epoch()
    np.testing.assert_array_equal(layer.weight.data, [[1.0]])
