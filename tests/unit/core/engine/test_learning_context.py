import logging

import pytest

from wiregraph.core.engine import LearningContext, TruncationPolicy
from wiregraph.core.graph import GraphData
from wiregraph.linalg import Matrix, Vector
from wiregraph.utils.exceptions import BackpropagationError


# ==========================================================
# Epoch lifecycle
# ==========================================================
@pytest.mark.unit
def test_epoch_counter_and_row_tracking():
    lc = LearningContext(0.1, 32)
    assert lc.current_epoch == 0

    lc.start_epoch()
    lc.add_rows(32)
    lc.add_rows(8)
    assert lc.current_epoch == 1
    assert lc.row_count == 40

    lc.end_epoch()
    assert lc.row_count == 0
    assert lc.epoch_seconds >= 0.0
    assert lc.epoch_milliseconds >= 0

    lc.start_epoch()
    assert lc.current_epoch == 2


@pytest.mark.unit
def test_learning_rate_schedule_applies_on_matching_epoch():
    lc = LearningContext(0.1, 8)
    lc.schedule_learning_rate(3, 0.01)
    rates = []
    for _ in range(4):
        lc.start_epoch()
        rates.append(lc.learning_rate)
        lc.end_epoch()
    assert rates == [0.1, 0.1, 0.01, 0.01]
    assert lc.learning_rate_schedule == {3: 0.01}


@pytest.mark.unit
def test_invalid_batch_size_rejected():
    with pytest.raises(ValueError, match="batch_size"):
        LearningContext(0.1, 0)


@pytest.mark.unit
def test_clear_resets_counters_and_pending_work():
    lc = LearningContext(0.1, 8)
    lc.schedule_learning_rate(2, 0.5)
    lc.start_epoch()
    lc.add_rows(3)
    lc.store("e", lambda e: None)
    lc.defer_backpropagation("d", lambda d: None)

    lc.clear()
    assert lc.current_epoch == 0
    assert lc.row_count == 0
    assert lc.pending_update_count == 0
    assert lc.deferred_backpropagation_count == 0
    assert lc.learning_rate_schedule == {2: 0.5}


# ==========================================================
# Deferred updates
# ==========================================================
@pytest.mark.unit
def test_deferred_updates_apply_in_insertion_order():
    lc = LearningContext(0.1, 8)
    lc.start_epoch()
    applied = []
    for name in ["a", "b", "c"]:
        lc.store(name, applied.append)

    assert applied == []
    assert lc.pending_update_count == 3
    lc.end_epoch()
    assert applied == ["a", "b", "c"]
    assert lc.pending_update_count == 0


@pytest.mark.unit
def test_immediate_updates_when_not_deferred():
    lc = LearningContext(0.1, 8, defer_updates=False)
    applied = []
    lc.store(1, applied.append)
    assert applied == [1]
    assert lc.pending_update_count == 0


@pytest.mark.unit
def test_rollback_drops_work_queued_after_the_marks():
    lc = LearningContext(0.1, 8)
    applied, replayed = [], []
    lc.store("kept", applied.append)
    lc.defer_backpropagation("kept", replayed.append)

    delta = (Matrix.zeros(1, 1), Vector.zeros(1), 4)
    lc.store(delta, applied.append)
    lc.defer_backpropagation("dropped", replayed.append)

    lc.rollback(1, 1)
    assert lc.pending_update_count == 1
    assert lc.deferred_backpropagation_count == 1
    assert not delta[0].is_valid
    assert not delta[1].is_valid

    lc.apply_updates()
    assert replayed == ["kept"]
    assert applied == ["kept"]


@pytest.mark.unit
def test_apply_updates_drains_continuations_first():
    lc = LearningContext(0.1, 8)
    events = []
    lc.store("update", lambda e: events.append(e))
    lc.defer_backpropagation("bptt", lambda d: events.append(d))
    lc.apply_updates()
    assert events == ["bptt", "update"]


# ==========================================================
# Backpropagation through time
# ==========================================================
@pytest.mark.unit
def test_continuations_replay_last_in_first_out():
    lc = LearningContext(0.1, 8)
    received = []
    for step in range(4):
        lc.defer_backpropagation(step, received.append)

    assert lc.backpropagate_through_time() == 4
    assert received == [3, 2, 1, 0]
    assert lc.deferred_backpropagation_count == 0


@pytest.mark.unit
def test_external_signal_goes_to_first_continuation_only():
    lc = LearningContext(0.1, 8)
    received = []
    lc.defer_backpropagation(None, received.append)
    lc.defer_backpropagation("own", received.append)
    lc.defer_backpropagation(None, received.append)

    signal = GraphData(Matrix.zeros(1, 1))
    with pytest.raises(BackpropagationError, match="no error signal"):
        lc.backpropagate_through_time(signal)
    assert received == [signal, "own"]
    signal.release()


@pytest.mark.unit
def test_empty_stack_is_a_no_op():
    lc = LearningContext(0.1, 8)
    assert lc.backpropagate_through_time() == 0


@pytest.mark.unit
def test_max_depth_discards_remaining_with_warning(caplog):
    lc = LearningContext(0.1, 8)
    received = []
    for step in range(5):
        lc.defer_backpropagation(step, received.append)

    with caplog.at_level(logging.WARNING, logger="wiregraph"):
        assert lc.backpropagate_through_time(max_depth=2) == 2

    assert received == [4, 3]
    assert lc.deferred_backpropagation_count == 0
    assert "Discarding 3 deferred backpropagation" in caplog.text


@pytest.mark.unit
def test_max_depth_retains_remaining_when_configured(caplog):
    lc = LearningContext(0.1, 8, truncation_policy="retain")
    assert lc.truncation_policy is TruncationPolicy.RETAIN
    received = []
    for step in range(5):
        lc.defer_backpropagation(step, received.append)

    with caplog.at_level(logging.WARNING, logger="wiregraph"):
        lc.backpropagate_through_time(max_depth=2)
    assert lc.deferred_backpropagation_count == 3
    assert caplog.text == ""

    lc.backpropagate_through_time()
    assert received == [4, 3, 2, 1, 0]


@pytest.mark.unit
def test_second_end_epoch_invokes_nothing():
    lc = LearningContext(0.1, 8)
    lc.start_epoch()
    applied = []
    lc.store("a", applied.append)
    lc.end_epoch()
    lc.end_epoch()
    assert applied == ["a"]


@pytest.mark.unit
def test_signal_then_own_data_consumption_order():
    lc = LearningContext(0.1, 8)
    calls = []
    for name, data in (("c1", "d1"), ("c2", "d2"), ("c3", "d3")):
        lc.defer_backpropagation(data, lambda payload, name=name: calls.append((name, payload)))

    lc.backpropagate_through_time("signal")
    assert calls == [("c3", "signal"), ("c2", "d2"), ("c1", "d1")]
    assert lc.deferred_backpropagation_count == 0
