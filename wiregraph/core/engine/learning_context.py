from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from wiregraph.linalg.ref_counted import RefCounted
from wiregraph.logger import logger
from wiregraph.utils.exceptions import BackpropagationError

if TYPE_CHECKING:
    from wiregraph.core.graph.graph_data import GraphData


class TruncationPolicy(str, Enum):
    """What happens to deferred continuations left over once `max_depth` is reached."""

    DISCARD = "discard"
    RETAIN = "retain"


def _release_payload(payload: Any) -> None:
    if isinstance(payload, RefCounted):
        payload.release()
    elif isinstance(payload, (tuple, list)):
        for item in payload:
            _release_payload(item)


class _Stopwatch:
    def __init__(self):
        self._started_at: float | None = None
        self._elapsed = 0.0

    def restart(self) -> None:
        self._elapsed = 0.0
        self._started_at = time.perf_counter()

    def stop(self) -> None:
        if self._started_at is not None:
            self._elapsed += time.perf_counter() - self._started_at
            self._started_at = None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return self._elapsed
        return self._elapsed + (time.perf_counter() - self._started_at)


class LearningContext:
    """
    State of one training session.

    Tracks the learning rate (and its per-epoch schedule), the batch size, the
    epoch counter and timer, the list of deferred parameter updates, and the
    LIFO stack of deferred backpropagation continuations used to unroll
    sequences through time.

    Epoch lifecycle:
        `start_epoch()` -> any number of `store()` calls during traversal ->
        `end_epoch()`, which drains outstanding continuations and applies all
        deferred updates in insertion order.
    """

    def __init__(
        self,
        learning_rate: float,
        batch_size: int,
        *,
        calculate_training_error: bool = True,
        defer_updates: bool = True,
        truncation_policy: TruncationPolicy | str = TruncationPolicy.DISCARD,
    ):
        if batch_size <= 0:
            msg = f"`batch_size` must be positive. Got: {batch_size}"
            raise ValueError(msg)
        self._learning_rate = float(learning_rate)
        self._batch_size = int(batch_size)
        self._calculate_training_error = calculate_training_error
        self._defer_updates = defer_updates
        self._truncation_policy = TruncationPolicy(truncation_policy)

        self._learning_rate_schedule: dict[int, float] = {}
        self._layer_updates: list[tuple[Any, Callable[[Any], None]]] = []
        self._deferred_backpropagation: list[tuple[GraphData | None, Callable[[GraphData], Any]]] = []
        self._timer = _Stopwatch()
        self._row_count = 0
        self._current_epoch = 0

    def __repr__(self):
        return (
            f"LearningContext(learning_rate={self._learning_rate}, batch_size={self._batch_size}, "
            f"epoch={self._current_epoch})"
        )

    # ==========================================
    # Properties
    # ==========================================
    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def current_epoch(self) -> int:
        return self._current_epoch

    @property
    def row_count(self) -> int:
        return self._row_count

    @property
    def calculate_training_error(self) -> bool:
        return self._calculate_training_error

    @property
    def defer_updates(self) -> bool:
        return self._defer_updates

    @property
    def truncation_policy(self) -> TruncationPolicy:
        return self._truncation_policy

    @property
    def epoch_seconds(self) -> float:
        return self._timer.elapsed

    @property
    def epoch_milliseconds(self) -> int:
        return int(self._timer.elapsed * 1000)

    @property
    def pending_update_count(self) -> int:
        return len(self._layer_updates)

    @property
    def deferred_backpropagation_count(self) -> int:
        return len(self._deferred_backpropagation)

    @property
    def learning_rate_schedule(self) -> dict[int, float]:
        return dict(self._learning_rate_schedule)

    # ==========================================
    # Configuration
    # ==========================================
    def schedule_learning_rate(self, at_epoch: int, learning_rate: float) -> None:
        """Switch to `learning_rate` from the `at_epoch`-th call to `start_epoch()` onward."""
        self._learning_rate_schedule[int(at_epoch)] = float(learning_rate)

    def set_row_count(self, row_count: int) -> None:
        self._row_count = int(row_count)

    def add_rows(self, count: int) -> None:
        self._row_count += int(count)

    def clear(self) -> None:
        """Reset counters and pending work. The configuration and schedule are kept."""
        self._layer_updates.clear()
        self._deferred_backpropagation.clear()
        self._current_epoch = 0
        self._row_count = 0

    def rollback(self, pending_update_count: int, deferred_backpropagation_count: int) -> None:
        """
        Drop work queued after the given counts were observed.

        Used to abort a failed mini-batch: its queued updates are discarded
        without being applied, releasing any reference-counted deltas they
        hold, and its backward continuations are removed from the stack.
        """
        dropped = self._layer_updates[pending_update_count:]
        del self._layer_updates[pending_update_count:]
        del self._deferred_backpropagation[deferred_backpropagation_count:]
        for error, _ in dropped:
            _release_payload(error)
        if dropped:
            logger.debug("Rolled back %d pending parameter update(s).", len(dropped))

    # ==========================================
    # Epoch lifecycle
    # ==========================================
    def start_epoch(self) -> None:
        self._current_epoch += 1
        new_rate = self._learning_rate_schedule.get(self._current_epoch)
        if new_rate is not None:
            self._learning_rate = new_rate
            logger.info("Learning rate changed to %s at epoch %d", new_rate, self._current_epoch)

        self._row_count = 0
        self._timer.restart()
        self._layer_updates.clear()
        self._deferred_backpropagation.clear()

    def end_epoch(self) -> None:
        self.apply_updates()
        self._timer.stop()
        self._row_count = 0

    def store(self, error: Any, updater: Callable[[Any], None]) -> None:
        """
        Submit a parameter update.

        With deferred updates enabled the `(error, updater)` pair is queued
        until `apply_updates()`; otherwise `updater(error)` runs immediately.
        """
        if self._defer_updates:
            self._layer_updates.append((error, updater))
        else:
            updater(error)

    def apply_updates(self) -> None:
        """Drain outstanding continuations then apply every queued update in insertion order."""
        self.backpropagate_through_time(None)
        updates = self._layer_updates
        self._layer_updates = []
        for error, updater in updates:
            updater(error)

    # ==========================================
    # Backpropagation through time
    # ==========================================
    def defer_backpropagation(self, data: GraphData | None, callback: Callable[[GraphData], Any]) -> None:
        """Push a backward continuation; continuations are replayed last-in first-out."""
        self._deferred_backpropagation.append((data, callback))

    def backpropagate_through_time(self, signal: GraphData | None = None, max_depth: int | None = None) -> int:
        """
        Replay deferred continuations, most recent first.

        The first continuation receives `signal` when one is given, otherwise
        its own captured data; every later continuation receives only its own
        captured data.

        Args:
            signal (GraphData | None): External error signal for the most recent step.
            max_depth (int | None): Maximum number of continuations to replay. \
                None replays all of them.

        Returns:
            int: The number of continuations replayed.

        Raises:
            BackpropagationError: If a continuation has neither a signal nor captured data.

        """
        depth = 0
        try:
            while self._deferred_backpropagation and (max_depth is None or depth < max_depth):
                data, callback = self._deferred_backpropagation.pop()
                payload = signal if signal is not None else data
                if payload is None:
                    msg = "Deferred backpropagation has no error signal and no captured data."
                    raise BackpropagationError(msg)
                callback(payload)
                signal = None
                depth += 1
        finally:
            remaining = len(self._deferred_backpropagation)
            if remaining and self._truncation_policy == TruncationPolicy.DISCARD:
                logger.warning(
                    "Discarding %d deferred backpropagation step(s) beyond max_depth=%s.",
                    remaining,
                    max_depth,
                )
                self._deferred_backpropagation.clear()
        return depth
