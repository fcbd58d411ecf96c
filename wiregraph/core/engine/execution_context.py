from __future__ import annotations

import queue
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from wiregraph.logger import logger

if TYPE_CHECKING:
    from wiregraph.core.graph.operation import GraphOperation
    from wiregraph.linalg.matrix import Matrix


class ExecutionContext:
    """
    Shared state of a single training or inference run.

    Holds the FIFO queue of pending graph operations, a named memory table
    and an input-transformation cache. Both tables retain (+1) every matrix
    stored in them and release it on removal, overwrite, or disposal.

    The queue accepts concurrent producers; the tables are guarded by a lock
    so concurrently scheduled operations may read and write them.

    Use as a context manager so disposal always runs, including when a run is
    abandoned because of an exception.
    """

    def __init__(self):
        self._operations: queue.SimpleQueue[GraphOperation] = queue.SimpleQueue()
        self._memory: dict[str, Matrix] = {}
        self._input_transformations: dict[int, Matrix] = {}
        self._lock = threading.RLock()
        self._disposed = False

    def __repr__(self):
        return (
            f"ExecutionContext(remaining_operations={self.remaining_operation_count}, "
            f"memory_slots={len(self._memory)}, cached_transforms={len(self._input_transformations)})"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ==========================================
    # Operation queue
    # ==========================================
    def add(self, operation: GraphOperation) -> None:
        """Enqueue a single operation."""
        self._operations.put(operation)

    def add_all(self, operations: Iterable[GraphOperation]) -> None:
        """Enqueue operations in order."""
        for op in operations:
            self._operations.put(op)

    def get_next_operation(self) -> GraphOperation | None:
        """
        Dequeue the next operation.

        Returns:
            GraphOperation | None: The next operation, or None when the queue is \
                empty (no more work in this pass).

        """
        try:
            return self._operations.get_nowait()
        except queue.Empty:
            return None

    @property
    def remaining_operation_count(self) -> int:
        return self._operations.qsize()

    # ==========================================
    # Memory table
    # ==========================================
    def get_memory(self, key: str) -> Matrix | None:
        """Return the matrix stored under `key`, or None if the slot is empty."""
        with self._lock:
            return self._memory.get(key)

    def set_memory(self, key: str, matrix: Matrix | None) -> None:
        """
        Store, replace or clear a memory slot.

        Args:
            key (str): Slot name.
            matrix (Matrix | None): Matrix to retain under `key`. Passing None \
                removes the slot and releases the matrix it held.

        """
        if matrix is not None:
            matrix.add_ref()
        with self._lock:
            previous = self._memory.pop(key, None) if matrix is None else self._memory.get(key)
            if matrix is not None:
                self._memory[key] = matrix
        if previous is not None:
            previous.release()

    @property
    def memory_keys(self) -> list[str]:
        with self._lock:
            return list(self._memory.keys())

    # ==========================================
    # Input transformation cache
    # ==========================================
    def get_input_transformation(self, transform_id: int) -> Matrix | None:
        """Return the cached transformation for `transform_id`, or None on a cache miss."""
        with self._lock:
            return self._input_transformations.get(transform_id)

    def set_input_transformation(self, transform_id: int, matrix: Matrix) -> None:
        """Retain `matrix` as the cached transformation for `transform_id`."""
        matrix.add_ref()
        with self._lock:
            previous = self._input_transformations.get(transform_id)
            self._input_transformations[transform_id] = matrix
        if previous is not None:
            previous.release()

    # ==========================================
    # Disposal
    # ==========================================
    def dispose(self) -> None:
        """Release every retained matrix and clear both tables. Repeated calls are no-ops."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            held = [*self._memory.values(), *self._input_transformations.values()]
            self._memory.clear()
            self._input_transformations.clear()

        for matrix in held:
            matrix.release()

        dropped = 0
        while self.get_next_operation() is not None:
            dropped += 1
        if dropped:
            logger.debug("Discarded %d queued operations on dispose.", dropped)
