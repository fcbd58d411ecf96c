from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from wiregraph.core.graph.graph_data import GraphData

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wiregraph.core.data.data_source import DataSource
    from wiregraph.linalg.matrix import Matrix


class MiniBatchType(str, Enum):
    """Position of a segment within a sequence."""

    STANDARD = "standard"
    SEQUENCE_START = "sequence_start"
    SEQUENCE_END = "sequence_end"


@dataclass
class MiniBatchSequence:
    """
    One timestep of a mini-batch.

    Attributes:
        mini_batch (MiniBatch): The owning mini-batch.
        sequence_index (int): Position of this segment within the mini-batch.
        tag (MiniBatchType): Sequence position tag.
        input (GraphData): Input rows for this timestep (one row per sequence).
        target (GraphData | None): Target rows for this timestep, if any.

    """

    mini_batch: MiniBatch
    sequence_index: int
    tag: MiniBatchType
    input: GraphData
    target: GraphData | None = None


class MiniBatch:
    """
    Ordered collection of per-timestep segments built from a set of rows.

    A non-sequential mini-batch holds a single `STANDARD` segment. The
    mini-batch owns the matrices of its segments; `dispose()` releases them.
    """

    def __init__(self, rows: Sequence[int], data_source: DataSource, *, is_sequential: bool | None = None):
        self._rows: tuple[int, ...] = tuple(int(r) for r in rows)
        self._data_source = data_source
        self._is_sequential = data_source.is_sequential if is_sequential is None else is_sequential
        self._segments: list[MiniBatchSequence] = []
        self._cursor = 0
        self._disposed = False

    def __repr__(self):
        return f"MiniBatch(rows={len(self._rows)}, segments={len(self._segments)})"

    def __len__(self):
        return len(self._segments)

    def __iter__(self):
        yield from self._segments

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    # ==========================================
    # Properties
    # ==========================================
    @property
    def rows(self) -> tuple[int, ...]:
        return self._rows

    @property
    def data_source(self) -> DataSource:
        return self._data_source

    @property
    def is_sequential(self) -> bool:
        return self._is_sequential

    @property
    def batch_size(self) -> int:
        return len(self._rows)

    @property
    def sequence_count(self) -> int:
        return len(self._segments)

    @property
    def segments(self) -> list[MiniBatchSequence]:
        return list(self._segments)

    # ==========================================
    # Construction & iteration
    # ==========================================
    def add(self, tag: MiniBatchType, input_matrix: Matrix, target_matrix: Matrix | None = None) -> MiniBatchSequence:
        """Append a segment, taking ownership of the given matrices."""
        segment = MiniBatchSequence(
            mini_batch=self,
            sequence_index=len(self._segments),
            tag=MiniBatchType(tag),
            input=GraphData(input_matrix),
            target=None if target_matrix is None else GraphData(target_matrix),
        )
        self._segments.append(segment)
        return segment

    def get_sequential(self, index: int) -> MiniBatchSequence:
        return self._segments[index]

    @property
    def current_sequence(self) -> MiniBatchSequence | None:
        """The segment most recently returned by `get_next_sequence()`."""
        if self._cursor == 0:
            return None
        return self._segments[self._cursor - 1]

    @property
    def has_next_sequence(self) -> bool:
        return self._cursor < len(self._segments)

    def get_next_sequence(self) -> MiniBatchSequence | None:
        if not self.has_next_sequence:
            return None
        segment = self._segments[self._cursor]
        self._cursor += 1
        return segment

    def reset(self) -> None:
        self._cursor = 0

    def dispose(self) -> None:
        """Release every segment matrix. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        for segment in self._segments:
            segment.input.release()
            if segment.target is not None:
                segment.target.release()
