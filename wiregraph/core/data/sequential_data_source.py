from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from wiregraph.core.data.data_source import DataSource
from wiregraph.core.data.mini_batch import MiniBatch, MiniBatchType
from wiregraph.linalg.matrix import Matrix
from wiregraph.utils.exceptions import PreconditionError


class SequentialDataSource(DataSource):
    """
    Data source over variable-length sequences.

    Each row is a `(depth, input_size)` array: an ordered sequence of feature
    vectors. Rows are bucketed by depth so that every mini-batch holds
    sequences of the same length.

    Args:
        sequences (Sequence[np.ndarray]): One `(depth, input_size)` array per row.
        targets (Sequence[np.ndarray] | None): Optional `(depth, output_size)` \
            arrays aligned with `sequences`.

    """

    def __init__(
        self,
        sequences: Sequence[np.ndarray],
        targets: Sequence[np.ndarray] | None = None,
    ):
        if len(sequences) == 0:
            raise PreconditionError("SequentialDataSource requires at least one sequence.")

        self._data: list[np.ndarray] = [self._as_sequence(s, "sequence", i) for i, s in enumerate(sequences)]
        widths = {s.shape[1] for s in self._data}
        if len(widths) != 1:
            msg = f"All sequences must share the same feature width. Got: {sorted(widths)}"
            raise PreconditionError(msg)
        self._input_size = widths.pop()
        self._row_depth = np.asarray([s.shape[0] for s in self._data], dtype=int)

        self._targets: list[np.ndarray] | None = None
        self._output_size = -1
        if targets is not None:
            if len(targets) != len(self._data):
                msg = f"Expected {len(self._data)} target sequences, got {len(targets)}."
                raise PreconditionError(msg)
            self._targets = [self._as_sequence(t, "target", i) for i, t in enumerate(targets)]
            for i, (s, t) in enumerate(zip(self._data, self._targets, strict=True)):
                if t.shape[0] != s.shape[0]:
                    msg = f"Target depth {t.shape[0]} does not match sequence depth {s.shape[0]} at row {i}."
                    raise PreconditionError(msg)
            t_widths = {t.shape[1] for t in self._targets}
            if len(t_widths) != 1:
                msg = f"All target sequences must share the same width. Got: {sorted(t_widths)}"
                raise PreconditionError(msg)
            self._output_size = t_widths.pop()

    def __repr__(self):
        return (
            f"SequentialDataSource(rows={self.row_count}, input_size={self._input_size}, "
            f"output_size={self._output_size})"
        )

    @staticmethod
    def _as_sequence(values, kind: str, index: int) -> np.ndarray:
        arr = np.asarray(values, dtype=np.float32)
        if arr.ndim != 2 or arr.shape[0] == 0:
            msg = f"Each {kind} must be a non-empty 2D (depth, features) array. Row {index} has shape {arr.shape}."
            raise PreconditionError(msg)
        return arr

    # =====================================================
    # Properties
    # =====================================================
    @property
    def is_sequential(self) -> bool:
        return True

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._output_size

    @property
    def row_count(self) -> int:
        return len(self._data)

    def depth(self, row: int) -> int:
        """Sequence depth (number of timesteps) of `row`."""
        return int(self._row_depth[row])

    # =====================================================
    # DataSource interface
    # =====================================================
    def get_buckets(self) -> list[list[int]]:
        """One bucket of row indices per distinct depth, in order of first appearance."""
        buckets: dict[int, list[int]] = {}
        for row, depth in enumerate(self._row_depth.tolist()):
            buckets.setdefault(depth, []).append(row)
        return list(buckets.values())

    def get(self, rows: Sequence[int]) -> MiniBatch:
        """
        Build a timestep-major MiniBatch from rows of identical depth.

        Timestep `t` becomes one matrix whose i-th row is timestep `t` of the
        i-th selected sequence. Timestep 0 is tagged `SEQUENCE_START`, the last
        timestep `SEQUENCE_END`, and every other timestep `STANDARD`. A depth-1
        sequence yields a single `SEQUENCE_START` segment.

        Raises:
            PreconditionError: If `rows` is empty or the rows differ in depth.

        """
        rows = [int(r) for r in rows]
        if not rows:
            raise PreconditionError("Cannot build a mini-batch from an empty row list.")
        depths = {int(self._row_depth[r]) for r in rows}
        if len(depths) != 1:
            msg = f"All rows of a sequential mini-batch must share the same depth. Got depths: {sorted(depths)}"
            raise PreconditionError(msg)
        depth = depths.pop()

        inputs = np.stack([self._data[r] for r in rows], axis=1)
        targets = None if self._targets is None else np.stack([self._targets[r] for r in rows], axis=1)

        mini_batch = MiniBatch(rows, self)
        for t in range(depth):
            if t == 0:
                tag = MiniBatchType.SEQUENCE_START
            elif t == depth - 1:
                tag = MiniBatchType.SEQUENCE_END
            else:
                tag = MiniBatchType.STANDARD
            mini_batch.add(
                tag,
                Matrix(inputs[t].copy()),
                None if targets is None else Matrix(targets[t].copy()),
            )
        return mini_batch
