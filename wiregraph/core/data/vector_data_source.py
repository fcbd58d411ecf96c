from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from wiregraph.core.data.data_source import DataSource
from wiregraph.core.data.mini_batch import MiniBatch, MiniBatchType
from wiregraph.linalg.matrix import Matrix
from wiregraph.utils.exceptions import PreconditionError


class VectorDataSource(DataSource):
    """
    Data source over fixed-size feature vectors.

    Every row is a single feature vector, so all rows share one bucket and
    each mini-batch has a single `STANDARD` segment.

    Args:
        features (np.ndarray): `(n_rows, input_size)` array.
        targets (np.ndarray | None): Optional `(n_rows, output_size)` array.

    """

    def __init__(self, features: np.ndarray, targets: np.ndarray | None = None):
        self._features = np.asarray(features, dtype=np.float32)
        if self._features.ndim != 2 or self._features.shape[0] == 0:
            msg = f"`features` must be a non-empty 2D array. Got shape: {self._features.shape}"
            raise PreconditionError(msg)

        self._targets = None
        if targets is not None:
            self._targets = np.asarray(targets, dtype=np.float32)
            if self._targets.ndim == 1:
                self._targets = self._targets.reshape(-1, 1)
            if self._targets.shape[0] != self._features.shape[0]:
                msg = f"Row count mismatch: {self._features.shape[0]} features vs {self._targets.shape[0]} targets."
                raise PreconditionError(msg)

    def __repr__(self):
        return f"VectorDataSource(rows={self.row_count}, input_size={self.input_size}, output_size={self.output_size})"

    @property
    def is_sequential(self) -> bool:
        return False

    @property
    def input_size(self) -> int:
        return int(self._features.shape[1])

    @property
    def output_size(self) -> int:
        return -1 if self._targets is None else int(self._targets.shape[1])

    @property
    def row_count(self) -> int:
        return int(self._features.shape[0])

    def get_buckets(self) -> list[list[int]]:
        return [list(range(self.row_count))]

    def get(self, rows: Sequence[int]) -> MiniBatch:
        rows = [int(r) for r in rows]
        if not rows:
            raise PreconditionError("Cannot build a mini-batch from an empty row list.")
        mini_batch = MiniBatch(rows, self)
        mini_batch.add(
            MiniBatchType.STANDARD,
            Matrix(self._features[rows].copy()),
            None if self._targets is None else Matrix(self._targets[rows].copy()),
        )
        return mini_batch

    def clone_with(self, dataset: np.ndarray | tuple[np.ndarray, np.ndarray | None]) -> VectorDataSource:
        """Create a VectorDataSource over `dataset` (features, or a `(features, targets)` pair)."""
        if isinstance(dataset, tuple):
            return VectorDataSource(*dataset)
        return VectorDataSource(dataset)
