from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from wiregraph.linalg.matrix import Matrix


class GraphData:
    """
    Tensor handle flowing between graph nodes.

    A GraphData wraps either a single matrix or an ordered sequence of
    matrices (one per timestep or channel). Nodes work on the decomposed
    form and recompose their results with `compose()`.

    GraphData does not own its matrices by itself: ownership is tracked by
    whoever retained them (see `add_ref()` / `release()`).
    """

    def __init__(self, matrices: Matrix | Sequence[Matrix]):
        if isinstance(matrices, Matrix):
            matrices = (matrices,)
        matrices = tuple(matrices)
        if not matrices:
            raise ValueError("GraphData requires at least one matrix.")
        rows = {m.row_count for m in matrices}
        columns = {m.column_count for m in matrices}
        if len(rows) != 1 or len(columns) != 1:
            msg = f"All matrices in a GraphData must share a shape. Got: {[m.shape for m in matrices]}"
            raise ValueError(msg)
        self._matrices: tuple[Matrix, ...] = matrices

    def __repr__(self):
        return f"GraphData(depth={self.depth}, rows={self.row_count}, columns={self.column_count})"

    @classmethod
    def from_numpy(cls, values: np.ndarray) -> GraphData:
        """Build from a 2D array (single matrix) or a 3D array of shape (depth, rows, columns)."""
        values = np.asarray(values, dtype=np.float32)
        if values.ndim == 2:
            return cls(Matrix(values.copy()))
        if values.ndim == 3:
            return cls([Matrix(v.copy()) for v in values])
        msg = f"GraphData arrays must be 2D or 3D. Got shape: {values.shape}"
        raise ValueError(msg)

    # ================================================
    # Decomposition
    # ================================================
    def decompose(self) -> tuple[Matrix, ...]:
        """Return the ordered matrices held by this handle (non-owning)."""
        return self._matrices

    @staticmethod
    def compose(matrices: Iterable[Matrix]) -> GraphData:
        """Build a GraphData from an ordered sequence of matrices."""
        return GraphData(list(matrices))

    @property
    def is_sequence(self) -> bool:
        return len(self._matrices) > 1

    @property
    def depth(self) -> int:
        return len(self._matrices)

    @property
    def row_count(self) -> int:
        return self._matrices[0].row_count

    @property
    def column_count(self) -> int:
        return self._matrices[0].column_count

    @property
    def matrix(self) -> Matrix:
        """The single matrix of a non-sequence GraphData."""
        if self.is_sequence:
            msg = f"GraphData holds {self.depth} matrices; use `decompose()` instead."
            raise ValueError(msg)
        return self._matrices[0]

    def as_numpy(self) -> np.ndarray:
        """Copy the values out as a 2D array, or a 3D (depth, rows, columns) array for sequences."""
        if self.is_sequence:
            return np.stack([m.as_numpy() for m in self._matrices])
        return self._matrices[0].as_numpy()

    # ================================================
    # Lifetime
    # ================================================
    def add_ref(self) -> GraphData:
        """Retain every held matrix. Returns self for chaining."""
        for m in self._matrices:
            m.add_ref()
        return self

    def release(self) -> None:
        """Release one reference on every held matrix."""
        for m in self._matrices:
            m.release()
