from __future__ import annotations

import struct
from typing import TYPE_CHECKING, BinaryIO

import numpy as np

from wiregraph.linalg.ref_counted import RefCounted
from wiregraph.utils.exceptions import ReferenceCountError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wiregraph.linalg.matrix import Matrix

_INT32 = struct.Struct("<i")


class Vector(RefCounted):
    """Reference-counted float32 vector."""

    def __init__(self, data: np.ndarray | Sequence[float]):
        super().__init__()
        arr = np.asarray(data, dtype=np.float32)
        if arr.ndim != 1:
            msg = f"Vector data must be one-dimensional. Got shape: {arr.shape}"
            raise ValueError(msg)
        self._data: np.ndarray | None = arr

    @classmethod
    def zeros(cls, size: int) -> Vector:
        return cls(np.zeros(size, dtype=np.float32))

    def __repr__(self):
        size = None if self._data is None else len(self._data)
        return f"Vector(size={size}, ref_count={self.ref_count})"

    def __len__(self):
        return self.count

    def _free(self):
        self._data = None

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            msg = "Vector storage has been freed."
            raise ReferenceCountError(msg)
        return self._data

    @property
    def count(self) -> int:
        return int(self.data.shape[0])

    def __getitem__(self, index: int) -> float:
        return float(self.data[index])

    def as_numpy(self) -> np.ndarray:
        """Return a copy of the vector contents."""
        return self.data.copy()

    def clone(self) -> Vector:
        return Vector(self.data.copy())

    # ================================================
    # Arithmetic
    # ================================================
    def add(self, other: Vector) -> Vector:
        return Vector(self.data + other.data)

    def subtract(self, other: Vector) -> Vector:
        return Vector(self.data - other.data)

    def pointwise_multiply(self, other: Vector) -> Vector:
        return Vector(self.data * other.data)

    def add_in_place(self, other: Vector, coefficient1: float = 1.0, coefficient2: float = 1.0) -> None:
        self.data[:] = self.data * coefficient1 + other.data * coefficient2

    def subtract_in_place(self, other: Vector, coefficient1: float = 1.0, coefficient2: float = 1.0) -> None:
        self.data[:] = self.data * coefficient1 - other.data * coefficient2

    def multiply_scalar(self, scalar: float) -> None:
        self.data[:] *= np.float32(scalar)

    def sqrt(self) -> Vector:
        return Vector(np.sqrt(self.data))

    def l2_norm(self) -> float:
        return float(np.linalg.norm(self.data))

    def to_matrix(self, rows: int, columns: int) -> Matrix:
        """Reshape into a `rows x columns` matrix (row-major)."""
        from wiregraph.linalg.matrix import Matrix

        return Matrix(self.data.reshape(rows, columns).copy())

    # ================================================
    # Serialization
    # ================================================
    def write_to(self, stream: BinaryIO) -> None:
        """Write the vector as an int32 length followed by float32 values (little-endian)."""
        stream.write(_INT32.pack(self.count))
        stream.write(self.data.astype("<f4").tobytes())

    def read_from(self, stream: BinaryIO) -> None:
        """Read a vector written by `write_to`, ignoring values beyond this vector's size."""
        (size,) = _INT32.unpack(stream.read(_INT32.size))
        values = np.frombuffer(stream.read(4 * size), dtype="<f4")
        n = min(size, self.count)
        self.data[:n] = values[:n]
