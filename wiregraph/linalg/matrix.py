from __future__ import annotations

import struct
from collections.abc import Sequence
from typing import BinaryIO

import numpy as np

from wiregraph.linalg import activations
from wiregraph.linalg.ref_counted import RefCounted
from wiregraph.linalg.vector import Vector
from wiregraph.utils.exceptions import ReferenceCountError

_DIMS = struct.Struct("<ii")


class Matrix(RefCounted):
    """
    Reference-counted float32 matrix.

    Every operation that produces a new matrix returns a fresh handle with a
    reference count of one, owned by the caller. In-place operations mutate
    this handle's storage; callers must hold a retained reference before
    mutating a matrix they share.
    """

    def __init__(self, data: np.ndarray | Sequence[Sequence[float]]):
        super().__init__()
        arr = np.asarray(data, dtype=np.float32)
        if arr.ndim != 2:
            msg = f"Matrix data must be two-dimensional. Got shape: {arr.shape}"
            raise ValueError(msg)
        self._data: np.ndarray | None = arr

    # ================================================
    # Construction
    # ================================================
    @classmethod
    def zeros(cls, rows: int, columns: int) -> Matrix:
        return cls(np.zeros((rows, columns), dtype=np.float32))

    @classmethod
    def from_rows(cls, rows: Sequence[Vector | np.ndarray | Sequence[float]]) -> Matrix:
        """Stack a list of row vectors into a matrix."""
        if len(rows) == 0:
            raise ValueError("Cannot build a matrix from an empty row list.")
        return cls(np.stack([r.data if isinstance(r, Vector) else np.asarray(r, dtype=np.float32) for r in rows]))

    @classmethod
    def identity(cls, size: int) -> Matrix:
        return cls(np.eye(size, dtype=np.float32))

    def __repr__(self):
        shape = None if self._data is None else self._data.shape
        return f"Matrix(shape={shape}, ref_count={self.ref_count})"

    def _free(self):
        self._data = None

    # ================================================
    # Properties
    # ================================================
    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            msg = "Matrix storage has been freed."
            raise ReferenceCountError(msg)
        return self._data

    @property
    def row_count(self) -> int:
        return int(self.data.shape[0])

    @property
    def column_count(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    def __getitem__(self, index: tuple[int, int]) -> float:
        return float(self.data[index])

    def __setitem__(self, index: tuple[int, int], value: float):
        self.data[index] = value

    def as_numpy(self) -> np.ndarray:
        """Return a copy of the matrix contents."""
        return self.data.copy()

    def clone(self) -> Matrix:
        return Matrix(self.data.copy())

    def row(self, index: int) -> Vector:
        return Vector(self.data[index].copy())

    def column(self, index: int) -> Vector:
        return Vector(self.data[:, index].copy())

    def rows(self) -> list[Vector]:
        return [self.row(i) for i in range(self.row_count)]

    def get_new_matrix_from_rows(self, indices: Sequence[int]) -> Matrix:
        return Matrix(self.data[list(indices)].copy())

    # ================================================
    # Arithmetic
    # ================================================
    def add(self, other: Matrix) -> Matrix:
        return Matrix(self.data + other.data)

    def subtract(self, other: Matrix) -> Matrix:
        return Matrix(self.data - other.data)

    def pointwise_multiply(self, other: Matrix) -> Matrix:
        return Matrix(self.data * other.data)

    def pointwise_divide(self, other: Matrix) -> Matrix:
        return Matrix(self.data / other.data)

    def multiply(self, other: Matrix) -> Matrix:
        """Matrix product `self @ other`."""
        return Matrix(self.data @ other.data)

    def transpose_and_multiply(self, other: Matrix) -> Matrix:
        """Matrix product `self @ other.T`."""
        return Matrix(self.data @ other.data.T)

    def transpose_this_and_multiply(self, other: Matrix) -> Matrix:
        """Matrix product `self.T @ other`."""
        return Matrix(self.data.T @ other.data)

    def transpose(self) -> Matrix:
        return Matrix(self.data.T.copy())

    def add_in_place(self, other: Matrix, coefficient1: float = 1.0, coefficient2: float = 1.0) -> None:
        self.data[:] = self.data * coefficient1 + other.data * coefficient2

    def subtract_in_place(self, other: Matrix, coefficient1: float = 1.0, coefficient2: float = 1.0) -> None:
        self.data[:] = self.data * coefficient1 - other.data * coefficient2

    def multiply_scalar(self, scalar: float) -> None:
        self.data[:] *= np.float32(scalar)

    def add_to_each_row(self, vector: Vector) -> None:
        self.data[:] += vector.data[np.newaxis, :]

    def add_to_each_column(self, vector: Vector) -> None:
        self.data[:] += vector.data[:, np.newaxis]

    # ================================================
    # Aggregation
    # ================================================
    def row_sums(self, coefficient: float = 1.0) -> Vector:
        return Vector(self.data.sum(axis=1) * coefficient)

    def column_sums(self, coefficient: float = 1.0) -> Vector:
        return Vector(self.data.sum(axis=0) * coefficient)

    def row_l2_norm(self) -> Vector:
        return Vector(np.linalg.norm(self.data, axis=1))

    def column_l2_norm(self) -> Vector:
        return Vector(np.linalg.norm(self.data, axis=0))

    # ================================================
    # Activations
    # ================================================
    def relu_activation(self) -> Matrix:
        return Matrix(activations.relu(self.data))

    def relu_derivative(self) -> Matrix:
        return Matrix(activations.relu_derivative(self.data))

    def leaky_relu_activation(self) -> Matrix:
        return Matrix(activations.leaky_relu(self.data))

    def leaky_relu_derivative(self) -> Matrix:
        return Matrix(activations.leaky_relu_derivative(self.data))

    def sigmoid_activation(self) -> Matrix:
        return Matrix(activations.sigmoid(self.data))

    def sigmoid_derivative(self) -> Matrix:
        return Matrix(activations.sigmoid_derivative(self.data))

    def tanh_activation(self) -> Matrix:
        return Matrix(activations.tanh(self.data))

    def tanh_derivative(self) -> Matrix:
        return Matrix(activations.tanh_derivative(self.data))

    def map(self, fn) -> Matrix:
        """Apply an elementwise array function and return the result as a new matrix."""
        return Matrix(fn(self.data))

    # ================================================
    # Serialization
    # ================================================
    def write_to(self, stream: BinaryIO) -> None:
        """Write int32 row and column counts then row-major float32 values (little-endian)."""
        stream.write(_DIMS.pack(self.row_count, self.column_count))
        stream.write(np.ascontiguousarray(self.data, dtype="<f4").tobytes())

    def read_from(self, stream: BinaryIO) -> None:
        """
        Read a matrix written by `write_to` into this matrix.

        Values that fall outside this matrix's shape are read and discarded.
        """
        rows, columns = _DIMS.unpack(stream.read(_DIMS.size))
        values = np.frombuffer(stream.read(4 * rows * columns), dtype="<f4").reshape(rows, columns)
        r = min(rows, self.row_count)
        c = min(columns, self.column_count)
        self.data[:r, :c] = values[:r, :c]

    @classmethod
    def read(cls, stream: BinaryIO) -> Matrix:
        """Read a matrix written by `write_to` into a new matrix of the stored shape."""
        rows, columns = _DIMS.unpack(stream.read(_DIMS.size))
        values = np.frombuffer(stream.read(4 * rows * columns), dtype="<f4").reshape(rows, columns)
        return cls(values.astype(np.float32))
