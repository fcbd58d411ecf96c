from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from wiregraph.core.graph.graph_data import GraphData
from wiregraph.core.graph.node import Backpropagation, NodeBase
from wiregraph.linalg.matrix import Matrix
from wiregraph.linalg.vector import Vector

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.context import Context


class FeedForwardBackpropagation(Backpropagation):
    def __init__(self, source: FeedForward, inputs: Sequence[Matrix]):
        super().__init__(source, inputs)

    def _backward(self, error_signal: GraphData, context: Context) -> GraphData:
        layer: FeedForward = self.source
        errors = error_signal.decompose()

        input_gradients = [e.transpose_and_multiply(layer.weight) for e in errors]

        learning_context = context.learning_context
        if learning_context is not None:
            weight_delta = Matrix.zeros(layer.input_size, layer.output_size)
            bias_delta = Vector.zeros(layer.output_size)
            for x, e in zip(self.captured, errors, strict=True):
                with x.transpose_this_and_multiply(e) as w_grad, e.column_sums() as b_grad:
                    weight_delta.add_in_place(w_grad)
                    bias_delta.add_in_place(b_grad)
            rows = error_signal.row_count * error_signal.depth
            learning_context.store(
                (weight_delta, bias_delta, rows),
                lambda delta: layer.update(delta, learning_context),
            )

        return GraphData.compose(input_gradients)


class FeedForward(NodeBase):
    """
    Fully connected layer computing `x @ W + b` on every decomposed input.

    Parameter updates are submitted through the LearningContext so they can
    be deferred until the full traversal of a batch has completed.

    Args:
        input_size (int): Number of input columns.
        output_size (int): Number of output columns.
        name (str | None): Optional node name.
        seed (int | None): Seed for the Glorot-uniform weight initialisation.
        weight (np.ndarray | None): Explicit initial weights `(input_size, output_size)`.
        bias (np.ndarray | None): Explicit initial bias `(output_size,)`.

    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        name: str | None = None,
        *,
        seed: int | None = None,
        weight: np.ndarray | None = None,
        bias: np.ndarray | None = None,
    ):
        super().__init__(name)
        self._input_size = int(input_size)
        self._output_size = int(output_size)

        if weight is None:
            rng = np.random.default_rng(seed)
            limit = np.sqrt(6.0 / (self._input_size + self._output_size))
            weight = rng.uniform(-limit, limit, size=(self._input_size, self._output_size))
        weight = np.asarray(weight, dtype=np.float32)
        if weight.shape != (self._input_size, self._output_size):
            msg = f"Expected weight shape {(self._input_size, self._output_size)}, got {weight.shape}."
            raise ValueError(msg)
        self._weight = Matrix(weight.copy())
        self._bias = Vector(np.zeros(self._output_size) if bias is None else np.asarray(bias).copy())

    def __repr__(self):
        return f"FeedForward(input_size={self._input_size}, output_size={self._output_size}, name={self.name!r})"

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._output_size

    @property
    def weight(self) -> Matrix:
        return self._weight

    @property
    def bias(self) -> Vector:
        return self._bias

    def execute_forward(self, context: Context) -> None:
        inputs = context.data.decompose()
        outputs = []
        for x in inputs:
            out = x.multiply(self._weight)
            out.add_to_each_row(self._bias)
            outputs.append(out)
        self._add_next_graph_action(
            context,
            GraphData.compose(outputs),
            lambda: FeedForwardBackpropagation(self, inputs),
        )

    def update(self, delta: tuple[Matrix, Vector, int], learning_context: LearningContext) -> None:
        """Apply a gradient step, scaled by the learning rate over the number of rows that produced it."""
        weight_delta, bias_delta, rows = delta
        try:
            coefficient = learning_context.learning_rate / max(rows, 1)
            self._weight.add_in_place(weight_delta, 1.0, coefficient)
            self._bias.add_in_place(bias_delta, 1.0, coefficient)
        finally:
            weight_delta.release()
            bias_delta.release()
