"""
Activation nodes.

Each node applies an elementwise function to every decomposed input matrix.
Its Backpropagation keeps the pre-activation inputs and multiplies the
error signal by the derivative evaluated at those inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wiregraph.core.graph.graph_data import GraphData
from wiregraph.core.graph.node import Backpropagation, NodeBase
from wiregraph.linalg.activations import resolve_activation
from wiregraph.linalg.matrix import Matrix

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wiregraph.core.graph.context import Context


class ActivationBackpropagation(Backpropagation):
    def __init__(self, source: ActivationNode, inputs: Sequence[Matrix]):
        super().__init__(source, inputs)

    def _backward(self, error_signal: GraphData, context: Context) -> GraphData:
        node: ActivationNode = self.source
        deltas = []
        for captured, error in zip(self.captured, error_signal.decompose(), strict=True):
            with Matrix(node.derivative_fn(captured.data)) as derivative:
                deltas.append(error.pointwise_multiply(derivative))
        return GraphData.compose(deltas)


class ActivationNode(NodeBase):
    """
    Node applying a named activation function.

    Args:
        activation (str): Registered activation name, e.g. `relu` or `tanh`.
        name (str | None): Optional node name.

    """

    def __init__(self, activation: str, name: str | None = None):
        super().__init__(name)
        self._activation = activation
        self.forward_fn, self.derivative_fn = resolve_activation(activation)

    def __repr__(self):
        return f"{type(self).__name__}(activation={self._activation!r}, name={self.name!r})"

    @property
    def activation(self) -> str:
        return self._activation

    def execute_forward(self, context: Context) -> None:
        inputs = context.data.decompose()
        output = GraphData.compose(Matrix(self.forward_fn(m.data)) for m in inputs)
        self._add_next_graph_action(context, output, lambda: ActivationBackpropagation(self, inputs))


class Identity(ActivationNode):
    def __init__(self, name: str | None = None):
        super().__init__("identity", name)


class Relu(ActivationNode):
    def __init__(self, name: str | None = None):
        super().__init__("relu", name)


class LeakyRelu(ActivationNode):
    def __init__(self, name: str | None = None):
        super().__init__("leaky_relu", name)


class Sigmoid(ActivationNode):
    def __init__(self, name: str | None = None):
        super().__init__("sigmoid", name)


class Tanh(ActivationNode):
    def __init__(self, name: str | None = None):
        super().__init__("tanh", name)
