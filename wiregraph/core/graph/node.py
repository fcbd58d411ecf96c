from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wiregraph.utils.exceptions import BackpropagationError

if TYPE_CHECKING:
    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.context import Context
    from wiregraph.core.graph.graph_data import GraphData
    from wiregraph.linalg.matrix import Matrix


class Backpropagation(ABC):
    """
    Forward-pass state captured for one gradient step.

    The matrices passed as `captured` are retained on construction and
    released exactly once: either after `backward()` returns (or raises), or
    by `dispose()` when the run is discarded before backward is invoked.
    """

    def __init__(self, source: NodeBase, captured: Sequence[Matrix] = ()):
        self._source = source
        self._captured: tuple[Matrix, ...] = tuple(captured)
        for m in self._captured:
            m.add_ref()
        self._consumed = False
        self._disposed = False

    def __repr__(self):
        return f"{type(self).__name__}(source={self._source!r}, disposed={self._disposed})"

    @property
    def source(self) -> NodeBase:
        return self._source

    @property
    def captured(self) -> tuple[Matrix, ...]:
        return self._captured

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def backward(self, error_signal: GraphData, context: Context) -> GraphData:
        """
        Compute the gradient with respect to this node's input.

        Args:
            error_signal (GraphData): Error with respect to this node's output. \
                Not owned by this call.
            context (Context): Context of the backward step.

        Returns:
            GraphData: The input gradient, owned by the caller.

        Raises:
            BackpropagationError: If this object was already consumed or disposed.

        """
        if self._consumed or self._disposed:
            msg = f"{self!r} has already been consumed."
            raise BackpropagationError(msg)
        self._consumed = True
        try:
            return self._backward(error_signal, context)
        finally:
            self.dispose()

    @abstractmethod
    def _backward(self, error_signal: GraphData, context: Context) -> GraphData:
        """Subclass hook computing the input gradient."""

    def dispose(self) -> None:
        """Release captured matrices. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        try:
            self._dispose()
        finally:
            for m in self._captured:
                m.release()

    def _dispose(self) -> None:
        """Subclass hook for releasing additional state."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()


@dataclass(frozen=True)
class GraphAction:
    """Output produced by `node` during one activation."""

    node: NodeBase
    data: GraphData


BackpropagationFactory = Callable[[], Backpropagation]


class NodeBase(ABC):
    """
    Abstract base class for every node of an execution graph.

    A node consumes the data bound to a `Context`, computes its output and
    hands it back through `_add_next_graph_action()` together with a factory
    for the `Backpropagation` object of this activation. The factory is only
    invoked while training, so inference never captures forward state.

    Nodes are created once at graph construction and carry no state across
    batches other than their learned parameters.
    """

    def __init__(self, name: str | None = None):
        self._name = name
        self._node_id = str(uuid.uuid4())
        self._outputs: list[NodeBase] = []

    def __repr__(self):
        return f"{type(self).__name__}(name={self._name!r})"

    def __str__(self):
        return f"{type(self).__name__} ('{self._name or self._node_id[:8]}')"

    # ==========================================
    # Properties
    # ==========================================
    @property
    def name(self) -> str | None:
        """Optional name used to address this node."""
        return self._name

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def outputs(self) -> list[NodeBase]:
        """Downstream nodes that receive this node's output."""
        return list(self._outputs)

    # ==========================================
    # Wiring
    # ==========================================
    def add_output(self, node: NodeBase) -> NodeBase:
        """
        Connect `node` downstream of this node.

        Returns:
            NodeBase: The downstream node, so connections can be chained.

        """
        if node is self:
            raise ValueError("A node cannot be connected to itself.")
        self._outputs.append(node)
        return node

    def clear_outputs(self) -> None:
        self._outputs.clear()

    # ==========================================
    # Execution
    # ==========================================
    def set_primary_input(self, context: Context) -> None:
        """Entry point used when this node receives the graph's input data."""
        self.execute_forward(context)

    @abstractmethod
    def execute_forward(self, context: Context) -> None:
        """
        Run this node on `context.data`.

        Implementations must call `_add_next_graph_action()` exactly once with
        an output they own (a freshly created GraphData, or a retained one).
        """

    def _add_next_graph_action(
        self,
        context: Context,
        data: GraphData,
        backpropagation: BackpropagationFactory | None,
    ) -> None:
        context.add(GraphAction(self, data), backpropagation)

    def forward(
        self,
        data: GraphData,
        *,
        learning_context: LearningContext | None = None,
        training: bool = True,
    ) -> tuple[GraphData, Backpropagation | None]:
        """
        Run this node on its own, outside of an engine.

        Args:
            data (GraphData): Input data. Not owned by this call.
            learning_context (LearningContext | None): Optional learning context.
            training (bool): Whether to capture a Backpropagation object.

        Returns:
            tuple[GraphData, Backpropagation | None]: The output, owned by the caller, \
                and the captured Backpropagation (None when not training or terminal).

        """
        from wiregraph.core.engine.execution_context import ExecutionContext  # noqa: PLC0415
        from wiregraph.core.graph.context import Context  # noqa: PLC0415

        with ExecutionContext() as execution_context:
            context = Context(
                execution_context,
                data,
                learning_context=learning_context,
                training=training,
            )
            try:
                self.execute_forward(context)
            except BaseException:
                context.discard_pending()
                raise
            action, backpropagation = context.pending_actions[0]
            context.discard_pending(1)
            return action.data, backpropagation
