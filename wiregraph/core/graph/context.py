from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wiregraph.core.data.mini_batch import MiniBatchSequence
    from wiregraph.core.engine.execution_context import ExecutionContext
    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.graph_data import GraphData
    from wiregraph.core.graph.node import Backpropagation, BackpropagationFactory, GraphAction, NodeBase


class Context:
    """
    Working state of a single node activation.

    Binds the data the node should consume to the run-scoped
    `ExecutionContext`, the optional `LearningContext`, and the list of
    actions the node queues for its successors. A Context is never shared
    between activations.
    """

    def __init__(
        self,
        execution_context: ExecutionContext,
        data: GraphData,
        *,
        learning_context: LearningContext | None = None,
        source: NodeBase | None = None,
        batch_sequence: MiniBatchSequence | None = None,
        training: bool | None = None,
    ):
        self._execution_context = execution_context
        self._learning_context = learning_context
        self._data = data
        self._source = source
        self._batch_sequence = batch_sequence
        self._training = (learning_context is not None) if training is None else training
        self._pending: list[tuple[GraphAction, Backpropagation | None]] = []

    def __repr__(self):
        return f"Context(data={self._data!r}, source={self._source!r}, training={self._training})"

    @property
    def data(self) -> GraphData:
        return self._data

    @property
    def execution_context(self) -> ExecutionContext:
        return self._execution_context

    @property
    def learning_context(self) -> LearningContext | None:
        return self._learning_context

    @property
    def source(self) -> NodeBase | None:
        """The upstream node that produced `data` (None for the graph input)."""
        return self._source

    @property
    def batch_sequence(self) -> MiniBatchSequence | None:
        return self._batch_sequence

    @property
    def is_training(self) -> bool:
        return self._training

    @property
    def pending_actions(self) -> list[tuple[GraphAction, Backpropagation | None]]:
        return list(self._pending)

    def add(self, action: GraphAction, backpropagation: BackpropagationFactory | None) -> None:
        """Queue a node's output, capturing its Backpropagation when training."""
        captured = backpropagation() if (self._training and backpropagation is not None) else None
        self._pending.append((action, captured))

    def discard_pending(self, start: int = 0) -> None:
        """Release the output and dispose the Backpropagation of every queued action from `start` on."""
        discarded = self._pending[start:]
        del self._pending[start:]
        for action, backpropagation in discarded:
            if backpropagation is not None:
                backpropagation.dispose()
            action.data.release()
