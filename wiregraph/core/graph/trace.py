from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wiregraph.core.graph.context import Context
from wiregraph.utils.exceptions import GraphConstructionError

if TYPE_CHECKING:
    from wiregraph.core.engine.execution_context import ExecutionContext
    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.graph_data import GraphData
    from wiregraph.core.graph.node import Backpropagation, NodeBase


@dataclass
class TraceEntry:
    node: NodeBase
    output: GraphData
    backpropagation: Backpropagation | None


class ExecutionTrace:
    """
    Record of one forward pass (one timestep of one mini-batch).

    The trace owns every output recorded into it and every Backpropagation
    captured during the pass. `dispose()` releases all of them exactly once,
    whether or not `backpropagate()` ran.
    """

    def __init__(self):
        self._entries: list[TraceEntry] = []
        self._output: GraphData | None = None
        self._disposed = False

    def __len__(self):
        return len(self._entries)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    @property
    def entries(self) -> list[TraceEntry]:
        return list(self._entries)

    @property
    def output(self) -> GraphData | None:
        """Output of the terminal node (non-owning)."""
        return self._output

    def record(self, node: NodeBase, output: GraphData, backpropagation: Backpropagation | None) -> None:
        """Take ownership of one node's output and its Backpropagation."""
        self._entries.append(TraceEntry(node, output, backpropagation))
        if not node.outputs:
            if self._output is not None:
                msg = f"Graph produced more than one terminal output (second from {node})."
                raise GraphConstructionError(msg)
            self._output = output

    def backpropagate(
        self,
        error_signal: GraphData,
        execution_context: ExecutionContext,
        learning_context: LearningContext | None = None,
    ) -> GraphData:
        """
        Run every captured Backpropagation in reverse node order.

        Args:
            error_signal (GraphData): Error with respect to the terminal output. \
                Not owned by this call.
            execution_context (ExecutionContext): Context of the current run.
            learning_context (LearningContext | None): Receives parameter updates.

        Returns:
            GraphData: Gradient with respect to the graph input, owned by the caller.

        """
        signal = error_signal
        for entry in reversed(self._entries):
            backpropagation = entry.backpropagation
            if backpropagation is None:
                continue
            entry.backpropagation = None
            context = Context(
                execution_context,
                signal,
                learning_context=learning_context,
                source=entry.node,
                training=True,
            )
            try:
                gradient = backpropagation.backward(signal, context)
            finally:
                if signal is not error_signal:
                    signal.release()
            signal = gradient

        if signal is error_signal:
            signal.add_ref()
        return signal

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for entry in self._entries:
            if entry.backpropagation is not None:
                entry.backpropagation.dispose()
                entry.backpropagation = None
            entry.output.release()
        self._output = None
