from __future__ import annotations

from typing import TYPE_CHECKING

from wiregraph.core.graph.context import Context

if TYPE_CHECKING:
    from wiregraph.core.data.mini_batch import MiniBatchSequence
    from wiregraph.core.engine.execution_context import ExecutionContext
    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.graph_data import GraphData
    from wiregraph.core.graph.node import NodeBase
    from wiregraph.core.graph.trace import ExecutionTrace


class GraphOperation:
    """
    A queued node activation.

    Executing the operation runs the node on its input, records the node's
    output in the trace, and enqueues one follow-up operation per downstream
    node on the ExecutionContext.
    """

    def __init__(
        self,
        node: NodeBase,
        data: GraphData,
        trace: ExecutionTrace,
        *,
        source: NodeBase | None = None,
        batch_sequence: MiniBatchSequence | None = None,
    ):
        self.node = node
        self.data = data
        self.trace = trace
        self.source = source
        self.batch_sequence = batch_sequence

    def __repr__(self):
        return f"GraphOperation(node={self.node!r}, source={self.source!r})"

    def execute(
        self,
        execution_context: ExecutionContext,
        learning_context: LearningContext | None = None,
    ) -> None:
        context = Context(
            execution_context,
            self.data,
            learning_context=learning_context,
            source=self.source,
            batch_sequence=self.batch_sequence,
        )
        try:
            if self.source is None:
                self.node.set_primary_input(context)
            else:
                self.node.execute_forward(context)
        except BaseException:
            context.discard_pending()
            raise

        pending = context.pending_actions
        for index, (action, backpropagation) in enumerate(pending):
            try:
                self.trace.record(action.node, action.data, backpropagation)
            except BaseException:
                # The trace already owns the action that failed to record
                context.discard_pending(index + 1)
                raise
            for downstream in action.node.outputs:
                execution_context.add(
                    GraphOperation(
                        downstream,
                        action.data,
                        self.trace,
                        source=action.node,
                        batch_sequence=self.batch_sequence,
                    ),
                )
