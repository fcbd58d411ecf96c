from __future__ import annotations

from typing import TYPE_CHECKING

from wiregraph.core.graph.node import NodeBase

if TYPE_CHECKING:
    from wiregraph.core.graph.context import Context


class FlowThrough(NodeBase):
    """Input node that forwards the graph input unchanged to its successors."""

    def __init__(self, name: str | None = None):
        super().__init__(name)

    def execute_forward(self, context: Context) -> None:
        # No Backpropagation: the error signal passes straight through
        self._add_next_graph_action(context, context.data.add_ref(), None)
