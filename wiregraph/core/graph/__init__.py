from wiregraph.core.graph.context import Context
from wiregraph.core.graph.graph_data import GraphData
from wiregraph.core.graph.node import Backpropagation, GraphAction, NodeBase
from wiregraph.core.graph.operation import GraphOperation
from wiregraph.core.graph.trace import ExecutionTrace

__all__ = [
    "Backpropagation",
    "Context",
    "ExecutionTrace",
    "GraphAction",
    "GraphData",
    "GraphOperation",
    "NodeBase",
]
