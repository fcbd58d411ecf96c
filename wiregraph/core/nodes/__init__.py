from wiregraph.core.nodes.activation import ActivationNode, Identity, LeakyRelu, Relu, Sigmoid, Tanh
from wiregraph.core.nodes.feed_forward import FeedForward
from wiregraph.core.nodes.flow_through import FlowThrough
from wiregraph.core.nodes.memory import MemoryFeeder, WriteToMemory

__all__ = [
    "ActivationNode",
    "FeedForward",
    "FlowThrough",
    "Identity",
    "LeakyRelu",
    "MemoryFeeder",
    "Relu",
    "Sigmoid",
    "Tanh",
    "WriteToMemory",
]
