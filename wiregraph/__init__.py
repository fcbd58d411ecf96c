from wiregraph.core import (
    DataSource,
    ExecutionContext,
    GraphData,
    GraphEngine,
    LearningContext,
    MiniBatch,
    SequentialDataSource,
    TrainingConfig,
    VectorDataSource,
)
from wiregraph.core.nodes import FeedForward, FlowThrough, Identity, LeakyRelu, Relu, Sigmoid, Tanh
from wiregraph.linalg import Matrix, Vector, set_refcount_checks
from wiregraph.logger import log_to_file, set_logging_level

__version__ = "0.1.0"

__all__ = [
    "DataSource",
    "ExecutionContext",
    "FeedForward",
    "FlowThrough",
    "GraphData",
    "GraphEngine",
    "Identity",
    "LeakyRelu",
    "LearningContext",
    "Matrix",
    "MiniBatch",
    "Relu",
    "SequentialDataSource",
    "Sigmoid",
    "Tanh",
    "TrainingConfig",
    "Vector",
    "VectorDataSource",
    "log_to_file",
    "set_logging_level",
    "set_refcount_checks",
]
