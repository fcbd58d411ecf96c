from wiregraph.core.data import (
    DataSource,
    MiniBatch,
    MiniBatchSequence,
    MiniBatchType,
    SequentialDataSource,
    VectorDataSource,
)
from wiregraph.core.engine import (
    ErrorMetric,
    ExecutionContext,
    ExecutionResult,
    GraphEngine,
    LearningContext,
    TrainingConfig,
    TruncationPolicy,
)
from wiregraph.core.graph import (
    Backpropagation,
    Context,
    ExecutionTrace,
    GraphAction,
    GraphData,
    GraphOperation,
    NodeBase,
)

__all__ = [
    "Backpropagation",
    "Context",
    "DataSource",
    "ErrorMetric",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionTrace",
    "GraphAction",
    "GraphData",
    "GraphEngine",
    "GraphOperation",
    "LearningContext",
    "MiniBatch",
    "MiniBatchSequence",
    "MiniBatchType",
    "NodeBase",
    "SequentialDataSource",
    "TrainingConfig",
    "TruncationPolicy",
    "VectorDataSource",
]
