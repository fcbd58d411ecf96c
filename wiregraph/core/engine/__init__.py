from wiregraph.core.engine.config import TrainingConfig
from wiregraph.core.engine.error_metrics import (
    ERROR_METRICS,
    ErrorMetric,
    QuadraticError,
    RmseError,
    resolve_error_metric,
)
from wiregraph.core.engine.execution_context import ExecutionContext
from wiregraph.core.engine.graph_engine import ExecutionResult, GraphEngine
from wiregraph.core.engine.learning_context import LearningContext, TruncationPolicy

__all__ = [
    "ERROR_METRICS",
    "ErrorMetric",
    "ExecutionContext",
    "ExecutionResult",
    "GraphEngine",
    "LearningContext",
    "QuadraticError",
    "RmseError",
    "TrainingConfig",
    "TruncationPolicy",
    "resolve_error_metric",
]
