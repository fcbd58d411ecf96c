from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from wiregraph.core.graph.graph_data import GraphData
from wiregraph.linalg.matrix import Matrix
from wiregraph.utils.registries import CaseInsensitiveRegistry


class ErrorMetric(ABC):
    """Computes the training error signal and a scalar score from outputs and targets."""

    name: str = "error"

    def __repr__(self):
        return f"{type(self).__name__}()"

    def calculate_gradient(self, output: GraphData, target: GraphData) -> GraphData:
        """
        Error signal fed into backpropagation: `target - output` per matrix.

        Returns:
            GraphData: A new GraphData owned by the caller.

        """
        return GraphData.compose(
            t.subtract(o) for o, t in zip(output.decompose(), target.decompose(), strict=True)
        )

    @abstractmethod
    def compute(self, output: np.ndarray, target: np.ndarray) -> float:
        """Scalar score for a batch of outputs against their targets (lower is better)."""


class QuadraticError(ErrorMetric):
    """Half the mean per-row sum of squared differences."""

    name = "quadratic"

    def compute(self, output: np.ndarray, target: np.ndarray) -> float:
        diff = np.asarray(target, dtype=np.float64) - np.asarray(output, dtype=np.float64)
        return float(0.5 * np.mean(np.sum(diff * diff, axis=-1)))


class RmseError(ErrorMetric):
    """Root mean squared error over every value."""

    name = "rmse"

    def compute(self, output: np.ndarray, target: np.ndarray) -> float:
        diff = np.asarray(target, dtype=np.float64) - np.asarray(output, dtype=np.float64)
        return float(np.sqrt(np.mean(diff * diff)))


ERROR_METRICS: CaseInsensitiveRegistry = CaseInsensitiveRegistry(
    {
        QuadraticError.name: QuadraticError,
        RmseError.name: RmseError,
    },
)


def resolve_error_metric(metric: str | ErrorMetric) -> ErrorMetric:
    """Return `metric` if it is already an ErrorMetric, otherwise look it up by name."""
    if isinstance(metric, ErrorMetric):
        return metric
    cls = ERROR_METRICS.get(metric)
    if cls is None:
        msg = f"Unknown error metric (`{metric}`). Available metrics: {list(ERROR_METRICS.keys())}"
        raise ValueError(msg)
    return cls()


def zero_error_signal(output: GraphData) -> GraphData:
    """Zero error signal with the shape of `output`, owned by the caller."""
    return GraphData.compose(Matrix.zeros(m.row_count, m.column_count) for m in output.decompose())
