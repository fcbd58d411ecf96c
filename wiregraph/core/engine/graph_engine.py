from __future__ import annotations

from dataclasses import dataclass, field
from itertools import pairwise
from typing import TYPE_CHECKING

import numpy as np

from wiregraph.core.engine.error_metrics import ErrorMetric, resolve_error_metric, zero_error_signal
from wiregraph.core.engine.execution_context import ExecutionContext
from wiregraph.core.graph.operation import GraphOperation
from wiregraph.core.graph.trace import ExecutionTrace
from wiregraph.logger import logger
from wiregraph.utils.exceptions import GraphConstructionError, PreconditionError
from wiregraph.utils.representation.progress_bars import LazyProgress

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wiregraph.core.data.data_source import DataSource
    from wiregraph.core.data.mini_batch import MiniBatch, MiniBatchSequence
    from wiregraph.core.engine.config import TrainingConfig
    from wiregraph.core.engine.learning_context import LearningContext
    from wiregraph.core.graph.graph_data import GraphData
    from wiregraph.core.graph.node import NodeBase


@dataclass
class ExecutionResult:
    """
    Inference output of one mini-batch.

    Attributes:
        rows (tuple[int, ...]): Source row indices, in mini-batch order.
        outputs (list[np.ndarray]): Graph output per timestep, each `(len(rows), output_size)`.
        targets (list[np.ndarray | None]): Target per timestep, if the source has targets.

    """

    rows: tuple[int, ...]
    outputs: list[np.ndarray] = field(default_factory=list)
    targets: list[np.ndarray | None] = field(default_factory=list)

    @property
    def output(self) -> np.ndarray:
        """Output of the final timestep."""
        return self.outputs[-1]


class GraphEngine:
    """
    Drives mini-batches through a chain of nodes.

    For every timestep of a mini-batch the engine enqueues the input node on
    the ExecutionContext operation queue and drains it; each node enqueues
    its successors. While training, the error of the terminal output is then
    propagated back through the captured Backpropagation objects in reverse
    node order. Timesteps of sequential mini-batches are deferred on the
    LearningContext and unrolled through time once the sequence ends.

    Args:
        nodes (Sequence[NodeBase]): Nodes in execution order. The first node \
            receives the input data (typically a `FlowThrough`); consecutive \
            nodes are connected automatically.
        error_metric (str | ErrorMetric): Metric providing the error signal and score.

    """

    def __init__(self, nodes: Sequence[NodeBase], error_metric: str | ErrorMetric = "quadratic"):
        nodes = list(nodes)
        if not nodes:
            raise GraphConstructionError("GraphEngine requires at least one node.")
        if len({n.node_id for n in nodes}) != len(nodes):
            raise GraphConstructionError("The same node appears more than once in the graph.")

        for upstream, downstream in pairwise(nodes):
            existing = upstream.outputs
            if not existing:
                upstream.add_output(downstream)
            elif existing != [downstream]:
                msg = f"{upstream} is already connected to {existing}; cannot chain it to {downstream}."
                raise GraphConstructionError(msg)
        if nodes[-1].outputs:
            msg = f"The last node {nodes[-1]} must not have downstream connections."
            raise GraphConstructionError(msg)

        self._nodes = nodes
        self._error_metric = resolve_error_metric(error_metric)

    def __repr__(self):
        return f"GraphEngine(nodes={self._nodes!r}, error_metric={self._error_metric!r})"

    # ==========================================
    # Properties
    # ==========================================
    @property
    def nodes(self) -> list[NodeBase]:
        return list(self._nodes)

    @property
    def input_node(self) -> NodeBase:
        return self._nodes[0]

    @property
    def error_metric(self) -> ErrorMetric:
        return self._error_metric

    def find_by_name(self, name: str) -> NodeBase | None:
        return next((n for n in self._nodes if n.name == name), None)

    # ==========================================
    # Forward / backward
    # ==========================================
    def _forward(
        self,
        segment: MiniBatchSequence,
        execution_context: ExecutionContext,
        learning_context: LearningContext | None,
    ) -> ExecutionTrace:
        trace = ExecutionTrace()
        try:
            execution_context.add(GraphOperation(self.input_node, segment.input, trace, batch_sequence=segment))
            operation = execution_context.get_next_operation()
            while operation is not None:
                operation.execute(execution_context, learning_context)
                operation = execution_context.get_next_operation()
            if trace.output is None:
                raise GraphConstructionError("The graph did not produce a terminal output.")
        except BaseException:
            trace.dispose()
            raise
        return trace

    @staticmethod
    def _backpropagate(
        trace: ExecutionTrace,
        signal: GraphData,
        execution_context: ExecutionContext,
        learning_context: LearningContext,
    ) -> None:
        gradient = trace.backpropagate(signal, execution_context, learning_context)
        gradient.release()

    def _train_mini_batch(
        self,
        mini_batch: MiniBatch,
        execution_context: ExecutionContext,
        learning_context: LearningContext,
        bptt_max_depth: int | None,
    ) -> float | None:
        traces: list[ExecutionTrace] = []
        signals: list[GraphData] = []
        scores: list[float] = []
        update_mark = learning_context.pending_update_count
        deferred_mark = learning_context.deferred_backpropagation_count
        try:
            for segment in mini_batch:
                trace = self._forward(segment, execution_context, learning_context)
                traces.append(trace)

                if segment.target is None:
                    signal = zero_error_signal(trace.output)
                else:
                    signal = self._error_metric.calculate_gradient(trace.output, segment.target)
                    if learning_context.calculate_training_error:
                        scores.append(self._error_metric.compute(trace.output.as_numpy(), segment.target.as_numpy()))
                signals.append(signal)

                if mini_batch.is_sequential:
                    learning_context.defer_backpropagation(
                        signal,
                        lambda payload, trace=trace: self._backpropagate(
                            trace,
                            payload,
                            execution_context,
                            learning_context,
                        ),
                    )
                else:
                    self._backpropagate(trace, signal, execution_context, learning_context)

            if mini_batch.is_sequential:
                replayed = learning_context.backpropagate_through_time(None, bptt_max_depth)
                # Retained continuations must run before this batch's traces are released
                while replayed and learning_context.deferred_backpropagation_count:
                    replayed = learning_context.backpropagate_through_time(None, bptt_max_depth)
        except BaseException:
            learning_context.rollback(update_mark, deferred_mark)
            raise
        finally:
            for trace in traces:
                trace.dispose()
            for signal in signals:
                signal.release()

        return float(np.mean(scores)) if scores else None

    # ==========================================
    # Public API
    # ==========================================
    def execute(self, data_source: DataSource, batch_size: int = 128) -> list[ExecutionResult]:
        """
        Run inference over every row of `data_source`.

        Returns:
            list[ExecutionResult]: One result per mini-batch, in bucket order.

        """
        results: list[ExecutionResult] = []
        with ExecutionContext() as execution_context:
            for mini_batch in data_source.iter_mini_batches(batch_size):
                with mini_batch:
                    result = ExecutionResult(rows=mini_batch.rows)
                    for segment in mini_batch:
                        with self._forward(segment, execution_context, None) as trace:
                            result.outputs.append(trace.output.as_numpy())
                        result.targets.append(None if segment.target is None else segment.target.as_numpy())
                    results.append(result)
        return results

    def train(
        self,
        data_source: DataSource,
        learning_context: LearningContext,
        *,
        shuffle: bool = True,
        seed: int | np.random.Generator | None = None,
        bptt_max_depth: int | None = None,
        show_progress: bool = False,
    ) -> float | None:
        """
        Train for one epoch.

        Args:
            data_source (DataSource): Training rows.
            learning_context (LearningContext): Training-session state.
            shuffle (bool): Shuffle buckets and rows.
            seed (int | np.random.Generator | None): Seed or generator for shuffling.
            bptt_max_depth (int | None): Maximum timesteps replayed per sequence.
            show_progress (bool): Display a progress bar over mini-batches.

        Returns:
            float | None: Mean training error over the epoch's mini-batches, or None \
                when the error is not calculated or no targets were available.

        """
        learning_context.start_epoch()
        batch_errors: list[float] = []
        total = data_source.mini_batch_count(learning_context.batch_size)

        with (
            ExecutionContext() as execution_context,
            LazyProgress(
                total=total,
                description=f"Epoch {learning_context.current_epoch}",
                enabled=show_progress,
            ) as progress,
        ):
            batches = data_source.iter_mini_batches(learning_context.batch_size, shuffle=shuffle, seed=seed)
            for index, mini_batch in enumerate(batches, start=1):
                with mini_batch:
                    error = self._train_mini_batch(mini_batch, execution_context, learning_context, bptt_max_depth)
                    learning_context.add_rows(mini_batch.batch_size)
                    learning_context.apply_updates()
                    data_source.on_batch_processed(mini_batch)

                if error is not None:
                    batch_errors.append(error)
                logger.debug("Epoch %d batch %d/%d: error=%s", learning_context.current_epoch, index, total, error)
                progress.tick(status="" if error is None else f"error={error:.4f}")

        learning_context.end_epoch()
        if not batch_errors:
            return None
        return float(np.mean(batch_errors))

    def fit(self, data_source: DataSource, config: TrainingConfig) -> list[float | None]:
        """
        Train for `config.epochs` epochs.

        Returns:
            list[float | None]: Training error of each epoch.

        """
        learning_context = config.create_learning_context()
        rng = np.random.default_rng(config.seed)
        history: list[float | None] = []
        for _ in range(config.epochs):
            error = self.train(
                data_source,
                learning_context,
                shuffle=config.shuffle,
                seed=rng,
                bptt_max_depth=config.bptt_max_depth,
                show_progress=config.show_progress,
            )
            history.append(error)
            logger.info(
                "Epoch %d: training error=%s (%.3fs, learning rate=%s)",
                learning_context.current_epoch,
                error,
                learning_context.epoch_seconds,
                learning_context.learning_rate,
            )
        return history

    def test(
        self,
        data_source: DataSource,
        error_metric: str | ErrorMetric | None = None,
        batch_size: int = 128,
    ) -> float:
        """
        Score the graph on `data_source`.

        Returns:
            float: Row-weighted mean of the metric over every timestep with a target.

        Raises:
            PreconditionError: If the source has no targets.

        """
        metric = self._error_metric if error_metric is None else resolve_error_metric(error_metric)
        total, weight = 0.0, 0
        for result in self.execute(data_source, batch_size=batch_size):
            for output, target in zip(result.outputs, result.targets, strict=True):
                if target is None:
                    continue
                total += metric.compute(output, target) * len(result.rows)
                weight += len(result.rows)
        if weight == 0:
            raise PreconditionError("Cannot score a data source without targets.")
        return total / weight
