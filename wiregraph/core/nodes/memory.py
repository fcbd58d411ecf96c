from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from wiregraph.core.data.mini_batch import MiniBatchType
from wiregraph.core.graph.graph_data import GraphData
from wiregraph.core.graph.node import Backpropagation, NodeBase
from wiregraph.linalg.matrix import Matrix

if TYPE_CHECKING:
    from wiregraph.core.graph.context import Context


class MemoryFeederBackpropagation(Backpropagation):
    def __init__(self, source: MemoryFeeder, input_columns: int):
        super().__init__(source)
        self._input_columns = input_columns

    def _backward(self, error_signal: GraphData, context: Context) -> GraphData:
        # Gradient into the memory columns stops here
        return GraphData.compose(Matrix(e.data[:, : self._input_columns].copy()) for e in error_signal.decompose())


class MemoryFeeder(NodeBase):
    """
    Appends the contents of a named memory slot to every input row.

    The slot is read from the ExecutionContext memory table. At the start of
    a sequence, or while the slot is empty, zeros of width `memory_size` are
    appended instead.

    Args:
        memory_id (str): Memory slot to read.
        memory_size (int): Number of memory columns.
        name (str | None): Optional node name.

    """

    def __init__(self, memory_id: str, memory_size: int, name: str | None = None):
        super().__init__(name)
        self._memory_id = memory_id
        self._memory_size = int(memory_size)

    @property
    def memory_id(self) -> str:
        return self._memory_id

    @property
    def memory_size(self) -> int:
        return self._memory_size

    def _read_memory(self, context: Context, rows: int) -> np.ndarray:
        sequence = context.batch_sequence
        memory = context.execution_context.get_memory(self._memory_id)
        if (
            memory is None
            or (sequence is not None and sequence.tag == MiniBatchType.SEQUENCE_START)
            or memory.shape != (rows, self._memory_size)
        ):
            return np.zeros((rows, self._memory_size), dtype=np.float32)
        return memory.data

    def execute_forward(self, context: Context) -> None:
        inputs = context.data.decompose()
        memory = self._read_memory(context, context.data.row_count)
        output = GraphData.compose(Matrix(np.hstack([x.data, memory])) for x in inputs)
        input_columns = context.data.column_count
        self._add_next_graph_action(context, output, lambda: MemoryFeederBackpropagation(self, input_columns))


class WriteToMemory(NodeBase):
    """
    Stores its input in a named memory slot and forwards it unchanged.

    The ExecutionContext retains the stored matrix, so it stays valid for the
    next timestep after this pass's outputs have been released.
    """

    def __init__(self, memory_id: str, name: str | None = None):
        super().__init__(name)
        self._memory_id = memory_id

    @property
    def memory_id(self) -> str:
        return self._memory_id

    def execute_forward(self, context: Context) -> None:
        context.execution_context.set_memory(self._memory_id, context.data.decompose()[-1])
        self._add_next_graph_action(context, context.data.add_ref(), None)
