from wiregraph.core.data.data_source import DataSource
from wiregraph.core.data.mini_batch import MiniBatch, MiniBatchSequence, MiniBatchType
from wiregraph.core.data.sequential_data_source import SequentialDataSource
from wiregraph.core.data.vector_data_source import VectorDataSource

__all__ = [
    "DataSource",
    "MiniBatch",
    "MiniBatchSequence",
    "MiniBatchType",
    "SequentialDataSource",
    "VectorDataSource",
]
