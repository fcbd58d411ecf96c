from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from wiregraph.utils.exceptions import NotSupportedError

if TYPE_CHECKING:
    from wiregraph.core.data.mini_batch import MiniBatch


class DataSource(ABC):
    """
    Adapter turning a row-oriented dataset into MiniBatch objects.

    Rows are grouped into buckets that can be batched together (for
    sequential data, rows of the same depth). Subclasses are immutable once
    constructed.
    """

    # =====================================================
    # Properties
    # =====================================================
    @property
    @abstractmethod
    def is_sequential(self) -> bool:
        """Whether rows are sequences of feature vectors."""

    @property
    @abstractmethod
    def input_size(self) -> int:
        """Number of input features per row (per timestep for sequences)."""

    @property
    @abstractmethod
    def output_size(self) -> int:
        """Number of target columns, or -1 when the source has no targets."""

    @property
    @abstractmethod
    def row_count(self) -> int:
        """Number of rows in the source."""

    def __len__(self) -> int:
        return self.row_count

    # =====================================================
    # Abstract Methods
    # =====================================================
    @abstractmethod
    def get_buckets(self) -> list[list[int]]:
        """Partition all row indices into groups that can share a mini-batch."""

    @abstractmethod
    def get(self, rows: Sequence[int]) -> MiniBatch:
        """Build a MiniBatch from the given rows."""

    # =====================================================
    # Optional hooks
    # =====================================================
    def clone_with(self, dataset: Any) -> DataSource:
        """
        Create a data source of the same kind over another dataset.

        Raises:
            NotSupportedError: Unless a subclass implements cloning.

        """
        msg = f"{type(self).__name__} cannot be cloned onto another dataset."
        raise NotSupportedError(msg)

    def on_batch_processed(self, mini_batch: MiniBatch) -> None:  # noqa: B027
        """Called by the engine after each training mini-batch has been processed."""

    # =====================================================
    # Batching
    # =====================================================
    def iter_mini_batches(
        self,
        batch_size: int,
        *,
        shuffle: bool = False,
        seed: int | np.random.Generator | None = None,
    ) -> Iterator[MiniBatch]:
        """
        Yield mini-batches of at most `batch_size` rows.

        Each mini-batch is drawn from a single bucket. With `shuffle`, both the
        bucket order and the rows within each bucket are permuted.

        Args:
            batch_size (int): Maximum number of rows per mini-batch.
            shuffle (bool): Whether to shuffle buckets and rows.
            seed (int | np.random.Generator | None): Seed or generator for shuffling.

        """
        if batch_size <= 0:
            msg = f"`batch_size` must be positive. Got: {batch_size}"
            raise ValueError(msg)
        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)

        buckets = [np.asarray(b, dtype=int) for b in self.get_buckets()]
        if shuffle:
            buckets = [rng.permutation(b) for b in buckets]
            buckets = [buckets[i] for i in rng.permutation(len(buckets))]

        for bucket in buckets:
            for start in range(0, len(bucket), batch_size):
                yield self.get(bucket[start : start + batch_size].tolist())

    def mini_batch_count(self, batch_size: int) -> int:
        """Number of mini-batches `iter_mini_batches(batch_size)` yields."""
        return sum(-(-len(b) // batch_size) for b in self.get_buckets())
