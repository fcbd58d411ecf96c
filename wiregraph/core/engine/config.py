from __future__ import annotations

from dataclasses import dataclass, field

from wiregraph.core.engine.learning_context import LearningContext, TruncationPolicy


@dataclass(frozen=True)
class TrainingConfig:
    """
    Settings for a training run.

    Attributes:
        learning_rate (float): Initial learning rate.
        batch_size (int): Maximum number of rows per mini-batch.
        epochs (int): Number of epochs run by `GraphEngine.fit()`.
        defer_updates (bool): Queue parameter updates until each batch's traversal completes.
        calculate_training_error (bool): Whether `train()` reports the mean training error.
        shuffle (bool): Shuffle buckets and rows every epoch.
        seed (int | None): Seed for shuffling.
        bptt_max_depth (int | None): Maximum number of timesteps replayed per sequence.
        truncation_policy (TruncationPolicy | str): Fate of continuations beyond `bptt_max_depth`.
        show_progress (bool): Display a progress bar over mini-batches.
        learning_rate_schedule (dict[int, float]): Epoch number to learning rate.

    """

    learning_rate: float = 0.1
    batch_size: int = 128
    epochs: int = 1
    defer_updates: bool = True
    calculate_training_error: bool = True
    shuffle: bool = True
    seed: int | None = None
    bptt_max_depth: int | None = None
    truncation_policy: TruncationPolicy | str = TruncationPolicy.DISCARD
    show_progress: bool = False
    learning_rate_schedule: dict[int, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.learning_rate <= 0:
            msg = f"`learning_rate` must be positive. Got: {self.learning_rate}"
            raise ValueError(msg)
        if self.batch_size <= 0:
            msg = f"`batch_size` must be positive. Got: {self.batch_size}"
            raise ValueError(msg)
        if self.epochs < 0:
            msg = f"`epochs` cannot be negative. Got: {self.epochs}"
            raise ValueError(msg)
        if self.bptt_max_depth is not None and self.bptt_max_depth <= 0:
            msg = f"`bptt_max_depth` must be positive or None. Got: {self.bptt_max_depth}"
            raise ValueError(msg)
        object.__setattr__(self, "truncation_policy", TruncationPolicy(self.truncation_policy))

    def create_learning_context(self) -> LearningContext:
        learning_context = LearningContext(
            self.learning_rate,
            self.batch_size,
            calculate_training_error=self.calculate_training_error,
            defer_updates=self.defer_updates,
            truncation_policy=self.truncation_policy,
        )
        for epoch, rate in self.learning_rate_schedule.items():
            learning_context.schedule_learning_rate(epoch, rate)
        return learning_context
