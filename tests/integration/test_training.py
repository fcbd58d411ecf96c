import logging

import numpy as np
import pytest

from wiregraph import (
    FeedForward,
    FlowThrough,
    GraphEngine,
    Tanh,
    TrainingConfig,
    set_logging_level,
)


@pytest.mark.integration
def test_linear_regression_converges(linear_source):
    layer = FeedForward(2, 1, seed=0)
    engine = GraphEngine([FlowThrough("input"), layer])

    history = engine.fit(linear_source, TrainingConfig(learning_rate=0.1, batch_size=16, epochs=30, seed=0))

    assert len(history) == 30
    assert history[-1] < history[0] * 0.1
    assert engine.test(linear_source) < 1e-3
    np.testing.assert_allclose(layer.weight.data[:, 0], [2.0, -1.0], atol=0.05)
    np.testing.assert_allclose(layer.bias.data, [0.5], atol=0.05)


@pytest.mark.integration
def test_tanh_mlp_error_decreases(linear_source):
    engine = GraphEngine(
        [
            FlowThrough(),
            FeedForward(2, 8, seed=1),
            Tanh(),
            FeedForward(8, 1, seed=2),
        ],
    )
    before = engine.test(linear_source)
    engine.fit(linear_source, TrainingConfig(learning_rate=0.05, batch_size=16, epochs=20, seed=1))
    assert engine.test(linear_source) < before


@pytest.mark.integration
def test_sequence_regression_converges(mixed_depth_source):
    engine = GraphEngine([FlowThrough(), FeedForward(2, 1, seed=0)])
    config = TrainingConfig(learning_rate=0.2, batch_size=4, epochs=200, seed=2)

    history = engine.fit(mixed_depth_source, config)
    assert history[-1] < history[0] * 0.1


@pytest.mark.integration
def test_learning_rate_schedule_is_logged(linear_source, caplog):
    engine = GraphEngine([FlowThrough(), FeedForward(2, 1, seed=0)])
    config = TrainingConfig(learning_rate=0.1, batch_size=64, epochs=3, learning_rate_schedule={2: 0.01})

    set_logging_level("INFO")
    try:
        with caplog.at_level(logging.INFO, logger="wiregraph"):
            engine.fit(linear_source, config)
    finally:
        set_logging_level("WARNING")

    assert "Learning rate changed to 0.01 at epoch 2" in caplog.text
    assert caplog.text.count("training error=") == 3


@pytest.mark.integration
def test_fit_with_progress_bar(linear_source):
    engine = GraphEngine([FlowThrough(), FeedForward(2, 1, seed=0)])
    history = engine.fit(linear_source, TrainingConfig(batch_size=64, epochs=2, show_progress=True))
    assert all(h is not None for h in history)
