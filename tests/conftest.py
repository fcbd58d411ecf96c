import numpy as np
import pytest

from tests.shared.data_utils import generate_regression_data, generate_sequences
from wiregraph.core.data import SequentialDataSource, VectorDataSource
from wiregraph.linalg import get_refcount_checks, set_refcount_checks


# ==========================================================
# Reference counting
# ==========================================================
@pytest.fixture(autouse=True)
def strict_refcounts():
    """Fail loudly on any over-release or use-after-free during a test."""
    previous = get_refcount_checks()
    set_refcount_checks("raise")
    yield
    set_refcount_checks(previous)


# ==========================================================
# Data sources
# ==========================================================
@pytest.fixture
def linear_source() -> VectorDataSource:
    """200 rows of y = 2*x0 - x1 + 0.5."""
    x, y = generate_regression_data(n_samples=200, weights=np.array([[2.0], [-1.0]]), bias=0.5)
    return VectorDataSource(x, y)


@pytest.fixture
def mixed_depth_source() -> SequentialDataSource:
    """Sequences of depth 1, 2 and 3 interleaved, with targets."""
    sequences, targets = generate_sequences(depths=[3, 1, 2, 3, 2, 1, 3, 3], input_size=2, output_size=1)
    return SequentialDataSource(sequences, targets)
