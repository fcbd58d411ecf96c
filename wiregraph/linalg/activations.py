"""
Elementwise activation functions and their derivatives.

Every derivative is evaluated at the *pre-activation* value, i.e. the same
input the forward function received, rather than at the forward output.
All functions are pure and operate on float32 numpy arrays.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from wiregraph.utils.exceptions import ActivationError
from wiregraph.utils.registries import CaseInsensitiveRegistry

ArrayFn = Callable[[np.ndarray], np.ndarray]

LEAKY_RELU_SLOPE = np.float32(0.01)

_FLOAT_MAX = np.finfo(np.float32).max


def _constrain(x: np.ndarray) -> np.ndarray:
    """Replace NaN/inf with finite float32 values."""
    return np.nan_to_num(x, nan=0.0, posinf=_FLOAT_MAX, neginf=-_FLOAT_MAX).astype(np.float32, copy=False)


def identity(x: np.ndarray) -> np.ndarray:
    return np.array(x, dtype=np.float32, copy=True)


def identity_derivative(x: np.ndarray) -> np.ndarray:
    return np.ones_like(x, dtype=np.float32)


def relu(x: np.ndarray) -> np.ndarray:
    return _constrain(np.where(x > 0, x, 0))


def relu_derivative(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, 1.0, 0.0).astype(np.float32)


def leaky_relu(x: np.ndarray) -> np.ndarray:
    return _constrain(np.where(x > 0, x, LEAKY_RELU_SLOPE * x))


def leaky_relu_derivative(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, np.float32(1.0), LEAKY_RELU_SLOPE).astype(np.float32)


def sigmoid(x: np.ndarray) -> np.ndarray:
    # Clip to keep exp() finite in float32
    z = np.clip(np.asarray(x, dtype=np.float32), -88.0, 88.0)
    return _constrain(1.0 / (1.0 + np.exp(-z)))


def sigmoid_derivative(x: np.ndarray) -> np.ndarray:
    s = sigmoid(x)
    return _constrain(s * (1.0 - s))


def tanh(x: np.ndarray) -> np.ndarray:
    return np.tanh(np.asarray(x, dtype=np.float32))


def tanh_derivative(x: np.ndarray) -> np.ndarray:
    t = tanh(x)
    return (1.0 - t * t).astype(np.float32)


ACTIVATIONS: CaseInsensitiveRegistry = CaseInsensitiveRegistry(
    {
        "identity": (identity, identity_derivative),
        "relu": (relu, relu_derivative),
        "leaky_relu": (leaky_relu, leaky_relu_derivative),
        "sigmoid": (sigmoid, sigmoid_derivative),
        "tanh": (tanh, tanh_derivative),
    },
)


def resolve_activation(name: str) -> tuple[ArrayFn, ArrayFn]:
    """
    Resolve an activation name into its `(forward, derivative)` pair.

    Args:
        name (str): Activation name (case-insensitive). One of `identity`, \
            `relu`, `leaky_relu`, `sigmoid` or `tanh`.

    Returns:
        tuple[Callable, Callable]: The forward function and its derivative.

    Raises:
        ActivationError: If the name is not registered.

    """
    pair = ACTIVATIONS.get(name)
    if pair is None:
        msg = f"Unknown activation name (`{name}`). Available activations: {list(ACTIVATIONS.keys())}"
        raise ActivationError(msg)
    return pair
