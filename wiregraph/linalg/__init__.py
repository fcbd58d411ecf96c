from wiregraph.linalg.activations import ACTIVATIONS, resolve_activation
from wiregraph.linalg.matrix import Matrix
from wiregraph.linalg.ref_counted import RefCounted, get_refcount_checks, set_refcount_checks
from wiregraph.linalg.vector import Vector

__all__ = [
    "ACTIVATIONS",
    "Matrix",
    "RefCounted",
    "Vector",
    "get_refcount_checks",
    "resolve_activation",
    "set_refcount_checks",
]
