from wiregraph.utils.error_handling import ErrorMode
from wiregraph.utils.exceptions import (
    ActivationError,
    BackpropagationError,
    GraphConstructionError,
    NotSupportedError,
    PreconditionError,
    ReferenceCountError,
    WireGraphError,
)

__all__ = [
    "ActivationError",
    "BackpropagationError",
    "ErrorMode",
    "GraphConstructionError",
    "NotSupportedError",
    "PreconditionError",
    "ReferenceCountError",
    "WireGraphError",
]
