class WireGraphError(Exception):
    """Base class for all errors raised by wiregraph."""


class PreconditionError(WireGraphError, ValueError):
    """A caller broke a documented precondition (a programming error, never retried)."""


class BackpropagationError(PreconditionError):
    """A backward step was requested without an error signal to propagate."""


class NotSupportedError(WireGraphError, NotImplementedError):
    """The requested composition path is not implemented for this object."""


class ReferenceCountError(WireGraphError, RuntimeError):
    """A tensor was released more times than it was retained, or used after being freed."""


class ActivationError(WireGraphError, ValueError):
    """An activation function could not be resolved."""


class GraphConstructionError(WireGraphError, ValueError):
    """The execution graph was wired incorrectly."""
