import warnings
from enum import Enum


class ErrorMode(str, Enum):
    RAISE = "raise"
    WARN = "warn"
    IGNORE = "ignore"


def handle_benign_error(exc_class: type[Exception], message: str, error_mode: ErrorMode | str) -> bool:
    """
    Raise, warn, or ignore a non-fatal error based on the error mode.

    Returns:
        bool: False if the error was suppressed (warned or ignored).

    """
    error_mode = ErrorMode(error_mode)
    if error_mode == ErrorMode.RAISE:
        raise exc_class(message)
    if error_mode == ErrorMode.WARN:
        warnings.warn(message, stacklevel=3, category=UserWarning)
    return False
