from __future__ import annotations

import os
import threading

from wiregraph.utils.error_handling import ErrorMode, handle_benign_error
from wiregraph.utils.exceptions import ReferenceCountError

# Reference-count violations are programming errors. They are only checked when
# enabled (e.g. in test runs), mirroring debug-build invariant checks.
_REFCOUNT_CHECKS: ErrorMode = (
    ErrorMode.RAISE if os.environ.get("WIREGRAPH_DEBUG_REFCOUNTS", "0") == "1" else ErrorMode.IGNORE
)


def set_refcount_checks(mode: ErrorMode | str) -> None:
    """
    Set how reference-count violations are reported.

    Args:
        mode (ErrorMode | str): `raise` to fail on a violation, `warn` to emit a \
            UserWarning, or `ignore` (the default unless the environment variable \
            `WIREGRAPH_DEBUG_REFCOUNTS=1` is set).

    """
    global _REFCOUNT_CHECKS  # noqa: PLW0603
    _REFCOUNT_CHECKS = ErrorMode(mode)


def get_refcount_checks() -> ErrorMode:
    return _REFCOUNT_CHECKS


class RefCounted:
    """
    Base class for tensors with an explicit retain/release lifetime.

    A new handle starts with a reference count of one, owned by whoever
    created it. `add_ref()` retains a further reference and `release()` drops
    one. When the count reaches zero `_free()` is called exactly once and the
    handle becomes invalid.
    """

    def __init__(self):
        self._ref_count = 1
        self._ref_lock = threading.Lock()

    @property
    def ref_count(self) -> int:
        return self._ref_count

    @property
    def is_valid(self) -> bool:
        """Whether the underlying storage is still alive."""
        return self._ref_count > 0

    def add_ref(self) -> int:
        """Retain one more reference and return the new count."""
        with self._ref_lock:
            if self._ref_count <= 0:
                handle_benign_error(
                    ReferenceCountError,
                    f"Cannot retain {self!r}: its storage has already been freed.",
                    _REFCOUNT_CHECKS,
                )
                return self._ref_count
            self._ref_count += 1
            return self._ref_count

    def release(self) -> int:
        """Drop one reference, freeing the storage once none remain."""
        with self._ref_lock:
            if self._ref_count <= 0:
                handle_benign_error(
                    ReferenceCountError,
                    f"Release without a matching retain on {self!r}.",
                    _REFCOUNT_CHECKS,
                )
                return 0
            self._ref_count -= 1
            if self._ref_count == 0:
                self._free()
            return self._ref_count

    def dispose(self) -> None:
        """Drop the caller's reference. Disposing a freed handle is a no-op."""
        if self._ref_count > 0:
            self.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    def _free(self) -> None:
        """Release the underlying storage. Called once, under the reference lock."""
