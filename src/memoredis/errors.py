"""Exception hierarchy for memoredis.

Validation errors are raised before any Redis access. Store and
serialization faults are handled inside the memoizer and never reach the
caller; lock faults and errors raised by the wrapped operation do.
"""

from __future__ import annotations


class MemoizerError(Exception):
    """Base class for all memoredis errors."""


class InvalidKeyError(MemoizerError, ValueError):
    """A prefix, logical key or field name contains a reserved delimiter."""

    def __init__(self, what: str, value: str, reason: str) -> None:
        self.what = what
        self.value = value
        super().__init__(f"Invalid {what} {value!r}: {reason}")


class ArgumentError(MemoizerError, TypeError):
    """An argument value cannot be rendered into a cache key."""


class SerializationError(MemoizerError):
    """A cached value could not be encoded or decoded."""


class LockError(MemoizerError):
    """The distributed lock could not be acquired."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Failed to acquire lock {name!r}")


class LockTimeoutError(LockError, TimeoutError):
    """The lock was held by someone else for longer than the acquire timeout."""

    def __init__(self, name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(name, f"Timed out after {timeout}s waiting for lock {name!r}")
