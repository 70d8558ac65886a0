"""
Exception hierarchy for NeuroLock.

Every failure the library can report derives from NeuroLockError. Where a
built-in exception describes the same condition, the NeuroLock error also
subclasses it so callers can catch either.
"""


class NeuroLockError(Exception):
    """Base class for all NeuroLock errors."""


class InvalidInput(NeuroLockError, ValueError):
    """Malformed arguments (empty trial set, bad owner id, bad threshold)."""


class DimensionMismatch(InvalidInput):
    """Feature vectors of different or unexpected lengths."""


class DegenerateVector(NeuroLockError, ValueError):
    """Zero-norm vector where a direction is required."""


class EntropyUnavailable(NeuroLockError):
    """The OS random source could not deliver the requested bytes."""


class CryptoFailure(NeuroLockError):
    """Digest computation could not complete."""


class AllocationFailure(NeuroLockError, MemoryError):
    """A working buffer could not be allocated."""


class IOFailure(NeuroLockError, OSError):
    """Template store read or write failure."""


class NotFound(NeuroLockError, LookupError):
    """No template exists for the requested owner."""


class AlreadyExists(NeuroLockError):
    """A template already exists for the owner being enrolled."""


class CorruptRecord(NeuroLockError):
    """A persisted template is structurally invalid."""


class CaptureError(NeuroLockError):
    """The capture session is not in a state that allows the operation."""
