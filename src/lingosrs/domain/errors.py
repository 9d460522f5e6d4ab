"""
Error taxonomy for the scheduling core.

Every failure that crosses the core boundary is one of these types.
The HTTP and CLI layers translate them; the core never recovers locally
beyond defaulting records that do not exist yet.
"""


class SchedulingError(Exception):
    """Base class for all scheduling failures."""


class Unauthorized(SchedulingError):
    """Missing or invalid learner identity. Raised before any store access."""


class InvalidInput(SchedulingError):
    """A request value is outside its contract (grade, score, duration)."""


class StorageUnavailable(SchedulingError):
    """A read or write against the durable store failed. Nothing was persisted."""


class RecordCorrupt(StorageUnavailable):
    """A stored value could not be decoded or migrated to the current schema."""

