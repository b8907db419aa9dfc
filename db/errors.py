"""
Typed storage failures.

The store never degrades to a partial or in-memory mode: any failure of the
underlying database surfaces to the caller as one of these exceptions.
"""


class StorageError(Exception):
    """Base class for every failure raised by the keyed store."""


class StorageUnavailableError(StorageError):
    """The database could not be reached or the connection was lost."""


class QuotaExceededError(StorageError):
    """The database refused a write because it ran out of space."""


class KeyConflictError(StorageError):
    """A write collided with an existing key or violated a uniqueness rule."""


class MalformedKeyError(StorageError, ValueError):
    """A key (or key field value) cannot be encoded or decoded for its table."""


class UnknownTableError(StorageError, KeyError):
    """The table name is not one of the GTFS tables the store manages."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class UnknownFieldError(StorageError, ValueError):
    """A query filtered on a column the table does not have."""


class CorruptRecordError(StorageError):
    """A stored row no longer converts to its table's record type."""
