"""Exceptions raised by the flight reservation service."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import DBAPIError

# SQLSTATE codes for serialization failure and deadlock.
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})
# SQL Server reports deadlock victims with native error 1205.
_CONFLICT_NATIVE_CODES = frozenset({1205})
_CONFLICT_MESSAGES = ("database is locked", "database is busy", "could not serialize", "deadlock")


class FlightServiceError(RuntimeError):
    """Base class for errors raised by this package."""


class AuthFailure(FlightServiceError):
    """Raised when a handle/secret pair does not match a stored customer."""


class StorageError(FlightServiceError):
    """Raised when the storage engine fails a statement."""


class StorageReadError(StorageError):
    """Raised when a read-only query fails."""


class StorageWriteError(StorageError):
    """Raised when a reservation transaction fails."""


class SerializationConflict(StorageError):
    """Raised when the engine aborts a transaction because of a concurrent one.

    The transaction has already been rolled back. Callers should retry the
    whole operation from the start.
    """


class TransactionStateError(FlightServiceError):
    """Raised on an illegal transaction state transition."""


def _sqlstate(orig: object) -> Optional[str]:
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def is_serialization_failure(exc: BaseException) -> bool:
    """Return True if ``exc`` means the engine aborted us in favour of another transaction."""

    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    if _sqlstate(orig) in _CONFLICT_SQLSTATES:
        return True
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in _CONFLICT_NATIVE_CODES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _CONFLICT_MESSAGES)


def translate_storage_error(exc: DBAPIError, *, write: bool) -> StorageError:
    """Map an engine exception onto this package's error taxonomy."""

    if is_serialization_failure(exc):
        return SerializationConflict(str(exc.orig))
    if write:
        return StorageWriteError(str(exc.orig))
    return StorageReadError(str(exc.orig))


@contextmanager
def storage_errors(*, write: bool) -> Iterator[None]:
    """Re-raise engine exceptions from the enclosed block as :class:`StorageError`."""

    try:
        yield
    except DBAPIError as exc:
        raise translate_storage_error(exc, write=write) from exc
