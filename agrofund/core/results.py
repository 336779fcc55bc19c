"""
``{data, error}`` result pairs returned by every data-access operation.

Service methods never raise to their callers.  Store exceptions are caught at
the service boundary by :func:`data_access` and translated into a
:class:`DataError` whose ``kind`` is pattern-matched from the database error
code.  The HTTP layer calls :meth:`DataResult.unwrap`, which converts the
error into the matching :class:`~agrofund.core.exceptions.AppException`.
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError

from agrofund.core.exceptions import (
    AppException,
    AuthenticationRequired,
    BusinessRuleViolation,
    ConflictException,
    NotFoundException,
    PermissionDenied,
    UnexpectedError,
)
from agrofund.core.resilience import CircuitBreakerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    REFERENCE_MISSING = "reference_missing"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"
    INVALID = "invalid"
    UNEXPECTED = "unexpected"


# Fixed display strings for store-originated errors.
DISPLAY_MESSAGES = {
    DataErrorKind.NOT_FOUND: "The requested record was not found.",
    DataErrorKind.CONFLICT: "This record conflicts with an existing one.",
    DataErrorKind.REFERENCE_MISSING: "A referenced record does not exist.",
    DataErrorKind.FORBIDDEN: "You do not have permission to perform this action.",
    DataErrorKind.UNAUTHENTICATED: "Authentication required.",
    DataErrorKind.INVALID: "The request violates a business rule.",
    DataErrorKind.UNEXPECTED: "An unexpected error occurred. Please try again.",
}

# PostgreSQL SQLSTATE for foreign-key violations; the other class-23 codes
# (unique, check, not-null) are reported as conflicts.
_FOREIGN_KEY_VIOLATION = "23503"


class DataError(Exception):
    """A translated, display-ready data-access failure."""

    def __init__(self, kind: DataErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or DISPLAY_MESSAGES[kind]
        super().__init__(self.message)

    @classmethod
    def not_found(cls, message: Optional[str] = None) -> "DataError":
        return cls(DataErrorKind.NOT_FOUND, message)

    @classmethod
    def forbidden(cls, message: Optional[str] = None) -> "DataError":
        return cls(DataErrorKind.FORBIDDEN, message)

    @classmethod
    def unauthenticated(cls, message: Optional[str] = None) -> "DataError":
        return cls(DataErrorKind.UNAUTHENTICATED, message)

    @classmethod
    def invalid(cls, message: str) -> "DataError":
        return cls(DataErrorKind.INVALID, message)

    def to_exception(self) -> AppException:
        if self.kind == DataErrorKind.NOT_FOUND:
            return NotFoundException(self.message)
        if self.kind == DataErrorKind.FORBIDDEN:
            return PermissionDenied(self.message)
        if self.kind == DataErrorKind.UNAUTHENTICATED:
            return AuthenticationRequired(self.message)
        if self.kind == DataErrorKind.CONFLICT:
            return ConflictException(self.message)
        if self.kind in (DataErrorKind.REFERENCE_MISSING, DataErrorKind.INVALID):
            return BusinessRuleViolation(self.message)
        return UnexpectedError(self.message)

    def __repr__(self) -> str:
        return f"<DataError kind={self.kind.value} message={self.message!r}>"


@dataclass
class DataResult(Generic[T]):
    """Outcome of a data-access operation: exactly one of ``data``/``error`` is meaningful."""

    data: Optional[T] = None
    error: Optional[DataError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Optional[T] = None) -> "DataResult[T]":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: DataError) -> "DataResult[T]":
        return cls(data=None, error=error)

    def unwrap(self) -> T:
        """Return ``data`` or raise the HTTP-facing exception for ``error``."""
        if self.error is not None:
            raise self.error.to_exception()
        return self.data  # type: ignore[return-value]


def _sqlstate(exc: IntegrityError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def translate_error(exc: BaseException) -> DataError:
    """
    Map a store exception onto the error taxonomy.

    PostgreSQL errors are matched on SQLSTATE; SQLite (tests) only exposes
    the message text, so that is matched as a fallback.
    """
    if isinstance(exc, DataError):
        return exc
    if isinstance(exc, NoResultFound):
        return DataError(DataErrorKind.NOT_FOUND)
    if isinstance(exc, IntegrityError):
        code = _sqlstate(exc)
        text = str(exc.orig if exc.orig is not None else exc).lower()
        if code == _FOREIGN_KEY_VIOLATION or "foreign key" in text:
            return DataError(DataErrorKind.REFERENCE_MISSING)
        # Unique, check and not-null violations all surface as conflicts.
        return DataError(DataErrorKind.CONFLICT)
    return DataError(DataErrorKind.UNEXPECTED)


def data_access(operation: str) -> Callable:
    """
    Decorator: run an async service method and wrap its outcome in a DataResult.

    - ``DataError`` raised inside the method becomes the result's error as-is.
    - ``SQLAlchemyError`` / ``CircuitBreakerError`` / connection errors are
      logged and translated with :func:`translate_error`.
    - A method may also return a ready-made ``DataResult``; it is passed through.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> DataResult:
            try:
                value = await func(*args, **kwargs)
            except DataError as exc:
                logger.info("%s rejected: %s", operation, exc.message)
                return DataResult.failure(exc)
            except IntegrityError as exc:
                error = translate_error(exc)
                logger.warning("%s failed (%s): %s", operation, error.kind.value, exc.orig)
                return DataResult.failure(error)
            except NoResultFound:
                return DataResult.failure(DataError(DataErrorKind.NOT_FOUND))
            except (SQLAlchemyError, CircuitBreakerError, ConnectionError, TimeoutError, OSError):
                logger.exception("%s failed", operation)
                return DataResult.failure(DataError(DataErrorKind.UNEXPECTED))
            if isinstance(value, DataResult):
                return value
            return DataResult.success(value)

        return wrapper

    return decorator
