"""Translation of storage-engine failures into a uniform error taxonomy.

Classification uses structured codes only:
- PostgreSQL drivers expose SQLSTATE as ``sqlstate`` / ``pgcode``
- SQLite exposes extended result codes as ``sqlite_errorcode``
- SQLAlchemy signals missing rows and bind failures by exception class
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, NoReturn, ParamSpec, TypeVar

from fastapi import status
from sqlalchemy.exc import (
    DataError,
    IntegrityError,
    NoResultFound,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.chatbot.errors import ConflictError, DataValidationError, StorageError
from backend.chatbot.utils.metrics import inc_db_error

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# SQLSTATE codes (PostgreSQL)
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_NOT_NULL_VIOLATION = "23502"
PG_CHECK_VIOLATION = "23514"
PG_DATA_EXCEPTION_CLASS = "22"

# Extended result codes (SQLite)
SQLITE_CONSTRAINT_FOREIGNKEY = 787
SQLITE_CONSTRAINT_NOTNULL = 1299
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067
SQLITE_CONSTRAINT_CHECK = 275


class DatabaseErrorKind(str, Enum):
    """Uniform classification of storage failures."""

    conflict = "conflict"
    not_found = "not_found"
    foreign_key = "foreign_key"
    invalid_data = "invalid_data"
    unexpected = "unexpected"


_MESSAGES: dict[DatabaseErrorKind, str] = {
    DatabaseErrorKind.conflict: "Unique constraint violation",
    DatabaseErrorKind.not_found: "Record not found",
    DatabaseErrorKind.foreign_key: "Foreign key constraint violation",
    DatabaseErrorKind.invalid_data: "Invalid data provided",
    DatabaseErrorKind.unexpected: "Unexpected database error",
}

_STATUS_CODES: dict[DatabaseErrorKind, int] = {
    DatabaseErrorKind.conflict: status.HTTP_409_CONFLICT,
    DatabaseErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    DatabaseErrorKind.foreign_key: status.HTTP_409_CONFLICT,
    DatabaseErrorKind.invalid_data: 422,
    DatabaseErrorKind.unexpected: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class DatabaseError(StorageError):
    """Uniform storage error carrying the failed operation and original cause."""

    def __init__(
        self,
        message: str,
        operation: str,
        cause: BaseException | None = None,
        kind: DatabaseErrorKind = DatabaseErrorKind.unexpected,
    ):
        super().__init__(message, code=kind.value)
        self.operation = operation
        self.cause = cause
        self.kind = kind
        self.status_code = _STATUS_CODES[kind]


class DatabaseConflictError(DatabaseError, ConflictError):
    """Unique constraint violation; callers may catch it as ConflictError."""


class DatabaseValidationError(DatabaseError, DataValidationError):
    """Data rejected by the schema; callers may catch it as DataValidationError."""


_ERROR_CLASSES: dict[DatabaseErrorKind, type[DatabaseError]] = {
    DatabaseErrorKind.conflict: DatabaseConflictError,
    DatabaseErrorKind.invalid_data: DatabaseValidationError,
}


def _driver_errors(error: BaseException) -> list[Any]:
    """Return the DBAPI-level exceptions wrapped by SQLAlchemy, outermost first.

    Async adapters wrap the driver's own exception one more level down.
    """
    found: list[Any] = []
    current: Any = getattr(error, "orig", None)
    while current is not None and current not in found and len(found) < 3:
        found.append(current)
        current = getattr(current, "orig", None) or getattr(current, "__cause__", None)
    return found


def _code(errors: list[Any], *attrs: str) -> Any:
    for err in errors:
        for attr in attrs:
            code = getattr(err, attr, None)
            if code is not None:
                return code
    return None


def classify_database_error(error: BaseException) -> DatabaseErrorKind:
    """Classify a storage failure into a DatabaseErrorKind."""
    if isinstance(error, (NoResultFound, StaleDataError)):
        return DatabaseErrorKind.not_found

    driver_errors = _driver_errors(error)

    # asyncpg adapter exposes both; psycopg exposes pgcode
    sqlstate = _code(driver_errors, "sqlstate", "pgcode")
    if isinstance(sqlstate, str):
        if sqlstate == PG_UNIQUE_VIOLATION:
            return DatabaseErrorKind.conflict
        if sqlstate == PG_FOREIGN_KEY_VIOLATION:
            return DatabaseErrorKind.foreign_key
        if sqlstate in (PG_NOT_NULL_VIOLATION, PG_CHECK_VIOLATION):
            return DatabaseErrorKind.invalid_data
        if sqlstate.startswith(PG_DATA_EXCEPTION_CLASS):
            return DatabaseErrorKind.invalid_data
        return DatabaseErrorKind.unexpected

    sqlite_code = _code(driver_errors, "sqlite_errorcode")
    if isinstance(sqlite_code, int):
        if sqlite_code in (SQLITE_CONSTRAINT_UNIQUE, SQLITE_CONSTRAINT_PRIMARYKEY):
            return DatabaseErrorKind.conflict
        if sqlite_code == SQLITE_CONSTRAINT_FOREIGNKEY:
            return DatabaseErrorKind.foreign_key
        if sqlite_code in (SQLITE_CONSTRAINT_NOTNULL, SQLITE_CONSTRAINT_CHECK):
            return DatabaseErrorKind.invalid_data

    if isinstance(error, DataError):
        return DatabaseErrorKind.invalid_data

    # Bind-time failures (wrong Python type for a column) never reach the driver
    if isinstance(error, StatementError) and not isinstance(error, IntegrityError):
        if any(isinstance(err, (TypeError, ValueError)) for err in driver_errors):
            return DatabaseErrorKind.invalid_data

    return DatabaseErrorKind.unexpected


def handle_database_error(operation: str, error: BaseException) -> NoReturn:
    """Raise a DatabaseError for a failed storage operation.

    Never returns. The original error is kept as ``cause`` and chained.
    """
    logger.error(f"Database operation '{operation}' failed: {error!r}")

    kind = classify_database_error(error)
    inc_db_error(operation, kind.value)

    error_class = _ERROR_CLASSES.get(kind, DatabaseError)
    raise error_class(_MESSAGES[kind], operation, error, kind) from error


def database_operation(
    operation: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorate a gateway coroutine so storage failures are translated.

    The wrapped coroutine takes the AsyncSession as its first argument; on
    failure the session is rolled back before the error is translated, so a
    multi-statement write never leaves a partial result behind.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                session = args[0] if args else kwargs.get("session")
                if isinstance(session, AsyncSession):
                    await session.rollback()
                handle_database_error(operation, e)

        return wrapper

    return decorator
