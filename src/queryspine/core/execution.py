"""
Execution wrapper: uniform success/failure capture for single operations.

Every data-access operation runs inside :func:`run_result` (or its flag-style
twin :func:`run`). An operation either returns a value, which becomes
``Ok(value)``, or raises, in which case the exception is classified by
:func:`map_driver_error`, logged once at warning level, and returned as
``Err(error)``. Nothing derived from ``Exception`` escapes this boundary.

Manifesto:
    A missing row is not an emergency. Single reads and writes report
    failure as a value so a caller can render "nothing found" without a
    try/except around every call. Transactions are the exception to this
    rule and live in :mod:`queryspine.core.transaction`.

    - **One boundary:** All single operations share this wrapper
    - **Classified errors:** Driver exceptions become the QuerySpineError
      hierarchy (timeout, connection, constraint, query)
    - **Logged, not leaked:** Failures are logged with error category and
      parameter names; the caller sees only ``succeeded=False`` or ``Err``

Architecture:
    ::

        operation() ──► value ──────────────► Ok(value)
             │
             └──► raises exc
                     │
                     ▼
              map_driver_error(exc)
              ┌─────────────────────────────┬────────────────────────────┐
              │ QuerySpineError             │ passed through             │
              │ IntegrityError              │ ConstraintError            │
              │ connection lost / refused   │ DatabaseConnectionError    │
              │ statement timeout           │ QueryTimeoutError          │
              │ other driver / SQL error    │ QueryError                 │
              │ anything else               │ QuerySpineError (INTERNAL) │
              └─────────────────────────────┴────────────────────────────┘
                     │
                     ▼
              logger.warning("operation_failed", ...) ──► Err(error)

Examples:
    >>> run(lambda: 42)
    (42, True)
    >>> run(lambda: 1 / 0, default=[])
    ([], False)
    >>> run_result(lambda: [1]).has_data
    True

Tags:
    execution, error-handling, result-pattern, wrapper, query-spine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, TypeVar

from sqlalchemy import exc as sa_exc

from queryspine.core.dialect import Dialect
from queryspine.core.errors import (
    ConstraintError,
    DatabaseConnectionError,
    QueryError,
    QuerySpineError,
    QueryTimeoutError,
    categorize_error,
    is_retryable,
)
from queryspine.core.logging import get_logger
from queryspine.core.result import Err, Ok, Result

logger = get_logger(__name__)

T = TypeVar("T")


class CommandKind(str, Enum):
    """How statement text is interpreted."""

    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"


def prepare_command(
    sql: str,
    kind: CommandKind | str,
    params: Mapping[str, Any] | None,
    dialect: Dialect,
) -> str:
    """Statement text to execute; stored procedures are rendered by the dialect."""
    if CommandKind(kind) is CommandKind.STORED_PROCEDURE:
        return dialect.call_procedure(sql.strip(), list(params or {}))
    return sql


_CONNECTION_MARKERS = (
    "unable to connect",
    "could not connect",
    "connection refused",
    "server closed the connection",
    "communication link failure",
    "login timeout",
    "unable to open database",
)

_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "hyt00",
    "canceling statement",
    "interrupted",
)


def map_driver_error(exc: Exception) -> QuerySpineError:
    """
    Classify an exception into the QuerySpineError hierarchy.

    Errors already in the hierarchy pass through unchanged; the original
    exception is kept as ``cause`` otherwise.
    """
    if isinstance(exc, QuerySpineError):
        return exc

    message = str(exc) or type(exc).__name__
    lowered = message.lower()

    if isinstance(exc, (sa_exc.IntegrityError, sqlite3.IntegrityError)):
        return ConstraintError(message, cause=exc)

    if (
        isinstance(exc, (ConnectionError, sa_exc.DisconnectionError, sa_exc.InterfaceError))
        or (isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated)
        or any(marker in lowered for marker in _CONNECTION_MARKERS)
    ):
        return DatabaseConnectionError(message, cause=exc)

    if isinstance(exc, TimeoutError) or any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return QueryTimeoutError(message, cause=exc)

    if isinstance(exc, (sa_exc.SQLAlchemyError, sqlite3.Error)):
        return QueryError(message, cause=exc)

    return QuerySpineError(message, cause=exc)


def run_result(
    operation: Callable[[], T],
    *,
    error_mapper: Callable[[Exception], Exception] = map_driver_error,
    name: str | None = None,
    context: Mapping[str, Any] | None = None,
    has_data: Callable[[T], bool] | None = None,
) -> Result[T]:
    """
    Run ``operation`` and capture its outcome as a Result.

    Args:
        operation: Zero-argument callable performing the work.
        error_mapper: Classifies a raised exception.
        name: Operation name recorded in the error context and log line.
        context: Extra error-context fields (dialect, parameter names, ...).
        has_data: Custom "data found" predicate for the value.
    """
    try:
        value = operation()
    except Exception as exc:
        error = error_mapper(exc)
        if isinstance(error, QuerySpineError):
            if name is not None:
                error.with_context(operation=name)
            if context:
                error.with_context(**context)
            logger.warning("operation_failed", **error.to_dict())
        else:
            logger.warning(
                "operation_failed",
                operation=name,
                error_type=type(error).__name__,
                message=str(error),
                category=categorize_error(error).value,
                retryable=is_retryable(error),
            )
        return Err(error)

    if has_data is not None:
        return Ok(value, has_data=has_data(value))
    return Ok(value)


def run(
    operation: Callable[[], T],
    *,
    default: T | None = None,
    name: str | None = None,
) -> tuple[T | None, bool]:
    """
    Flag-style wrapper: ``(value, True)`` on success, ``(default, False)``
    on failure. Never raises for ``Exception`` subclasses.
    """
    result = run_result(operation, name=name)
    if result.is_ok():
        return result.unwrap(), True
    return default, False


__all__ = [
    "CommandKind",
    "prepare_command",
    "map_driver_error",
    "run",
    "run_result",
]
