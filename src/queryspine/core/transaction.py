"""
Transaction handle and state machine.

A :class:`Transaction` owns one connection for the length of a batch. The
facade creates it, drives ``begin`` / ``commit`` / ``rollback``, and passes
it to caller logic. Every data-access method on the handle runs on that
connection and **raises** on failure: inside a batch, failure must abort
the unit of work rather than come back as a flag.

State machine::

    IDLE ──begin()──► BEGAN ──commit()────► COMMITTED   (terminal)
                        │
                        └────rollback()───► ROLLED_BACK (terminal)

Illegal transitions raise :class:`TransactionStateError`. Nothing is
retried automatically.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from queryspine.core.errors import (
    QuerySpineError,
    TransactionAbortedError,
    TransactionStateError,
)
from queryspine.core.execution import CommandKind, map_driver_error
from queryspine.core.protocols import Connection

if TYPE_CHECKING:
    from queryspine.core.database import Database
    from queryspine.core.formatter import QueryRequest


class TransactionState(str, Enum):
    IDLE = "idle"
    BEGAN = "began"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _driver_call(action: Callable[[], None]) -> None:
    try:
        action()
    except QuerySpineError:
        raise
    except Exception as exc:
        raise map_driver_error(exc) from exc


class Transaction:
    """Transaction-scoped handle passed into batch logic."""

    def __init__(self, connection: Connection, *, database: Database) -> None:
        self._connection = connection
        self._database = database
        self._state = TransactionState.IDLE
        self._error: Exception | None = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def failed(self) -> bool:
        """True once any operation on this handle has failed."""
        return self._error is not None

    @property
    def error(self) -> Exception | None:
        return self._error

    def mark_failed(self, error: Exception) -> None:
        if self._error is None:
            self._error = error

    def ensure_active(self) -> None:
        """Raise unless the transaction can still run statements."""
        if self._state is not TransactionState.BEGAN:
            raise TransactionStateError(self._state.value, "use")
        if self._error is not None:
            raise TransactionAbortedError(
                "Transaction already failed; no further statements are run",
                cause=self._error,
            )

    def begin(self) -> None:
        if self._state is not TransactionState.IDLE:
            raise TransactionStateError(self._state.value, "begin")
        _driver_call(self._connection.begin)
        self._state = TransactionState.BEGAN

    def commit(self) -> None:
        if self._state is not TransactionState.BEGAN:
            raise TransactionStateError(self._state.value, "commit")
        _driver_call(self._connection.commit)
        self._state = TransactionState.COMMITTED

    def rollback(self) -> None:
        if self._state is not TransactionState.BEGAN:
            raise TransactionStateError(self._state.value, "rollback")
        # terminal even if the driver call fails; the connection is discarded
        self._state = TransactionState.ROLLED_BACK
        _driver_call(self._connection.rollback)

    # -- data access (raises on failure) -----------------------------------

    def execute(
        self,
        sql: str,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """Run a write statement; returns the affected-row count."""
        return self._database.execute_result(sql, kind=kind, params=params, transaction=self).unwrap()

    def get_list(
        self,
        sql: str,
        shape: Any = dict,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        return self._database.get_list_result(sql, shape, kind=kind, params=params, transaction=self).unwrap()

    def get_single(
        self,
        sql: str,
        shape: Any = dict,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        return self._database.get_single_result(sql, shape, kind=kind, params=params, transaction=self).unwrap()

    def get_scalar(
        self,
        sql: str,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        return self._database.get_scalar_result(sql, kind=kind, params=params, transaction=self).unwrap()

    def get_queryable(self, request: QueryRequest | str, shape: Any = dict, **options: Any) -> list[Any]:
        return self._database.get_queryable_result(request, shape, transaction=self, **options).unwrap()

    def __repr__(self) -> str:
        return f"Transaction(state={self._state.value}, failed={self.failed})"


__all__ = [
    "TransactionState",
    "Transaction",
]
