"""
Canonical protocol definitions for query-spine.

The facade never imports a database driver. It talks to the ``Connection``
protocol below, which the sqlite adapter and the SQLAlchemy bridge both
satisfy, and obtains connections from a ``ConnectionFactory``. Test doubles
only need to match these shapes.

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → Execute one statement         │
        │ fetchall()             → All rows of the last result   │
        │ columns                → Column names of last result   │
        │ rowcount               → Rows affected by last DML     │
        │ begin()                → Open an explicit transaction  │
        │ commit() / rollback()  → End the transaction           │
        │ close()                → Release the connection        │
        └────────────────────────────────────────────────────────┘

        Implementations:
        ┌────────────────────────────────────────────────────────┐
        │ sqlite:///… / memory  → SqliteConnection (sqlite3)     │
        │ mssql+pyodbc://…      → SAConnectionBridge (SQLAlchemy)│
        │ postgresql://…        → SAConnectionBridge (SQLAlchemy)│
        └────────────────────────────────────────────────────────┘

Parameters are always a mapping of name to value; statements use ``:name``
placeholders, which both sqlite3 and SQLAlchemy ``text()`` accept.

Tags:
    protocol, connection, database, query-spine, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection used by the data-access facade."""

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Execute one statement with named parameters."""
        ...

    def fetchall(self) -> list[tuple]:
        """Fetch all rows from the last statement."""
        ...

    @property
    def columns(self) -> list[str]:
        """Column names of the last result set (empty for DML)."""
        ...

    @property
    def rowcount(self) -> int:
        """Rows affected by the last statement (-1 when unknown)."""
        ...

    def begin(self) -> None:
        """Start an explicit transaction."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        """Release the connection (return it to the pool)."""
        ...


@runtime_checkable
class ConnectionFactory(Protocol):
    """Produces a fresh, exclusively owned connection per call."""

    def __call__(self) -> Connection:
        ...


__all__ = [
    "Connection",
    "ConnectionFactory",
]
