"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~queryspine.core.protocols.Connection` protocol.

The connection is opened in autocommit mode (``isolation_level=None``) so a
statement outside :meth:`SqliteConnection.begin` is committed on its own and
``begin()`` opens a real ``BEGIN`` … ``COMMIT``/``ROLLBACK`` scope.

The command timeout is enforced with a progress handler: each ``execute``
sets a deadline and the handler interrupts the statement once it passes,
which surfaces as :class:`~queryspine.core.errors.QueryTimeoutError`.

Usage::

    from queryspine.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:", timeout=5)
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (:id)", {"id": 1})
    conn.execute("SELECT * FROM t")
    rows = conn.fetchall()          # [(1,)]
    conn.close()
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from queryspine.core.errors import QueryTimeoutError

# VM instructions between deadline checks
_PROGRESS_INTERVAL = 1000


def _adapt_decimal(value: Decimal) -> int | float | str:
    # integral values bind as INTEGER; others as REAL only when the double
    # reproduces the decimal exactly, else as text so no digits are dropped
    if value.is_finite() and value == value.to_integral_value():
        return int(value)
    as_float = float(value)
    if Decimal(repr(as_float)) == value:
        return as_float
    return str(value)


def _adapt(value: Any) -> Any:
    # sqlite3 has no Decimal binding and its date adapters are deprecated
    if isinstance(value, Decimal):
        return _adapt_decimal(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Maintains a single cursor so that ``execute`` / ``fetchall`` /
    ``columns`` operate on the same result set.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float | None = None, uri: bool = False) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None, uri=uri)
        self._cursor = self._conn.cursor()
        self._timeout = timeout
        self._deadline: float | None = None
        if timeout is not None:
            self._conn.set_progress_handler(self._check_deadline, _PROGRESS_INTERVAL)

    def _check_deadline(self) -> int:
        if self._deadline is not None and time.monotonic() > self._deadline:
            return 1
        return 0

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        bound = {k: _adapt(v) for k, v in (params or {}).items()}
        if self._timeout is not None:
            self._deadline = time.monotonic() + self._timeout
        try:
            self._cursor.execute(sql, bound)
        except sqlite3.OperationalError as exc:
            if self._deadline is not None and time.monotonic() > self._deadline:
                raise QueryTimeoutError(
                    f"Statement exceeded command timeout of {self._timeout}s",
                    cause=exc,
                ) from exc
            raise
        finally:
            self._deadline = None
        return self._cursor

    def fetchall(self) -> list[tuple]:
        return self._cursor.fetchall()

    @property
    def columns(self) -> list[str]:
        if self._cursor.description is None:
            return []
        return [d[0] for d in self._cursor.description]

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def begin(self) -> None:
        self._conn.execute("BEGIN")

    def commit(self) -> None:
        if self._conn.in_transaction:
            self._conn.commit()

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"
