"""SQLAlchemy connection bridge.

Makes a pooled SQLAlchemy :class:`~sqlalchemy.engine.Connection` look like
:class:`queryspine.core.protocols.Connection`, so SQL Server (pyodbc) and
PostgreSQL (psycopg2) run through the same facade code as SQLite.

Statements go through :func:`sqlalchemy.text`, which already speaks the
``:name`` placeholder style the formatter and filter translator emit.

Command timeouts are applied per DBAPI connection when the pool opens it:

==============  ==============================================
Backend         Mechanism
==============  ==============================================
mssql+pyodbc    ``pyodbc.Connection.timeout`` (seconds)
postgresql      ``SET statement_timeout`` (milliseconds)
==============  ==============================================
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import Engine


def create_query_engine(
    url: str,
    *,
    timeout: float | None = None,
    echo: bool = False,
    pool_size: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with the command timeout wired in.

    Parameters
    ----------
    url:
        SQLAlchemy URL (``mssql+pyodbc://…``, ``postgresql://…``).
    timeout:
        Per-statement timeout in seconds applied to every pooled connection.
    pool_size:
        Connection pool size (backend default when ``None``).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if pool_size is not None:
        kwargs["pool_size"] = pool_size
    kwargs.setdefault("pool_pre_ping", True)
    # bind values stay out of exception messages and therefore out of logs
    kwargs.setdefault("hide_parameters", True)

    engine = create_engine(url, echo=echo, **kwargs)

    if timeout is not None:
        backend = engine.dialect.name

        if backend == "mssql":

            @event.listens_for(engine, "connect")
            def _set_odbc_timeout(dbapi_conn: Any, _record: Any) -> None:
                dbapi_conn.timeout = int(timeout) or 1

        elif backend == "postgresql":

            @event.listens_for(engine, "connect")
            def _set_statement_timeout(dbapi_conn: Any, _record: Any) -> None:
                cursor = dbapi_conn.cursor()
                cursor.execute(f"SET statement_timeout = {int(timeout * 1000)}")
                cursor.close()
                dbapi_conn.commit()

    return engine


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Connection`` look like
    ``queryspine.core.protocols.Connection``.

    SQLAlchemy 2.0 autobegins a transaction on first use and rolls it back
    on ``close()``, so callers commit writes explicitly.
    """

    def __init__(self, connection: SAConnection) -> None:
        self._connection = connection
        self._last_result: Any = None

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> SAConnectionBridge:
        self._last_result = self._connection.execute(text(sql), dict(params or {}))
        return self

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._last_result is None or not self._last_result.returns_rows:
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    @property
    def columns(self) -> list[str]:
        if self._last_result is None or not self._last_result.returns_rows:
            return []
        return list(self._last_result.keys())

    @property
    def rowcount(self) -> int:
        if self._last_result is None:
            return -1
        return self._last_result.rowcount

    def begin(self) -> None:
        self._connection.begin()

    def commit(self) -> None:
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    def close(self) -> None:
        self._connection.close()

    @property
    def connection(self) -> SAConnection:
        """Access the underlying SQLAlchemy connection."""
        return self._connection

    def __repr__(self) -> str:
        return f"SAConnectionBridge({self._connection.engine.url.render_as_string(hide_password=True)!r})"
