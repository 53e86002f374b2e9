"""Connection factory: create per-operation connection sources from URL strings.

The :class:`~queryspine.core.database.Database` facade never opens a
connection itself. It calls a ``ConnectionFactory`` once per operation (or
once per transactional batch) and closes what it gets back. This module
turns a database URL into such a factory.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/items.db``                          SQLite file
``mssql``           ``mssql+pyodbc://user:pw@dsn``               SQL Server
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
==================  ==========================================  ============

Usage
-----
::

    from queryspine.core.connection import create_connection_factory

    factory, info = create_connection_factory("sqlite:///items.db", timeout=30)
    conn = factory()
    try:
        conn.execute("SELECT 1")
    finally:
        conn.close()

    print(info)
    # ConnectionInfo(backend='sqlite', persistent=True, path='/abs/items.db')

Design
------
``create_connection_factory()`` returns ``(factory, ConnectionInfo)``.
Every call to ``factory()`` yields a fresh connection owned exclusively by
the caller. The in-memory backend uses a named shared-cache database held
open by the factory, so successive connections see the same data until
``factory.dispose()``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path

from queryspine.core.errors import DatabaseConnectionError, InvalidConfigError
from queryspine.core.logging import get_logger
from queryspine.core.protocols import Connection
from queryspine.core.sa_bridge import SAConnectionBridge, create_query_engine
from queryspine.core.sqlite_conn import SqliteConnection

logger = get_logger(__name__)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a connection source."""

    backend: str
    """Backend identifier: ``"sqlite"``, ``"mssql"``, ``"postgresql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"


# ── Factories ────────────────────────────────────────────────────────────


class SqliteConnectionFactory:
    """Opens a new :class:`SqliteConnection` per call."""

    def __init__(self, path: str, *, timeout: float | None = None, shared_memory: bool = False) -> None:
        self._timeout = timeout
        self._keeper: SqliteConnection | None = None
        if shared_memory:
            self._path = f"file:queryspine-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
            # the shared in-memory database lives as long as one connection does
            self._keeper = SqliteConnection(self._path, uri=True)
        else:
            self._path = path
            self._uri = False

    def __call__(self) -> Connection:
        return SqliteConnection(self._path, timeout=self._timeout, uri=self._uri)

    def dispose(self) -> None:
        if self._keeper is not None:
            self._keeper.close()
            self._keeper = None


class SAConnectionFactory:
    """Checks a connection out of a SQLAlchemy engine pool per call."""

    def __init__(self, url: str, *, timeout: float | None = None) -> None:
        self._engine = create_query_engine(url, timeout=timeout)

    def __call__(self) -> Connection:
        try:
            return SAConnectionBridge(self._engine.connect())
        except Exception as exc:
            raise DatabaseConnectionError(
                f"Cannot connect to {self._engine.url.render_as_string(hide_password=True)}",
                cause=exc,
            ) from exc

    def dispose(self) -> None:
        self._engine.dispose()


# ── URL parsing ──────────────────────────────────────────────────────────


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into ``(scheme, target)``.

    ``scheme`` is one of ``"memory"``, ``"sqlite"``, ``"file"``,
    ``"mssql"`` or ``"postgresql"``.
    """
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"

    for prefix in ("sqlite:///", "sqlite://"):
        if db.startswith(prefix):
            path = db[len(prefix):]
            if not path or path == ":memory:":
                return "memory", ":memory:"
            return "sqlite", path

    if "://" in db:
        scheme = db.split("://", 1)[0].split("+", 1)[0].lower()
        if scheme in ("mssql", "postgresql", "postgres"):
            if scheme == "postgres":
                # SQLAlchemy only accepts the long scheme name
                return "postgresql", "postgresql" + db[len("postgres"):]
            return scheme, db
        raise InvalidConfigError("database_url", db, f"Unsupported database URL scheme {scheme!r}")

    # Bare file path
    return "file", db


# ── Main factory ─────────────────────────────────────────────────────────


def create_connection_factory(
    db: str | None = None,
    *,
    timeout: float | None = None,
) -> tuple[SqliteConnectionFactory | SAConnectionFactory, ConnectionInfo]:
    """Create a connection factory from a URL, path, or keyword.

    Parameters
    ----------
    db:
        ``None`` / ``"memory"`` for a private in-memory SQLite database,
        a file path or ``sqlite:///`` URL, or a SQLAlchemy URL for
        SQL Server or PostgreSQL.
    timeout:
        Per-statement command timeout in seconds.

    Raises
    ------
    InvalidConfigError
        If the URL scheme is not supported.
    """
    scheme, target = _parse_url(db)

    if scheme == "memory":
        factory: SqliteConnectionFactory | SAConnectionFactory = SqliteConnectionFactory(
            target, timeout=timeout, shared_memory=True
        )
        info = ConnectionInfo(backend="sqlite", persistent=False, url=":memory:")

    elif scheme in ("sqlite", "file"):
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(path.resolve())
        factory = SqliteConnectionFactory(resolved, timeout=timeout)
        info = ConnectionInfo(backend="sqlite", persistent=True, url=target, resolved_path=resolved)

    else:
        factory = SAConnectionFactory(target, timeout=timeout)
        info = ConnectionInfo(backend=scheme, persistent=True, url=target)

    logger.debug("connection_factory_created", backend=info.backend, persistent=info.persistent)
    return factory, info


__all__ = [
    "ConnectionInfo",
    "SqliteConnectionFactory",
    "SAConnectionFactory",
    "create_connection_factory",
]
