"""
Shared pytest fixtures and configuration for query-spine tests.

This module provides:
- Logging isolation (structlog configuration and bound context reset)
- A seeded SQLite database behind the ``Database`` facade
- ``FakeBackend``: an in-memory backend double with per-connection
  pending writes, used to observe commit / rollback / close behaviour

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(items_db, fake_backend):
            ...
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Generator

import pytest
import structlog

# Ensure queryspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from queryspine.core.database import Database
from queryspine.core.settings import QuerySpineSettings


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts[0] == "cli" or "database" in test_path.name or "transaction" in test_path.name:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Every test starts from structlog defaults with no bound context."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep QUERYSPINE_* variables and stray .env files out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("QUERYSPINE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# SQLite fixtures
# =============================================================================

ITEMS = [
    (1, "a", 10.5, "2024-01-15"),
    (2, "b", 20.0, "2024-02-20"),
    (3, "c", 5.0, "2023-12-01"),
    (4, "a", 30.0, "2024-03-05"),
    (5, "50% off", 7.5, "2024-01-31"),
    (6, None, 12.0, "2024-04-10"),
]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "items.db"


@pytest.fixture
def items_db(db_path: Path) -> Generator[Database, None, None]:
    """SQLite-backed facade with an ``items`` table of six rows."""
    db = Database(str(db_path))
    db.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT, price REAL, created TEXT)")
    for id_, name, price, created in ITEMS:
        db.execute(
            "INSERT INTO items (id, name, price, created) VALUES (:id, :name, :price, :created)",
            params={"id": id_, "name": name, "price": price, "created": created},
        )
    yield db
    db.close()


# =============================================================================
# Backend double
# =============================================================================


class FakeConnection:
    """Connection double. INSERT stores params, SELECT returns visible rows,
    FAIL raises. Writes inside ``begin()`` stay pending until ``commit()``."""

    def __init__(self, backend: FakeBackend) -> None:
        self._backend = backend
        self._pending: list[dict[str, Any]] | None = None
        self._columns: list[str] = []
        self._rows: list[tuple] = []
        self._rowcount = -1
        self.closed = False

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        if self.closed:
            raise RuntimeError("connection is closed")
        self._backend.statements.append(sql)
        verb = sql.split()[0].upper()
        self._columns, self._rows, self._rowcount = [], [], -1
        if verb == "INSERT":
            target = self._pending if self._pending is not None else self._backend.rows
            target.append(dict(params or {}))
            self._rowcount = 1
        elif verb == "SELECT":
            visible = self._backend.rows + (self._pending or [])
            self._columns = ["id", "name"]
            self._rows = [(row.get("id"), row.get("name")) for row in visible]
        elif verb == "FAIL":
            raise RuntimeError("backend failure")
        else:
            raise ValueError(f"unsupported statement {sql!r}")

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def rowcount(self) -> int:
        return self._rowcount

    def begin(self) -> None:
        self._pending = []

    def commit(self) -> None:
        if self._pending is not None:
            self._backend.rows.extend(self._pending)
            self._pending = None
        self._backend.commits += 1

    def rollback(self) -> None:
        self._pending = None
        self._backend.rollbacks += 1

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._backend.closed += 1


class FakeBackend:
    """In-memory store shared by every ``FakeConnection`` it hands out."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.statements: list[str] = []
        self.opened = 0
        self.closed = 0
        self.commits = 0
        self.rollbacks = 0

    def connect(self) -> FakeConnection:
        self.opened += 1
        return FakeConnection(self)

    @property
    def open_connections(self) -> int:
        return self.opened - self.closed


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fake_db(fake_backend: FakeBackend) -> Database:
    """Facade over the backend double (SQLite dialect)."""
    return Database(
        QuerySpineSettings(database_url="memory"),
        dialect="sqlite",
        connection_factory=fake_backend.connect,
    )
