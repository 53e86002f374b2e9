"""SQL dialect abstraction for statement composition.

Provides a ``Dialect`` protocol and concrete implementations for each
supported backend. The formatter and the filter translator ask the dialect
for every backend-specific fragment (row limiting, offset windows, string
and date functions, stored-procedure calls) so the same request renders
correctly for T-SQL, SQLite and PostgreSQL.

Manifesto:
    The two pagination modes (first N rows vs. page K of a stable order)
    are semantics; ``TOP(n)`` and ``OFFSET … FETCH NEXT`` are syntax.
    Only the syntax lives here.

    - **One interface:** Dialect protocol for all fragment generation
    - **T-SQL first:** ``MSSQLDialect`` is the default output dialect
    - **Testable:** SQLiteDialect renders the same semantics for tests

Architecture::

    ┌──────────────┬───────────────────┬──────────────────────────────┐
    │ Dialect      │ first N rows      │ page K                       │
    ├──────────────┼───────────────────┼──────────────────────────────┤
    │ mssql        │ SELECT TOP(n) *   │ ORDER BY c OFFSET (s) ROWS   │
    │              │                   │ FETCH NEXT (t) ROWS ONLY     │
    │ sqlite       │ … LIMIT n         │ ORDER BY c LIMIT t OFFSET s  │
    │ postgresql   │ … LIMIT n         │ ORDER BY c LIMIT t OFFSET s  │
    └──────────────┴───────────────────┴──────────────────────────────┘

Examples:
    >>> d = MSSQLDialect()
    >>> d.select_head(5)
    'SELECT TOP(5) *'
    >>> d.window_clause("id", 10, 5)
    'ORDER BY id OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY'
    >>> SQLiteDialect().window_clause("id", 10, 5)
    'ORDER BY id LIMIT 5 OFFSET 10'

Tags:
    dialect, sql, pagination, tsql, portability, query-spine

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from queryspine.core.errors import InvalidConfigError, QueryError

# Escape character used for LIKE patterns built from filter literals.
LIKE_ESCAPE_CHAR = "\\"


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment**. Identifiers and expressions
    passed in have already been validated by the caller; values never
    reach a dialect, they travel as bind parameters.
    """

    @property
    def name(self) -> str:
        """Dialect name (e.g. ``'mssql'``)."""
        ...

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, name: str) -> str:
        """Named bind placeholder for ``name``."""
        ...

    # -- Pagination --------------------------------------------------------

    def select_head(self, top: int | None) -> str:
        """Projection head of the derived-table wrapper."""
        ...

    def limit_clause(self, top: int | None) -> str:
        """Trailing row limit (empty when the head already limits)."""
        ...

    def window_clause(self, order_by: str, skip: int, take: int) -> str:
        """Ordered offset window, including its ``ORDER BY``."""
        ...

    # -- Expression helpers ------------------------------------------------

    def like_escape(self) -> str:
        """``ESCAPE`` clause appended to LIKE comparisons."""
        ...

    def escape_like(self, value: str) -> str:
        """Escape LIKE wildcards in ``value`` so it matches literally."""
        ...

    def length(self, expr: str) -> str:
        ...

    def trim(self, expr: str) -> str:
        ...

    def index_of(self, expr: str, search: str) -> str:
        """Zero-based position of ``search`` in ``expr`` (-1 when absent)."""
        ...

    def date_part(self, part: str, expr: str) -> str:
        """Integer date part; ``part`` is year/month/day/hour/minute/second."""
        ...

    # -- Commands ----------------------------------------------------------

    def call_procedure(self, name: str, param_names: list[str]) -> str:
        """Statement invoking a stored procedure with named parameters."""
        ...


class _BaseDialect:
    """Shared fragments; concrete dialects override what differs."""

    name = "base"

    def placeholder(self, name: str) -> str:
        return f":{name}"

    def like_escape(self) -> str:
        return f"ESCAPE '{LIKE_ESCAPE_CHAR}'"

    _LIKE_SPECIAL = (LIKE_ESCAPE_CHAR, "%", "_")

    def escape_like(self, value: str) -> str:
        for char in self._LIKE_SPECIAL:
            value = value.replace(char, LIKE_ESCAPE_CHAR + char)
        return value

    def trim(self, expr: str) -> str:
        return f"TRIM({expr})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MSSQLDialect(_BaseDialect):
    """SQL Server (T-SQL) dialect - ``TOP(n)``, ``OFFSET … FETCH NEXT``."""

    name = "mssql"

    # T-SQL LIKE also treats [...] as a character class
    _LIKE_SPECIAL = (LIKE_ESCAPE_CHAR, "%", "_", "[")

    _DATE_PARTS = {
        "year": "year",
        "month": "month",
        "day": "day",
        "hour": "hour",
        "minute": "minute",
        "second": "second",
    }

    def select_head(self, top: int | None) -> str:
        if top is None:
            return "SELECT *"
        return f"SELECT TOP({top}) *"

    def limit_clause(self, top: int | None) -> str:  # noqa: ARG002
        return ""

    def window_clause(self, order_by: str, skip: int, take: int) -> str:
        return f"ORDER BY {order_by} OFFSET ({skip}) ROWS FETCH NEXT ({take}) ROWS ONLY"

    def length(self, expr: str) -> str:
        return f"LEN({expr})"

    def trim(self, expr: str) -> str:
        # TRIM() only exists from SQL Server 2017
        return f"LTRIM(RTRIM({expr}))"

    def index_of(self, expr: str, search: str) -> str:
        return f"(CHARINDEX({search}, {expr}) - 1)"

    def date_part(self, part: str, expr: str) -> str:
        return f"DATEPART({self._DATE_PARTS[part]}, {expr})"

    def call_procedure(self, name: str, param_names: list[str]) -> str:
        if not param_names:
            return f"EXEC {name}"
        args = ", ".join(f"@{p} = {self.placeholder(p)}" for p in param_names)
        return f"EXEC {name} {args}"


class SQLiteDialect(_BaseDialect):
    """SQLite dialect - ``LIMIT`` / ``OFFSET``, no stored procedures."""

    name = "sqlite"

    _DATE_FORMATS = {
        "year": "%Y",
        "month": "%m",
        "day": "%d",
        "hour": "%H",
        "minute": "%M",
        "second": "%S",
    }

    def select_head(self, top: int | None) -> str:  # noqa: ARG002
        return "SELECT *"

    def limit_clause(self, top: int | None) -> str:
        if top is None:
            return ""
        return f"LIMIT {top}"

    def window_clause(self, order_by: str, skip: int, take: int) -> str:
        return f"ORDER BY {order_by} LIMIT {take} OFFSET {skip}"

    def length(self, expr: str) -> str:
        return f"LENGTH({expr})"

    def index_of(self, expr: str, search: str) -> str:
        return f"(INSTR({expr}, {search}) - 1)"

    def date_part(self, part: str, expr: str) -> str:
        return f"CAST(strftime('{self._DATE_FORMATS[part]}', {expr}) AS INTEGER)"

    def call_procedure(self, name: str, param_names: list[str]) -> str:
        raise QueryError(f"SQLite has no stored procedures (cannot call {name})")


class PostgreSQLDialect(_BaseDialect):
    """PostgreSQL dialect - ``LIMIT`` / ``OFFSET``, ``CALL`` procedures."""

    name = "postgresql"

    def select_head(self, top: int | None) -> str:  # noqa: ARG002
        return "SELECT *"

    def limit_clause(self, top: int | None) -> str:
        if top is None:
            return ""
        return f"LIMIT {top}"

    def window_clause(self, order_by: str, skip: int, take: int) -> str:
        return f"ORDER BY {order_by} LIMIT {take} OFFSET {skip}"

    def length(self, expr: str) -> str:
        return f"LENGTH({expr})"

    def index_of(self, expr: str, search: str) -> str:
        return f"(POSITION({search} IN {expr}) - 1)"

    def date_part(self, part: str, expr: str) -> str:
        return f"CAST(EXTRACT({part.upper()} FROM {expr}) AS INTEGER)"

    def call_procedure(self, name: str, param_names: list[str]) -> str:
        args = ", ".join(self.placeholder(p) for p in param_names)
        return f"CALL {name}({args})"


# =========================================================================
# Registry / Factory
# =========================================================================

# Dialects are stateless; share one instance per name
_DIALECTS: dict[str, Dialect] = {
    "mssql": MSSQLDialect(),
    "sqlserver": MSSQLDialect(),  # alias
    "tsql": MSSQLDialect(),  # alias
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}

_ALIASES = {"sqlserver", "tsql", "postgres"}

DEFAULT_DIALECT: Dialect = _DIALECTS["mssql"]


def get_dialect(name: str | Dialect | None = None) -> Dialect:
    """Get a dialect by name, passing instances through.

    ``None`` returns the default T-SQL dialect.

    Raises:
        InvalidConfigError: If ``name`` is not recognised.

    Example:
        >>> get_dialect("sqlite").limit_clause(3)
        'LIMIT 3'
    """
    if name is None:
        return DEFAULT_DIALECT
    if not isinstance(name, str):
        return name
    key = name.lower()
    if key not in _DIALECTS:
        raise InvalidConfigError(
            "dialect",
            name,
            f"Unknown dialect '{name}'. Supported: {sorted(set(_DIALECTS) - _ALIASES)}",
        )
    return _DIALECTS[key]


def dialect_for_url(url: str | None) -> Dialect:
    """Infer the dialect from a database URL or path.

    ``mssql+pyodbc://…`` → mssql, ``postgresql://…`` → postgresql, and
    ``sqlite://…``, ``memory`` or a bare file path → sqlite.
    """
    if not url or url in ("memory", ":memory:"):
        return _DIALECTS["sqlite"]
    scheme = url.split("://", 1)[0].split("+", 1)[0].lower() if "://" in url else "sqlite"
    if scheme in _DIALECTS:
        return _DIALECTS[scheme]
    raise InvalidConfigError("database_url", url, f"Cannot infer a dialect for URL scheme '{scheme}'")


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lower-cased key)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "MSSQLDialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "DEFAULT_DIALECT",
    "LIKE_ESCAPE_CHAR",
    "get_dialect",
    "dialect_for_url",
    "register_dialect",
]
