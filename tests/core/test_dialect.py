"""Tests for SQL dialects, the registry, and URL inference."""

from __future__ import annotations

import pytest

from queryspine.core.dialect import (
    DEFAULT_DIALECT,
    Dialect,
    MSSQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    dialect_for_url,
    get_dialect,
    register_dialect,
)
from queryspine.core.errors import InvalidConfigError, QueryError


@pytest.fixture(params=[MSSQLDialect, SQLiteDialect, PostgreSQLDialect])
def dialect(request):
    return request.param()


class TestProtocol:
    def test_satisfies_protocol(self, dialect):
        assert isinstance(dialect, Dialect)

    def test_named_placeholders(self, dialect):
        assert dialect.placeholder("f0") == ":f0"

    def test_like_escape(self, dialect):
        assert dialect.like_escape() == "ESCAPE '\\'"

    def test_escape_like_wildcards(self, dialect):
        assert dialect.escape_like("50%_off") == "50\\%\\_off"
        assert dialect.escape_like("a\\b") == "a\\\\b"

    def test_select_head_without_top(self, dialect):
        assert dialect.select_head(None) == "SELECT *"

    def test_limit_clause_without_top(self, dialect):
        assert dialect.limit_clause(None) == ""


class TestMSSQL:
    d = MSSQLDialect()

    def test_top_in_head(self):
        assert self.d.select_head(5) == "SELECT TOP(5) *"
        assert self.d.limit_clause(5) == ""

    def test_window(self):
        assert self.d.window_clause("id", 10, 5) == "ORDER BY id OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY"

    def test_escape_like_brackets(self):
        assert self.d.escape_like("[a]") == "\\[a]"

    def test_functions(self):
        assert self.d.length("name") == "LEN(name)"
        assert self.d.trim("name") == "LTRIM(RTRIM(name))"
        assert self.d.index_of("name", ":f0") == "(CHARINDEX(:f0, name) - 1)"
        assert self.d.date_part("year", "created") == "DATEPART(year, created)"

    def test_call_procedure(self):
        assert self.d.call_procedure("dbo.get_items", ["id", "name"]) == "EXEC dbo.get_items @id = :id, @name = :name"
        assert self.d.call_procedure("dbo.refresh", []) == "EXEC dbo.refresh"


class TestSQLite:
    d = SQLiteDialect()

    def test_limit(self):
        assert self.d.select_head(5) == "SELECT *"
        assert self.d.limit_clause(5) == "LIMIT 5"

    def test_window(self):
        assert self.d.window_clause("id", 10, 5) == "ORDER BY id LIMIT 5 OFFSET 10"

    def test_functions(self):
        assert self.d.length("name") == "LENGTH(name)"
        assert self.d.trim("name") == "TRIM(name)"
        assert self.d.index_of("name", ":f0") == "(INSTR(name, :f0) - 1)"
        assert self.d.date_part("month", "created") == "CAST(strftime('%m', created) AS INTEGER)"

    def test_no_stored_procedures(self):
        with pytest.raises(QueryError):
            self.d.call_procedure("get_items", [])


class TestPostgreSQL:
    d = PostgreSQLDialect()

    def test_window(self):
        assert self.d.window_clause("id DESC", 0, 20) == "ORDER BY id DESC LIMIT 20 OFFSET 0"

    def test_functions(self):
        assert self.d.index_of("name", ":f0") == "(POSITION(:f0 IN name) - 1)"
        assert self.d.date_part("day", "created") == "CAST(EXTRACT(DAY FROM created) AS INTEGER)"

    def test_call_procedure(self):
        assert self.d.call_procedure("refresh_items", ["since"]) == "CALL refresh_items(:since)"


class TestRegistry:
    def test_default_is_mssql(self):
        assert get_dialect() is DEFAULT_DIALECT
        assert DEFAULT_DIALECT.name == "mssql"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("mssql", "mssql"),
            ("SQLServer", "mssql"),
            ("tsql", "mssql"),
            ("sqlite", "sqlite"),
            ("postgres", "postgresql"),
            ("PostgreSQL", "postgresql"),
        ],
    )
    def test_aliases(self, name, expected):
        assert get_dialect(name).name == expected

    def test_instance_passes_through(self):
        d = SQLiteDialect()
        assert get_dialect(d) is d

    def test_unknown_name(self):
        with pytest.raises(InvalidConfigError, match="Unknown dialect"):
            get_dialect("oracle")

    def test_register_custom(self):
        class ShoutingSQLite(SQLiteDialect):
            name = "shouting"

        register_dialect("Shouting", ShoutingSQLite())
        assert get_dialect("shouting").name == "shouting"


class TestDialectForUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            (None, "sqlite"),
            ("memory", "sqlite"),
            (":memory:", "sqlite"),
            ("./data/items.db", "sqlite"),
            ("sqlite:///items.db", "sqlite"),
            ("mssql+pyodbc://user:pw@dsn", "mssql"),
            ("postgresql://user:pw@localhost/db", "postgresql"),
            ("postgres://user:pw@localhost/db", "postgresql"),
        ],
    )
    def test_inference(self, url, expected):
        assert dialect_for_url(url).name == expected

    def test_unknown_scheme(self):
        with pytest.raises(InvalidConfigError):
            dialect_for_url("oracle://user@host/db")
