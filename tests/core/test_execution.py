"""Tests for the execution wrapper and driver error mapping."""

from __future__ import annotations

import sqlite3

import pytest
from sqlalchemy import exc as sa_exc
from structlog.testing import capture_logs

from queryspine.core.dialect import MSSQLDialect, PostgreSQLDialect, SQLiteDialect
from queryspine.core.errors import (
    ConstraintError,
    DatabaseConnectionError,
    ErrorCategory,
    FilterSyntaxError,
    QueryError,
    QuerySpineError,
    QueryTimeoutError,
)
from queryspine.core.execution import (
    CommandKind,
    map_driver_error,
    prepare_command,
    run,
    run_result,
)


def _boom():
    raise RuntimeError("backend failure")


class TestRun:
    def test_success(self):
        assert run(lambda: 42) == (42, True)

    def test_failure_returns_default(self):
        assert run(_boom) == (None, False)
        assert run(_boom, default=[]) == ([], False)

    def test_success_with_empty_value(self):
        assert run(lambda: []) == ([], True)

    def test_failure_is_logged(self):
        with capture_logs() as logs:
            run(_boom, name="get_list")
        entry = next(entry for entry in logs if entry["event"] == "operation_failed")
        assert entry["log_level"] == "warning"
        assert entry["context"]["operation"] == "get_list"
        assert entry["category"] == "INTERNAL"

    def test_base_exceptions_propagate(self):
        def interrupted():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            run(interrupted)


class TestRunResult:
    def test_ok(self):
        result = run_result(lambda: [1, 2])
        assert result.is_ok()
        assert result.has_data is True

    def test_ok_without_data(self):
        assert run_result(lambda: None).has_data is False

    def test_custom_has_data(self):
        result = run_result(lambda: 0, has_data=lambda count: count > 0)
        assert result.unwrap() == 0
        assert result.has_data is False

    def test_err_is_classified_with_context(self):
        def fails():
            raise sqlite3.OperationalError("no such table: items")

        result = run_result(fails, name="get_scalar", context={"dialect": "sqlite", "parameter_names": ["f0"]})
        assert result.is_err()
        assert isinstance(result.error, QueryError)
        assert result.error.context.operation == "get_scalar"
        assert result.error.context.dialect == "sqlite"
        assert result.error.context.parameter_names == ["f0"]

    def test_custom_mapper(self):
        result = run_result(_boom, error_mapper=lambda exc: ValueError(str(exc)))
        assert isinstance(result.error, ValueError)

    @pytest.mark.parametrize(
        "mapped,category,retryable",
        [
            (ConnectionResetError("reset"), "NETWORK", True),
            (TimeoutError("slow"), "NETWORK", True),
            (ValueError("bad"), "VALIDATION", False),
            (KeyError("k"), "UNKNOWN", False),
        ],
    )
    def test_custom_mapper_failure_is_classified_in_log(self, mapped, category, retryable):
        with capture_logs() as logs:
            run_result(_boom, error_mapper=lambda exc: mapped, name="get_list")
        entry = next(e for e in logs if e["event"] == "operation_failed")
        assert entry["operation"] == "get_list"
        assert entry["category"] == category
        assert entry["retryable"] is retryable

    def test_outcome_view(self):
        value, succeeded, found = run_result(_boom).to_outcome(default=[])
        assert (value, succeeded, found) == ([], False, False)


class TestMapDriverError:
    def test_query_spine_errors_pass_through(self):
        error = FilterSyntaxError("bad", position=3)
        assert map_driver_error(error) is error

    def test_integrity(self):
        assert isinstance(map_driver_error(sqlite3.IntegrityError("UNIQUE constraint failed")), ConstraintError)
        sa_error = sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key"))
        mapped = map_driver_error(sa_error)
        assert isinstance(mapped, ConstraintError)
        assert mapped.category is ErrorCategory.VALIDATION

    @pytest.mark.parametrize(
        "exc",
        [
            ConnectionRefusedError("refused"),
            sa_exc.OperationalError("SELECT 1", {}, Exception("could not connect to server")),
            sqlite3.OperationalError("unable to open database file"),
            sa_exc.DisconnectionError("gone"),
        ],
    )
    def test_connection(self, exc):
        mapped = map_driver_error(exc)
        assert isinstance(mapped, DatabaseConnectionError)
        assert mapped.retryable is True
        assert mapped.cause is exc

    @pytest.mark.parametrize(
        "exc",
        [
            TimeoutError(),
            sqlite3.OperationalError("interrupted"),
            sa_exc.OperationalError("SELECT 1", {}, Exception("[HYT00] Query timeout expired")),
            sa_exc.OperationalError("SELECT 1", {}, Exception("canceling statement due to statement timeout")),
        ],
    )
    def test_timeout(self, exc):
        assert isinstance(map_driver_error(exc), QueryTimeoutError)

    @pytest.mark.parametrize(
        "exc",
        [
            sqlite3.OperationalError("no such table: items"),
            sqlite3.ProgrammingError("Incorrect number of bindings"),
            sa_exc.ProgrammingError("SELECT", {}, Exception("syntax error")),
        ],
    )
    def test_query(self, exc):
        mapped = map_driver_error(exc)
        assert type(mapped) is QueryError
        assert mapped.retryable is False

    def test_unknown_is_internal(self):
        exc = ValueError("unexpected")
        mapped = map_driver_error(exc)
        assert type(mapped) is QuerySpineError
        assert mapped.category is ErrorCategory.INTERNAL
        assert mapped.cause is exc


class TestPrepareCommand:
    def test_text_unchanged(self):
        sql = "select * from items where id = :id"
        assert prepare_command(sql, CommandKind.TEXT, {"id": 1}, MSSQLDialect()) == sql

    def test_kind_accepts_strings(self):
        assert prepare_command("dbo.refresh", "stored_procedure", None, MSSQLDialect()) == "EXEC dbo.refresh"

    def test_stored_procedure(self):
        assert (
            prepare_command(" dbo.get_items ", CommandKind.STORED_PROCEDURE, {"id": 1}, MSSQLDialect())
            == "EXEC dbo.get_items @id = :id"
        )
        assert (
            prepare_command("get_items", CommandKind.STORED_PROCEDURE, {"id": 1}, PostgreSQLDialect())
            == "CALL get_items(:id)"
        )

    def test_sqlite_has_no_procedures(self):
        with pytest.raises(QueryError):
            prepare_command("get_items", CommandKind.STORED_PROCEDURE, None, SQLiteDialect())

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            prepare_command("x", "table_direct", None, MSSQLDialect())
