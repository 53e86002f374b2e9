"""Tests for paginated query formatting."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from queryspine.core.errors import FilterSyntaxError, InvalidRequestError
from queryspine.core.filters import translate_filter
from queryspine.core.formatter import (
    FormattedQuery,
    QueryRequest,
    format_query,
    format_request,
    validate_pagination,
)

BASE = "select id, name from items"


class TestEndToEnd:
    def test_injection_attempt_with_top(self):
        request = QueryRequest(BASE, filter="name eq 'a'; DROP TABLE x", top=5)
        formatted = format_request(request)
        assert formatted.sql == "SELECT TOP(5) * FROM (select id, name from items) V WHERE 1=1 AND name = :f0"
        assert formatted.parameters == {"f0": "a"}
        assert "DROP" not in formatted.sql.upper()

    def test_idempotent(self):
        request = QueryRequest(BASE, filter="price gt 10 and contains(name, 'a')", skip=10, take=5, order_by="id")
        assert format_request(request) == format_request(request)

    def test_request_construction_never_raises(self):
        request = QueryRequest(BASE, skip=10)
        assert request.skip == 10


class TestWrapper:
    def test_no_filter_no_pagination(self):
        assert format_query(BASE) == "SELECT * FROM (select id, name from items) V WHERE 1=1"

    def test_empty_filter_adds_no_and(self):
        formatted = format_request(QueryRequest(BASE, filter="   "))
        assert formatted.sql == "SELECT * FROM (select id, name from items) V WHERE 1=1"
        assert formatted.parameters == {}

    def test_base_query_kept_verbatim(self):
        base = "select Id, Name from Items where Name <> 'MixedCase'"
        assert f"FROM ({base}) V" in format_query(base)

    def test_trailing_semicolons_stripped(self):
        assert format_query("select * from t;  ;\n") == "SELECT * FROM (select * from t) V WHERE 1=1"

    @pytest.mark.parametrize("base", ["", "   ", ";"])
    def test_empty_base_rejected(self, base):
        with pytest.raises(InvalidRequestError, match="base_query"):
            format_query(base)

    def test_predicate_fragment_accepted(self):
        fragment = translate_filter("name eq 'a'")
        assert format_query(BASE, fragment).endswith("WHERE 1=1 AND name = :f0")

    def test_raw_predicate_accepted(self):
        assert format_query(BASE, "  AND price > :f0 ").endswith("WHERE 1=1 AND price > :f0")

    @pytest.mark.parametrize(
        "predicate",
        [
            "AND 1=1; DROP TABLE x",
            "AND 1=1; DROP TABLE items --",
            "AND name = :f0 --",
            "AND name = :f0 /* note */",
            "OR 1=1",
            "name = :f0",
            "AND",
        ],
    )
    def test_raw_predicate_must_be_single_and_clause(self, predicate):
        with pytest.raises(InvalidRequestError, match="predicate"):
            format_query(BASE, predicate)

    @pytest.mark.parametrize("predicate", ["AND id IN (SELECT id FROM secrets)", "AND exec = 1"])
    def test_raw_predicate_keywords_rejected(self, predicate):
        with pytest.raises(FilterSyntaxError):
            format_query(BASE, predicate)


class TestTop:
    def test_mssql_top_without_window(self):
        sql = format_query(BASE, top=5)
        assert sql == "SELECT TOP(5) * FROM (select id, name from items) V WHERE 1=1"
        assert "OFFSET" not in sql
        assert "FETCH" not in sql

    def test_top_zero(self):
        assert format_query(BASE, top=0).startswith("SELECT TOP(0) *")

    def test_top_with_order_by(self):
        assert format_query(BASE, top=3, order_by="name desc").endswith("WHERE 1=1 ORDER BY name DESC")

    @pytest.mark.parametrize("dialect", ["sqlite", "postgresql"])
    def test_limit_dialects(self, dialect):
        sql = format_query(BASE, top=5, order_by="name", dialect=dialect)
        assert sql == "SELECT * FROM (select id, name from items) V WHERE 1=1 ORDER BY name LIMIT 5"


class TestWindow:
    def test_mssql_window(self):
        sql = format_query(BASE, "AND price > :f0", skip=10, take=5, order_by="id")
        assert sql == (
            "SELECT * FROM (select id, name from items) V WHERE 1=1 AND price > :f0 "
            "ORDER BY id OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY"
        )
        assert sql.count("OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY") == 1
        assert sql.count("ORDER BY") == 1

    def test_skip_zero(self):
        assert format_query(BASE, skip=0, take=5, order_by="id").endswith("OFFSET (0) ROWS FETCH NEXT (5) ROWS ONLY")

    @pytest.mark.parametrize("dialect", ["sqlite", "postgresql"])
    def test_limit_offset_dialects(self, dialect):
        sql = format_query(BASE, skip=10, take=5, order_by="id desc", dialect=dialect)
        assert sql.endswith("WHERE 1=1 ORDER BY id DESC LIMIT 5 OFFSET 10")

    def test_skip_wins_over_top(self):
        with capture_logs() as logs:
            sql = format_query(BASE, top=3, skip=10, take=5, order_by="id")
        assert "TOP(" not in sql
        assert sql.endswith("ORDER BY id OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY")
        assert any(entry["event"] == "pagination_conflict" for entry in logs)


class TestValidation:
    @pytest.mark.parametrize(
        "options",
        [
            {"skip": 10},
            {"skip": 10, "take": 5},
            {"skip": 10, "order_by": "id"},
            {"skip": 10, "take": 5, "order_by": "  "},
        ],
    )
    def test_skip_requires_take_and_order_by(self, options):
        with pytest.raises(InvalidRequestError, match="skip requires"):
            format_request(QueryRequest(BASE, **options))

    @pytest.mark.parametrize(
        "options",
        [{"top": -1}, {"take": -5}, {"skip": -1, "take": 5, "order_by": "id"}, {"top": True}, {"top": "5"}],
    )
    def test_counts_must_be_non_negative_ints(self, options):
        with pytest.raises(InvalidRequestError, match="non-negative integer"):
            validate_pagination(**options)

    def test_pagination_checked_before_filter(self):
        with pytest.raises(InvalidRequestError):
            format_request(QueryRequest(BASE, filter="bad ~ filter", skip=1))

    def test_bad_filter(self):
        with pytest.raises(FilterSyntaxError):
            format_request(QueryRequest(BASE, filter="name eq"))

    def test_bad_order_by(self):
        with pytest.raises(InvalidRequestError):
            format_request(QueryRequest(BASE, order_by="name; drop table items"))


class TestParameters:
    def test_caller_parameters_merged_without_collision(self):
        request = QueryRequest(
            "select * from items where owner = :f0",
            filter="name eq 'a'",
            parameters={"f0": 7},
        )
        formatted = format_request(request)
        assert formatted == FormattedQuery(
            "SELECT * FROM (select * from items where owner = :f0) V WHERE 1=1 AND name = :f1",
            {"f0": 7, "f1": "a"},
        )

    def test_logs_parameter_names_only(self):
        with capture_logs() as logs:
            format_request(QueryRequest(BASE, filter="name eq 'hidden'", top=1))
        entry = next(entry for entry in logs if entry["event"] == "query_formatted")
        assert entry["mode"] == "top"
        assert entry["parameter_names"] == ["f0"]
        assert "hidden" not in repr(logs)
