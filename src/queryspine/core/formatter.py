"""
Paginated query formatter.

Wraps an opaque base query in a derived table and appends the translated
predicate, ordering and pagination clauses for the target dialect.

Manifesto:
    The base query is the caller's. It is never parsed, rewritten or
    re-cased; the formatter only builds a skeleton around it.

    - **Derived table:** ``SELECT * FROM (<base>) V WHERE 1=1`` always
    - **Two pagination modes:** ``skip`` (ordered window) wins over ``top``
      (first N rows); neither means the full filtered set
    - **Deterministic:** Same request, byte-identical statement
    - **Fail before SQL:** Inconsistent pagination raises
      InvalidRequestError and no statement is produced

Architecture:
    ::

        QueryRequest(base_query, filter, order_by, top, skip, take, parameters)
              │
              ├── translate_filter(filter)  ──►  "AND name = :f0"
              ├── translate_order_by(order_by)
              ▼
        ┌───────────────────────────────────────────────────────────────┐
        │ skip set  │ SELECT * FROM (...) V WHERE 1=1 AND ...          │
        │           │   ORDER BY c OFFSET (S) ROWS FETCH NEXT (T) ROWS │
        │           │   ONLY                                           │
        │ top set   │ SELECT TOP(N) * FROM (...) V WHERE 1=1 AND ...   │
        │           │   [ORDER BY c]                                   │
        │ neither   │ SELECT * FROM (...) V WHERE 1=1 AND ...          │
        │           │   [ORDER BY c]                                   │
        └───────────────────────────────────────────────────────────────┘
              │
              ▼
        FormattedQuery(sql, parameters = caller params + filter params)

Examples:
    >>> format_query("select id, name from items", "AND name = :f0", top=5)
    'SELECT TOP(5) * FROM (select id, name from items) V WHERE 1=1 AND name = :f0'
    >>> format_query("SELECT * FROM t", skip=10, take=5, order_by="id")
    'SELECT * FROM (SELECT * FROM t) V WHERE 1=1 ORDER BY id OFFSET (10) ROWS FETCH NEXT (5) ROWS ONLY'

Tags:
    pagination, formatter, derived-table, tsql, query-spine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from queryspine.core.dialect import Dialect, get_dialect
from queryspine.core.errors import InvalidRequestError
from queryspine.core.filters import PredicateFragment, guard_predicate, translate_filter
from queryspine.core.logging import get_logger
from queryspine.core.ordering import translate_order_by

logger = get_logger(__name__)

_TRAILING = re.compile(r"[\s;]+$")
_RAW_PREDICATE = re.compile(r"^AND\s+\S", re.IGNORECASE)
_STATEMENT_BREAK = re.compile(r";|--|/\*")


@dataclass(frozen=True)
class QueryRequest:
    """
    A base query plus filter, ordering and pagination directives.

    ``top`` and ``skip`` are alternative pagination modes. ``skip`` requires
    both ``take`` and ``order_by``; that rule is checked when the request is
    formatted, so building a request never raises.
    """

    base_query: str
    filter: str | None = None
    order_by: str | None = None
    top: int | None = None
    skip: int | None = None
    take: int | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FormattedQuery:
    """Final statement text and every bind parameter it references."""

    sql: str
    parameters: dict[str, Any] = field(default_factory=dict)


def _predicate_sql(predicate: str | PredicateFragment | None) -> str:
    if isinstance(predicate, PredicateFragment):
        return predicate.sql
    text = (predicate or "").strip()
    if not text:
        return ""
    # raw text must look like a translated fragment: one AND-prefixed predicate
    if not _RAW_PREDICATE.match(text) or _STATEMENT_BREAK.search(text):
        raise InvalidRequestError(
            "predicate must be an AND-prefixed expression without separators or comments",
            field="predicate",
            value=text,
        )
    guard_predicate(text)
    return text


def _check_count(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidRequestError(
            f"{name} must be a non-negative integer, got {value!r}",
            field=name,
            value=value,
            constraint=">= 0",
        )


def validate_pagination(
    *,
    top: int | None = None,
    skip: int | None = None,
    take: int | None = None,
    order_by: str | None = None,
) -> None:
    """
    Check pagination directives.

    Raises:
        InvalidRequestError: For negative or non-integer counts, or ``skip``
            without both ``take`` and ``order_by``.
    """
    _check_count("top", top)
    _check_count("skip", skip)
    _check_count("take", take)

    if skip is not None:
        missing = [
            name
            for name, value in (("take", take), ("order_by", order_by))
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise InvalidRequestError(
                f"skip requires {' and '.join(missing)}",
                field="skip",
                value=skip,
                constraint="skip requires take and order_by",
            )


def format_query(
    base_query: str,
    predicate: str | PredicateFragment = "",
    *,
    top: int | None = None,
    skip: int | None = None,
    take: int | None = None,
    order_by: str | None = None,
    dialect: Dialect | str | None = None,
) -> str:
    """
    Build the paginated statement text.

    Args:
        base_query: Opaque SQL; trailing whitespace and ``;`` are stripped.
        predicate: A fragment from
            :func:`~queryspine.core.filters.translate_filter`, or raw
            ``AND``-prefixed text. Raw text holding ``;`` or a comment marker
            is rejected, as is any statement keyword.
        top: First-N-rows limit (ignored when ``skip`` is set).
        skip: Rows to skip; requires ``take`` and ``order_by``.
        take: Page size for ``skip``.
        order_by: OData ``$orderby`` text.
        dialect: Output dialect; T-SQL by default.

    Raises:
        InvalidRequestError: If the base query is empty or the pagination
            directives are inconsistent, or raw predicate text is not a
            single ``AND`` clause.
        FilterSyntaxError: If raw predicate text contains a statement
            keyword.
    """
    validate_pagination(top=top, skip=skip, take=take, order_by=order_by)

    base = _TRAILING.sub("", base_query or "").strip()
    if not base:
        raise InvalidRequestError("base_query is empty", field="base_query", value=base_query)

    resolved = get_dialect(dialect)
    predicate_sql = _predicate_sql(predicate)
    ordering = translate_order_by(order_by) if order_by is not None and order_by.strip() else None

    if skip is not None and top is not None:
        logger.warning("pagination_conflict", top=top, skip=skip, resolution="skip")
        top = None

    parts = [f"{resolved.select_head(top)} FROM ({base}) V WHERE 1=1"]
    if predicate_sql:
        parts.append(predicate_sql)

    if skip is not None:
        parts.append(resolved.window_clause(ordering, skip, take))
    else:
        if ordering:
            parts.append(f"ORDER BY {ordering}")
        limit = resolved.limit_clause(top)
        if limit:
            parts.append(limit)

    return " ".join(parts)


def format_request(request: QueryRequest, *, dialect: Dialect | str | None = None) -> FormattedQuery:
    """
    Translate and format a :class:`QueryRequest`.

    Filter placeholders never collide with the caller's parameter names.

    Raises:
        InvalidRequestError: Inconsistent pagination or ordering.
        FilterSyntaxError: Filter outside the supported grammar.
    """
    resolved = get_dialect(dialect)
    validate_pagination(
        top=request.top,
        skip=request.skip,
        take=request.take,
        order_by=request.order_by,
    )

    fragment = translate_filter(request.filter, dialect=resolved, reserved=request.parameters.keys())
    sql = format_query(
        request.base_query,
        fragment,
        top=request.top,
        skip=request.skip,
        take=request.take,
        order_by=request.order_by,
        dialect=resolved,
    )

    parameters = dict(request.parameters)
    parameters.update(fragment.parameters)

    logger.debug(
        "query_formatted",
        dialect=resolved.name,
        mode="window" if request.skip is not None else "top" if request.top is not None else "all",
        parameter_names=sorted(parameters),
    )
    return FormattedQuery(sql=sql, parameters=parameters)


__all__ = [
    "QueryRequest",
    "FormattedQuery",
    "validate_pagination",
    "format_query",
    "format_request",
]
