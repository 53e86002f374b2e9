"""Order-by translation.

Validates an OData ``$orderby`` value (``col [asc|desc], ...``) and renders
the column list used after ``ORDER BY``. Ordering text is spliced into the
statement skeleton, so every identifier is checked against a strict pattern
and the statement-keyword denylist.
"""

from __future__ import annotations

import re

from queryspine.core.errors import InvalidRequestError
from queryspine.core.filters import STATEMENT_KEYWORDS

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:[/.][A-Za-z_][A-Za-z0-9_]*)*")

_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}


def translate_order_by(order_by: str) -> str:
    """
    Render ``order_by`` as a validated ``ORDER BY`` column list.

    >>> translate_order_by("name desc, Category/Id")
    'name DESC, Category.Id'

    Raises:
        InvalidRequestError: For empty terms, unknown directions, or
            identifiers outside ``[A-Za-z_][A-Za-z0-9_]*`` (with ``/`` or
            ``.`` navigation).
    """
    if order_by is None or not order_by.strip():
        raise InvalidRequestError("order_by is empty", field="order_by", value=order_by)

    terms: list[str] = []
    for raw in order_by.split(","):
        parts = raw.split()
        if not parts or len(parts) > 2:
            raise InvalidRequestError(
                f"Invalid order_by term {raw.strip()!r}",
                field="order_by",
                value=order_by,
                constraint="col [asc|desc]",
            )

        column = parts[0]
        if not _IDENTIFIER.fullmatch(column):
            raise InvalidRequestError(
                f"Invalid order_by column {column!r}",
                field="order_by",
                value=order_by,
                constraint="identifier",
            )
        segments = re.split(r"[/.]", column)
        if any(segment.upper() in STATEMENT_KEYWORDS for segment in segments):
            raise InvalidRequestError(
                f"order_by column {column!r} is a reserved statement keyword",
                field="order_by",
                value=order_by,
            )

        rendered = ".".join(segments)
        if len(parts) == 2:
            direction = _DIRECTIONS.get(parts[1].lower())
            if direction is None:
                raise InvalidRequestError(
                    f"Invalid order_by direction {parts[1]!r}",
                    field="order_by",
                    value=order_by,
                    constraint="asc|desc",
                )
            rendered = f"{rendered} {direction}"
        terms.append(rendered)

    return ", ".join(terms)


__all__ = ["translate_order_by"]
