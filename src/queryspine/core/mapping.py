"""Row mapping.

Converts raw result rows into caller shapes: plain dicts, tuples,
dataclasses, pydantic models, or any callable taking keyword arguments.
Column names are matched to dataclass / model fields case-insensitively
and columns without a matching field are dropped.

Two-shape joins split each row at a marker column (``split_on``, ``id`` by
default) and hand both halves to a caller ``map`` function::

    SELECT o.id, o.total, c.id, c.name FROM orders o JOIN customers c ...
           └── Order ───┘ └── Customer ─┘
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel

from queryspine.core.errors import InvalidRequestError

RowMapper = Callable[[Sequence[Any]], Any]


def _field_lookup(names: Sequence[str], columns: Sequence[str]) -> list[tuple[int, str]]:
    """Pairs of (column index, field name) for columns that match a field."""
    by_lower = {name.lower(): name for name in names}
    pairs: list[tuple[int, str]] = []
    seen: set[str] = set()
    for index, column in enumerate(columns):
        name = by_lower.get(column.lower())
        if name is not None and name not in seen:
            pairs.append((index, name))
            seen.add(name)
    return pairs


def row_mapper(columns: Sequence[str], shape: Any = dict) -> RowMapper:
    """Build a converter from a row tuple to ``shape``."""
    columns = list(columns)

    if shape is None or shape is dict:
        return lambda row: dict(zip(columns, row))

    if shape is tuple:
        return tuple

    if isinstance(shape, type) and dataclasses.is_dataclass(shape):
        pairs = _field_lookup([f.name for f in dataclasses.fields(shape) if f.init], columns)
        return lambda row: shape(**{name: row[index] for index, name in pairs})

    if isinstance(shape, type) and issubclass(shape, BaseModel):
        pairs = _field_lookup(list(shape.model_fields), columns)
        return lambda row: shape.model_validate({name: row[index] for index, name in pairs})

    if callable(shape):
        return lambda row: shape(**dict(zip(columns, row)))

    raise TypeError(f"Cannot map rows to {shape!r}")


def map_rows(columns: Sequence[str], rows: Sequence[Sequence[Any]], shape: Any = dict) -> list[Any]:
    """Map every row to ``shape``."""
    convert = row_mapper(columns, shape)
    return [convert(row) for row in rows]


def split_index(columns: Sequence[str], split_on: str) -> int:
    """
    Position of the first ``split_on`` column after position 0.

    Raises:
        InvalidRequestError: If no such column exists.
    """
    target = split_on.lower()
    for index, column in enumerate(columns):
        if index > 0 and column.lower() == target:
            return index
    raise InvalidRequestError(
        f"split_on column {split_on!r} was not found after the first column",
        field="split_on",
        value=split_on,
    )


def map_joined(
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    first: Any,
    second: Any,
    map: Callable[[Any, Any], Any],
    split_on: str = "id",
) -> list[Any]:
    """
    Map each row into two shapes and combine them with ``map``.

    When every column of the second half is NULL (an unmatched outer join)
    the second object is ``None``.
    """
    index = split_index(columns, split_on)
    convert_first = row_mapper(columns[:index], first)
    convert_second = row_mapper(columns[index:], second)

    mapped: list[Any] = []
    for row in rows:
        head, tail = row[:index], row[index:]
        other = None if all(value is None for value in tail) else convert_second(tail)
        mapped.append(map(convert_first(head), other))
    return mapped


__all__ = [
    "RowMapper",
    "row_mapper",
    "map_rows",
    "split_index",
    "map_joined",
]
