"""
Result envelope for operation outcomes.

Provides a typed ``Result[T]`` (``Ok[T] | Err[T]``) and the flag-style
``ExecutionOutcome`` the data-access facade returns. Data-access calls never
raise on ordinary failure; they either hand back ``Ok`` with the value and a
``has_data`` flag, or ``Err`` with the classified exception.

Manifesto:
    - **Failure is a value:** Single operations report, they do not raise
    - **Success is not presence:** ``has_data`` is separate from success, an
      operation can succeed and legitimately return no rows
    - **Two views, one source:** ``ExecutionOutcome`` is derived from a
      ``Result`` with ``to_outcome()``, never built by hand in the facade

Architecture:
    ::

        ┌──────────────────────────────┬──────────────────────────────┐
        │           Ok[T]              │           Err[T]             │
        ├──────────────────────────────┼──────────────────────────────┤
        │ • value: T                   │ • error: Exception           │
        │ • has_data: bool             │ • has_data: False            │
        │ • map() / flat_map()         │ • map_err() / or_else()      │
        │ • to_outcome() -> succeeded  │ • to_outcome() -> failed     │
        └──────────────────────────────┴──────────────────────────────┘
                              │
                              ▼
              ExecutionOutcome(value, succeeded, has_data)

Examples:
    >>> Ok([1, 2]).has_data
    True
    >>> Ok([]).has_data
    False
    >>> Err(ValueError("boom")).to_outcome(default=[])
    ExecutionOutcome(value=[], succeeded=False, has_data=False)
    >>> value, succeeded, has_data = Ok(3).to_outcome()
    >>> (value, succeeded, has_data)
    (3, True, True)

Tags:
    result-pattern, error-handling, execution-outcome, query-spine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from collections.abc import Iterator, Sized
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from queryspine.core.errors import QuerySpineError


T = TypeVar("T")
U = TypeVar("U")


def has_data(value: Any) -> bool:
    """
    Decide whether a successful value carries data.

    ``None`` is empty, sized containers are empty when their length is zero,
    and every other value (including ``0``, ``False`` and ``""`` scalars)
    counts as data.
    """
    if value is None:
        return False
    if isinstance(value, (str, bytes)):
        return True
    if isinstance(value, Sized):
        return len(value) > 0
    return True


@dataclass(frozen=True, slots=True)
class ExecutionOutcome(Generic[T]):
    """
    Flag-style view of an operation outcome.

    Iterable so callers can unpack it::

        rows, succeeded, found = db.get_list("SELECT * FROM items")
    """

    value: T | None
    succeeded: bool
    has_data: bool

    def __iter__(self) -> Iterator[Any]:
        yield self.value
        yield self.succeeded
        yield self.has_data


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful result containing a value.

    ``has_data`` defaults to :func:`has_data` of the value; operations whose
    notion of "found" differs (affected-row counts) pass it explicitly.
    """

    value: T
    has_data: bool | None = None

    def __post_init__(self) -> None:
        if self.has_data is None:
            object.__setattr__(self, "has_data", has_data(self.value))

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Chain to another Result-returning function."""
        return f(self.value)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return self

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:
        return self

    def inspect_err(self, f: Callable[[Exception], None]) -> Result[T]:
        return self

    def to_outcome(self, default: T | None = None) -> ExecutionOutcome[T]:
        return ExecutionOutcome(self.value, True, bool(self.has_data))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value, "has_data": self.has_data}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing an error.

    ``map`` and ``flat_map`` pass the error through unchanged; ``unwrap``
    raises it. Prefer a :class:`QuerySpineError` so ``to_dict()`` carries
    category and context.
    """

    error: Exception

    @property
    def has_data(self) -> bool:
        return False

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform the error."""
        return Err(f(self.error))

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:
        """Call f with error to try recovery."""
        return f(self.error)

    def inspect_err(self, f: Callable[[Exception], None]) -> Result[T]:
        """Call f with error for side effects, return self."""
        f(self.error)
        return self

    def to_outcome(self, default: T | None = None) -> ExecutionOutcome[T]:
        return ExecutionOutcome(default, False, False)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, QuerySpineError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Execute a zero-argument callable and wrap its outcome.

    >>> try_result(lambda: 1 / 0).is_err()
    True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


def try_result_with(
    f: Callable[[], T],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    """Like :func:`try_result`, mapping the caught exception first."""
    try:
        return Ok(f())
    except Exception as e:
        if error_mapper:
            return Err(error_mapper(e))
        return Err(e)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "ExecutionOutcome",
    "has_data",
    "try_result",
    "try_result_with",
]
