"""
Structured error types for query-spine.

Every failure this library can produce is a ``QuerySpineError`` carrying a
category, a retryable flag, structured context and the chained driver
exception. The execution wrapper turns driver exceptions into this hierarchy
before they are captured in an ``Err``, so callers inspecting a failed
operation always see the same shapes regardless of backend.

Manifesto:
    - **Typed hierarchy:** Caller-input errors, execution errors and
      transaction errors are distinct classes with distinct policies
    - **Explicit retry semantics:** Each error knows if a retry can help
    - **Rich context:** Errors carry the statement kind, dialect and
      parameter names (never parameter values) for logging
    - **Error chaining:** The original driver exception stays available

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       QuerySpineError                        │
        │  (category, retryable, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │  ValidationError       ParseError          DatabaseError     │
        │  (VALIDATION)          (PARSE)             (DATABASE)        │
        │       │                    │                   │             │
        │  InvalidRequestError  FilterSyntaxError   QueryError         │
        │  ConstraintError                          TransientError     │
        │                                            ├ DatabaseConnectionError
        │                                            └ QueryTimeoutError
        │  TransactionError      ConfigError                           │
        │  (TRANSACTION)         (CONFIG)                              │
        │       │                    │                                 │
        │  TransactionAbortedError  InvalidConfigError                 │
        │  TransactionStateError                                       │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = QueryTimeoutError("statement exceeded 30s")
    >>> error.retryable
    True
    >>> error.with_context(dialect="mssql").context.dialect
    'mssql'

Tags:
    error-handling, exception-hierarchy, query-spine, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"           # Connection refused, DNS, login timeout
    DATABASE = "DATABASE"         # Driver, syntax, statement timeout

    # Caller input
    PARSE = "PARSE"               # Malformed filter expression
    VALIDATION = "VALIDATION"     # Malformed request, constraint violation

    # Configuration (never retryable)
    CONFIG = "CONFIG"

    # Unit-of-work failures
    TRANSACTION = "TRANSACTION"

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what the data-access layer knows at failure time.
    Anything else goes into ``metadata``. ``to_dict()`` only emits fields
    that are set, so log lines stay small.

    Attributes:
        operation: Facade operation name (``get_list``, ``execute``, ...)
        command_kind: ``text`` or ``stored_procedure``
        dialect: Dialect name the statement was rendered for
        parameter_names: Bound parameter names (values are never recorded)
        position: Character offset for parse errors
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    command_kind: str | None = None
    dialect: str | None = None
    parameter_names: list[str] | None = None
    position: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "command_kind", "dialect", "parameter_names", "position"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class QuerySpineError(Exception):
    """
    Base exception for all query-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so most
    call sites only pass a message and, when wrapping, a ``cause``.

    Examples:
        >>> error = QuerySpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> QuerySpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("Failed").with_context(operation="get_list")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            context_dict = self.context.to_dict()
            if context_dict:
                result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CALLER-INPUT ERRORS (fail fast, never retryable)
# =============================================================================


class ValidationError(QuerySpineError):
    """
    Caller supplied something that can never succeed as given.

    Never retryable - the request must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class InvalidRequestError(ValidationError):
    """Pagination or ordering directives are inconsistent or malformed."""
    pass


class ParseError(QuerySpineError):
    """Text could not be parsed."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class FilterSyntaxError(ParseError):
    """A filter expression is outside the supported grammar."""

    def __init__(self, message: str, *, position: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.position = position
        if position is not None:
            self.context.position = position


# =============================================================================
# EXECUTION ERRORS (captured by the execution wrapper)
# =============================================================================


class DatabaseError(QuerySpineError):
    """Statement execution failed at the backend."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """SQL statement rejected or failed (syntax, missing object, bad cast)."""
    pass


class ConstraintError(DatabaseError):
    """Integrity constraint violation (unique, foreign key, not null)."""

    default_category = ErrorCategory.VALIDATION


class TransientError(DatabaseError):
    """
    Temporary failure that may succeed on retry.

    Retries are the caller's decision; this layer never retries on its own.
    """

    default_retryable = True


class DatabaseConnectionError(TransientError):
    """Could not open or keep a connection to the backend."""

    default_category = ErrorCategory.NETWORK


class QueryTimeoutError(TransientError):
    """Statement exceeded the configured command timeout."""
    pass


# =============================================================================
# TRANSACTION ERRORS (always re-raised to the batch caller)
# =============================================================================


class TransactionError(QuerySpineError):
    """Transactional batch did not commit."""

    default_category = ErrorCategory.TRANSACTION
    default_retryable = False


class TransactionAbortedError(TransactionError):
    """An operation inside the batch failed, so the batch was rolled back."""
    pass


class TransactionStateError(TransactionError):
    """Illegal transition of the transaction state machine."""

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} a transaction in state {current}")


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(QuerySpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, QuerySpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, QuerySpineError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "QuerySpineError",
    # Caller input
    "ValidationError",
    "InvalidRequestError",
    "ParseError",
    "FilterSyntaxError",
    # Execution
    "DatabaseError",
    "QueryError",
    "ConstraintError",
    "TransientError",
    "DatabaseConnectionError",
    "QueryTimeoutError",
    # Transactions
    "TransactionError",
    "TransactionAbortedError",
    "TransactionStateError",
    # Config
    "ConfigError",
    "InvalidConfigError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
