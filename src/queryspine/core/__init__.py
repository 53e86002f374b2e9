"""query-spine core -- filter translation, query formatting and safe execution.

Manifesto:
    Applications hand this layer three kinds of untrusted or fragile input:
    filter text from the outside world, pagination directives, and the
    database itself. ``queryspine.core`` turns the first two into
    parameterized SQL and wraps the third so a failed read is a value, not
    a crash, while a failed transaction still aborts loudly.

    - **Protocol-first:** Connection and Dialect are protocols, not classes
    - **Parameterized everywhere:** Values travel as bind parameters only
    - **Typed outcomes:** Result[T] plus the flag-style ExecutionOutcome

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (QuerySpineError, ...)
        result.py          Result[T] envelope (Ok / Err) + ExecutionOutcome
        protocols.py       Connection, ConnectionFactory

    Layer 2 -- Statement Composition
        dialect.py         SQL dialects (mssql default, sqlite, postgresql)
        filters.py         OData $filter -> parameterized predicate
        ordering.py        OData $orderby -> ORDER BY list
        formatter.py       QueryRequest -> paginated statement

    Layer 3 -- Execution
        execution.py       run / run_result wrapper, driver error mapping
        mapping.py         Row -> dict / dataclass / pydantic model
        sqlite_conn.py     sqlite3 adapter
        sa_bridge.py       SQLAlchemy adapter (SQL Server, PostgreSQL)
        connection.py      URL -> connection factory
        transaction.py     Transaction handle + state machine
        database.py        Database facade

    Ambient
        settings.py        pydantic-settings configuration
        logging.py         structlog configuration

Tags:
    query-spine, core, odata, pagination, data-access

Doc-Types:
    - API Reference
    - Architecture Overview
"""

from queryspine.core.connection import ConnectionInfo, create_connection_factory
from queryspine.core.database import Database
from queryspine.core.dialect import (
    Dialect,
    MSSQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    register_dialect,
)
from queryspine.core.errors import (
    ConstraintError,
    DatabaseConnectionError,
    ErrorCategory,
    FilterSyntaxError,
    InvalidConfigError,
    InvalidRequestError,
    QueryError,
    QuerySpineError,
    QueryTimeoutError,
    TransactionAbortedError,
    TransactionError,
    TransactionStateError,
)
from queryspine.core.execution import CommandKind, map_driver_error, run, run_result
from queryspine.core.filters import PredicateFragment, translate_filter
from queryspine.core.formatter import FormattedQuery, QueryRequest, format_query, format_request
from queryspine.core.ordering import translate_order_by
from queryspine.core.result import Err, ExecutionOutcome, Ok, Result
from queryspine.core.settings import QuerySpineSettings
from queryspine.core.transaction import Transaction, TransactionState

__all__ = [
    # composition
    "QueryRequest",
    "FormattedQuery",
    "PredicateFragment",
    "translate_filter",
    "translate_order_by",
    "format_query",
    "format_request",
    # dialects
    "Dialect",
    "MSSQLDialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
    # execution
    "CommandKind",
    "run",
    "run_result",
    "map_driver_error",
    "Ok",
    "Err",
    "Result",
    "ExecutionOutcome",
    # data access
    "Database",
    "Transaction",
    "TransactionState",
    "ConnectionInfo",
    "create_connection_factory",
    "QuerySpineSettings",
    # errors
    "QuerySpineError",
    "ErrorCategory",
    "InvalidRequestError",
    "FilterSyntaxError",
    "QueryError",
    "ConstraintError",
    "DatabaseConnectionError",
    "QueryTimeoutError",
    "TransactionError",
    "TransactionAbortedError",
    "TransactionStateError",
    "InvalidConfigError",
]
