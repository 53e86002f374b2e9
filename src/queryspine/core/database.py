"""
Database facade: list, single, scalar, queryable and write operations plus
transactional batches.

``Database`` is the caller-facing data-access API. Each single operation
acquires its own connection, runs exactly one statement, commits, and
closes the connection on every exit path. Outcomes come back as an
:class:`~queryspine.core.result.ExecutionOutcome` (``value, succeeded,
has_data``) or, from the ``*_result`` variants, as ``Ok`` / ``Err``.

Manifesto:
    Reads and writes fail quietly, transactions fail loudly.

    - **Fail-quiet singles:** ``get_*`` and ``execute`` never raise for
      ordinary failures; ``succeeded`` says whether the call worked and
      ``has_data`` says whether anything was found or affected
    - **Fail-loud batches:** ``execute_transaction`` rolls back and re-raises
      so partial writes are never committed
    - **Caller errors stay local:** Queryable requests are validated and
      translated before a connection is acquired

Architecture:
    ::

        Database(settings | url, dialect=, timeout=, connection_factory=)
           │
           ├── get_list / get_list_joined ──┐
           ├── get_single / get_single_joined│
           ├── get_scalar                    ├──► run_result(op) ──► Ok | Err
           ├── get_queryable ────────────────┤        │
           │     format_request() first      │        └── to_outcome()
           ├── execute ──────────────────────┘
           │
           ├── transaction()          ──► with-block, yields Transaction
           ├── execute_transaction(b) ──► b(tx); commit | rollback + raise
           └── try_transaction(b)     ──► Ok(value) | Err(error)

        One statement, one connection:
        ┌──────────────────────────────────────────────────────────────┐
        │ factory() → execute(sql, params) → fetch → commit → close()  │
        │ with transaction=tx: reuse tx.connection, never close/commit │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> db = Database("memory")
    >>> db.execute("CREATE TABLE items (id INTEGER, name TEXT)").succeeded
    True
    >>> db.execute("INSERT INTO items VALUES (1, 'a')").has_data
    True
    >>> rows, ok, found = db.get_queryable("SELECT id, name FROM items", filter="name eq 'a'", top=5)
    >>> rows
    [{'id': 1, 'name': 'a'}]

Tags:
    data-access, facade, transaction, pagination, query-spine

Doc-Types:
    - API Reference
    - Usage Guide
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from queryspine.core.connection import ConnectionInfo, create_connection_factory
from queryspine.core.dialect import Dialect, get_dialect
from queryspine.core.errors import (
    InvalidConfigError,
    QueryError,
    QuerySpineError,
    TransactionAbortedError,
)
from queryspine.core.execution import CommandKind, map_driver_error, prepare_command, run_result
from queryspine.core.formatter import QueryRequest, format_request
from queryspine.core.logging import get_logger
from queryspine.core.mapping import map_joined, map_rows
from queryspine.core.protocols import Connection, ConnectionFactory
from queryspine.core.result import Err, ExecutionOutcome, Ok, Result
from queryspine.core.settings import QuerySpineSettings
from queryspine.core.transaction import Transaction, TransactionState

logger = get_logger(__name__)

T = TypeVar("T")


class Database:
    """
    Data-access facade over one database.

    Args:
        settings: ``QuerySpineSettings``, a database URL, or ``None`` to read
            settings from the environment.
        dialect: Output dialect override (name or instance).
        timeout: Command timeout override in seconds.
        connection_factory: Custom connection source; when given, no
            connection factory is built from the URL.
    """

    def __init__(
        self,
        settings: QuerySpineSettings | str | None = None,
        *,
        dialect: Dialect | str | None = None,
        timeout: float | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        if settings is None:
            settings = QuerySpineSettings()
        elif isinstance(settings, str):
            settings = QuerySpineSettings(database_url=settings)
        self.settings = settings

        self.timeout = settings.command_timeout if timeout is None else timeout
        if self.timeout <= 0:
            raise InvalidConfigError("command_timeout", self.timeout, "command_timeout must be greater than 0")

        self.dialect = get_dialect(dialect) if dialect is not None else settings.resolve_dialect()

        self.info: ConnectionInfo | None = None
        if connection_factory is None:
            connection_factory, self.info = create_connection_factory(settings.database_url, timeout=self.timeout)
        self._factory = connection_factory

    # -- plumbing ----------------------------------------------------------

    def _acquire(self) -> Connection:
        try:
            return self._factory()
        except QuerySpineError:
            raise
        except Exception as exc:
            raise map_driver_error(exc) from exc

    @contextmanager
    def _connection(self, transaction: Transaction | None) -> Iterator[Connection]:
        if transaction is not None:
            transaction.ensure_active()
            yield transaction.connection
            return
        conn = self._acquire()
        try:
            yield conn
        finally:
            conn.close()

    def _statement(
        self,
        sql: str,
        kind: CommandKind | str,
        params: Mapping[str, Any] | None,
        transaction: Transaction | None,
    ) -> tuple[list[str], list[tuple], int]:
        statement = prepare_command(sql, kind, params, self.dialect)
        with self._connection(transaction) as conn:
            conn.execute(statement, dict(params or {}))
            columns = list(conn.columns)
            rows = conn.fetchall() if columns else []
            rowcount = conn.rowcount
            if transaction is None:
                conn.commit()
        return columns, rows, rowcount

    def _run(
        self,
        name: str,
        operation: Callable[[], T],
        *,
        kind: CommandKind | str,
        params: Mapping[str, Any] | None,
        transaction: Transaction | None,
        has_data: Callable[[T], bool] | None = None,
    ) -> Result[T]:
        result = run_result(
            operation,
            name=name,
            context={
                "dialect": self.dialect.name,
                "command_kind": getattr(kind, "value", kind),
                "parameter_names": sorted(params or {}),
            },
            has_data=has_data,
        )
        if isinstance(result, Err) and transaction is not None:
            transaction.mark_failed(result.error)
        return result

    # -- reads -------------------------------------------------------------

    def get_list_result(
        self,
        sql: str,
        shape: Any = dict,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[list[Any]]:
        def operation() -> list[Any]:
            columns, rows, _ = self._statement(sql, kind, params, transaction)
            return map_rows(columns, rows, shape)

        return self._run("get_list", operation, kind=kind, params=params, transaction=transaction)

    def get_list(self, sql: str, shape: Any = dict, **options: Any) -> ExecutionOutcome[list[Any]]:
        """All rows mapped to ``shape``; ``has_data`` when non-empty."""
        return self.get_list_result(sql, shape, **options).to_outcome(default=[])

    def get_list_joined_result(
        self,
        sql: str,
        map: Callable[[Any, Any], Any],
        first: Any = dict,
        second: Any = dict,
        *,
        split_on: str = "id",
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[list[Any]]:
        def operation() -> list[Any]:
            columns, rows, _ = self._statement(sql, kind, params, transaction)
            return map_joined(columns, rows, first, second, map, split_on)

        return self._run("get_list_joined", operation, kind=kind, params=params, transaction=transaction)

    def get_list_joined(
        self,
        sql: str,
        map: Callable[[Any, Any], Any],
        first: Any = dict,
        second: Any = dict,
        **options: Any,
    ) -> ExecutionOutcome[list[Any]]:
        """Rows split at ``split_on`` into two shapes and combined by ``map``."""
        return self.get_list_joined_result(sql, map, first, second, **options).to_outcome(default=[])

    def get_single_result(
        self,
        sql: str,
        shape: Any = dict,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[Any]:
        def operation() -> Any:
            columns, rows, _ = self._statement(sql, kind, params, transaction)
            mapped = map_rows(columns, rows[:1], shape)
            return mapped[0] if mapped else None

        return self._run("get_single", operation, kind=kind, params=params, transaction=transaction)

    def get_single(self, sql: str, shape: Any = dict, **options: Any) -> ExecutionOutcome[Any]:
        """First row mapped to ``shape`` (``None`` when there are no rows)."""
        return self.get_single_result(sql, shape, **options).to_outcome()

    def get_single_joined_result(
        self,
        sql: str,
        map: Callable[[Any, Any], Any],
        first: Any = dict,
        second: Any = dict,
        *,
        split_on: str = "id",
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[Any]:
        def operation() -> Any:
            columns, rows, _ = self._statement(sql, kind, params, transaction)
            if len(rows) > 1:
                raise QueryError(f"Expected at most one row, got {len(rows)}")
            mapped = map_joined(columns, rows, first, second, map, split_on)
            return mapped[0] if mapped else None

        return self._run("get_single_joined", operation, kind=kind, params=params, transaction=transaction)

    def get_single_joined(
        self,
        sql: str,
        map: Callable[[Any, Any], Any],
        first: Any = dict,
        second: Any = dict,
        **options: Any,
    ) -> ExecutionOutcome[Any]:
        """The only row, split and combined by ``map``; more than one row fails."""
        return self.get_single_joined_result(sql, map, first, second, **options).to_outcome()

    def get_scalar_result(
        self,
        sql: str,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[Any]:
        def operation() -> Any:
            _, rows, _ = self._statement(sql, kind, params, transaction)
            return rows[0][0] if rows else None

        return self._run("get_scalar", operation, kind=kind, params=params, transaction=transaction)

    def get_scalar(self, sql: str, **options: Any) -> ExecutionOutcome[Any]:
        """First column of the first row."""
        return self.get_scalar_result(sql, **options).to_outcome()

    def get_queryable_result(
        self,
        request: QueryRequest | str,
        shape: Any = dict,
        *,
        filter: str | None = None,
        top: int | None = None,
        skip: int | None = None,
        take: int | None = None,
        order_by: str | None = None,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[list[Any]]:
        if not isinstance(request, QueryRequest):
            request = QueryRequest(
                base_query=request,
                filter=filter,
                order_by=order_by,
                top=top,
                skip=skip,
                take=take,
                parameters=dict(params or {}),
            )

        def operation() -> list[Any]:
            # formatting errors surface here, before any connection exists
            formatted = format_request(request, dialect=self.dialect)
            columns, rows, _ = self._statement(formatted.sql, CommandKind.TEXT, formatted.parameters, transaction)
            return map_rows(columns, rows, shape)

        return self._run(
            "get_queryable",
            operation,
            kind=CommandKind.TEXT,
            params=request.parameters,
            transaction=transaction,
        )

    def get_queryable(self, request: QueryRequest | str, shape: Any = dict, **options: Any) -> ExecutionOutcome[list[Any]]:
        """Filtered, ordered and paginated rows of a base query."""
        return self.get_queryable_result(request, shape, **options).to_outcome(default=[])

    # -- writes ------------------------------------------------------------

    def execute_result(
        self,
        sql: str,
        *,
        kind: CommandKind | str = CommandKind.TEXT,
        params: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Result[int]:
        def operation() -> int:
            _, _, rowcount = self._statement(sql, kind, params, transaction)
            return rowcount

        return self._run(
            "execute",
            operation,
            kind=kind,
            params=params,
            transaction=transaction,
            has_data=lambda rowcount: rowcount > 0,
        )

    def execute(self, sql: str, **options: Any) -> ExecutionOutcome[int]:
        """Run a write; ``has_data`` is true when at least one row was affected."""
        return self.execute_result(sql, **options).to_outcome(default=0)

    # -- transactions ------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Open a transaction on a dedicated connection.

        Commits when the block completes, rolls back and re-raises when it
        raises. A block that completes after one of its operations failed is
        rolled back and raises :class:`TransactionAbortedError`.
        """
        conn = self._acquire()
        tx = Transaction(conn, database=self)
        try:
            tx.begin()
            yield tx
            if tx.failed:
                raise TransactionAbortedError(
                    "An operation inside the transaction failed",
                    cause=tx.error,
                )
            tx.commit()
            logger.info("transaction_committed", dialect=self.dialect.name)
        except BaseException as exc:
            if tx.state is TransactionState.BEGAN:
                try:
                    tx.rollback()
                except Exception as rollback_exc:
                    logger.error(
                        "transaction_rollback_failed",
                        error_type=type(rollback_exc).__name__,
                        message=str(rollback_exc),
                    )
                logger.warning(
                    "transaction_rolled_back",
                    dialect=self.dialect.name,
                    error_type=type(exc).__name__,
                )
            raise
        finally:
            conn.close()

    def execute_transaction(self, batch: Callable[[Transaction], T]) -> T:
        """
        Run ``batch(tx)`` in one transaction and return its value.

        Raises:
            ValueError: If ``batch`` is ``None``.
            Exception: Whatever the batch raised, after rollback.
            TransactionAbortedError: A wrapped operation failed inside the
                batch, so nothing was committed.
        """
        if batch is None:
            raise ValueError("batch is required")
        with self.transaction() as tx:
            return batch(tx)

    def try_transaction(self, batch: Callable[[Transaction], T]) -> Result[T]:
        """Like :meth:`execute_transaction` but returns ``Err`` instead of raising."""
        if batch is None:
            raise ValueError("batch is required")
        try:
            return Ok(self.execute_transaction(batch))
        except Exception as exc:
            return Err(map_driver_error(exc))

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Release pooled resources held by the connection factory."""
        dispose = getattr(self._factory, "dispose", None)
        if dispose is not None:
            dispose()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database(dialect={self.dialect.name!r}, timeout={self.timeout}, info={self.info!r})"


__all__ = ["Database"]
