"""
Root Typer application for the query-spine CLI.

Commands::

    queryspine translate "name eq 'a'"                     # predicate + params
    queryspine format "select * from items" --top 5 -f "price gt 10"
    queryspine query "select * from items" -d items.db --skip 10 --take 5 --orderby id
    queryspine execute "delete from items where id = 3" -d items.db

Caller-input errors (bad filter, inconsistent pagination, bad config) exit
with code 2; execution failures exit with code 1.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError as SettingsValidationError
from typer import Typer

from queryspine.cli.utils import console, echo_json, fail, print_parameters, print_rows
from queryspine.core.database import Database
from queryspine.core.errors import InvalidConfigError, QuerySpineError
from queryspine.core.filters import translate_filter
from queryspine.core.formatter import QueryRequest, format_request
from queryspine.core.logging import configure_logging
from queryspine.core.settings import QuerySpineSettings

app = Typer(
    name="queryspine",
    help="query-spine: OData filter translation and paginated query execution.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("queryspine")
        except PackageNotFoundError:
            from queryspine import __version__ as v
        typer.echo(f"queryspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level for stderr diagnostics [default: QUERYSPINE_LOG_LEVEL]."
    ),
    log_json: bool | None = typer.Option(
        None, "--log-json/--log-console", help="Log renderer [default: QUERYSPINE_LOG_JSON, else JSON when not a tty]."
    ),
) -> None:
    """query-spine CLI: translate filters, format and run paginated queries."""
    try:
        settings = QuerySpineSettings()
    except SettingsValidationError as exc:
        fail(InvalidConfigError("settings", None, str(exc)))
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json if log_json is None else log_json,
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _open_database(database: str | None, dialect: str | None, timeout: float | None) -> Database:
    try:
        settings = QuerySpineSettings(database_url=database) if database else QuerySpineSettings()
        return Database(settings, dialect=dialect, timeout=timeout)
    except SettingsValidationError as exc:
        fail(InvalidConfigError("settings", database, str(exc)))
    except QuerySpineError as exc:
        fail(exc)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def translate(
    filter: str = typer.Argument(..., help="OData $filter expression."),
    dialect: str = typer.Option("mssql", "--dialect", help="Output dialect."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Translate a filter into a parameterized SQL predicate."""
    try:
        fragment = translate_filter(filter, dialect=dialect)
    except QuerySpineError as exc:
        fail(exc)

    if json_out:
        echo_json({"sql": fragment.sql, "parameters": fragment.parameters, "truncated": fragment.truncated})
        return

    typer.echo(fragment.sql)
    print_parameters(fragment.parameters)


@app.command("format")
def format_cmd(
    base_query: str = typer.Argument(..., help="Base SQL query (kept verbatim)."),
    filter: str | None = typer.Option(None, "--filter", "-f", help="OData $filter expression."),
    top: int | None = typer.Option(None, "--top", help="Return at most N rows."),
    skip: int | None = typer.Option(None, "--skip", help="Rows to skip (needs --take and --orderby)."),
    take: int | None = typer.Option(None, "--take", help="Page size for --skip."),
    order_by: str | None = typer.Option(None, "--orderby", help="OData $orderby expression."),
    dialect: str = typer.Option("mssql", "--dialect", help="Output dialect."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Format a paginated statement without running it."""
    request = QueryRequest(base_query, filter=filter, order_by=order_by, top=top, skip=skip, take=take)
    try:
        formatted = format_request(request, dialect=dialect)
    except QuerySpineError as exc:
        fail(exc)

    if json_out:
        echo_json({"sql": formatted.sql, "parameters": formatted.parameters})
        return

    typer.echo(formatted.sql)
    print_parameters(formatted.parameters)


@app.command()
def query(
    base_query: str = typer.Argument(..., help="Base SQL query (kept verbatim)."),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or SQLite path."),
    filter: str | None = typer.Option(None, "--filter", "-f", help="OData $filter expression."),
    top: int | None = typer.Option(None, "--top", help="Return at most N rows."),
    skip: int | None = typer.Option(None, "--skip", help="Rows to skip (needs --take and --orderby)."),
    take: int | None = typer.Option(None, "--take", help="Page size for --skip."),
    order_by: str | None = typer.Option(None, "--orderby", help="OData $orderby expression."),
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect override."),
    timeout: float | None = typer.Option(None, "--timeout", help="Command timeout in seconds."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run a filtered, paginated query and print the rows."""
    with _open_database(database, dialect, timeout) as db:
        result = db.get_queryable_result(
            base_query,
            filter=filter,
            top=top,
            skip=skip,
            take=take,
            order_by=order_by,
        )

    if result.is_err():
        fail(result.error)

    rows = result.unwrap()
    if json_out:
        echo_json(rows)
        return
    print_rows(rows, title="Query Result")


@app.command()
def execute(
    sql: str = typer.Argument(..., help="Statement to run."),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or SQLite path."),
    timeout: float | None = typer.Option(None, "--timeout", help="Command timeout in seconds."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run a write statement and print the affected-row count."""
    with _open_database(database, None, timeout) as db:
        result = db.execute_result(sql)

    if result.is_err():
        fail(result.error)

    if json_out:
        echo_json({"affected": result.unwrap(), "has_data": result.has_data})
        return
    console.print(f"[green]OK[/green] {result.unwrap()} row(s) affected")
