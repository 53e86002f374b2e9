"""
CLI utility helpers - output formatting and error reporting.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from queryspine.core.errors import ConfigError, ParseError, QuerySpineError, ValidationError

console = Console()
err_console = Console(stderr=True)

# Exit codes
EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": obj}


def echo_json(payload: Any) -> None:
    """Write ``payload`` as JSON to stdout (unwrapped, machine readable)."""
    typer.echo(json.dumps(payload, indent=2, default=str))


def print_rows(rows: list[Any], *, title: str = "") -> None:
    """Render mapped rows as a Rich table."""
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    first = _to_dict(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(str(col), overflow="fold")
    for row in rows:
        d = _to_dict(row)
        table.add_row(*("NULL" if v is None else str(v) for v in d.values()))
    console.print(table)


def print_parameters(parameters: dict[str, Any]) -> None:
    """Render bind parameters as key-value pairs."""
    for name, value in parameters.items():
        console.print(f"  [cyan]{name}[/cyan] = {escape(repr(value))}", highlight=False)


# ── Error helpers ────────────────────────────────────────────────────────


def is_input_error(error: Exception) -> bool:
    return isinstance(error, (ValidationError, ParseError, ConfigError))


def fail(error: Exception) -> NoReturn:
    """Report ``error`` on stderr and exit (2 for caller input, 1 otherwise)."""
    if isinstance(error, QuerySpineError):
        label = f"{type(error).__name__} ({error.category.value})"
    else:
        label = type(error).__name__
    err_console.print(f"[bold red]Error[/bold red] {label}: ", end="")
    err_console.print(str(error), markup=False, highlight=False)
    raise typer.Exit(code=EXIT_INPUT_ERROR if is_input_error(error) else EXIT_FAILURE)
