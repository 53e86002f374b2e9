"""
CLI layer for query-spine.

Provides a Typer application that translates filters, formats paginated
statements and runs them against a database. All query logic lives in
``queryspine.core``; this package handles only terminal transport:
argument parsing, coloured output, and table formatting.

Entry point::

    queryspine --help
"""

from queryspine.cli.app import app

__all__ = ["app"]
