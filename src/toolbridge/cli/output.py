"""
Output formatting utilities for the CLI.

Provides consistent output formatting across all CLI commands.
"""

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Global console instances
console = Console()
err_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]i[/blue] {message}")


def print_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str | None = None,
) -> None:
    """Print a table."""
    table = Table(title=title)

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def setup_logging(level: str = "WARNING") -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
