"""Output formatting for the command line interface."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Prints command results as rich text or JSON.

    Messages go to stderr so that JSON on stdout stays parseable.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Print results as JSON instead of text
            quiet: Suppress informational messages
            console: Console for results (default: stdout)
            err_console: Console for messages (default: stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str) -> None:
        self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.err_console.print(message, markup=False)

    def progress_message(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.err_console.print(f"[dim]{message}[/dim]")

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.err_console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        if self.quiet:
            return
        self.err_console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        # Errors are shown even in quiet mode
        self.err_console.print(f"[red]Error:[/red] {message}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))

    def output_table(
        self,
        data: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table, or as JSON in JSON mode.

        Args:
            data: Rows keyed by column name
            columns: Column keys in display order
            headers: Display names for the columns (default: the keys)
        """
        if self.json_output:
            self.output_json([{c: row.get(c) for c in columns} for row in data])
            return

        headers = headers or {}
        table = Table(show_header=True, header_style="bold")
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in data:
            table.add_row(
                *("" if row.get(c) is None else str(row.get(c)) for c in columns)
            )
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled block of key/value lines."""
        if self.json_output:
            self.output_json({key: value for key, value in items})
            return
        if self.quiet:
            return
        self.console.print(f"\n[bold]{title}[/bold]")
        for key, value in items:
            self.console.print(f"  {key}: {value}", markup=False)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return format_size(size_bytes)
