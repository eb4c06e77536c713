"""Output formatting for the command line interface."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Writes user-facing messages, honoring quiet and JSON modes.

    Errors and warnings go to stderr so that ``--json`` output on stdout
    stays machine readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit results as JSON instead of text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.error_console = Console(stderr=True, highlight=False)

    def info(self, message: str) -> None:
        """Print an informational message (suppressed in quiet/JSON mode)."""
        if not self.quiet and not self.json_output:
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.error_console.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        """Print an error message. Errors are never suppressed."""
        self.error_console.print(message, style="bold red", markup=False)

    def print(self, message: str) -> None:
        """Print a message unless JSON output is active."""
        if not self.json_output:
            self.console.print(message, markup=False)

    def output_json(self, data: Any) -> None:
        # plain print: rich would wrap long lines
        print(json.dumps(data, indent=2))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column summary table."""
        if self.quiet or self.json_output:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Item", style="cyan")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)
