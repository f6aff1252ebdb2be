"""Operator-facing progress output.

Every line is prefixed with an ISO-8601 UTC timestamp so progress around the
destructive reset and the external tools can be correlated with server logs.
"""

from datetime import UTC, datetime

from rich.console import Console, ConsoleRenderable
from rich.markup import escape


def timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class ToolboxConsole:
    """Rich console wrapper for timestamped progress lines."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def _line(self, marker: str, msg: str) -> None:
        self.console.print(f"[dim]{timestamp()}[/dim] {marker} {escape(msg)}")

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print(msg)

    def info(self, msg: str) -> None:
        self._line("[cyan]ℹ[/cyan] ", msg)

    def ok(self, msg: str) -> None:
        self._line("[green]✅[/green]", msg)

    def error(self, msg: str) -> None:
        self._line("[red]❌[/red]", msg)

    def warn(self, msg: str) -> None:
        self._line("[yellow]⚠️[/yellow] ", msg)


# Shared console instance for consistent output
console = ToolboxConsole()
