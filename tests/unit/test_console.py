"""Tests for timestamped console output."""

import re
from io import StringIO

from rich.console import Console

from pgtoolbox.console import ToolboxConsole, timestamp
from pgtoolbox.utils.console_like import coalesce_console

TIMESTAMP = r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00"


def _console() -> tuple[ToolboxConsole, StringIO]:
    buffer = StringIO()
    return ToolboxConsole(Console(file=buffer, width=200, color_system=None)), buffer


def test_timestamp_is_utc_iso8601():
    assert re.fullmatch(TIMESTAMP, timestamp())


def test_info_line_has_timestamp_and_message():
    console, buffer = _console()

    console.info("Clearing all tables in the database...")

    line = buffer.getvalue().strip()
    assert re.match(TIMESTAMP, line)
    assert line.endswith("Clearing all tables in the database...")


def test_messages_are_not_treated_as_markup():
    console, buffer = _console()

    console.error("pg_dump failed: [bold]exit status 1[/bold]")

    assert "[bold]exit status 1[/bold]" in buffer.getvalue()


def test_coalesce_console_prefers_given_console():
    console, _ = _console()

    assert coalesce_console(console) is console
    assert isinstance(coalesce_console(None), ToolboxConsole)
