import os
import stat
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest

from pgtoolbox.config import ToolboxSettings
from pgtoolbox.context import OperationContext

# Parses the -f flag the way pg_dump does and leaves the path in $OUT
_PARSE_OUT_FLAG = """\
OUT=""
while [ $# -gt 0 ]; do
  case "$1" in
    -f) OUT="$2"; shift 2;;
    *) shift;;
  esac
done
"""


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.background()


@pytest.fixture
def settings() -> ToolboxSettings:
    """Settings with a short kill grace period so timeout tests stay fast."""
    return ToolboxSettings(kill_grace_period=1.0, poll_interval=0.05)


@pytest.fixture
def console() -> Mock:
    return Mock()


@pytest.fixture
def bin_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A directory of fake executables placed first on PATH."""
    directory = tmp_path / "bin"
    directory.mkdir()
    monkeypatch.setenv("PATH", f"{directory}{os.pathsep}{os.environ.get('PATH', '')}")
    return directory


@pytest.fixture
def fake_tool(bin_dir: Path) -> Callable[[str, str], Path]:
    """Write an executable ``/bin/sh`` script named ``name`` into ``bin_dir``."""

    def _write(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text(f"#!/bin/sh\n{body}")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _write


@pytest.fixture
def pg_connection() -> MagicMock:
    """A psycopg2-like connection whose cursor is a context manager."""
    conn = MagicMock()
    conn.closed = 0
    return conn


@pytest.fixture
def parse_out_flag() -> str:
    """Shell snippet that leaves the value of the ``-f`` flag in ``$OUT``."""
    return _PARSE_OUT_FLAG
