"""PostgreSQL dump functionality.

Runs ``pg_dump`` in custom (compressed) format under a deadline. The dump is
written to a hidden partial file next to the destination and renamed into
place only after ``pg_dump`` exits successfully, so the destination never
holds output from a failed or killed run.
"""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from loguru import logger

from pgtoolbox.config import ToolboxSettings, get_settings
from pgtoolbox.context import OperationContext
from pgtoolbox.errors import (
    CommandError,
    DumpFailedError,
    InvalidURLError,
    UrlValidationError,
)
from pgtoolbox.shell import CommandRunner
from pgtoolbox.utils.console_like import ConsoleLike, coalesce_console

from .url import ConnectionDescriptor, parse_postgres_url


@dataclass(frozen=True)
class DumpResult:
    """Outcome of a successful dump."""

    path: Path
    size_bytes: int
    duration_seconds: float


def build_dump_command(
    descriptor: ConnectionDescriptor, out_file: Path, settings: ToolboxSettings
) -> list[str]:
    """Build the pg_dump argument list. The password is never part of it."""
    return [
        settings.pg_dump_bin,
        "-h",
        descriptor.host,
        "-p",
        descriptor.port,
        "-U",
        descriptor.user,
        "-d",
        descriptor.database,
        "-F",
        settings.dump_format,
        "-b",
        "-v",
        "-f",
        str(out_file),
    ]


def partial_path_for(out_file: Path) -> Path:
    return out_file.with_name(f".{out_file.name}.{uuid.uuid4().hex[:12]}.partial")


class PostgresDumper:
    """Creates PostgreSQL dumps with the external ``pg_dump`` tool."""

    def __init__(
        self,
        *,
        settings: ToolboxSettings | None = None,
        runner: CommandRunner | None = None,
        console: ConsoleLike | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._runner = runner or CommandRunner(
            self._settings.kill_grace_period, self._settings.poll_interval
        )
        self._console = coalesce_console(console)

    def dump_to_file(
        self,
        ctx: OperationContext,
        database_url: str,
        out_file: str | Path,
        timeout: float | timedelta,
    ) -> DumpResult:
        """Dump the database described by ``database_url`` to ``out_file``.

        Missing parent directories of ``out_file`` are created before
        pg_dump starts. The partial file is removed on any failure, including
        an interrupt.

        Args:
            ctx: Parent context; the dump gets a child deadline of ``timeout``
            database_url: Connection URL with all five components
            out_file: Destination path, replaced atomically on success
            timeout: Deadline for the pg_dump run. A tool that ignores SIGTERM
                may hold the call up to ``kill_grace_period`` seconds longer

        Returns:
            DumpResult describing the written file

        Raises:
            InvalidURLError: If ``database_url`` fails validation (nothing is run)
            DumpFailedError: If pg_dump is missing, fails, produces no output,
                or is terminated because the deadline passed or ``ctx`` was
                cancelled (see ``timed_out`` and ``cancelled``), or if the
                output directory cannot be created
        """
        s = self._settings
        try:
            descriptor = parse_postgres_url(database_url, schemes=s.allowed_schemes)
        except UrlValidationError as e:
            raise InvalidURLError(f"parse db url: {e}", details=e.details) from e

        dump_ctx = ctx.with_timeout(timeout)

        out_path = Path(out_file)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DumpFailedError(
                f"could not create output directory: {e}", details=str(out_path.parent)
            ) from e
        partial = partial_path_for(out_path)

        env = {**os.environ, s.password_env_var: descriptor.password}
        cmd = build_dump_command(descriptor, partial, s)

        self._console.info(
            f"Dumping {descriptor.database} from {descriptor.host}:{descriptor.port} "
            f"to {out_path}"
        )
        logger.debug(f"pg_dump of {descriptor.redacted_url()} via {partial.name}")

        started = time.monotonic()
        try:
            self._runner.run_checked(cmd, ctx=dump_ctx, env=env)
        except CommandError as e:
            self._discard(partial)
            self._console.error(f"pg_dump failed: {e.message}")
            raise DumpFailedError(
                f"pg_dump failed: {e.message}", details=e.details, failure=e
            ) from e
        except BaseException:
            self._discard(partial)
            raise

        try:
            os.replace(partial, out_path)
        except FileNotFoundError as e:
            raise DumpFailedError(
                "pg_dump exited successfully but wrote no output",
                details=str(partial),
            ) from e
        except OSError as e:
            self._discard(partial)
            raise DumpFailedError(f"could not move dump into place: {e}") from e

        result = DumpResult(
            path=out_path,
            size_bytes=out_path.stat().st_size,
            duration_seconds=time.monotonic() - started,
        )
        self._console.ok(f"Dump written: {out_path} ({result.size_bytes} bytes)")
        logger.info(
            f"pg_dump of {descriptor.database} finished in {result.duration_seconds:.1f}s"
        )
        return result

    @staticmethod
    def _discard(partial: Path) -> None:
        try:
            partial.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial dump {partial}: {e}")


def dump_to_file(
    ctx: OperationContext,
    database_url: str,
    out_file: str | Path,
    timeout: float | timedelta,
    *,
    settings: ToolboxSettings | None = None,
    runner: CommandRunner | None = None,
    console: ConsoleLike | None = None,
) -> DumpResult:
    """Run pg_dump for ``database_url`` into ``out_file`` under ``timeout``.

    See PostgresDumper.dump_to_file.
    """
    dumper = PostgresDumper(settings=settings, runner=runner, console=console)
    return dumper.dump_to_file(ctx, database_url, out_file, timeout)
