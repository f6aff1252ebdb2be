from __future__ import annotations

from loguru import logger

from pgtoolbox.config import ToolboxSettings, get_settings
from pgtoolbox.context import OperationContext
from pgtoolbox.errors import CommandError, MigrationFailedError
from pgtoolbox.shell import CommandResult, CommandRunner
from pgtoolbox.utils.console_like import ConsoleLike, coalesce_console

from .url import redact_url


def build_migrate_command(
    database_url: str, migrations_path: str, settings: ToolboxSettings
) -> list[str]:
    return [
        settings.migrate_bin,
        "-database",
        database_url,
        "-path",
        migrations_path,
        "up",
    ]


def run_migrations(
    ctx: OperationContext,
    database_url: str,
    migrations_path: str,
    *,
    settings: ToolboxSettings | None = None,
    runner: CommandRunner | None = None,
    console: ConsoleLike | None = None,
) -> CommandResult:
    """Apply all pending migrations with the external ``migrate`` tool.

    The tool gets its own deadline of ``settings.migration_timeout`` seconds,
    derived from ``ctx``. Its output is forwarded to this process's streams.

    Raises:
        MigrationFailedError: If the tool is missing, exits non-zero, or is
            terminated because the context ended
    """
    settings = settings or get_settings()
    runner = runner or CommandRunner(settings.kill_grace_period, settings.poll_interval)
    console = coalesce_console(console)

    console.info(f"Running DB migrations from {migrations_path}...")
    logger.debug(f"migrate up against {redact_url(database_url)}")

    migrate_ctx = ctx.with_timeout(settings.migration_timeout)
    cmd = build_migrate_command(database_url, migrations_path, settings)
    try:
        result = runner.run_checked(cmd, ctx=migrate_ctx)
    except CommandError as e:
        console.error(f"Migrations failed: {e.message}")
        raise MigrationFailedError(
            f"migrate up failed: {e.message}", details=e.details, failure=e
        ) from e

    console.ok("Migrations applied.")
    logger.info(f"Migrations applied in {result.duration_seconds:.1f}s")
    return result
