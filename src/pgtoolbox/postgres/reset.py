"""PostgreSQL schema reset functionality.

Drops every table in the ``public`` schema over a caller-owned connection,
then optionally brings the schema back with the external migration tool.
This is irreversible: all data in the schema is lost.
"""

from __future__ import annotations

from typing import Any

import psycopg2
import psycopg2.extensions
from loguru import logger

from pgtoolbox.config import ToolboxSettings, get_settings
from pgtoolbox.context import OperationContext
from pgtoolbox.errors import SchemaResetFailedError
from pgtoolbox.shell import CommandRunner
from pgtoolbox.utils.console_like import ConsoleLike, coalesce_console

from .migrations import run_migrations

DROP_ALL_TABLES_SQL = """
DO
$$
DECLARE
    _tbl text;
BEGIN
    FOR _tbl IN
        SELECT tablename
        FROM pg_tables
        WHERE schemaname = 'public'
    LOOP
        EXECUTE 'DROP TABLE IF EXISTS ' || quote_ident(_tbl) || ' CASCADE';
    END LOOP;
END
$$;
"""


class PostgresReset:
    """Resets the ``public`` schema of a database to an empty state.

    The connection is owned by the caller: it is used for one statement and
    never closed here.
    """

    def __init__(
        self,
        connection: psycopg2.extensions.connection,
        *,
        settings: ToolboxSettings | None = None,
        runner: CommandRunner | None = None,
        console: ConsoleLike | None = None,
    ) -> None:
        self._connection = connection
        self._settings = settings or get_settings()
        self._runner = runner or CommandRunner(
            self._settings.kill_grace_period, self._settings.poll_interval
        )
        self._console = coalesce_console(console)

    def drop_all_tables(self, ctx: OperationContext) -> None:
        """Drop every table in the ``public`` schema with CASCADE.

        Raises:
            SchemaResetFailedError: If the statement fails or ``ctx`` ends
                before it completes
        """
        if ctx.done():
            raise SchemaResetFailedError(
                f"drop tables: {ctx.reason()}", details="not started", cancelled=True
            )

        self._console.info("Clearing all tables in the database...")
        conn = self._connection
        try:
            with ctx.watch(conn.cancel):
                with conn.cursor() as cur:
                    cur.execute(DROP_ALL_TABLES_SQL)
                conn.commit()
        except psycopg2.Error as e:
            self._rollback()
            cancelled = isinstance(e, psycopg2.extensions.QueryCanceledError) and ctx.done()
            self._console.error(f"Dropping tables failed: {e}")
            raise SchemaResetFailedError(
                f"drop tables: {e}".strip(), cancelled=cancelled
            ) from e

        self._console.ok("All tables cleared in the database.")
        logger.info("Dropped all tables in schema 'public'")

    def reset_and_migrate(
        self, ctx: OperationContext, database_url: str, migrations_path: str
    ) -> None:
        """Drop all tables, then run migrations when a path is given.

        Args:
            ctx: Context bounding both steps
            database_url: URL handed to the migration tool as-is
            migrations_path: Migrations directory; empty skips migrations

        Raises:
            SchemaResetFailedError: If dropping the tables failed
            MigrationFailedError: If the tables were dropped but migrating failed
        """
        self.drop_all_tables(ctx)

        if not migrations_path:
            self._console.info("No migrations path provided; skipping migrate.")
            return

        run_migrations(
            ctx,
            database_url,
            migrations_path,
            settings=self._settings,
            runner=self._runner,
            console=self._console,
        )

    def _rollback(self) -> None:
        conn = self._connection
        if conn.closed:
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback after failed reset also failed: {e}")


def reset_and_migrate(
    ctx: OperationContext,
    connection: psycopg2.extensions.connection,
    database_url: str,
    migrations_path: str,
    **kwargs: Any,
) -> None:
    """Drop every table in ``public`` and optionally apply migrations.

    Keyword arguments (``settings``, ``runner``, ``console``) are passed to
    ``PostgresReset``.
    """
    PostgresReset(connection, **kwargs).reset_and_migrate(
        ctx, database_url, migrations_path
    )


def drop_all_tables(
    ctx: OperationContext,
    connection: psycopg2.extensions.connection,
    **kwargs: Any,
) -> None:
    """Drop every table in the ``public`` schema. See PostgresReset."""
    PostgresReset(connection, **kwargs).drop_all_tables(ctx)
