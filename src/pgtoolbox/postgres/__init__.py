"""PostgreSQL lifecycle operations.

This package provides URL validation, a timed ``pg_dump`` runner, and a
drop-all-tables reset followed by optional ``migrate up``.
"""

from .backup import DumpResult, PostgresDumper, dump_to_file
from .migrations import run_migrations
from .reset import DROP_ALL_TABLES_SQL, PostgresReset, drop_all_tables, reset_and_migrate
from .url import ConnectionDescriptor, parse_postgres_url, redact_url

__all__ = [
    "ConnectionDescriptor",
    "parse_postgres_url",
    "redact_url",
    "PostgresDumper",
    "DumpResult",
    "dump_to_file",
    "PostgresReset",
    "DROP_ALL_TABLES_SQL",
    "drop_all_tables",
    "reset_and_migrate",
    "run_migrations",
]
