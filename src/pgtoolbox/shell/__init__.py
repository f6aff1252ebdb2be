"""External command execution bounded by an operation context.

The dump and migration call sites share this single runner so that deadline
handling, process-group termination and stream forwarding live in one place.

Usage:
    from pgtoolbox.shell import CommandRunner

    runner = CommandRunner()
    runner.run_checked(["pg_dump", "--version"], ctx=ctx.with_timeout(10))
"""

from .runner import CommandRunner
from .types import CommandResult

__all__ = ["CommandRunner", "CommandResult"]
