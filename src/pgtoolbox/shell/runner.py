"""Command runner for executing external tools under a deadline.

This module provides the process execution used by the dump and migration
operations.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import IO, Any

from loguru import logger

from pgtoolbox.context import CancelReason, OperationContext
from pgtoolbox.errors import CommandError, FailureReason

from .types import CommandResult


def _failure_reason(reason: CancelReason) -> FailureReason:
    if reason is CancelReason.DEADLINE_EXCEEDED:
        return FailureReason.DEADLINE_EXCEEDED
    return FailureReason.CANCELLED


class CommandRunner:
    """Low-level command executor that honors an ``OperationContext``.

    Children run in their own session so that termination reaches every
    process the tool spawned, not just the immediate child. Output streams
    are inherited unless explicit file objects are supplied.
    """

    def __init__(self, kill_grace_period: float = 1.0, poll_interval: float = 0.1) -> None:
        """Initialize the command runner.

        Args:
            kill_grace_period: Seconds to wait after SIGTERM before SIGKILL
            poll_interval: Longest single wait between context checks
        """
        self.kill_grace_period = kill_grace_period
        self.poll_interval = poll_interval

    def run(
        self,
        cmd: Sequence[str],
        *,
        ctx: OperationContext,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        stdout: IO[Any] | None = None,
        stderr: IO[Any] | None = None,
    ) -> CommandResult:
        """Execute a command and wait for it, bounded by ``ctx``.

        Once the context ends the call returns within about
        ``kill_grace_period`` seconds. Any exception raised while waiting,
        including ``KeyboardInterrupt``, terminates the command before it
        propagates.

        Args:
            cmd: Command and arguments as a sequence
            ctx: Context bounding the run; its end terminates the command
            env: Full environment for the child (defaults to the caller's)
            cwd: Working directory (defaults to the caller's)
            stdout: Destination for standard output (None inherits)
            stderr: Destination for standard error (None inherits)

        Returns:
            CommandResult with the exit status, successful or not

        Raises:
            CommandError: If the command cannot be started or the context
                ends before the command exits
        """
        args = list(cmd)
        name = Path(args[0]).name

        reason = ctx.reason()
        if reason is not None:
            raise CommandError(name, _failure_reason(reason), details="not started")

        logger.debug(f"Running: {name} ({len(args) - 1} args)")
        started = time.monotonic()
        try:
            process = subprocess.Popen(
                args,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=stdout,
                stderr=stderr,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise CommandError(name, FailureReason.NOT_FOUND, details=str(e)) from e
        except OSError as e:
            raise CommandError(name, FailureReason.START_FAILED, details=str(e)) from e

        try:
            returncode = self._wait(process, ctx)
        except BaseException:
            # The child is in its own session, so a Ctrl-C never reaches it
            self._terminate(process, name)
            raise
        if returncode is None:
            self._terminate(process, name)
            raise CommandError(
                name,
                _failure_reason(ctx.reason() or CancelReason.CANCELLED),
                returncode=process.returncode,
                details=f"terminated after {time.monotonic() - started:.1f}s",
            )

        duration = time.monotonic() - started
        logger.debug(f"{name} exited with status {returncode} after {duration:.1f}s")
        return CommandResult(
            success=returncode == 0,
            returncode=returncode,
            duration_seconds=duration,
        )

    def run_checked(
        self,
        cmd: Sequence[str],
        *,
        ctx: OperationContext,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        stdout: IO[Any] | None = None,
        stderr: IO[Any] | None = None,
    ) -> CommandResult:
        """Execute a command, raising on a non-zero exit status.

        Raises:
            CommandError: As ``run``, plus ``EXIT_STATUS`` for a non-zero exit
        """
        result = self.run(cmd, ctx=ctx, env=env, cwd=cwd, stdout=stdout, stderr=stderr)
        if not result.success:
            raise CommandError(
                Path(cmd[0]).name, FailureReason.EXIT_STATUS, returncode=result.returncode
            )
        return result

    def _wait(self, process: subprocess.Popen[bytes], ctx: OperationContext) -> int | None:
        """Wait for the child to exit. Returns None once the context has ended."""
        while True:
            try:
                return process.wait(timeout=self._next_wait(ctx))
            except subprocess.TimeoutExpired:
                if ctx.done():
                    return None

    def _next_wait(self, ctx: OperationContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self.poll_interval
        return min(self.poll_interval, remaining)

    def _terminate(self, process: subprocess.Popen[bytes], name: str) -> None:
        """Stop the child's process group: SIGTERM, then SIGKILL after a grace period."""
        if process.poll() is not None:
            return
        self._signal_group(process, signal.SIGTERM)
        try:
            process.wait(timeout=self.kill_grace_period)
            return
        except subprocess.TimeoutExpired:
            logger.warning(
                f"{name} ignored SIGTERM for {self.kill_grace_period}s; sending SIGKILL"
            )
        self._signal_group(process, signal.SIGKILL)
        process.wait()

    @staticmethod
    def _signal_group(process: subprocess.Popen[bytes], sig: signal.Signals) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, sig)
            else:
                process.send_signal(sig)
        except ProcessLookupError:
            # Already exited
            pass
