"""Tests for CommandRunner."""

import os
import signal
import sys
import threading
import time
from unittest.mock import patch

import pytest

from pgtoolbox.context import OperationContext
from pgtoolbox.errors import CommandError, FailureReason
from pgtoolbox.shell import CommandRunner


@pytest.fixture
def runner():
    return CommandRunner(kill_grace_period=1.0, poll_interval=0.05)


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_run_returns_result_for_success(runner, ctx):
    result = runner.run(python("pass"), ctx=ctx)

    assert result.success is True
    assert result.returncode == 0
    assert result.duration_seconds >= 0


def test_run_returns_result_for_non_zero_exit(runner, ctx):
    result = runner.run(python("import sys; sys.exit(3)"), ctx=ctx)

    assert result.success is False
    assert result.returncode == 3


def test_run_checked_raises_for_non_zero_exit(runner, ctx):
    with pytest.raises(CommandError) as excinfo:
        runner.run_checked(python("import sys; sys.exit(2)"), ctx=ctx)

    assert excinfo.value.reason is FailureReason.EXIT_STATUS
    assert excinfo.value.returncode == 2
    assert not excinfo.value.cancelled


def test_run_missing_executable(runner, ctx):
    with pytest.raises(CommandError) as excinfo:
        runner.run(["pgtoolbox-no-such-binary"], ctx=ctx)

    assert excinfo.value.reason is FailureReason.NOT_FOUND
    assert excinfo.value.command == "pgtoolbox-no-such-binary"


def test_run_passes_environment(runner, ctx, tmp_path):
    out = tmp_path / "env.txt"
    code = f"import os; open({str(out)!r}, 'w').write(os.environ['PGTOOLBOX_TEST'])"

    runner.run_checked(python(code), ctx=ctx, env={**os.environ, "PGTOOLBOX_TEST": "v1"})

    assert out.read_text() == "v1"


def test_run_forwards_output_to_given_stream(runner, ctx, tmp_path):
    log = tmp_path / "out.log"
    with log.open("w") as stream:
        runner.run_checked(python("print('hello')"), ctx=ctx, stdout=stream)

    assert log.read_text().strip() == "hello"


def test_run_terminates_on_deadline(runner, ctx):
    started = time.monotonic()

    with pytest.raises(CommandError) as excinfo:
        runner.run(python("import time; time.sleep(10)"), ctx=ctx.with_timeout(0.3))

    assert time.monotonic() - started < 5
    assert excinfo.value.reason is FailureReason.DEADLINE_EXCEEDED
    assert excinfo.value.timed_out
    assert excinfo.value.returncode is not None


def test_run_escalates_to_sigkill_when_sigterm_ignored(ctx):
    runner = CommandRunner(kill_grace_period=0.3, poll_interval=0.05)
    code = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    started = time.monotonic()

    with pytest.raises(CommandError) as excinfo:
        runner.run(python(code), ctx=ctx.with_timeout(0.5))

    # deadline plus the grace period, with slack for interpreter start-up
    assert time.monotonic() - started < 3
    assert excinfo.value.timed_out


def test_run_does_not_spawn_when_context_already_ended(runner):
    ctx = OperationContext.background()
    ctx.cancel()

    with patch("subprocess.Popen") as mock_popen:
        with pytest.raises(CommandError) as excinfo:
            runner.run(["anything"], ctx=ctx)

    mock_popen.assert_not_called()
    assert excinfo.value.reason is FailureReason.CANCELLED
    assert excinfo.value.cancelled
    assert not excinfo.value.timed_out


def test_run_terminates_child_on_keyboard_interrupt(runner, ctx, tmp_path):
    pid_file = tmp_path / "pid"
    code = f"import os, time; open({str(pid_file)!r}, 'w').write(str(os.getpid())); time.sleep(30)"
    main_thread = threading.main_thread().ident
    threading.Timer(1.0, signal.pthread_kill, (main_thread, signal.SIGINT)).start()

    with pytest.raises(KeyboardInterrupt):
        runner.run(python(code), ctx=ctx)

    with pytest.raises(ProcessLookupError):
        os.kill(int(pid_file.read_text()), 0)


def test_default_grace_period_is_short():
    assert CommandRunner().kill_grace_period <= 1.0
