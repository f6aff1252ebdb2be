"""Cancellation and deadline scopes for blocking operations.

An ``OperationContext`` bounds how long an operation may run. Contexts form a
tree: a child created with ``with_timeout`` ends when its own deadline passes,
when it is cancelled, or when any ancestor ends. Cancelling a child never
affects its parent.

Usage:
    ctx = OperationContext.background()
    dump_ctx = ctx.with_timeout(30)

    # elsewhere, e.g. a signal handler
    ctx.cancel()
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import timedelta
from enum import StrEnum

from loguru import logger

# Upper bound on a single blocking wait so parent cancellation is noticed
_WAIT_SLICE = 0.05


class CancelReason(StrEnum):
    """Why a context ended."""

    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline exceeded"


def to_seconds(timeout: float | timedelta) -> float:
    """Normalize a timeout given as seconds or a ``timedelta``."""
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class OperationContext:
    """A cancellable scope with an optional deadline.

    Deadlines are absolute ``time.monotonic()`` values. A child's deadline is
    never later than its parent's.
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        parent: OperationContext | None = None,
    ) -> None:
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self._deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> OperationContext:
        """Return a root context that only ends when cancelled."""
        return cls()

    def with_timeout(self, timeout: float | timedelta) -> OperationContext:
        """Derive a child context that ends ``timeout`` from now at the latest."""
        return OperationContext(
            deadline=time.monotonic() + to_seconds(timeout), parent=self
        )

    def child(self) -> OperationContext:
        """Derive a child context that can be cancelled independently."""
        return OperationContext(parent=self)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def cancel(self) -> None:
        """End this context and all of its children."""
        if not self._cancelled.is_set():
            logger.debug("Operation context cancelled")
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Seconds until the deadline, clamped at zero, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def reason(self) -> CancelReason | None:
        """Return why the context ended, or None while it is still live.

        Explicit cancellation wins over a deadline that has also passed.
        """
        if self._cancelled.is_set():
            return CancelReason.CANCELLED
        if self._parent is not None:
            parent_reason = self._parent.reason()
            if parent_reason is not None:
                return parent_reason
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return CancelReason.DEADLINE_EXCEEDED
        return None

    def done(self) -> bool:
        return self.reason() is not None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context ends or ``timeout`` seconds elapse.

        Returns:
            True if the context ended, False if the timeout elapsed first
        """
        give_up = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.done():
                return True
            slice_ = _WAIT_SLICE
            remaining = self.remaining()
            if remaining is not None:
                slice_ = min(slice_, remaining)
            if give_up is not None:
                left = give_up - time.monotonic()
                if left <= 0:
                    return False
                slice_ = min(slice_, left)
            self._cancelled.wait(slice_)

    @contextmanager
    def watch(self, callback: Callable[[], object]) -> Iterator[None]:
        """Call ``callback`` once if the context ends while the block runs.

        The callback runs on a daemon thread. It is not called when the block
        exits before the context ends.
        """
        finished = threading.Event()

        def _watcher() -> None:
            while not finished.is_set():
                if self.wait(_WAIT_SLICE):
                    if not finished.is_set():
                        logger.debug(f"Context ended ({self.reason()}); aborting")
                        callback()
                    return

        thread = threading.Thread(target=_watcher, name="pgtoolbox-watch", daemon=True)
        thread.start()
        try:
            yield
        finally:
            finished.set()
            thread.join()
