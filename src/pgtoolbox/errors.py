"""Exception hierarchy for pgtoolbox operations.

Every public operation raises a subclass of ``ToolboxError``. Errors that
come from an external process carry the typed ``CommandError`` so callers can
tell a deadline expiry from any other failure without matching on text.
"""

from __future__ import annotations

from enum import StrEnum


class FailureReason(StrEnum):
    """Why an external command did not complete successfully."""

    NOT_FOUND = "executable not found"
    START_FAILED = "could not be started"
    EXIT_STATUS = "non-zero exit status"
    DEADLINE_EXCEEDED = "deadline exceeded"
    CANCELLED = "cancelled"


class ToolboxError(Exception):
    """Base class for all pgtoolbox errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


# ============================================================================
# URL validation
# ============================================================================


class UrlValidationError(ToolboxError):
    """Raised when a connection URL cannot be turned into a descriptor."""


class EmptyInputError(UrlValidationError):
    """Raised for an empty connection URL."""


class MalformedURLError(UrlValidationError):
    """Raised when the input cannot be parsed as a URL at all."""


class IncompleteURLError(UrlValidationError):
    """Raised when a parsed URL is missing one or more required components.

    Attributes:
        missing: Names of the empty fields, in declaration order
        resolved: Extracted values for every field, password masked
    """

    def __init__(self, missing: tuple[str, ...], resolved: dict[str, str]):
        self.missing = missing
        self.resolved = resolved
        got = " ".join(f"{name}={value!r}" for name, value in resolved.items())
        super().__init__(
            f"incomplete database URL; missing {', '.join(missing)}",
            details=f"got {got}",
        )

    def __str__(self) -> str:
        return f"{self.message} ({self.details})"


class InvalidURLError(ToolboxError):
    """Raised by the dump runner when its URL fails validation."""


# ============================================================================
# Database statement
# ============================================================================


class SchemaResetFailedError(ToolboxError):
    """Raised when the drop-all-tables statement fails.

    ``cancelled`` is True when the statement was aborted because the
    operation context ended.
    """

    def __init__(
        self, message: str, details: str | None = None, *, cancelled: bool = False
    ):
        self.cancelled = cancelled
        super().__init__(message, details)


# ============================================================================
# External processes
# ============================================================================


class CommandError(ToolboxError):
    """Raised when an external command fails to start, fails, or is aborted."""

    def __init__(
        self,
        command: str,
        reason: FailureReason,
        *,
        returncode: int | None = None,
        details: str | None = None,
    ):
        self.command = command
        self.reason = reason
        self.returncode = returncode
        message = f"{command}: {reason.value}"
        if reason is FailureReason.EXIT_STATUS and returncode is not None:
            message = f"{command}: exit status {returncode}"
        super().__init__(message, details)

    @property
    def timed_out(self) -> bool:
        return self.reason is FailureReason.DEADLINE_EXCEEDED

    @property
    def cancelled(self) -> bool:
        """True for a deadline expiry or an explicit cancellation."""
        return self.reason in (FailureReason.DEADLINE_EXCEEDED, FailureReason.CANCELLED)


class _ProcessStageError(ToolboxError):
    def __init__(
        self,
        message: str,
        details: str | None = None,
        *,
        failure: CommandError | None = None,
    ):
        self.failure = failure
        super().__init__(message, details)

    @property
    def reason(self) -> FailureReason | None:
        return self.failure.reason if self.failure is not None else None

    @property
    def timed_out(self) -> bool:
        return self.failure is not None and self.failure.timed_out

    @property
    def cancelled(self) -> bool:
        return self.failure is not None and self.failure.cancelled


class MigrationFailedError(_ProcessStageError):
    """Raised when the migration tool fails after the tables were dropped."""


class DumpFailedError(_ProcessStageError):
    """Raised when the dump tool fails, is missing, or is killed on deadline."""
