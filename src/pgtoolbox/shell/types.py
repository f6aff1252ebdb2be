"""Data types for external command results."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["CommandResult"]


@dataclass(frozen=True)
class CommandResult:
    """Result of a command that ran to completion.

    Attributes:
        success: Whether the command exited with status 0
        returncode: Exit status of the command
        duration_seconds: Wall-clock time from spawn to exit
    """

    success: bool
    returncode: int = 0
    duration_seconds: float = 0.0
