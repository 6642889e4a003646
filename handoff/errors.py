"""Error taxonomy and exit code mapping for CLI."""

from __future__ import annotations

from typing import Optional


class HandoffError(Exception):
    """Base error for deterministic CLI exit codes."""

    exit_code: int = 1


class ValidationError(HandoffError):
    """Invalid user input or command usage."""

    exit_code = 2


class PathSafetyError(ValidationError):
    """A path segment or relative path failed safety checks."""


class RuntimeFailure(HandoffError):
    """Unexpected runtime failure."""

    exit_code = 1


class ProviderError(RuntimeFailure):
    """Remote API call failed."""

    def __init__(self, message: str, *, status: Optional[int] = None, summary: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.summary = summary


class DeliveryCancelled(RuntimeFailure):
    """The caller cancelled the attempt between I/O operations."""

    exit_code = 130


class IOFailure(HandoffError):
    """Filesystem or I/O failure."""

    exit_code = 3


def exit_code_for_exception(exc: BaseException) -> int:
    """Resolve a deterministic exit code for an exception."""
    if isinstance(exc, HandoffError):
        return exc.exit_code
    if isinstance(exc, OSError):
        return IOFailure.exit_code
    return RuntimeFailure.exit_code
