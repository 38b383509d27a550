"""Scan failures that abort a whole scan."""

from __future__ import annotations

import errno
from pathlib import Path

from heft.models.scan_report import ErrorReason


class ScanError(Exception):
    """Base class for errors that end a scan without a report."""

    reason: ErrorReason = ErrorReason.IO_ERROR

    def __init__(self, path: Path, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"{self.reason.value}: {path}")


class RootNotFoundError(ScanError):
    """Raised when the scan root does not exist."""

    reason = ErrorReason.NOT_FOUND


class RootIOError(ScanError):
    """Raised when the scan root exists but cannot be read."""

    def __init__(self, path: Path, error: OSError) -> None:
        self.reason = reason_for(error)
        self.error = error
        super().__init__(path, f"Cannot read {path}: {error.strerror or error}")


class ScanCancelledError(ScanError):
    """Raised when the caller cancelled the scan before it finished."""

    reason = ErrorReason.CANCELLED


class ScanInProgressError(ScanError):
    """Raised when a different scan of the same root is already running."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, f"A scan of {path} with different settings is already running")


def reason_for(error: OSError) -> ErrorReason:
    """Map an OS error to the reason recorded in a report."""
    if isinstance(error, PermissionError):
        return ErrorReason.PERMISSION_DENIED
    if error.errno == errno.ELOOP:
        return ErrorReason.CYCLE_DETECTED
    if isinstance(error, FileNotFoundError):
        return ErrorReason.NOT_FOUND
    return ErrorReason.IO_ERROR
