"""Shared utility functions."""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from heft.models.delete_result import DeleteResult
    from heft.models.scan_report import Entry

log = logging.getLogger(__name__)

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgtp]?)(?:i?b)?\s*$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4, "p": 1024**5}


def xdg_config_home() -> Path:
    """Return XDG_CONFIG_HOME, defaulting to ~/.config."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def xdg_data_home() -> Path:
    """Return XDG_DATA_HOME, defaulting to ~/.local/share."""
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def normalize_path(path: str | os.PathLike[str]) -> Path:
    """Return an absolute, normalized path without resolving symlinks.

    The result does not depend on the working directory at the time it
    is later re-opened.
    """
    return Path(os.path.abspath(os.path.expanduser(os.fspath(path))))


def bytes_to_human(size_bytes: int) -> str:
    """Convert byte count to a human-readable string."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} {units[-1]}"


def parse_size(text: str | int) -> int:
    """Parse a size such as ``"10K"``, ``"5 MB"`` or ``"2048"`` into bytes.

    Multiples are binary (``1K == 1024``), matching ``bytes_to_human``.

    Raises:
        ValueError: If the text is not a non-negative size.
    """
    if isinstance(text, int):
        if text < 0:
            raise ValueError(f"Size must not be negative: {text}")
        return text
    match = _SIZE_RE.match(text)
    if match is None:
        raise ValueError(f"Invalid size: {text!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_MULTIPLIERS[unit.lower()])


def remove_entries(entries: Iterable[Entry], *, dry_run: bool = False) -> DeleteResult:
    """Remove scanned entries from disk and return a DeleteResult.

    Each path is checked again before removal. Entries that vanished or
    changed kind since the scan are reported as errors and left alone.
    Symlinks are unlinked, never followed.

    Args:
        entries: Entries to remove, usually ``Selection.effective()``.
        dry_run: Only count what would be freed.
    """
    from heft.models.delete_result import DeleteResult

    result = DeleteResult(dry_run=dry_run)

    for entry in entries:
        path = entry.path
        try:
            if not os.path.lexists(path):
                result.errors.append(f"{path}: no longer exists")
                continue
            if path.is_symlink():
                if not dry_run:
                    path.unlink()
            elif path.is_dir():
                if entry.is_file:
                    result.errors.append(f"{path}: changed from file to directory since the scan")
                    continue
                if not dry_run:
                    shutil.rmtree(path)
            else:
                if not entry.is_file:
                    result.errors.append(f"{path}: changed from directory to file since the scan")
                    continue
                if not dry_run:
                    path.unlink()
            result.removed += 1
            result.freed_bytes += entry.size_bytes
            log.info("%s %s", "Would remove" if dry_run else "Removed", path)
        except OSError as e:
            result.errors.append(f"{path}: {e}")

    return result


def format_elapsed(seconds: float) -> str:
    """Format an elapsed time as a human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds) // 60
    secs = seconds - minutes * 60
    return f"{minutes}m {secs:.0f}s"
