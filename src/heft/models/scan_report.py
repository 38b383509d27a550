"""Scan report dataclasses."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from heft.utils import bytes_to_human


class ErrorReason(str, Enum):
    """Why a path could not be fully read."""

    NOT_FOUND = "NotFound"
    PERMISSION_DENIED = "PermissionDenied"
    CYCLE_DETECTED = "CycleDetected"
    IO_ERROR = "IOError"
    CANCELLED = "Cancelled"


@dataclass(frozen=True, slots=True)
class Entry:
    """Single file or directory that met the size threshold.

    For a directory, ``size_bytes`` is the sum of every file below it
    that could be read.
    """

    path: Path
    is_file: bool
    size_bytes: int

    @property
    def size_display(self) -> str:
        return bytes_to_human(self.size_bytes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "is_file": self.is_file,
            "size_bytes": self.size_bytes,
            "size_display": self.size_display,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entry:
        return cls(path=Path(data["path"]), is_file=bool(data["is_file"]), size_bytes=int(data["size_bytes"]))


@dataclass(frozen=True, slots=True)
class ScanErrorRecord:
    """A subtree or file that was skipped during a scan."""

    path: Path
    reason: ErrorReason

    def to_dict(self) -> dict[str, str]:
        return {"path": str(self.path), "reason": self.reason.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanErrorRecord:
        return cls(path=Path(data["path"]), reason=ErrorReason(data["reason"]))


@dataclass(frozen=True, slots=True)
class ScanReport:
    """Result of scanning one directory tree.

    ``entries`` is in post-order: children come before the directories
    containing them, siblings sorted by name. The root itself is never an
    entry; its total size is ``root_size_bytes``.
    """

    root: Path
    threshold_bytes: int
    entries: tuple[Entry, ...] = ()
    errors: tuple[ScanErrorRecord, ...] = ()
    root_size_bytes: int = 0

    @property
    def files(self) -> list[Entry]:
        return [e for e in self.entries if e.is_file]

    @property
    def directories(self) -> list[Entry]:
        return [e for e in self.entries if not e.is_file]

    @property
    def total_bytes(self) -> int:
        """Combined size of matching files (directories would double count)."""
        return sum(e.size_bytes for e in self.entries if e.is_file)

    @property
    def summary(self) -> str:
        text = (
            f"Found {len(self.files)} files and {len(self.directories)} directories "
            f"of at least {bytes_to_human(self.threshold_bytes)} in {self.root} "
            f"({bytes_to_human(self.root_size_bytes)} total)"
        )
        if self.errors:
            text += f" ({len(self.errors)} unreadable)"
        return text

    def get(self, path: str | Path) -> Entry | None:
        """Look up an entry by its path."""
        target = Path(path)
        for entry in self.entries:
            if entry.path == target:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "threshold_bytes": self.threshold_bytes,
            "root_size_bytes": self.root_size_bytes,
            "entries": [e.to_dict() for e in self.entries],
            "errors": [e.to_dict() for e in self.errors],
        }

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanReport:
        return cls(
            root=Path(data["root"]),
            threshold_bytes=int(data["threshold_bytes"]),
            entries=tuple(Entry.from_dict(e) for e in data.get("entries", [])),
            errors=tuple(ScanErrorRecord.from_dict(e) for e in data.get("errors", [])),
            root_size_bytes=int(data.get("root_size_bytes", 0)),
        )
