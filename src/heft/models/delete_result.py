"""Deletion result dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class DeleteResult:
    """Result of deleting selected entries."""

    freed_bytes: int = 0
    errors: list[str] = field(default_factory=list)
    removed: int = 0
    dry_run: bool = False
