"""Scan options."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ScanOptions:
    """Settings that control a single scan.

    Attributes:
        follow_symlinks: Traverse and count symlink targets. Off by default
            so links can neither loop nor count a file twice.
        include_directories: Report directories whose total size meets the
            threshold, in addition to the files inside them.
        max_depth: Deepest level whose entries are reported, the root being 0.
            Sizes still include everything below it. ``None`` means unlimited.
        workers: Threads used for sibling subtrees. ``None`` uses one per CPU.
    """

    follow_symlinks: bool = False
    include_directories: bool = True
    max_depth: int | None = None
    workers: int | None = None

    def __post_init__(self) -> None:
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @property
    def resolved_workers(self) -> int:
        return self.workers or os.cpu_count() or 1
