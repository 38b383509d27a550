"""Directory tree scanner.

Walks a tree depth-first with an explicit stack, sums file sizes into
their directories and keeps everything at or above a size threshold.
Only ``stat`` and ``scandir`` are used; nothing on disk is modified.
"""

from __future__ import annotations

import logging
import os
import stat
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from heft.core.errors import RootIOError, RootNotFoundError, ScanCancelledError, reason_for
from heft.models.options import ScanOptions
from heft.models.scan_report import Entry, ErrorReason, ScanErrorRecord, ScanReport
from heft.utils import format_elapsed, normalize_path

log = logging.getLogger(__name__)

Identity = tuple[int, int]  # (st_dev, st_ino)


class _Kind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass(slots=True)
class _Frame:
    """A directory whose children are still being visited."""

    path: Path
    depth: int
    ancestors: frozenset[Identity]
    pending: list[os.DirEntry[str]]  # reverse name order, consumed from the end
    size: int = 0


@dataclass(slots=True)
class _Subtree:
    """Owned result of walking one subtree."""

    size: int = 0
    entries: list[Entry] = field(default_factory=list)
    errors: list[ScanErrorRecord] = field(default_factory=list)

    def merge(self, other: _Subtree) -> None:
        self.entries.extend(other.entries)
        self.errors.extend(other.errors)


class Scanner:
    """Scans one directory tree.

    A scanner is cheap and meant for a single ``run()``. Configuration
    is passed in explicitly so differently configured scans can run side
    by side in one process.
    """

    def __init__(
        self,
        threshold_bytes: int = 0,
        options: ScanOptions | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if threshold_bytes < 0:
            raise ValueError(f"threshold_bytes must be >= 0, got {threshold_bytes}")
        self.threshold_bytes = threshold_bytes
        self.options = options or ScanOptions()
        self._cancel = cancel_event or threading.Event()
        self._root = Path()

    def run(self, root: str | os.PathLike[str]) -> ScanReport:
        """Scan *root* and return the report.

        Raises:
            RootNotFoundError: The root does not exist.
            RootIOError: The root cannot be stat'ed or listed.
            ScanCancelledError: The cancel event was set before the scan finished.
        """
        self._root = root_path = normalize_path(root)
        self._check_cancelled()
        started = time.monotonic()

        try:
            st = os.stat(root_path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise RootNotFoundError(root_path) from e
        except OSError as e:
            raise RootIOError(root_path, e) from e

        result = _Subtree()
        if stat.S_ISDIR(st.st_mode):
            frame = self._open_root(root_path, st)
            if self.options.resolved_workers > 1 and len(frame.pending) > 1:
                self._walk_parallel(frame, result)
            else:
                self._drain([frame], result)
            result.size = frame.size
        elif stat.S_ISREG(st.st_mode):
            result.size = st.st_size
            self._emit(root_path, True, st.st_size, 0, result)
        else:
            log.debug("Root %s is neither a file nor a directory", root_path)

        self._check_cancelled()

        report = ScanReport(
            root=root_path,
            threshold_bytes=self.threshold_bytes,
            entries=tuple(result.entries),
            errors=tuple(result.errors),
            root_size_bytes=result.size,
        )
        log.info("%s in %s", report.summary, format_elapsed(time.monotonic() - started))
        return report

    # -- Traversal --

    def _open_root(self, path: Path, st: os.stat_result) -> _Frame:
        ancestors: frozenset[Identity] = frozenset()
        if self.options.follow_symlinks:
            ancestors = frozenset({(st.st_dev, st.st_ino)})
        try:
            pending = self._list(path)
        except OSError as e:
            raise RootIOError(path, e) from e
        return _Frame(path, 0, ancestors, pending)

    def _enter(self, path: Path, depth: int, ancestors: frozenset[Identity], result: _Subtree) -> _Frame | None:
        """Open a directory for traversal, or record why it cannot be opened."""
        self._check_cancelled()

        if self.options.follow_symlinks:
            try:
                st = os.stat(path)
            except OSError as e:
                self._record(path, e, result)
                return None
            identity = (st.st_dev, st.st_ino)
            if identity in ancestors:
                log.debug("Symlink cycle at %s, not descending", path)
                result.errors.append(ScanErrorRecord(path, ErrorReason.CYCLE_DETECTED))
                return None
            ancestors = ancestors | {identity}

        try:
            pending = self._list(path)
        except OSError as e:
            self._record(path, e, result)
            return None
        return _Frame(path, depth, ancestors, pending)

    def _drain(self, stack: list[_Frame], result: _Subtree, floor: int = 0) -> None:
        """Process frames until only *floor* frames are left on the stack.

        Each finished directory adds its size to the frame below it, so a
        parent is only finished once all of its children are.
        """
        while len(stack) > floor:
            frame = stack[-1]
            if frame.pending:
                self._visit(frame, frame.pending.pop(), stack, result)
                continue
            stack.pop()
            self._finish(frame, result)
            if stack:
                stack[-1].size += frame.size

    def _walk(self, path: Path, ancestors: frozenset[Identity]) -> _Subtree:
        """Walk one child of the root on a worker thread."""
        result = _Subtree()
        frame = self._enter(path, 1, ancestors, result)
        if frame is not None:
            self._drain([frame], result)
            result.size = frame.size
        return result

    def _walk_parallel(self, root: _Frame, result: _Subtree) -> None:
        """Walk the root's subdirectories concurrently and join them in name order."""
        children = list(reversed(root.pending))
        root.pending = []

        with ThreadPoolExecutor(
            max_workers=self.options.resolved_workers,
            thread_name_prefix="heft-walk",
        ) as executor:
            futures: dict[str, Future[_Subtree]] = {}
            for dir_entry in children:
                try:
                    kind = self._kind(dir_entry)
                except OSError:
                    continue  # visited (and recorded) in order below
                if kind is _Kind.DIRECTORY:
                    futures[dir_entry.path] = executor.submit(self._walk, Path(dir_entry.path), root.ancestors)

            try:
                stack = [root]
                for dir_entry in children:
                    future = futures.get(dir_entry.path)
                    if future is None:
                        self._visit(root, dir_entry, stack, result)
                        self._drain(stack, result, floor=1)
                        continue
                    subtree = future.result()
                    root.size += subtree.size
                    result.merge(subtree)
            except BaseException:
                executor.shutdown(wait=False, cancel_futures=True)
                raise

        self._finish(root, result)

    def _visit(self, frame: _Frame, dir_entry: os.DirEntry[str], stack: list[_Frame], result: _Subtree) -> None:
        path = Path(dir_entry.path)
        try:
            kind = self._kind(dir_entry)
            size = dir_entry.stat(follow_symlinks=self.options.follow_symlinks).st_size if kind is _Kind.FILE else 0
        except OSError as e:
            self._record(path, e, result)
            return

        if kind is _Kind.DIRECTORY:
            child = self._enter(path, frame.depth + 1, frame.ancestors, result)
            if child is not None:
                stack.append(child)
        elif kind is _Kind.FILE:
            frame.size += size
            self._emit(path, True, size, frame.depth + 1, result)
        else:
            log.debug("Skipping %s", path)

    def _kind(self, dir_entry: os.DirEntry[str]) -> _Kind:
        """Classify a directory entry, following links only when enabled.

        Raises:
            OSError: A followed link is broken or loops onto itself.
        """
        if not dir_entry.is_symlink():
            if dir_entry.is_dir(follow_symlinks=False):
                return _Kind.DIRECTORY
            if dir_entry.is_file(follow_symlinks=False):
                return _Kind.FILE
            return _Kind.OTHER
        if not self.options.follow_symlinks:
            return _Kind.OTHER

        mode = dir_entry.stat(follow_symlinks=True).st_mode
        if stat.S_ISDIR(mode):
            return _Kind.DIRECTORY
        if stat.S_ISREG(mode):
            return _Kind.FILE
        return _Kind.OTHER

    # -- Helpers --

    @staticmethod
    def _list(path: Path) -> list[os.DirEntry[str]]:
        with os.scandir(path) as it:
            children = sorted(it, key=lambda e: e.name)
        children.reverse()
        return children

    def _within_depth(self, depth: int) -> bool:
        return self.options.max_depth is None or depth <= self.options.max_depth

    def _finish(self, frame: _Frame, result: _Subtree) -> None:
        # The root is the scan target, not a candidate.
        if self.options.include_directories and frame.depth > 0:
            self._emit(frame.path, False, frame.size, frame.depth, result)

    def _emit(self, path: Path, is_file: bool, size: int, depth: int, result: _Subtree) -> None:
        if size >= self.threshold_bytes and self._within_depth(depth):
            result.entries.append(Entry(path=path, is_file=is_file, size_bytes=size))

    @staticmethod
    def _record(path: Path, error: OSError, result: _Subtree) -> None:
        log.debug("Cannot read %s: %s", path, error)
        result.errors.append(ScanErrorRecord(path, reason_for(error)))

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ScanCancelledError(self._root)


def scan(
    root: str | os.PathLike[str],
    threshold_bytes: int = 0,
    options: ScanOptions | None = None,
    cancel_event: threading.Event | None = None,
) -> ScanReport:
    """Scan *root* for files and directories of at least *threshold_bytes*.

    Args:
        root: Directory (or single file) to scan.
        threshold_bytes: Minimum size to report. 0 reports everything.
        options: Traversal settings, defaults to ``ScanOptions()``.
        cancel_event: Set it from another thread to stop the scan.

    Returns:
        The complete report. Unreadable subtrees are listed in its ``errors``.

    Raises:
        ScanError: The root is missing or unreadable, or the scan was cancelled.
    """
    return Scanner(threshold_bytes, options, cancel_event).run(root)
