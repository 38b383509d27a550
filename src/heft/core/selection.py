"""Tracks which report entries the user picked for deletion."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from heft.models.scan_report import Entry, ScanReport


class Selection:
    """Checkbox state for the entries of one ScanReport.

    An entry's path is its selection token; paths that are not in the
    report cannot be selected. Calls *on_changed* whenever the selection
    changes so a view can refresh its summary.
    """

    def __init__(self, report: ScanReport, on_changed: Callable[[], None] | None = None) -> None:
        self._report = report
        self._on_changed = on_changed
        self._entries: dict[Path, Entry] = {e.path: e for e in report.entries}
        self._selected: set[Path] = set()

    # -- Mutators --

    def select(self, path: str | Path) -> None:
        self._selected.add(self._key(path))
        self._changed()

    def deselect(self, path: str | Path) -> None:
        self._selected.discard(self._key(path))
        self._changed()

    def toggle(self, path: str | Path) -> bool:
        """Flip one entry and return its new state."""
        key = self._key(path)
        if key in self._selected:
            self._selected.remove(key)
        else:
            self._selected.add(key)
        self._changed()
        return key in self._selected

    def set_all(self, active: bool) -> None:
        """Select or deselect every entry."""
        self._selected = set(self._entries) if active else set()
        self._changed()

    # -- Queries --

    def is_selected(self, path: str | Path) -> bool:
        return self._key(path) in self._selected

    @property
    def selected(self) -> list[Entry]:
        """Selected entries in report order."""
        return [e for e in self._report.entries if e.path in self._selected]

    def effective(self) -> list[Entry]:
        """Selected entries minus those inside another selected directory.

        Deleting a directory already removes everything below it, so the
        nested entries would only be counted twice.
        """
        chosen_dirs = [e.path for e in self.selected if not e.is_file]
        return [e for e in self.selected if not any(d in e.path.parents for d in chosen_dirs)]

    @property
    def total_bytes(self) -> int:
        return sum(e.size_bytes for e in self.effective())

    def __len__(self) -> int:
        return len(self._selected)

    def _key(self, path: str | Path) -> Path:
        key = Path(path)
        if key not in self._entries:
            raise KeyError(f"{key} is not part of the scan report for {self._report.root}")
        return key

    def _changed(self) -> None:
        if self._on_changed:
            self._on_changed()
