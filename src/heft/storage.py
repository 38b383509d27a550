"""JSON file storage for the last scan report."""

from __future__ import annotations

import json
import logging

from heft.models.scan_report import ScanReport
from heft.utils import xdg_data_home

log = logging.getLogger(__name__)

_DATA_DIR = xdg_data_home() / "heft"

LAST_REPORT_FILE = _DATA_DIR / "last_report.json"


def _ensure_data_dir() -> None:
    """Create the data directory if it doesn't exist."""
    _DATA_DIR.mkdir(parents=True, exist_ok=True)


def load_last_report() -> ScanReport | None:
    """Load the most recently saved report, or None if there is none."""
    if not LAST_REPORT_FILE.exists():
        return None
    try:
        with open(LAST_REPORT_FILE, encoding="utf-8") as f:
            return ScanReport.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError):
        log.exception("Failed to load report file: %s", LAST_REPORT_FILE)
        return None


def save_last_report(report: ScanReport) -> None:
    """Write the report to disk, replacing the previous one.

    Failures are logged, not raised.
    """
    try:
        _ensure_data_dir()
        with open(LAST_REPORT_FILE, "w", encoding="utf-8") as f:
            f.write(report.to_json(indent=2))
            f.write("\n")
    except OSError:
        log.exception("Failed to save report file: %s", LAST_REPORT_FILE)
