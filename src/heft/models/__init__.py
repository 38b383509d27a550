"""Heft data models."""

from heft.models.delete_result import DeleteResult
from heft.models.options import ScanOptions
from heft.models.scan_report import Entry, ErrorReason, ScanErrorRecord, ScanReport

__all__ = [
    "DeleteResult",
    "Entry",
    "ErrorReason",
    "ScanErrorRecord",
    "ScanOptions",
    "ScanReport",
]
