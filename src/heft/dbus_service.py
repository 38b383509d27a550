"""D-Bus service for GUI communication.

D-Bus methods use PascalCase per D-Bus convention, and type signatures
like "as" and "(ss)" are D-Bus protocol types, not Python syntax.

Scans run in the background: ``Analyze`` returns at once and the
outcome arrives later as a ``ScanFinished`` or ``ScanFailed`` signal.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from dbus_next import BusType
from dbus_next.aio import MessageBus
from dbus_next.service import ServiceInterface, method, signal

from heft.core.engine import ScanEngine, ScanJob
from heft.core.errors import ScanError, ScanInProgressError
from heft.core.selection import Selection
from heft.models.scan_report import ScanReport
from heft.settings import Settings
from heft.storage import load_last_report, save_last_report
from heft.utils import normalize_path, remove_entries

log = logging.getLogger(__name__)

_BUS_NAME = "io.github.heft"
_OBJECT_PATH = "/io/github/heft"
_INTERFACE = "io.github.heft.Analyzer"


def failure_payload(root: Path, error: BaseException) -> str:
    """Serialize a failed scan for the ScanFailed signal."""
    data: dict[str, Any] = {"root": str(root), "message": str(error)}
    if isinstance(error, ScanError):
        data["reason"] = error.reason.value
    else:
        data["reason"] = "IOError"
    return json.dumps(data)


def delete_paths(report: ScanReport | None, paths: list[str]) -> dict[str, Any]:
    """Delete report entries picked by path and describe the outcome."""
    if report is None:
        return {"error": "No scan report available"}

    selection = Selection(report)
    unknown = []
    for path in paths:
        try:
            selection.select(normalize_path(path))
        except KeyError:
            unknown.append(path)
    if unknown:
        return {"error": "Paths not in the last report", "paths": unknown}

    result = remove_entries(selection.effective())
    return {
        "freed_bytes": result.freed_bytes,
        "removed": result.removed,
        "errors": result.errors,
    }


# noinspection PyPep8Naming
class HeftDBusService(ServiceInterface):
    """D-Bus service interface for Heft."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(_INTERFACE)
        self._loop = loop
        self._engine = ScanEngine()
        self._settings = Settings.instance()

    @method()
    def Analyze(self, path: "s", size_limit: "t") -> "s":  # type: ignore[override]
        """Start scanning a directory; the report follows as a signal."""
        root = normalize_path(path)
        running = self._engine.in_flight(root)
        try:
            job = self._engine.submit(root, size_limit, self._settings.scan_options())
        except ScanInProgressError as exc:
            return json.dumps({"status": "busy", "root": str(root), "message": str(exc)})
        if job is running:
            return json.dumps({"status": "coalesced", "root": str(root)})
        # One signal per job, however many callers joined it.
        job.add_done_callback(self._job_done)
        return json.dumps({"status": "started", "root": str(root)})

    @method()
    def Cancel(self, path: "s") -> "b":  # type: ignore[override]
        """Cancel a running scan."""
        return self._engine.cancel(path)

    @method()
    def GetLastReport(self) -> "s":  # type: ignore[override]
        """Get the last saved report as JSON (empty object if none)."""
        report = load_last_report()
        return report.to_json() if report else "{}"

    @method()
    def DeletePaths(self, paths: "as") -> "s":  # type: ignore[override]
        """Delete entries of the last report."""
        return json.dumps(delete_paths(load_last_report(), list(paths)))

    @signal()
    def ScanFinished(self, root: str, report_json: str) -> "(ss)":  # type: ignore[override]
        return [root, report_json]

    @signal()
    def ScanFailed(self, root: str, error_json: str) -> "(ss)":  # type: ignore[override]
        return [root, error_json]

    def _job_done(self, job: ScanJob) -> None:
        """Runs on a scan thread; hand the outcome to the event loop."""
        error = job.future.exception()
        if error is None:
            report = job.result()
            save_last_report(report)
            emit, payload = self.ScanFinished, report.to_json()
        else:
            emit, payload = self.ScanFailed, failure_payload(job.root, error)

        if self._loop is None:
            emit(str(job.root), payload)
        else:
            self._loop.call_soon_threadsafe(emit, str(job.root), payload)

    def shutdown(self) -> None:
        self._engine.shutdown(wait=False)


async def run_service() -> None:
    """Start the D-Bus service."""
    bus = await MessageBus(bus_type=BusType.SESSION).connect()
    service = HeftDBusService(asyncio.get_running_loop())
    bus.export(_OBJECT_PATH, service)
    await bus.request_name(_BUS_NAME)
    log.info("D-Bus service started on %s", _BUS_NAME)
    try:
        await bus.wait_for_disconnect()
    finally:
        service.shutdown()


def start_service() -> None:
    """Entry point to start the D-Bus service."""
    asyncio.run(run_service())
