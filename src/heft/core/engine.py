"""Background scan orchestration."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from heft.core.errors import ScanError, ScanInProgressError
from heft.core.scanner import scan
from heft.models.options import ScanOptions
from heft.models.scan_report import ScanReport
from heft.utils import normalize_path

log = logging.getLogger(__name__)

JobCallback = Callable[["ScanJob"], None]


class ScanJob:
    """A scan running in the background.

    ``result()`` returns the ScanReport or raises the ScanError that
    ended the scan. A cancelled job raises ScanCancelledError, never a
    partial report.
    """

    def __init__(self, root: Path, threshold_bytes: int, options: ScanOptions) -> None:
        self.root = root
        self.threshold_bytes = threshold_bytes
        self.options = options
        self.cancel_event = threading.Event()
        self.future: Future[ScanReport] = Future()

    def matches(self, threshold_bytes: int, options: ScanOptions) -> bool:
        return self.threshold_bytes == threshold_bytes and self.options == options

    def cancel(self) -> None:
        """Ask the scan to stop before entering any further directory."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = None) -> ScanReport:
        return self.future.result(timeout)

    def add_done_callback(self, fn: JobCallback) -> None:
        """Call *fn* with this job once it finishes (immediately if it already has)."""
        self.future.add_done_callback(lambda _future: fn(self))

    def __repr__(self) -> str:
        return f"<ScanJob {self.root} threshold={self.threshold_bytes} done={self.done()}>"


class ScanEngine:
    """Runs scans off the caller's thread, at most one per root."""

    def __init__(self, max_scans: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_scans, thread_name_prefix="heft-scan")
        self._lock = threading.Lock()
        self._in_flight: dict[Path, ScanJob] = {}
        self._last_report: dict[Path, ScanReport] = {}

    def submit(
        self,
        root: str | Path,
        threshold_bytes: int = 0,
        options: ScanOptions | None = None,
        on_done: JobCallback | None = None,
    ) -> ScanJob:
        """Start scanning *root* in the background and return immediately.

        A request for a root that is already being scanned with the same
        threshold and options joins the running job instead of starting a
        second traversal.

        Args:
            root: Directory to scan.
            threshold_bytes: Minimum size to report.
            options: Traversal settings.
            on_done: Optional callback fired once the job finishes.

        Raises:
            ScanInProgressError: The root is being scanned with other settings.
            ValueError: The threshold is negative.
            RuntimeError: The engine has been shut down.
        """
        if threshold_bytes < 0:
            raise ValueError(f"threshold_bytes must be >= 0, got {threshold_bytes}")
        key = normalize_path(root)
        options = options or ScanOptions()

        with self._lock:
            job = self._in_flight.get(key)
            if job is not None:
                if not job.matches(threshold_bytes, options):
                    raise ScanInProgressError(key)
                log.info("Scan of %s already running, joining it", key)
                created = False
            else:
                job = ScanJob(key, threshold_bytes, options)
                self._in_flight[key] = job
                created = True

        if created:
            job.add_done_callback(self._on_job_done)
            try:
                self._executor.submit(self._run, job)
            except RuntimeError as exc:
                # Executor already shut down; resolving the job unregisters it.
                job.future.set_exception(exc)
                raise
        if on_done is not None:
            job.add_done_callback(on_done)
        return job

    def scan(
        self,
        root: str | Path,
        threshold_bytes: int = 0,
        options: ScanOptions | None = None,
    ) -> ScanReport:
        """Scan and wait for the report."""
        return self.submit(root, threshold_bytes, options).result()

    async def scan_async(
        self,
        root: str | Path,
        threshold_bytes: int = 0,
        options: ScanOptions | None = None,
    ) -> ScanReport:
        """Scan without blocking the running event loop."""
        job = self.submit(root, threshold_bytes, options)
        return await asyncio.wrap_future(job.future)

    def in_flight(self, root: str | Path) -> ScanJob | None:
        """Return the running job for *root*, if any."""
        with self._lock:
            return self._in_flight.get(normalize_path(root))

    def cancel(self, root: str | Path) -> bool:
        """Cancel the running scan of *root*. Returns False if none is running."""
        job = self.in_flight(root)
        if job is None:
            return False
        log.info("Cancelling scan of %s", job.root)
        job.cancel()
        return True

    def get_last_report(self, root: str | Path) -> ScanReport | None:
        """Get the most recent successful report for *root*."""
        with self._lock:
            return self._last_report.get(normalize_path(root))

    def shutdown(self, wait: bool = True) -> None:
        """Cancel running scans and stop the worker threads."""
        with self._lock:
            jobs = list(self._in_flight.values())
        for job in jobs:
            job.cancel()
        self._executor.shutdown(wait=wait)

    def _run(self, job: ScanJob) -> None:
        if not job.future.set_running_or_notify_cancel():
            return
        try:
            report = scan(job.root, job.threshold_bytes, job.options, job.cancel_event)
        except ScanError as exc:
            log.info("Scan of %s failed: %s", job.root, exc)
            job.future.set_exception(exc)
        except Exception as exc:
            log.exception("Scan of %s crashed", job.root)
            job.future.set_exception(exc)
        else:
            job.future.set_result(report)

    def _on_job_done(self, job: ScanJob) -> None:
        with self._lock:
            if self._in_flight.get(job.root) is job:
                del self._in_flight[job.root]
            if not job.future.cancelled() and job.future.exception() is None:
                self._last_report[job.root] = job.future.result()
