"""Tests for the background scan engine."""

from __future__ import annotations

import asyncio
import threading

import pytest

import heft.core.engine as engine_module
from heft.core.engine import ScanEngine
from heft.core.errors import RootNotFoundError, ScanCancelledError, ScanInProgressError
from heft.models.options import ScanOptions
from heft.models.scan_report import ScanReport


@pytest.fixture
def engine():
    engine = ScanEngine()
    yield engine
    engine.shutdown()


@pytest.fixture
def gated_scan(monkeypatch):
    """Hold every scan until the returned gate is set."""
    gate = threading.Event()
    started = threading.Event()
    calls: list = []
    real_scan = engine_module.scan

    def fake_scan(root, threshold_bytes, options, cancel_event):
        calls.append(root)
        started.set()
        assert gate.wait(5)
        return real_scan(root, threshold_bytes, options, cancel_event)

    monkeypatch.setattr(engine_module, "scan", fake_scan)
    return gate, started, calls


class TestScanEngine:
    def test_scan_returns_report(self, engine, sample_tree):
        report = engine.scan(sample_tree, 10000)
        assert isinstance(report, ScanReport)
        assert [e.path.name for e in report.entries] == ["b.txt"]

    def test_submit_returns_before_scan_finishes(self, engine, sample_tree, gated_scan):
        gate, started, _calls = gated_scan
        job = engine.submit(sample_tree, 10000)
        assert started.wait(5)
        assert not job.done()
        gate.set()
        assert job.result(timeout=5).root == sample_tree

    def test_same_request_is_coalesced(self, engine, sample_tree, gated_scan):
        gate, started, calls = gated_scan
        first = engine.submit(sample_tree, 10000)
        second = engine.submit(str(sample_tree) + "/", 10000)
        assert second is first
        gate.set()
        assert first.result(timeout=5) == second.result(timeout=5)
        assert len(calls) == 1

    def test_conflicting_request_rejected(self, engine, sample_tree, gated_scan):
        gate, _started, _calls = gated_scan
        job = engine.submit(sample_tree, 10000)
        with pytest.raises(ScanInProgressError):
            engine.submit(sample_tree, 0)
        with pytest.raises(ScanInProgressError):
            engine.submit(sample_tree, 10000, ScanOptions(follow_symlinks=True))
        gate.set()
        job.result(timeout=5)

    def test_new_scan_after_previous_finished(self, engine, sample_tree):
        first = engine.submit(sample_tree, 10000)
        first.result(timeout=5)
        _wait_until_idle(engine, sample_tree)
        second = engine.submit(sample_tree, 0)
        assert second is not first
        assert len(second.result(timeout=5).entries) == 4

    def test_different_roots_run_independently(self, engine, make_tree):
        one = make_tree({"a.bin": 10}, name="one")
        two = make_tree({"b.bin": 20}, name="two")
        job_one = engine.submit(one, 0)
        job_two = engine.submit(two, 0)
        assert job_one is not job_two
        assert job_one.result(timeout=5).root_size_bytes == 10
        assert job_two.result(timeout=5).root_size_bytes == 20

    def test_cancel_resolves_as_cancelled(self, engine, sample_tree, gated_scan):
        gate, started, _calls = gated_scan
        job = engine.submit(sample_tree, 0)
        assert started.wait(5)
        assert engine.cancel(sample_tree) is True
        assert job.cancelled
        gate.set()
        with pytest.raises(ScanCancelledError):
            job.result(timeout=5)
        assert engine.get_last_report(sample_tree) is None

    def test_cancel_unknown_root(self, engine, tmp_path):
        assert engine.cancel(tmp_path) is False

    def test_errors_delivered_to_caller(self, engine, tmp_path):
        job = engine.submit(tmp_path / "missing", 0)
        with pytest.raises(RootNotFoundError):
            job.result(timeout=5)

    def test_crash_delivered_to_caller(self, engine, sample_tree, monkeypatch):
        def broken_scan(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine_module, "scan", broken_scan)
        with pytest.raises(RuntimeError, match="boom"):
            engine.scan(sample_tree)

    def test_on_done_callback(self, engine, sample_tree):
        finished = threading.Event()
        received = []

        def on_done(job):
            received.append(job)
            finished.set()

        job = engine.submit(sample_tree, 10000, on_done=on_done)
        assert finished.wait(5)
        assert received == [job]
        assert received[0].result().threshold_bytes == 10000

    def test_caches_last_report(self, engine, sample_tree):
        report = engine.scan(sample_tree, 10000)
        _wait_until_idle(engine, sample_tree)
        assert engine.get_last_report(sample_tree) == report

    def test_negative_threshold(self, engine, sample_tree):
        with pytest.raises(ValueError):
            engine.submit(sample_tree, -5)

    def test_scan_async(self, engine, sample_tree):
        report = asyncio.run(engine.scan_async(sample_tree, 10000))
        assert report.entries[0].path == sample_tree / "b.txt"

    def test_submit_after_shutdown_leaves_nothing_registered(self, engine, sample_tree):
        engine.shutdown()
        with pytest.raises(RuntimeError):
            engine.submit(sample_tree, 0)
        assert engine.in_flight(sample_tree) is None
        with pytest.raises(RuntimeError):
            engine.submit(sample_tree, 0)

    def test_concurrent_differently_configured_scans(self, engine, make_tree):
        root_a = make_tree({"d": {"f.bin": 100}}, name="a")
        root_b = make_tree({"d": {"f.bin": 100}}, name="b")
        job_a = engine.submit(root_a, 0, ScanOptions(include_directories=False))
        job_b = engine.submit(root_b, 0, ScanOptions(include_directories=True))
        assert len(job_a.result(timeout=5).entries) == 1
        assert len(job_b.result(timeout=5).entries) == 2


def _wait_until_idle(engine: ScanEngine, root) -> None:
    """Done-callbacks run just after the result is set; give them a moment."""
    for _ in range(100):
        if engine.in_flight(root) is None:
            return
        threading.Event().wait(0.01)
    raise AssertionError(f"scan of {root} still registered")
