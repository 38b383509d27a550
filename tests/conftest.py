"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

import heft.storage as storage
from heft.settings import Settings


@pytest.fixture
def isolate_storage(tmp_path, monkeypatch):
    """Redirect storage to a temp directory."""
    data_dir = tmp_path / "heft_data"
    data_dir.mkdir()
    report_file = data_dir / "last_report.json"
    monkeypatch.setattr(storage, "LAST_REPORT_FILE", report_file)
    monkeypatch.setattr(storage, "_DATA_DIR", data_dir)
    return report_file


@pytest.fixture
def isolate_settings(tmp_path, monkeypatch):
    """Point the settings singleton at a temp config directory."""
    config_home = tmp_path / "config"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setattr(Settings, "_instance", None)
    return config_home / "heft" / "settings.json"


def build_tree(root: Path, layout: dict) -> Path:
    """Create files and directories under *root*.

    Integer values are file sizes in bytes, dict values are subdirectories.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in layout.items():
        if isinstance(value, dict):
            build_tree(root / name, value)
        else:
            (root / name).write_bytes(b"x" * value)
    return root


@pytest.fixture
def make_tree(tmp_path):
    """Factory building a tree under ``tmp_path / name``."""

    def _make(layout: dict, name: str = "root") -> Path:
        return build_tree(tmp_path / name, layout)

    return _make


@pytest.fixture
def sample_tree(make_tree):
    """root/{a.txt 5000, b.txt 20000, sub/c.txt 6000}."""
    return make_tree({"a.txt": 5000, "b.txt": 20000, "sub": {"c.txt": 6000}})
