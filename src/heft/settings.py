"""JSON-backed settings store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from heft.models.options import ScanOptions
from heft.utils import parse_size, xdg_config_home

log = logging.getLogger(__name__)

_SETTINGS_DIR = "heft"
_SETTINGS_FILE = "settings.json"

# Size limit used when neither the command line nor the settings file give one.
DEFAULT_THRESHOLD_BYTES = 10 * 1024

DEFAULTS: dict[str, Any] = {
    "scan": {
        "threshold_bytes": DEFAULT_THRESHOLD_BYTES,
        "follow_symlinks": False,
        "include_directories": True,
        "max_depth": None,
        "workers": None,
    },
}


class Settings:
    """Persistent settings backed by a JSON file.

    Uses dot-notation keys for nested access:
        settings.get("scan.follow_symlinks")  # reads data["scan"]["follow_symlinks"]
        settings.set("scan.threshold_bytes", 1048576)  # writes + saves
    """

    _instance: Settings | None = None

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or (xdg_config_home() / _SETTINGS_DIR / _SETTINGS_FILE)
        self._data: dict[str, Any] = {}
        self._load()

    @classmethod
    def instance(cls) -> Settings:
        """Return the singleton settings instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key, falling back to the built-in default."""
        found, value = _lookup(self._data, key)
        if found:
            return value
        found, value = _lookup(DEFAULTS, key)
        return value if found else default

    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-notation key and persist to disk."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    def as_dict(self) -> dict[str, Any]:
        """Effective settings: defaults overlaid with the stored values."""
        return _merge(DEFAULTS, self._data)

    @property
    def threshold_bytes(self) -> int:
        """Default size limit. Accepts either a byte count or a size string like "10K"."""
        value = self.get("scan.threshold_bytes")
        try:
            return parse_size(value)
        except (TypeError, ValueError):
            log.warning("Invalid scan.threshold_bytes %r in %s, using default", value, self._path)
            return DEFAULT_THRESHOLD_BYTES

    def scan_options(self) -> ScanOptions:
        """Build ScanOptions from the stored settings."""
        try:
            return ScanOptions(
                follow_symlinks=bool(self.get("scan.follow_symlinks")),
                include_directories=bool(self.get("scan.include_directories")),
                max_depth=self.get("scan.max_depth"),
                workers=self.get("scan.workers"),
            )
        except (TypeError, ValueError) as e:
            log.warning("Invalid scan settings in %s (%s), using defaults", self._path, e)
            return ScanOptions()

    def _load(self) -> None:
        """Load settings from disk, gracefully handling errors."""
        if not self._path.exists():
            return
        try:
            self._data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Could not load settings from %s: %s", self._path, e)
            self._data = {}

    def _save(self) -> None:
        """Persist settings to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as e:
            log.warning("Could not save settings to %s: %s", self._path, e)


def known_keys() -> list[str]:
    """All dot-notation keys that have a built-in default."""
    return [f"{section}.{name}" for section, values in DEFAULTS.items() for name in values]


def _lookup(data: dict[str, Any], key: str) -> tuple[bool, Any]:
    node: Any = data
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return False, None
        node = node[part]
    return True, node


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
