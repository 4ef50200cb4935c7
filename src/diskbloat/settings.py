"""JSON-backed settings and the typed core configuration built from them."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import diskbloat.storage as storage
from diskbloat.core.duplicates import DEFAULT_MAX_HASH_BYTES
from diskbloat.core.executor import MAX_BATCH_BYTES, MAX_BATCH_COUNT

log = logging.getLogger(__name__)


class Settings:
    """Persistent settings backed by a JSON file.

    Uses dot-notation keys for nested access:
        settings.get("cleanup.max_batch_count")  # reads data["cleanup"]["max_batch_count"]
        settings.set("duplicates.workers", 8)  # writes + saves
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or storage.SETTINGS_FILE
        self._data: dict[str, Any] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key."""
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_int(self, key: str, default: int | None, minimum: int | None = None) -> int | None:
        """Get an integer value, falling back to *default* on a bad type or a value below *minimum*."""
        value = self.get(key, default)
        if value is None or isinstance(value, bool):
            return default
        try:
            number = int(value)
        except (TypeError, ValueError):
            log.warning("Setting %s=%r is not an integer, using %r", key, value, default)
            return default
        if minimum is not None and number < minimum:
            log.warning("Setting %s=%r is below %d, using %r", key, value, minimum, default)
            return default
        return number

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


@dataclass(frozen=True)
class CoreConfig:
    """Tunables of the scan and cleanup pipeline."""

    scan_workers: int | None = None
    hash_workers: int | None = None
    duplicate_min_bytes: int = 1024
    max_hash_bytes: int = DEFAULT_MAX_HASH_BYTES
    max_batch_count: int = MAX_BATCH_COUNT
    max_batch_bytes: int = MAX_BATCH_BYTES
    clean_workers: int = 4
    audit_path: Path | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> CoreConfig:
        defaults = cls()
        audit_path = settings.get("audit.path")
        return cls(
            scan_workers=settings.get_int("scan.workers", defaults.scan_workers, minimum=1),
            hash_workers=settings.get_int("duplicates.workers", defaults.hash_workers, minimum=1),
            duplicate_min_bytes=settings.get_int("duplicates.min_size_bytes", defaults.duplicate_min_bytes, minimum=0),
            max_hash_bytes=settings.get_int("duplicates.max_hash_bytes", defaults.max_hash_bytes, minimum=1),
            max_batch_count=settings.get_int("cleanup.max_batch_count", defaults.max_batch_count, minimum=1),
            max_batch_bytes=settings.get_int("cleanup.max_batch_bytes", defaults.max_batch_bytes, minimum=1),
            clean_workers=settings.get_int("cleanup.workers", defaults.clean_workers, minimum=1),
            audit_path=Path(audit_path).expanduser() if audit_path else None,
        )
