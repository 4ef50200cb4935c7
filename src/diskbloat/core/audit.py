"""Append-only audit trail of scans and deletions.

Records are stored one JSON object per line. The logger only ever opens
the file in append mode; a failed write raises :class:`LogError` so the
caller can refuse to report an unaudited deletion as successful.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

import diskbloat.storage as storage
from diskbloat.core.errors import DiskBloatError
from diskbloat.models.audit_record import AuditRecord

log = logging.getLogger(__name__)

# One lock per audit file, shared by every logger writing to it.
_LOCKS: dict[Path, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


class LogError(DiskBloatError):
    """Raised when an audit record could not be persisted."""


def _lock_for(path: Path) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path)
        if lock is None:
            lock = _LOCKS[path] = threading.Lock()
        return lock


class AuditLogger:
    """Serialized appender for :class:`AuditRecord` lines."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else storage.AUDIT_FILE
        self._lock = _lock_for(self.path.absolute())

    def append(self, record: AuditRecord) -> None:
        """Persist *record*. Raises :class:`LogError` on any failure."""
        try:
            line = record.to_json()
        except (TypeError, ValueError) as e:
            raise LogError(f"Failed to serialize audit record for {record.path}: {e}") from e

        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise LogError(f"Failed to write audit log {self.path}: {e}") from e

        log.debug("Audit %s %s: %s", record.kind.value, record.status, record.path)

    def read(self) -> list[AuditRecord]:
        """Parse every record back, skipping lines that cannot be parsed."""
        if not self.path.exists():
            return []
        records: list[AuditRecord] = []
        try:
            with open(self.path, encoding="utf-8") as f:
                for number, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        records.append(AuditRecord.from_json(line))
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                        log.warning("Skipping malformed audit line %d in %s", number, self.path)
        except OSError as e:
            raise LogError(f"Failed to read audit log {self.path}: {e}") from e
        return records

    def stats(self) -> dict[str, Any]:
        """Aggregate record counts and bytes per kind and status."""
        totals: dict[str, dict[str, int]] = {}
        records = self.read()
        for record in records:
            key = f"{record.kind.value}:{record.status}"
            bucket = totals.setdefault(key, {"count": 0, "size_bytes": 0})
            bucket["count"] += 1
            bucket["size_bytes"] += record.size_bytes
        return {"records": len(records), "by_status": totals}
