"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

import diskbloat.storage as storage
from diskbloat.core.audit import AuditLogger
from diskbloat.core.safety import SafetyGate, default_protected_roots


def write_file(path: Path, size: int = 0, fill: bytes = b"x") -> Path:
    """Create *path* (and its parents) holding *size* bytes of *fill*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes((fill * size)[:size] if size else b"")
    return path


@pytest.fixture
def isolate_storage(tmp_path, monkeypatch):
    """Redirect the audit log and settings file to a temp directory."""
    data_dir = tmp_path / "diskbloat_data"
    data_dir.mkdir()
    audit_file = data_dir / "audit.jsonl"
    monkeypatch.setattr(storage, "AUDIT_FILE", audit_file)
    monkeypatch.setattr(storage, "SETTINGS_FILE", data_dir / "settings.json")
    return audit_file


@pytest.fixture
def audit(tmp_path) -> AuditLogger:
    return AuditLogger(tmp_path / "audit" / "audit.jsonl")


@pytest.fixture
def gate(tmp_path) -> SafetyGate:
    """Gate with the platform denylist and a home directory outside the test tree.

    Roots that contain the temp directory itself (``/private/var`` on macOS)
    are left out so test files stay deletable.
    """
    tmp = str(tmp_path.resolve())
    roots = [r for r in default_protected_roots() if not tmp.startswith(r.rstrip("/\\") + os.sep)]
    return SafetyGate(protected_roots=roots, home=tmp_path / "home")


@pytest.fixture
def work(tmp_path) -> Path:
    """Canonical scratch directory for scan and cleanup tests."""
    root = tmp_path / "work"
    root.mkdir()
    return root.resolve()
