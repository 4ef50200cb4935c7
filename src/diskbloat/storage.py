"""Locations of the files diskbloat keeps on disk."""

from __future__ import annotations

from diskbloat.utils import xdg_config_home, xdg_data_home

_DATA_DIR = xdg_data_home() / "diskbloat"

AUDIT_FILE = _DATA_DIR / "audit.jsonl"

SETTINGS_FILE = xdg_config_home() / "diskbloat" / "settings.json"
