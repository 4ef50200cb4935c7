"""Tests for persistent settings and the core configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from diskbloat.core.executor import MAX_BATCH_COUNT
from diskbloat.settings import CoreConfig, Settings

pytestmark = pytest.mark.usefixtures("isolate_storage")


class TestSettings:
    def test_defaults_when_file_missing(self):
        settings = Settings()
        assert settings.get("cleanup.max_batch_count") is None
        assert settings.get("cleanup.max_batch_count", 5) == 5

    def test_set_persists_nested_keys(self, isolate_storage):
        settings = Settings()
        settings.set("duplicates.workers", 8)

        data = json.loads(settings.path.read_text())
        assert data == {"duplicates": {"workers": 8}}
        assert settings.path.parent == isolate_storage.parent
        assert Settings().get("duplicates.workers") == 8

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert Settings(path).get("scan.workers") is None

    def test_get_int_rejects_bad_types(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"scan": {"workers": "many", "flag": True, "depth": "3"}}))
        settings = Settings(path)

        assert settings.get_int("scan.workers", 2) == 2
        assert settings.get_int("scan.flag", 2) == 2
        assert settings.get_int("scan.depth", 2) == 3


class TestCoreConfig:
    def test_defaults(self):
        config = CoreConfig.from_settings(Settings())
        assert config == CoreConfig()
        assert config.max_batch_count == MAX_BATCH_COUNT
        assert config.duplicate_min_bytes == 1024

    def test_reads_overrides(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps(
                {
                    "scan": {"workers": 3},
                    "duplicates": {"min_size_bytes": 1, "workers": 2},
                    "cleanup": {"max_batch_count": 50, "max_batch_bytes": 4096, "workers": 1},
                    "audit": {"path": str(tmp_path / "log.jsonl")},
                }
            )
        )
        config = CoreConfig.from_settings(Settings(path))

        assert config.scan_workers == 3
        assert config.hash_workers == 2
        assert config.duplicate_min_bytes == 1
        assert config.max_batch_count == 50
        assert config.max_batch_bytes == 4096
        assert config.clean_workers == 1
        assert config.audit_path == Path(tmp_path / "log.jsonl")

    def test_non_positive_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps(
                {
                    "scan": {"workers": 0},
                    "duplicates": {"workers": -2, "min_size_bytes": -1},
                    "cleanup": {"workers": 0, "max_batch_count": 0, "max_batch_bytes": -5},
                }
            )
        )
        config = CoreConfig.from_settings(Settings(path))

        assert config == CoreConfig()

    def test_get_int_minimum(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"cleanup": {"workers": 0}}))
        settings = Settings(path)

        assert settings.get_int("cleanup.workers", 4, minimum=1) == 4
        assert settings.get_int("cleanup.workers", 4, minimum=0) == 0
