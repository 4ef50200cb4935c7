"""Tests for the cleanup executor."""

from __future__ import annotations

import os
import shutil
from collections import Counter
from pathlib import Path

import pytest

import diskbloat.core.executor as executor_module
from diskbloat.core.audit import AuditLogger, LogError
from diskbloat.core.executor import BatchLimitError, CleanupExecutor, CleanupState, is_cloud_path
from diskbloat.core.safety import Intent, PathError, PathErrorKind, SafetyGate
from diskbloat.models.audit_record import AuditKind
from diskbloat.models.clean_result import CleanupRequest
from conftest import write_file


class FakeTrash:
    """Moves paths into a local directory instead of the desktop trash."""

    def __init__(self, bin_dir: Path, fail_for: set[str] | None = None) -> None:
        self.bin_dir = bin_dir
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        self.fail_for = fail_for or set()
        self.calls: list[str] = []

    def __call__(self, path: str) -> None:
        self.calls.append(path)
        if os.path.basename(path) in self.fail_for:
            raise OSError(f"cannot move {path} to trash")
        shutil.move(path, self.bin_dir / f"{len(self.calls)}-{os.path.basename(path)}")


class VanishingGate(SafetyGate):
    """Validates normally, then removes ``vanish.txt`` as if another process got there first."""

    def validate(self, path, intent):
        canonical = super().validate(path, intent)
        if canonical.name == "vanish.txt":
            canonical.unlink()
        return canonical


@pytest.fixture
def trash(tmp_path) -> FakeTrash:
    return FakeTrash(tmp_path / "trash-bin")


@pytest.fixture
def executor(gate, audit, trash) -> CleanupExecutor:
    return CleanupExecutor(gate, audit, workers=2, trash=trash)


def _request(*paths: Path, **kwargs) -> CleanupRequest:
    return CleanupRequest(paths=tuple(str(p) for p in paths), **kwargs)


class TestRequest:
    def test_empty_request_rejected(self):
        with pytest.raises(ValueError):
            CleanupRequest(paths=())

    def test_duplicate_paths_rejected(self):
        with pytest.raises(ValueError):
            CleanupRequest(paths=("/a", "/a"))

    def test_paths_stored_as_tuple(self):
        assert CleanupRequest(paths=["/a", "/b"]).paths == ("/a", "/b")


class TestDryRun:
    def test_nothing_is_touched(self, executor, work, trash):
        f = write_file(work / "a.bin", 100)
        d = write_file(work / "build" / "out.o", 50).parent

        result = executor.execute(_request(f, d, dry_run=True))

        assert result.dry_run
        assert result.deleted == (str(f), str(d))
        assert result.freed_bytes == 150
        assert f.exists() and d.exists()
        assert trash.calls == []

    def test_idempotent(self, executor, work):
        f = write_file(work / "a.bin", 100)
        request = _request(f, dry_run=True)
        assert executor.execute(request) == executor.execute(request)

    def test_audited_as_actions(self, executor, audit, work):
        f = write_file(work / "a.bin", 100)
        executor.execute(_request(f, dry_run=True))

        records = audit.read()
        assert [(r.kind, r.status, r.detail) for r in records] == [(AuditKind.ACTION, "deleted", "dry-run")]
        assert records[0].size_bytes == 100


class TestExecution:
    def test_moves_to_trash_by_default(self, executor, work, trash):
        f = write_file(work / "a.bin", 10)
        result = executor.execute(_request(f))

        assert result.deleted == (str(f),)
        assert result.freed_bytes == 10
        assert trash.calls == [str(f)]
        assert not f.exists()
        assert executor.state is CleanupState.COMPLETED

    def test_permanent_delete_of_file_and_tree(self, executor, work, trash):
        f = write_file(work / "a.bin", 10)
        tree = work / "node_modules"
        write_file(tree / "pkg" / "index.js", 30)

        result = executor.execute(_request(f, tree, use_trash=False))

        assert result.deleted == (str(f), str(tree))
        assert result.freed_bytes == 40
        assert not f.exists() and not tree.exists()
        assert trash.calls == []

    def test_symlink_removes_link_not_target(self, executor, work):
        target = write_file(work / "keep" / "data.bin", 10)
        link = work / "shortcut"
        link.symlink_to(target)

        result = executor.execute(_request(link, use_trash=False))

        assert result.deleted == (str(link),)
        assert not os.path.lexists(link)
        assert target.exists()

    def test_error_on_one_path_does_not_abort_the_rest(self, gate, audit, work, tmp_path):
        trash = FakeTrash(tmp_path / "bin", fail_for={"stuck.bin"})
        executor = CleanupExecutor(gate, audit, trash=trash)
        ok = write_file(work / "ok.bin", 10)
        stuck = write_file(work / "stuck.bin", 10)

        result = executor.execute(_request(ok, stuck))

        assert result.deleted == (str(ok),)
        assert [f.path for f in result.errors] == [str(stuck)]
        assert "cannot move" in result.errors[0].reason
        assert result.freed_bytes == 10
        assert stuck.exists()

    def test_trash_that_leaves_the_file_is_an_error(self, gate, audit, work):
        executor = CleanupExecutor(gate, audit, trash=lambda path: None)
        f = write_file(work / "a.bin", 10)

        result = executor.execute(_request(f))

        assert result.deleted == ()
        assert "still exists" in result.errors[0].reason

    def test_cloud_paths_are_retried(self, gate, audit, work, monkeypatch):
        monkeypatch.setattr(executor_module.time, "sleep", lambda seconds: None)
        f = write_file(work / "Library" / "Mobile Documents" / "notes.txt", 10)
        attempts: list[str] = []

        def flaky_trash(path: str) -> None:
            attempts.append(path)
            if len(attempts) < 3:
                raise OSError("resource busy")
            os.remove(path)

        result = CleanupExecutor(gate, audit, trash=flaky_trash).execute(_request(f))

        assert result.deleted == (str(f),)
        assert len(attempts) == 3

    def test_local_paths_are_not_retried(self, gate, audit, work):
        f = write_file(work / "notes.txt", 10)
        attempts: list[str] = []

        def failing_trash(path: str) -> None:
            attempts.append(path)
            raise OSError("resource busy")

        result = CleanupExecutor(gate, audit, trash=failing_trash).execute(_request(f))

        assert len(result.errors) == 1
        assert len(attempts) == 1

    def test_is_cloud_path(self):
        assert is_cloud_path("/Users/me/Library/Mobile Documents/com~apple~CloudDocs/a.txt")
        assert is_cloud_path("/Users/me/Library/CloudStorage/Dropbox/a.txt")
        assert not is_cloud_path("/home/me/Documents/a.txt")


class TestPartition:
    def test_nested_path_skipped_after_parent(self, executor, work):
        parent = work / "target"
        child = write_file(parent / "debug" / "app", 20)

        result = executor.execute(_request(child, parent, use_trash=False))

        assert result.deleted == (str(parent),)
        assert result.skipped == (str(child),)
        assert not parent.exists()

    def test_path_vanishing_after_validation_is_skipped(self, audit, work, tmp_path):
        gate = VanishingGate(protected_roots=[], home=tmp_path / "home")
        executor = CleanupExecutor(gate, audit, trash=FakeTrash(tmp_path / "bin"))
        keep_going = write_file(work / "a.txt", 5)
        vanish = write_file(work / "vanish.txt", 5)

        result = executor.execute(_request(keep_going, vanish))

        assert result.deleted == (str(keep_going),)
        assert result.skipped == (str(vanish),)
        assert result.errors == ()

    def test_every_path_lands_in_exactly_one_list(self, gate, audit, work, tmp_path):
        trash = FakeTrash(tmp_path / "bin", fail_for={"locked.bin"})
        executor = CleanupExecutor(gate, audit, trash=trash)
        parent = work / "dist"
        paths = [
            write_file(work / "one.bin", 1),
            write_file(work / "locked.bin", 1),
            write_file(parent / "bundle.js", 1),
            parent,
        ]

        result = executor.execute(_request(*paths))

        accounted = result.paths()
        assert sorted(accounted) == sorted(str(p) for p in paths)
        assert len(accounted) == len(set(accounted))


class TestValidation:
    def test_one_protected_path_rejects_the_whole_batch(self, executor, audit, work, trash):
        files = [write_file(work / f"f{i:03d}.bin", 1) for i in range(999)]
        git_dir = work / "repo" / ".git"
        git_dir.mkdir(parents=True)

        with pytest.raises(PathError) as exc:
            executor.execute(_request(*files, git_dir))

        assert exc.value.path == str(git_dir)
        assert exc.value.kind is PathErrorKind.PROTECTED
        assert all(f.exists() for f in files)
        assert trash.calls == []
        assert executor.state is CleanupState.REJECTED

        records = audit.read()
        assert len(records) == 1
        assert records[0].status == "rejected"
        assert records[0].path == str(git_dir)

    def test_missing_path_rejects_the_batch(self, executor, work):
        f = write_file(work / "a.bin", 1)
        with pytest.raises(PathError) as exc:
            executor.execute(_request(f, work / "missing.bin"))
        assert exc.value.kind is PathErrorKind.NOT_FOUND
        assert f.exists()

    def test_count_ceiling(self, gate, audit, work, trash):
        executor = CleanupExecutor(gate, audit, max_batch_count=2, trash=trash)
        files = [write_file(work / f"{i}.bin", 1) for i in range(3)]

        with pytest.raises(BatchLimitError, match="3 items"):
            executor.execute(_request(*files))
        assert all(f.exists() for f in files)

    def test_size_ceiling_counts_directory_trees(self, gate, audit, work, trash):
        executor = CleanupExecutor(gate, audit, max_batch_bytes=100, trash=trash)
        tree = work / "build"
        write_file(tree / "a.o", 60)
        write_file(tree / "b.o", 60)

        with pytest.raises(BatchLimitError):
            executor.execute(_request(tree))
        assert tree.exists()
        assert trash.calls == []

    def test_size_ceiling_counts_nested_paths_once(self, gate, audit, work, trash):
        executor = CleanupExecutor(gate, audit, max_batch_bytes=40, trash=trash)
        tree = work / "target"
        inner = write_file(tree / "debug" / "app", 40)

        result = executor.execute(_request(inner, tree, dry_run=True))

        assert result.freed_bytes == 40

    def test_two_spellings_of_one_path_count_once(self, gate, audit, work, trash):
        executor = CleanupExecutor(gate, audit, max_batch_bytes=10, trash=trash)
        f = write_file(work / "a.bin", 10)
        request = CleanupRequest(paths=(str(f), f"{work}/./a.bin"))

        assert executor.execute(CleanupRequest(paths=request.paths, dry_run=True)).freed_bytes == 10
        result = executor.execute(request)

        assert result.deleted == (str(f),)
        assert result.skipped == (f"{work}/./a.bin",)
        assert result.freed_bytes == 10
        assert trash.calls == [str(f)]

    @pytest.mark.parametrize("workers", [0, -1])
    def test_non_positive_worker_count_rejected_up_front(self, gate, audit, workers):
        with pytest.raises(ValueError, match="workers"):
            CleanupExecutor(gate, audit, workers=workers)

    def test_paths_are_revalidated_each_time(self, executor, work):
        target = work / "cache"
        target.mkdir()
        executor.execute(_request(target, dry_run=True))

        target.rmdir()
        target.symlink_to("/etc" if os.name != "nt" else "C:\\Windows")
        result = executor.execute(_request(target, dry_run=True))

        # The link itself is the delete target, never what it points at.
        assert result.deleted == (str(target),)
        assert executor.gate.validate(target, Intent.DELETE) == target


class TestAudit:
    def test_exactly_one_record_per_result_entry(self, audit, work, tmp_path):
        gate = VanishingGate(protected_roots=[], home=tmp_path / "home")
        trash = FakeTrash(tmp_path / "bin", fail_for={"bad.bin"})
        executor = CleanupExecutor(gate, audit, trash=trash)
        good = write_file(work / "good.bin", 3)
        bad = write_file(work / "bad.bin", 4)
        vanish = write_file(work / "vanish.txt", 5)

        result = executor.execute(_request(good, bad, vanish))

        assert result.deleted == (str(good),)
        assert result.skipped == (str(vanish),)
        assert [f.path for f in result.errors] == [str(bad)]

        records = [r for r in audit.read() if r.kind is AuditKind.DELETE]
        assert Counter(r.path for r in records) == Counter(result.paths())
        expected = {
            **{p: "deleted" for p in result.deleted},
            **{p: "skipped" for p in result.skipped},
            **{f.path: "error" for f in result.errors},
        }
        assert {r.path: r.status for r in records} == expected

    def test_audit_failure_is_fatal(self, gate, tmp_path, work, trash):
        blocked = tmp_path / "not-a-dir"
        blocked.write_text("")
        audit = AuditLogger(blocked / "audit.jsonl")
        executor = CleanupExecutor(gate, audit, trash=trash)
        f = write_file(work / "a.bin", 1)

        with pytest.raises(LogError):
            executor.execute(_request(f, dry_run=True))
        with pytest.raises(LogError):
            executor.execute(_request(f))
