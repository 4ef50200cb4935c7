"""Concurrent directory traversal.

Each directory is one unit of work. Workers on a thread pool only list a
directory and hand back a :class:`_DirListing`; the thread that called
:meth:`TraversalEngine.scan` is the single aggregator. It owns the visited
set, the summary counters and the ``emit`` callback, and decides which
subdirectories to submit next. Nothing crosses the pool boundary as an
exception for an unreadable entry: workers count the problem and move on.
"""

from __future__ import annotations

import logging
import os
import stat
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Callable

from diskbloat.core.audit import AuditLogger
from diskbloat.core.safety import Intent, PathError, SafetyGate
from diskbloat.models.audit_record import AuditKind, AuditRecord
from diskbloat.models.scan_result import FileEntry, ScanOptions, ScanSummary
from diskbloat.utils import dir_size

log = logging.getLogger(__name__)

EmitCallback = Callable[[FileEntry], None]
MeasurePredicate = Callable[[str], bool]


class CancelToken:
    """Cooperative cancellation flag shared by the aggregator and workers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Kind(Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"  # recorded, not followed
    BROKEN_LINK = "broken_link"


@dataclass(slots=True)
class _Child:
    path: str
    kind: _Kind
    size: int = 0
    mtime: float = 0.0
    via_link: bool = False
    measured: bool = False


@dataclass(slots=True)
class _DirListing:
    depth: int
    inside_measured: bool
    children: list[_Child] = field(default_factory=list)
    permission_errors: int = 0
    io_errors: int = 0


class _Walk:
    """State of a single traversal. Discarded when the scan returns."""

    def __init__(
        self,
        root: Path,
        options: ScanOptions,
        emit: EmitCallback,
        cancel: CancelToken,
        measure_dir: MeasurePredicate | None,
    ) -> None:
        self.root = root
        self.options = options
        self.emit = emit
        self.cancel = cancel
        self.measure_dir = measure_dir
        self.summary = ScanSummary()
        self._visited_dirs: set[str] = {str(root)}
        self._seen_files: set[str] = set()

    # -- worker side -------------------------------------------------------

    def list_directory(self, directory: str, depth: int, inside_measured: bool) -> _DirListing:
        """List one directory. Runs on a pool thread and touches no shared state."""
        listing = _DirListing(depth=depth, inside_measured=inside_measured)
        if self.cancel.cancelled:
            return listing

        try:
            with os.scandir(directory) as it:
                for entry in it:
                    if self._ignored(entry.name):
                        continue
                    child = self._inspect(entry, listing)
                    if child is not None:
                        listing.children.append(child)
        except PermissionError:
            log.debug("Permission denied: %s", directory)
            listing.permission_errors += 1
        except OSError as e:
            log.debug("Cannot read %s: %s", directory, e)
            listing.io_errors += 1
        return listing

    def _ignored(self, name: str) -> bool:
        return any(fnmatchcase(name, pattern) for pattern in self.options.ignore_patterns)

    def _inspect(self, entry: os.DirEntry[str], listing: _DirListing) -> _Child | None:
        try:
            if entry.is_symlink():
                return self._inspect_link(entry)
            st = entry.stat(follow_symlinks=False)
        except PermissionError:
            listing.permission_errors += 1
            return None
        except OSError as e:
            log.debug("Cannot stat %s: %s", entry.path, e)
            listing.io_errors += 1
            return None

        if stat.S_ISDIR(st.st_mode):
            return self._dir_child(entry.path, entry.name, st.st_mtime, listing.inside_measured)
        return _Child(path=entry.path, kind=_Kind.FILE, size=st.st_size, mtime=st.st_mtime)

    def _inspect_link(self, entry: os.DirEntry[str]) -> _Child:
        if not self.options.follow_symlinks:
            st = entry.stat(follow_symlinks=False)
            return _Child(path=entry.path, kind=_Kind.SYMLINK, size=st.st_size, mtime=st.st_mtime)

        try:
            target = Path(entry.path).resolve(strict=True)
            st = target.stat()
        except (OSError, RuntimeError) as e:
            log.debug("Broken symlink %s: %s", entry.path, e)
            return _Child(path=entry.path, kind=_Kind.BROKEN_LINK)

        if stat.S_ISDIR(st.st_mode):
            child = self._dir_child(str(target), target.name, st.st_mtime, False)
            child.via_link = True
            return child
        return _Child(path=str(target), kind=_Kind.FILE, size=st.st_size, mtime=st.st_mtime, via_link=True)

    def _dir_child(self, path: str, name: str, mtime: float, inside_measured: bool) -> _Child:
        measured = not inside_measured and self.measure_dir is not None and self.measure_dir(name)
        size = dir_size(path) if measured else 0
        return _Child(path=path, kind=_Kind.DIR, size=size, mtime=mtime, measured=measured)

    # -- aggregator side ---------------------------------------------------

    def run(self, workers: int) -> ScanSummary:
        started = time.monotonic()
        max_depth = self.options.max_depth

        root_measured = self.measure_dir is not None and self.measure_dir(self.root.name)
        if root_measured:
            root_stat = self.root.stat()
            self.emit_entry(FileEntry(self.root, dir_size(self.root), root_stat.st_mtime, is_dir=True))

        if max_depth is None or max_depth > 0:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="diskbloat-walk") as pool:
                pending: set[Future[_DirListing]] = {
                    pool.submit(self.list_directory, str(self.root), 0, root_measured)
                }
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        for path, depth, inside in self._absorb(future.result()):
                            if self.cancel.cancelled:
                                break
                            pending.add(pool.submit(self.list_directory, path, depth, inside))

        self.summary.cancelled = self.cancel.cancelled
        self.summary.duration_seconds = time.monotonic() - started
        return self.summary

    def _absorb(self, listing: _DirListing) -> list[tuple[str, int, bool]]:
        """Emit a finished listing's entries and return subdirectories to visit."""
        self.summary.permission_errors += listing.permission_errors
        self.summary.io_errors += listing.io_errors
        child_depth = listing.depth + 1
        descend = self.options.max_depth is None or child_depth < self.options.max_depth
        subdirs: list[tuple[str, int, bool]] = []

        for child in listing.children:
            if child.kind is _Kind.BROKEN_LINK:
                self.summary.broken_links += 1
                continue

            if child.kind is _Kind.DIR:
                if child.path in self._visited_dirs:
                    if child.via_link:
                        self.summary.symlink_cycles += 1
                        log.info("Symlink cycle skipped: %s", child.path)
                    continue
                self._visited_dirs.add(child.path)
                if listing.inside_measured:
                    self.summary.entries_visited += 1
                else:
                    self.emit_entry(FileEntry(Path(child.path), child.size, child.mtime, is_dir=True))
                if descend:
                    subdirs.append((child.path, child_depth, listing.inside_measured or child.measured))
                continue

            # Only links can alias a file, so the seen set is needed only when following them.
            if self.options.follow_symlinks:
                if child.path in self._seen_files:
                    continue
                self._seen_files.add(child.path)

            self.summary.total_bytes += child.size
            self.emit_entry(
                FileEntry(
                    Path(child.path),
                    child.size,
                    child.mtime,
                    is_symlink=child.kind is _Kind.SYMLINK,
                )
            )
        return subdirs

    def emit_entry(self, entry: FileEntry) -> None:
        self.summary.entries_visited += 1
        self.emit(entry)


class TraversalEngine:
    """Walks a subtree and emits :class:`FileEntry` objects as they are found.

    Every call to :meth:`scan` is an independent walk from scratch.
    """

    def __init__(
        self,
        workers: int | None = None,
        gate: SafetyGate | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        self.workers = workers or os.cpu_count() or 1
        self.gate = gate
        self.audit = audit

    def scan(
        self,
        options: ScanOptions,
        emit: EmitCallback,
        cancel: CancelToken | None = None,
        measure_dir: MeasurePredicate | None = None,
    ) -> ScanSummary:
        """Walk ``options.root`` and call *emit* for every entry found.

        Args:
            options: Scan parameters.
            emit: Called on the calling thread, once per entry, in discovery order.
            cancel: Checked before each directory is listed.
            measure_dir: Directory basenames it accepts are emitted with
                their whole subtree size; directories nested inside them
                are not emitted again.

        Raises:
            PathError: If a safety gate is configured and rejects the root.
            LogError: If the scan record cannot be written.
        """
        root = self._resolve_root(options)
        walk = _Walk(root, options, emit, cancel or CancelToken(), measure_dir)

        if root.is_dir():
            summary = walk.run(self.workers)
        else:
            st = root.stat()
            walk.summary.total_bytes = st.st_size
            walk.emit_entry(FileEntry(root, st.st_size, st.st_mtime))
            summary = walk.summary

        log.info("Scanned %s: %s", root, summary.describe())
        if self.audit is not None:
            self.audit.append(
                AuditRecord(
                    kind=AuditKind.SCAN,
                    path=str(root),
                    size_bytes=summary.total_bytes,
                    status="cancelled" if summary.cancelled else "completed",
                    detail=summary.describe(),
                )
            )
        return summary

    def _resolve_root(self, options: ScanOptions) -> Path:
        if self.gate is None:
            return Path(options.root).resolve(strict=True)
        try:
            return self.gate.validate(options.root, Intent.SCAN)
        except PathError as e:
            if self.audit is not None:
                self.audit.append(
                    AuditRecord(kind=AuditKind.SCAN, path=str(options.root), status="rejected", detail=e.reason)
                )
            raise
