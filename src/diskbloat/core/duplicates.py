"""Content-addressed duplicate detection."""

from __future__ import annotations

import hashlib
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

from diskbloat.core.traversal import CancelToken
from diskbloat.models.scan_result import DuplicateSet, FileEntry

log = logging.getLogger(__name__)

_CHUNK_SIZE = 65_536  # 64 KB

DEFAULT_MAX_HASH_BYTES = 100 * 1024 * 1024


def sha256_file(path: Path) -> str:
    """Compute SHA-256 of a file using chunked reads."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            h.update(chunk)
    return h.hexdigest()


class DuplicateDetector:
    """Groups files with byte-identical content.

    Files are first bucketed by exact size; only buckets with at least two
    members are hashed. Each candidate is read once per :meth:`detect`
    call and nothing is cached between calls.
    """

    def __init__(self, workers: int | None = None, max_hash_bytes: int = DEFAULT_MAX_HASH_BYTES) -> None:
        self.workers = workers or min(32, (os.cpu_count() or 1) * 2)
        self.max_hash_bytes = max_hash_bytes

    def detect(
        self,
        entries: Iterable[FileEntry],
        min_size_bytes: int,
        cancel: CancelToken | None = None,
    ) -> list[DuplicateSet]:
        """Return duplicate sets among *entries*, largest savings first.

        Args:
            entries: Traversal output; directories and symlinks are ignored.
            min_size_bytes: Smallest file size considered.
            cancel: Checked before each file is hashed.
        """
        by_size = self._group_by_size(entries, min_size_bytes)
        to_hash = [entry for group in by_size.values() if len(group) > 1 for entry in group]
        if not to_hash:
            return []

        log.info(
            "Hashing %d candidates in %d size groups",
            len(to_hash),
            sum(1 for group in by_size.values() if len(group) > 1),
        )
        cancel = cancel or CancelToken()
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="diskbloat-hash") as pool:
            digests = list(pool.map(lambda entry: self._hash(entry, cancel), to_hash))

        by_hash: dict[str, list[FileEntry]] = {}
        for entry, digest in zip(to_hash, digests):
            if digest is not None:
                by_hash.setdefault(digest, []).append(entry)

        sets = [
            DuplicateSet(content_hash=digest, size_bytes=group[0].size_bytes, entries=tuple(group))
            for digest, group in by_hash.items()
            if len(group) > 1
        ]
        sets.sort(key=lambda s: (-s.total_savable_bytes, s.content_hash))
        log.info("Found %d duplicate sets", len(sets))
        return sets

    def _group_by_size(self, entries: Iterable[FileEntry], min_size_bytes: int) -> dict[int, list[FileEntry]]:
        by_size: dict[int, list[FileEntry]] = {}
        seen: set[Path] = set()
        for entry in entries:
            if entry.is_dir or entry.is_symlink or entry.path in seen:
                continue
            if entry.size_bytes < min_size_bytes or entry.size_bytes > self.max_hash_bytes:
                continue
            seen.add(entry.path)
            by_size.setdefault(entry.size_bytes, []).append(entry)
        return by_size

    @staticmethod
    def _hash(entry: FileEntry, cancel: CancelToken) -> str | None:
        if cancel.cancelled:
            return None
        try:
            return sha256_file(entry.path)
        except OSError as e:
            log.warning("Cannot hash %s: %s", entry.path, e)
            return None
