"""Scan-side dataclasses: options, entries, categories and duplicate sets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable


@dataclass(frozen=True, slots=True)
class ScanOptions:
    """Parameters of one user-initiated scan. Immutable once the scan starts."""

    root: Path
    min_size_bytes: int | None = None
    follow_symlinks: bool = False
    max_depth: int | None = None
    ignore_patterns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FileEntry:
    """Single file, directory or symlink found by the traversal.

    ``path`` is absolute and built from canonical parents. Directories
    carry a size of 0 unless they were measured as a whole subtree.
    """

    path: Path
    size_bytes: int
    modified_at: float
    is_dir: bool = False
    is_symlink: bool = False

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(slots=True)
class ScanSummary:
    """Counters reported at the end of a traversal."""

    entries_visited: int = 0
    total_bytes: int = 0
    permission_errors: int = 0
    io_errors: int = 0
    broken_links: int = 0
    symlink_cycles: int = 0
    duration_seconds: float = 0.0
    cancelled: bool = False

    def describe(self) -> str:
        """One-line summary used in logs and audit details."""
        text = (
            f"{self.entries_visited} entries, {self.total_bytes} bytes, "
            f"{self.permission_errors} permission errors, {self.io_errors} I/O errors, "
            f"{self.broken_links} broken links, {self.symlink_cycles} symlink cycles "
            f"in {self.duration_seconds:.2f}s"
        )
        return f"{text} (cancelled)" if self.cancelled else text


class MatchKind(str, Enum):
    """Which classifier rule produced a match."""

    BLOAT = "bloat"
    LARGE = "large"
    JUNK = "junk"


class SafetyTier(str, Enum):
    """Display hint only; the cleanup executor never trusts it."""

    SAFE_AUTO = "safe-auto"
    REVIEW_RECOMMENDED = "review-recommended"


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    """A category an entry belongs to."""

    category_id: str
    display_name: str
    kind: MatchKind
    safety: SafetyTier = SafetyTier.REVIEW_RECOMMENDED


@dataclass(slots=True)
class BloatCategory:
    """Entries that matched one category during a scan.

    Entries keep discovery order and ``total_size_bytes`` is a running sum.
    """

    category_id: str
    display_name: str
    kind: MatchKind
    safety: SafetyTier = SafetyTier.REVIEW_RECOMMENDED
    entries: list[FileEntry] = field(default_factory=list)
    total_size_bytes: int = 0

    def add(self, entry: FileEntry) -> None:
        self.entries.append(entry)
        self.total_size_bytes += entry.size_bytes


@dataclass(frozen=True, slots=True, eq=False)
class DuplicateSet:
    """Files with byte-identical content, identified by their SHA-256 digest.

    No member is preferred over another: which copy survives is decided
    by the user's selection.
    """

    content_hash: str
    size_bytes: int
    entries: tuple[FileEntry, ...]

    def __post_init__(self) -> None:
        if len(self.entries) < 2:
            raise ValueError(f"A duplicate set needs at least 2 entries, got {len(self.entries)}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DuplicateSet):
            return NotImplemented
        return self.content_hash == other.content_hash

    def __hash__(self) -> int:
        return hash(self.content_hash)

    @property
    def total_savable_bytes(self) -> int:
        """Bytes reclaimed by keeping exactly one copy."""
        return self.size_bytes * (len(self.entries) - 1)

    def without(self, paths: Iterable[Path]) -> DuplicateSet | None:
        """Return this set minus *paths*, or None if fewer than 2 copies remain."""
        removed = set(paths)
        remaining = tuple(e for e in self.entries if e.path not in removed)
        if len(remaining) < 2:
            return None
        return DuplicateSet(content_hash=self.content_hash, size_bytes=self.size_bytes, entries=remaining)


@dataclass(slots=True)
class ScanReport:
    """Final payload of a scan."""

    categories: list[BloatCategory] = field(default_factory=list)
    duplicates: list[DuplicateSet] = field(default_factory=list)
    summary: ScanSummary = field(default_factory=ScanSummary)

    def category(self, category_id: str) -> BloatCategory | None:
        for category in self.categories:
            if category.category_id == category_id:
                return category
        return None
