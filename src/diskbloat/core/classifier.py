"""Assigns traversed entries to categories."""

from __future__ import annotations

from fnmatch import fnmatchcase

from diskbloat.core.patterns import (
    BLOAT_PATTERNS,
    JUNK_PATTERNS,
    LARGE_FILES_ID,
    LARGE_FILES_NAME,
    BloatPattern,
    JunkPattern,
)
from diskbloat.models.scan_result import CategoryMatch, FileEntry, MatchKind, SafetyTier


class Classifier:
    """Pure, side-effect free classification of :class:`FileEntry` objects.

    Pattern tables are indexed once at construction; ``classify`` is then
    a lookup plus a short list of glob checks.
    """

    def __init__(
        self,
        min_size_bytes: int | None = None,
        bloat_patterns: tuple[BloatPattern, ...] = BLOAT_PATTERNS,
        junk_patterns: tuple[JunkPattern, ...] = JUNK_PATTERNS,
    ) -> None:
        self.min_size_bytes = min_size_bytes
        self._bloat_by_name: dict[str, CategoryMatch] = {}
        for pattern in bloat_patterns:
            match = CategoryMatch(pattern.category_id, pattern.display_name, MatchKind.BLOAT, pattern.safety)
            for name in pattern.dir_names:
                self._bloat_by_name.setdefault(name, match)
        self._junk = tuple(
            (p.pattern, CategoryMatch(p.category_id, p.display_name, MatchKind.JUNK, p.safety))
            for p in junk_patterns
        )
        self._large = CategoryMatch(LARGE_FILES_ID, LARGE_FILES_NAME, MatchKind.LARGE, SafetyTier.REVIEW_RECOMMENDED)

    def is_bloat_dir(self, name: str) -> bool:
        """Whether a directory with this basename is attributed to a bloat category."""
        return name in self._bloat_by_name

    def classify(self, entry: FileEntry) -> list[CategoryMatch]:
        """Return every category *entry* belongs to, possibly none."""
        if entry.is_symlink:
            return self._match_junk(entry.name)
        if entry.is_dir:
            bloat = self._bloat_by_name.get(entry.name)
            return [bloat] if bloat is not None else []

        matches = self._match_junk(entry.name)
        if self.min_size_bytes is not None and entry.size_bytes >= self.min_size_bytes:
            matches.append(self._large)
        return matches

    def _match_junk(self, name: str) -> list[CategoryMatch]:
        """Every junk category whose glob fits *name*, first matching pattern per category."""
        matches: dict[str, CategoryMatch] = {}
        for pattern, match in self._junk:
            if match.category_id not in matches and fnmatchcase(name, pattern):
                matches[match.category_id] = match
        return list(matches.values())
