"""Cleanup request and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CleanupRequest:
    """User-approved paths to remove."""

    paths: tuple[str, ...]
    dry_run: bool = False
    use_trash: bool = True

    def __post_init__(self) -> None:
        # Accept any sequence from callers but store an immutable tuple.
        object.__setattr__(self, "paths", tuple(self.paths))
        if not self.paths:
            raise ValueError("A cleanup request needs at least one path")
        seen: set[str] = set()
        for path in self.paths:
            if path in seen:
                raise ValueError(f"Duplicate path in cleanup request: {path}")
            seen.add(path)


@dataclass(frozen=True, slots=True)
class PathFailure:
    """A path that could not be removed, with the underlying OS message."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(frozen=True, slots=True)
class CleanupResult:
    """Snapshot of one executor run. Dry runs have the same shape."""

    deleted: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    errors: tuple[PathFailure, ...] = ()
    dry_run: bool = False
    freed_bytes: int = 0

    def paths(self) -> list[str]:
        """Every path the result accounts for, across all three outcomes."""
        return [*self.deleted, *self.skipped, *(failure.path for failure in self.errors)]
