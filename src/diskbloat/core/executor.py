"""Safety-gated deletion of user-approved paths.

A request moves through ``VALIDATING -> REJECTED | VALIDATED -> EXECUTING ->
COMPLETED``. Validation is all-or-nothing: one bad path or an oversized
batch rejects the whole request before anything is touched. Once
execution starts every path is handled on its own, and every outcome is
written to the audit log before it is counted in the result.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from send2trash import send2trash

from diskbloat.core.audit import AuditLogger
from diskbloat.core.errors import DiskBloatError
from diskbloat.core.safety import Intent, PathError, SafetyGate
from diskbloat.models.audit_record import AuditKind, AuditRecord
from diskbloat.models.clean_result import CleanupRequest, CleanupResult, PathFailure
from diskbloat.utils import bytes_to_human, path_size

log = logging.getLogger(__name__)

MAX_BATCH_COUNT = 10_000
MAX_BATCH_BYTES = 100 * 1024 * 1024 * 1024  # 100 GB

_CLOUD_MARKERS = (
    "Library/Mobile Documents/",
    "/iCloud Drive/",
    "/Library/CloudStorage/",
)
_CLOUD_ATTEMPTS = 3
_CLOUD_RETRY_DELAY = 0.5

TrashFunc = Callable[[str], None]


class BatchLimitError(DiskBloatError):
    """Raised when a request exceeds the configured count or size ceiling."""


class CleanupState(str, Enum):
    VALIDATING = "validating"
    REJECTED = "rejected"
    VALIDATED = "validated"
    EXECUTING = "executing"
    COMPLETED = "completed"


class _Outcome(str, Enum):
    DELETED = "deleted"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class _Target:
    requested: str
    canonical: Path
    size_bytes: int


def is_cloud_path(path: str) -> bool:
    """Whether *path* lives in a cloud-synced folder where trash moves can be slow."""
    normalized = path.replace("\\", "/")
    return any(marker in normalized for marker in _CLOUD_MARKERS)


class CleanupExecutor:
    """Runs :class:`CleanupRequest` objects against the filesystem."""

    def __init__(
        self,
        gate: SafetyGate,
        audit: AuditLogger,
        max_batch_count: int = MAX_BATCH_COUNT,
        max_batch_bytes: int = MAX_BATCH_BYTES,
        workers: int = 4,
        trash: TrashFunc = send2trash,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.gate = gate
        self.audit = audit
        self.max_batch_count = max_batch_count
        self.max_batch_bytes = max_batch_bytes
        self.workers = workers
        self._trash = trash
        self.state: CleanupState | None = None

    def execute(self, request: CleanupRequest) -> CleanupResult:
        """Validate and carry out *request*.

        Raises:
            PathError: A path failed validation; nothing was deleted.
            BatchLimitError: The batch is too large; nothing was deleted.
            LogError: An audit record could not be written.
        """
        targets = self._validate(request)
        self._transition(CleanupState.EXECUTING)

        if request.dry_run:
            result = self._simulate(targets)
        else:
            result = self._run(targets, request.use_trash)

        self._transition(CleanupState.COMPLETED)
        log.info(
            "Cleanup complete (dry_run=%s): deleted=%d, skipped=%d, errors=%d, freed %s",
            request.dry_run,
            len(result.deleted),
            len(result.skipped),
            len(result.errors),
            bytes_to_human(result.freed_bytes),
        )
        return result

    # -- validation --------------------------------------------------------

    def _validate(self, request: CleanupRequest) -> list[_Target]:
        self._transition(CleanupState.VALIDATING)
        log.info(
            "Validating cleanup of %d paths (dry_run=%s, trash=%s)",
            len(request.paths),
            request.dry_run,
            request.use_trash,
        )

        if len(request.paths) > self.max_batch_count:
            raise self._reject(
                request.paths[0],
                BatchLimitError(
                    f"Cannot delete {len(request.paths)} items at once (maximum: {self.max_batch_count})"
                ),
            )

        targets: list[_Target] = []
        for path in request.paths:
            try:
                canonical = self.gate.validate(path, Intent.DELETE)
            except PathError as e:
                raise self._reject(path, e)
            try:
                size = path_size(canonical)
            except OSError:
                size = 0
            targets.append(_Target(path, canonical, size))

        total = _batch_bytes(targets)
        if total > self.max_batch_bytes:
            raise self._reject(
                request.paths[0],
                BatchLimitError(
                    f"Cannot delete {bytes_to_human(total)} at once "
                    f"(maximum: {bytes_to_human(self.max_batch_bytes)})"
                ),
            )

        self._transition(CleanupState.VALIDATED)
        return targets

    def _reject(self, path: str, error: DiskBloatError) -> DiskBloatError:
        """Record a rejected request and hand back the error for the caller to raise."""
        self._transition(CleanupState.REJECTED)
        log.warning("Cleanup rejected: %s", error)
        self.audit.append(AuditRecord(kind=AuditKind.DELETE, path=path, status="rejected", detail=str(error)))
        return error

    # -- execution ---------------------------------------------------------

    def _simulate(self, targets: list[_Target]) -> CleanupResult:
        for target in targets:
            self.audit.append(
                AuditRecord(
                    kind=AuditKind.ACTION,
                    path=target.requested,
                    size_bytes=target.size_bytes,
                    status=_Outcome.DELETED.value,
                    detail="dry-run",
                )
            )
        return CleanupResult(
            deleted=tuple(t.requested for t in targets),
            dry_run=True,
            freed_bytes=_batch_bytes(targets),
        )

    def _run(self, targets: list[_Target], use_trash: bool) -> CleanupResult:
        outer, nested = _split_nested(targets)
        outcomes: dict[str, tuple[_Outcome, str]] = {}

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="diskbloat-clean") as pool:
            futures = [pool.submit(self._process, target, use_trash) for target in outer]
            try:
                for target, future in zip(outer, futures):
                    outcomes[target.requested] = future.result()
            except BaseException:
                pool.shutdown(wait=True, cancel_futures=True)
                raise

        # Nested paths usually vanished with their parent and end up skipped.
        for target in nested:
            outcomes[target.requested] = self._process(target, use_trash)

        deleted: list[str] = []
        skipped: list[str] = []
        errors: list[PathFailure] = []
        freed = 0
        for target in targets:
            outcome, reason = outcomes[target.requested]
            if outcome is _Outcome.DELETED:
                deleted.append(target.requested)
                freed += target.size_bytes
            elif outcome is _Outcome.SKIPPED:
                skipped.append(target.requested)
            else:
                errors.append(PathFailure(target.requested, reason))

        return CleanupResult(
            deleted=tuple(deleted),
            skipped=tuple(skipped),
            errors=tuple(errors),
            dry_run=False,
            freed_bytes=freed,
        )

    def _process(self, target: _Target, use_trash: bool) -> tuple[_Outcome, str]:
        """Remove one path and audit the outcome. Raises only LogError."""
        method = "trash" if use_trash else "permanent"
        if not os.path.lexists(target.canonical):
            log.debug("Path no longer exists, skipping: %s", target.canonical)
            outcome, detail = _Outcome.SKIPPED, "path no longer exists"
        else:
            try:
                if use_trash:
                    self._move_to_trash(target.canonical)
                else:
                    _remove(target.canonical)
                outcome, detail = _Outcome.DELETED, method
            except OSError as e:
                log.error("Cleanup error for %s: %s", target.canonical, e)
                outcome, detail = _Outcome.ERROR, str(e)

        self.audit.append(
            AuditRecord(
                kind=AuditKind.DELETE,
                path=target.requested,
                size_bytes=target.size_bytes,
                status=outcome.value,
                detail=detail,
            )
        )
        return outcome, detail

    def _move_to_trash(self, path: Path) -> None:
        attempts = _CLOUD_ATTEMPTS if is_cloud_path(str(path)) else 1
        for attempt in range(1, attempts + 1):
            try:
                self._trash(str(path))
                break
            except OSError:
                if attempt == attempts:
                    raise
                log.warning("Trash attempt %d/%d failed for cloud path %s, retrying", attempt, attempts, path)
                time.sleep(_CLOUD_RETRY_DELAY)

        if os.path.lexists(path):
            raise OSError(f"moved to trash but {path} still exists")

    def _transition(self, state: CleanupState) -> None:
        log.debug("Cleanup state: %s -> %s", self.state.value if self.state else "-", state.value)
        self.state = state


def _remove(path: Path) -> None:
    """Permanently delete a file, symlink or directory tree."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _split_nested(targets: list[_Target]) -> tuple[list[_Target], list[_Target]]:
    """Separate targets that live inside another requested directory.

    A second spelling of an already requested canonical path also counts as
    nested, so each canonical path is processed by the pool at most once.
    """
    canonical = {t.canonical for t in targets}
    seen: set[Path] = set()
    outer: list[_Target] = []
    nested: list[_Target] = []
    for target in targets:
        if target.canonical in seen or any(parent in canonical for parent in target.canonical.parents):
            nested.append(target)
        else:
            seen.add(target.canonical)
            outer.append(target)
    return outer, nested


def _batch_bytes(targets: list[_Target]) -> int:
    """Bytes a batch would free, counting every canonical path once."""
    outer, _ = _split_nested(targets)
    return sum(t.size_bytes for t in outer)
