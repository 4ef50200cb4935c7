"""Scanning and cleaning orchestration engine."""

from __future__ import annotations

import logging
from typing import Callable

from diskbloat.core.audit import AuditLogger
from diskbloat.core.classifier import Classifier
from diskbloat.core.duplicates import DuplicateDetector
from diskbloat.core.executor import CleanupExecutor, TrashFunc
from diskbloat.core.safety import SafetyGate
from diskbloat.core.traversal import CancelToken, TraversalEngine
from diskbloat.models.clean_result import CleanupRequest, CleanupResult
from diskbloat.models.scan_result import (
    BloatCategory,
    CategoryMatch,
    FileEntry,
    ScanOptions,
    ScanReport,
)
from diskbloat.settings import CoreConfig

log = logging.getLogger(__name__)

EntryCallback = Callable[[FileEntry], None]


class CategoryAccumulator:
    """Collects classifier matches into one :class:`BloatCategory` per id."""

    def __init__(self) -> None:
        self._categories: dict[str, BloatCategory] = {}

    def add(self, entry: FileEntry, matches: list[CategoryMatch]) -> None:
        for match in matches:
            category = self._categories.get(match.category_id)
            if category is None:
                category = self._categories[match.category_id] = BloatCategory(
                    category_id=match.category_id,
                    display_name=match.display_name,
                    kind=match.kind,
                    safety=match.safety,
                )
            category.add(entry)

    def categories(self) -> list[BloatCategory]:
        """Categories sorted by total size, largest first."""
        return sorted(self._categories.values(), key=lambda c: (-c.total_size_bytes, c.category_id))


class DiskBloatEngine:
    """Runs scans and cleanups.

    Nothing is remembered between calls: every scan builds its own result
    objects and every cleanup re-validates the paths it is given.
    """

    def __init__(
        self,
        config: CoreConfig | None = None,
        gate: SafetyGate | None = None,
        audit: AuditLogger | None = None,
        trash: TrashFunc | None = None,
    ) -> None:
        self.config = config or CoreConfig()
        self.gate = gate or SafetyGate()
        self.audit = audit or AuditLogger(self.config.audit_path)
        self.traversal = TraversalEngine(workers=self.config.scan_workers, gate=self.gate, audit=self.audit)
        self.detector = DuplicateDetector(workers=self.config.hash_workers, max_hash_bytes=self.config.max_hash_bytes)
        executor_kwargs = {"trash": trash} if trash is not None else {}
        self.executor = CleanupExecutor(
            self.gate,
            self.audit,
            max_batch_count=self.config.max_batch_count,
            max_batch_bytes=self.config.max_batch_bytes,
            workers=self.config.clean_workers,
            **executor_kwargs,
        )

    def scan(
        self,
        options: ScanOptions,
        on_entry: EntryCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ScanReport:
        """Traverse, classify and deduplicate ``options.root``. Never deletes.

        Args:
            options: Scan parameters.
            on_entry: Optional progress callback, fired for every entry found.
            cancel: Cooperative cancellation; partial results are returned.
        """
        cancel = cancel or CancelToken()
        classifier = Classifier(min_size_bytes=options.min_size_bytes)
        accumulator = CategoryAccumulator()
        files: list[FileEntry] = []

        def emit(entry: FileEntry) -> None:
            accumulator.add(entry, classifier.classify(entry))
            if not entry.is_dir and not entry.is_symlink:
                files.append(entry)
            if on_entry:
                on_entry(entry)

        summary = self.traversal.scan(options, emit, cancel=cancel, measure_dir=classifier.is_bloat_dir)
        duplicates = self.detector.detect(files, self.config.duplicate_min_bytes, cancel=cancel)

        report = ScanReport(categories=accumulator.categories(), duplicates=duplicates, summary=summary)
        log.info(
            "Scan of %s found %d categories and %d duplicate sets",
            options.root,
            len(report.categories),
            len(report.duplicates),
        )
        return report

    def clean(self, request: CleanupRequest) -> CleanupResult:
        """Validate and execute a cleanup request."""
        return self.executor.execute(request)
