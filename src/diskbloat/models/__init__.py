"""diskbloat data models."""

from diskbloat.models.audit_record import AuditKind, AuditRecord
from diskbloat.models.clean_result import CleanupRequest, CleanupResult, PathFailure
from diskbloat.models.scan_result import (
    BloatCategory,
    CategoryMatch,
    DuplicateSet,
    FileEntry,
    MatchKind,
    SafetyTier,
    ScanOptions,
    ScanReport,
    ScanSummary,
)

__all__ = [
    "AuditKind",
    "AuditRecord",
    "BloatCategory",
    "CategoryMatch",
    "CleanupRequest",
    "CleanupResult",
    "DuplicateSet",
    "FileEntry",
    "MatchKind",
    "PathFailure",
    "SafetyTier",
    "ScanOptions",
    "ScanReport",
    "ScanSummary",
]
