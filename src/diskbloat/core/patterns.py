"""Static pattern tables for bloat directories and junk files."""

from __future__ import annotations

from dataclasses import dataclass

from diskbloat.models.scan_result import SafetyTier


@dataclass(frozen=True)
class BloatPattern:
    """Directory names produced by a toolchain and safe to regenerate."""

    category_id: str
    display_name: str
    dir_names: tuple[str, ...]
    safety: SafetyTier = SafetyTier.REVIEW_RECOMMENDED


@dataclass(frozen=True)
class JunkPattern:
    """Glob on a file's basename."""

    pattern: str
    category_id: str
    display_name: str
    safety: SafetyTier = SafetyTier.SAFE_AUTO


LARGE_FILES_ID = "large_files"
LARGE_FILES_NAME = "Large Files"

BLOAT_PATTERNS: tuple[BloatPattern, ...] = (
    BloatPattern("node_modules", "Node.js", ("node_modules",)),
    BloatPattern("rust_target", "Rust", ("target",)),
    BloatPattern(
        "python_venv",
        "Python",
        ("venv", ".venv", "__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".tox"),
    ),
    BloatPattern(
        "build_artifacts",
        "Build Artifacts",
        ("dist", "build", ".next", ".nuxt", "out", ".output", ".parcel-cache", ".turbo"),
    ),
    BloatPattern("vendor", "Vendor", ("vendor", "Pods")),
    BloatPattern("java_gradle", "Java/Gradle", (".gradle", ".m2")),
    BloatPattern("caches", "Caches", (".cache",)),
    BloatPattern("xcode", "Xcode", ("DerivedData",)),
)

JUNK_PATTERNS: tuple[JunkPattern, ...] = (
    # OS metadata
    JunkPattern(".DS_Store", "system", "System Files"),
    JunkPattern("Thumbs.db", "system", "System Files"),
    JunkPattern("desktop.ini", "system", "System Files"),
    JunkPattern(".localized", "system", "System Files"),
    JunkPattern("._*", "system", "System Files"),
    # Compiler output
    JunkPattern("*.pyc", "build", "Build Artifacts"),
    JunkPattern("*.pyo", "build", "Build Artifacts"),
    JunkPattern("*.class", "build", "Build Artifacts"),
    JunkPattern("*.o", "build", "Build Artifacts"),
    JunkPattern("*.obj", "build", "Build Artifacts"),
    # Editor leftovers
    JunkPattern("*.swp", "editor", "Editor Files"),
    JunkPattern("*.swo", "editor", "Editor Files"),
    JunkPattern("*.swn", "editor", "Editor Files"),
    JunkPattern("*~", "editor", "Editor Files"),
    JunkPattern("*.bak", "editor", "Editor Files", SafetyTier.REVIEW_RECOMMENDED),
    JunkPattern("*.backup", "editor", "Editor Files", SafetyTier.REVIEW_RECOMMENDED),
    # Temporary files
    JunkPattern("*.tmp", "temp", "Temporary Files"),
    JunkPattern("*.temp", "temp", "Temporary Files"),
    JunkPattern("~$*", "temp", "Temporary Files"),
    # Logs
    JunkPattern("*.log", "logs", "Log Files", SafetyTier.REVIEW_RECOMMENDED),
    JunkPattern("npm-debug.log*", "logs", "Log Files", SafetyTier.REVIEW_RECOMMENDED),
    JunkPattern("yarn-error.log*", "logs", "Log Files", SafetyTier.REVIEW_RECOMMENDED),
)
