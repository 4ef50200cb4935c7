"""Path safety gate: the trust boundary for scanning and deleting.

Every scan root and every path handed to the cleanup executor passes
through :meth:`SafetyGate.validate` in the same call that uses it. Results
are never cached, so a path swapped for a symlink between scan and delete
is re-resolved and re-checked.
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from pathlib import Path, PurePath
from typing import Iterable

from diskbloat.core.errors import DiskBloatError

log = logging.getLogger(__name__)

POSIX_PROTECTED_ROOTS = (
    "/System",
    "/bin",
    "/sbin",
    "/usr",
    "/etc",
    "/var",
    "/boot",
    "/lib",
    "/lib64",
    "/dev",
    "/proc",
    "/sys",
    "/private/var",
    "/private/etc",
    "/Library/LaunchDaemons",
    "/Library/LaunchAgents",
)

WINDOWS_PROTECTED_ROOTS = (
    "C:\\Windows",
    "C:\\Program Files",
    "C:\\Program Files (x86)",
    "C:\\ProgramData\\Microsoft",
)

# Scannable, but never a direct delete target.
PROTECTED_NAMES = (
    ".git",
    ".hg",
    ".svn",
    ".ssh",
    ".gnupg",
    "package-lock.json",
    "npm-shrinkwrap.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lockb",
    "Cargo.lock",
    "poetry.lock",
    "Pipfile.lock",
    "uv.lock",
    "Gemfile.lock",
    "composer.lock",
    "go.sum",
    "flake.lock",
)

# Allowed, but worth a warning in the log.
SENSITIVE_ROOTS = ("/Applications", "/Library", "C:\\Users")


class Intent(str, Enum):
    SCAN = "scan"
    DELETE = "delete"


class PathErrorKind(str, Enum):
    EMPTY = "empty"
    TRAVERSAL = "traversal"
    NOT_FOUND = "not_found"
    UNRESOLVABLE = "unresolvable"
    PROTECTED = "protected"


class PathError(DiskBloatError):
    """Raised when a path fails validation. The gate always fails closed."""

    def __init__(self, path: str, reason: str, kind: PathErrorKind) -> None:
        super().__init__(f"{path or '<empty>'}: {reason}")
        self.path = path
        self.reason = reason
        self.kind = kind


def _is_ancestor(parent: str, child: str) -> bool:
    """Whether *child* lies strictly below *parent* (both already case-folded)."""
    child = child.replace("\\", "/")
    prefix = parent.replace("\\", "/").rstrip("/") + "/"
    return child != prefix.rstrip("/") and child.startswith(prefix)


def default_protected_roots() -> tuple[str, ...]:
    """System-critical roots for the running platform."""
    if os.name == "nt":
        return WINDOWS_PROTECTED_ROOTS
    return POSIX_PROTECTED_ROOTS


def default_case_insensitive() -> bool:
    """Whether the platform's default filesystem ignores case."""
    return sys.platform in ("darwin", "win32")


class SafetyGate:
    """Validates paths for scanning or deletion."""

    def __init__(
        self,
        protected_roots: Iterable[str] | None = None,
        protected_names: Iterable[str] | None = None,
        home: Path | None = None,
        case_insensitive: bool | None = None,
    ) -> None:
        self._case_insensitive = default_case_insensitive() if case_insensitive is None else case_insensitive
        roots = default_protected_roots() if protected_roots is None else tuple(protected_roots)
        self._protected_roots = tuple(r.rstrip("/\\") or r for r in roots)
        self._protected_names = tuple(PROTECTED_NAMES if protected_names is None else protected_names)
        self._home = home

    def validate(self, path: str | os.PathLike[str], intent: Intent) -> Path:
        """Return the canonical form of *path* or raise :class:`PathError`.

        For a delete request naming a symlink, the canonical form is the
        link itself inside its resolved parent directory, so deleting it
        never touches the target. The target must still resolve.
        """
        raw = os.fspath(path)
        if not raw.strip():
            raise PathError(raw, "path is empty", PathErrorKind.EMPTY)
        if ".." in PurePath(raw.replace("\\", "/")).parts:
            raise PathError(raw, "path contains a '..' traversal component", PathErrorKind.TRAVERSAL)
        if not os.path.lexists(raw):
            raise PathError(raw, "path does not exist", PathErrorKind.NOT_FOUND)

        canonical = self._canonicalize(raw, intent)
        self._check_protected_roots(raw, canonical)

        if intent is Intent.DELETE:
            self._check_delete_targets(raw, canonical)
        else:
            self._warn_if_sensitive(canonical)

        log.debug("Validated %s for %s: %s", raw, intent.value, canonical)
        return canonical

    def _canonicalize(self, raw: str, intent: Intent) -> Path:
        candidate = Path(raw).absolute()
        try:
            resolved = candidate.resolve(strict=True)
            if intent is Intent.DELETE and candidate.is_symlink():
                return candidate.parent.resolve(strict=True) / candidate.name
        except (OSError, RuntimeError) as e:
            raise PathError(raw, f"cannot resolve path ({e})", PathErrorKind.UNRESOLVABLE) from e
        return resolved

    def _fold(self, text: str) -> str:
        return text.lower() if self._case_insensitive else text

    def _check_protected_roots(self, raw: str, canonical: Path) -> None:
        target = self._fold(str(canonical))
        for root in self._protected_roots:
            folded = self._fold(root)
            if target == folded or target.startswith(folded + os.sep) or target.startswith(folded + "/"):
                raise PathError(raw, f"'{root}' is a protected system directory", PathErrorKind.PROTECTED)

    def _check_delete_targets(self, raw: str, canonical: Path) -> None:
        target = self._fold(str(canonical))
        if canonical == Path(canonical.anchor):
            raise PathError(raw, "refusing to delete the filesystem root", PathErrorKind.PROTECTED)

        home = self._home if self._home is not None else Path.home()
        try:
            home_canonical = home.resolve()
        except (OSError, RuntimeError):
            home_canonical = home
        folded_home = self._fold(str(home_canonical))
        if target == folded_home:
            raise PathError(raw, "refusing to delete the home directory", PathErrorKind.PROTECTED)
        if _is_ancestor(target, folded_home):
            raise PathError(
                raw, "refusing to delete a directory containing the home directory", PathErrorKind.PROTECTED
            )

        for root in self._protected_roots:
            if _is_ancestor(target, self._fold(root)):
                raise PathError(raw, f"contains the protected system directory '{root}'", PathErrorKind.PROTECTED)

        for name in self._protected_names:
            folded = self._fold(name)
            if target == folded or target.endswith(os.sep + folded):
                raise PathError(
                    raw,
                    f"'{name}' is protected from direct deletion; delete its parent instead",
                    PathErrorKind.PROTECTED,
                )

    def _warn_if_sensitive(self, canonical: Path) -> None:
        target = self._fold(str(canonical))
        for root in SENSITIVE_ROOTS:
            folded = self._fold(root)
            if target == folded or target.startswith(folded + os.sep):
                log.warning("Scanning potentially sensitive directory: %s", root)
                break
