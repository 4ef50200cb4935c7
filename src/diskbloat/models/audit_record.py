"""Audit trail record."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditKind(str, Enum):
    SCAN = "scan"
    DELETE = "delete"
    ACTION = "action"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """One line of the append-only audit log."""

    kind: AuditKind
    path: str
    size_bytes: int = 0
    status: str = ""
    detail: str = ""
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "status": self.status,
            "detail": self.detail,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditRecord:
        return cls(
            kind=AuditKind(data["kind"]),
            path=data["path"],
            size_bytes=int(data.get("size_bytes", 0)),
            status=data.get("status", ""),
            detail=data.get("detail", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )

    @classmethod
    def from_json(cls, line: str) -> AuditRecord:
        return cls.from_dict(json.loads(line))
