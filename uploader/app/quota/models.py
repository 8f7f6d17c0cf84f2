"""Domain models for upload quota tracking."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import InvalidIdentity

CEILING_REACHED_ERROR = "ceiling_reached"


def normalize_identity(identity: object) -> str:
    """Return the canonical quota key for a submitter (trimmed, lower-cased)."""

    if not isinstance(identity, str):
        raise InvalidIdentity("Identity must be a string.")
    normalized = identity.strip().lower()
    if not normalized:
        raise InvalidIdentity()
    return normalized


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class UploadEvent:
    """One recorded successful upload."""

    timestamp: datetime
    file_name: str
    file_id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Serialize using the persisted JSON shape (ISO-8601 timestamp)."""

        document: Dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "fileName": self.file_name,
        }
        if self.file_id is not None:
            document["fileId"] = self.file_id
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "UploadEvent":
        return cls(
            timestamp=_parse_timestamp(document["timestamp"]),
            file_name=document["fileName"],
            file_id=document.get("fileId"),
        )


@dataclass
class UploadRecord:
    """Upload count and chronological event log for one identity."""

    identity: str
    count: int = 0
    events: List[UploadEvent] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "uploads": [event.to_document() for event in self.events],
        }

    @classmethod
    def from_document(cls, identity: str, document: Mapping[str, Any]) -> "UploadRecord":
        events = [UploadEvent.from_document(item) for item in document.get("uploads") or []]
        return cls(identity=identity, count=int(document.get("count") or 0), events=events)


@dataclass(frozen=True)
class IncrementOutcome:
    """Result of a store-level compare-and-increment."""

    accepted: bool
    new_count: int


@dataclass(frozen=True)
class RecordUploadResult:
    """Outcome of :meth:`QuotaTracker.record_upload`."""

    success: bool
    remaining: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "remaining": self.remaining}
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class QuotaStatus:
    """Snapshot of an identity's quota usage."""

    identity: str
    count: int
    ceiling: int
    remaining: int
    can_upload: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "count": self.count,
            "ceiling": self.ceiling,
            "remaining": self.remaining,
            "can_upload": self.can_upload,
        }
