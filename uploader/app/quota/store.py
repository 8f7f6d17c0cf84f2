"""Store abstractions backing the upload quota tracker."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol

from .models import IncrementOutcome, UploadEvent, UploadRecord


class QuotaStore(Protocol):
    """Keyed-record store used by the quota tracker.

    Implementations receive identities that are already normalized.
    ``conditional_increment`` must be atomic per identity: the count check,
    the increment and the event append land in a single write, or not at all.
    """

    def get(self, identity: str) -> Optional[UploadRecord]:
        ...

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        ...

    def close(self) -> None:
        ...


@dataclass
class _MemoryEntry:
    record: UploadRecord
    expires_at: Optional[datetime]

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryQuotaStore:
    """Lock-guarded in-memory store suitable for tests and local development."""

    def __init__(
        self,
        *,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._entries: Dict[str, _MemoryEntry] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _live_entry(self, identity: str) -> Optional[_MemoryEntry]:
        entry = self._entries.get(identity)
        if entry and entry.is_expired(self._clock()):
            self._entries.pop(identity, None)
            return None
        return entry

    def get(self, identity: str) -> Optional[UploadRecord]:
        with self._lock:
            entry = self._live_entry(identity)
            if not entry:
                return None
            record = entry.record
            return UploadRecord(identity=record.identity, count=record.count, events=list(record.events))

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        with self._lock:
            entry = self._live_entry(identity)
            current = entry.record.count if entry else 0
            if current >= ceiling:
                return IncrementOutcome(accepted=False, new_count=current)

            events = list(entry.record.events) if entry else []
            events.append(event)
            expires_at = None
            if self._ttl_seconds:
                expires_at = self._clock() + timedelta(seconds=self._ttl_seconds)
            self._entries[identity] = _MemoryEntry(
                record=UploadRecord(identity=identity, count=current + 1, events=events),
                expires_at=expires_at,
            )
            return IncrementOutcome(accepted=True, new_count=current + 1)

    def close(self) -> None:
        return None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
