"""Quota tracker enforcing a per-submitter upload ceiling."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .exceptions import CeilingReached
from .models import (
    CEILING_REACHED_ERROR,
    QuotaStatus,
    RecordUploadResult,
    UploadEvent,
    normalize_identity,
)
from .store import QuotaStore

logger = logging.getLogger(__name__)

DEFAULT_CEILING = 2


class QuotaTracker:
    """Answers "may this identity upload again?" and records uploads.

    The tracker holds no lock of its own. Atomicity of the
    check-increment-append sequence is delegated to
    :meth:`QuotaStore.conditional_increment`. Store failures surface as
    :class:`StorageUnavailable` and are never retried here.
    """

    def __init__(
        self,
        store: QuotaStore,
        *,
        ceiling: int = DEFAULT_CEILING,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if ceiling < 1:
            raise ValueError("ceiling must be at least 1")
        self._store = store
        self._ceiling = ceiling
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def get_upload_count(self, identity: str) -> int:
        """Return the recorded upload count, or 0 when no record exists."""

        record = self._store.get(normalize_identity(identity))
        return record.count if record else 0

    def can_upload(self, identity: str) -> bool:
        """Return whether the identity is below the ceiling. Reserves nothing."""

        return self.get_upload_count(identity) < self._ceiling

    def get_remaining_uploads(self, identity: str) -> int:
        return max(0, self._ceiling - self.get_upload_count(identity))

    def describe(self, identity: str) -> QuotaStatus:
        """Return a single-read snapshot of the identity's quota usage."""

        normalized = normalize_identity(identity)
        record = self._store.get(normalized)
        count = record.count if record else 0
        return QuotaStatus(
            identity=normalized,
            count=count,
            ceiling=self._ceiling,
            remaining=max(0, self._ceiling - count),
            can_upload=count < self._ceiling,
        )

    def assert_can_upload(self, identity: str) -> None:
        """Raise :class:`CeilingReached` when no uploads remain."""

        normalized = normalize_identity(identity)
        count = self.get_upload_count(normalized)
        if count >= self._ceiling:
            raise CeilingReached(self._ceiling, identity=normalized, count=count)

    def record_upload(
        self,
        identity: str,
        file_name: str,
        file_id: Optional[str] = None,
    ) -> RecordUploadResult:
        """Register an upload unless the identity already reached the ceiling."""

        normalized = normalize_identity(identity)
        event = UploadEvent(timestamp=self._clock(), file_name=file_name, file_id=file_id)
        outcome = self._store.conditional_increment(normalized, self._ceiling, event)

        if not outcome.accepted:
            logger.info(
                "Upload rejected for %s: ceiling %s reached (count=%s)",
                normalized,
                self._ceiling,
                outcome.new_count,
            )
            return RecordUploadResult(
                success=False,
                remaining=0,
                error=CEILING_REACHED_ERROR,
            )

        remaining = max(0, self._ceiling - outcome.new_count)
        logger.info(
            "Recorded upload for %s file=%s count=%s remaining=%s",
            normalized,
            file_name,
            outcome.new_count,
            remaining,
        )
        return RecordUploadResult(success=True, remaining=remaining)

    def get_upload_history(self, identity: str) -> List[UploadEvent]:
        """Return recorded upload events in chronological order."""

        record = self._store.get(normalize_identity(identity))
        return list(record.events) if record else []
