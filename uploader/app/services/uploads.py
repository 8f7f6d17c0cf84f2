"""Upload handler driving the storage uploader and the quota tracker."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..quota import CeilingReached, InvalidIdentity, QuotaTracker
from ..uploads import (
    ALLOWED_CONTENT_TYPES,
    MissingVideo,
    StorageUploader,
    UnsupportedMediaType,
)

logger = logging.getLogger("uploads")


@dataclass(frozen=True)
class UploadOutcome:
    """Result of a successfully handled upload."""

    file_id: str
    file_name: str
    remaining: int
    message: str
    web_view_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "file_id": self.file_id,
            "file_name": self.file_name,
            "remaining": self.remaining,
            "web_view_link": self.web_view_link,
        }


def remaining_message(remaining: int) -> str:
    if remaining > 0:
        suffix = "" if remaining == 1 else "s"
        return f"Video uploaded successfully! You have {remaining} upload{suffix} remaining."
    return "Video uploaded successfully! This was your last allowed upload."


def validate_submission(email: Optional[str], file_name: Optional[str], content_type: Optional[str]) -> str:
    """Check the form fields and return the submitted email unchanged."""

    if not email or "@" not in email:
        raise InvalidIdentity("Valid email is required")
    if not file_name:
        raise MissingVideo()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise UnsupportedMediaType(content_type)
    return email


def handle_upload(
    *,
    tracker: QuotaTracker,
    uploader: StorageUploader,
    email: Optional[str],
    file_name: Optional[str],
    content_type: Optional[str],
    data: bytes,
) -> UploadOutcome:
    """Validate, store and record one upload.

    The quota is checked before the transfer so a submitter at the ceiling
    never consumes storage. The authoritative check is the tracker's atomic
    record call; a submitter who loses a race after the transfer is rejected
    there and the stored file id is logged for cleanup.
    """

    validated_email = validate_submission(email, file_name, content_type)
    tracker.assert_can_upload(validated_email)

    stored = uploader.upload(data, file_name, content_type, validated_email)

    result = tracker.record_upload(validated_email, file_name, stored.file_id)
    if not result.success:
        logger.warning(
            "Stored file %s for %s but quota was exhausted concurrently",
            stored.file_id,
            validated_email,
        )
        raise CeilingReached(tracker.ceiling, file_id=stored.file_id)

    return UploadOutcome(
        file_id=stored.file_id,
        file_name=stored.file_name,
        remaining=result.remaining,
        message=remaining_message(result.remaining),
        web_view_link=stored.web_view_link,
    )


__all__ = ["UploadOutcome", "handle_upload", "remaining_message", "validate_submission"]
