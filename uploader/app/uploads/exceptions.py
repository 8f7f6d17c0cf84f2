"""Errors raised while handling an inbound video upload."""
from __future__ import annotations

from fastapi import status

from ..errors import ApiError

ALLOWED_CONTENT_TYPES = frozenset({"video/mp4", "video/quicktime"})


class UploadError(ApiError):
    """Failure validating or persisting a submitted video."""


class MissingVideo(UploadError):
    """The request carried no video file."""

    def __init__(self) -> None:
        super().__init__(
            code="missing_video",
            message="Video file is required",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class UnsupportedMediaType(UploadError):
    """Only MP4 and QuickTime containers are accepted."""

    def __init__(self, content_type: str | None) -> None:
        super().__init__(
            code="unsupported_media_type",
            message="Only MP4 and MOV files are allowed",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"content_type": content_type, "allowed": sorted(ALLOWED_CONTENT_TYPES)},
        )


class StorageUploadFailed(UploadError):
    """The storage uploader could not persist the file."""

    def __init__(self, message: str = "Failed to upload video") -> None:
        super().__init__(
            code="storage_upload_failed",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
