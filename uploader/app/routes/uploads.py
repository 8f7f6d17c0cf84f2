"""API routes accepting video uploads and exposing quota state."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status

from ..errors import ApiError
from ..quota import normalize_identity
from ..schemas.uploads import QuotaStatusResponse, UploadHistoryResponse, UploadResponse
from ..services import quota as quota_service
from ..services import uploads as uploads_service

logger = logging.getLogger("uploads")

router = APIRouter(prefix="/api", tags=["uploads"])


@router.post("/upload", response_model=UploadResponse)
def upload_video(
    *,
    video: Optional[UploadFile] = File(default=None),
    email: Optional[str] = Form(default=None),
) -> UploadResponse:
    """Store a submitted video and record it against the submitter's quota."""

    try:
        tracker = quota_service.get_quota_tracker()
        uploader = quota_service.get_storage_uploader()
        outcome = uploads_service.handle_upload(
            tracker=tracker,
            uploader=uploader,
            email=email,
            file_name=video.filename if video is not None else None,
            content_type=video.content_type if video is not None else None,
            data=video.file.read() if video is not None else b"",
        )
    except ApiError as exc:
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Upload error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Upload failed: {exc}",
        ) from exc
    return UploadResponse.from_outcome(outcome)


@router.get("/uploads/quota", response_model=QuotaStatusResponse)
def get_quota_status(*, email: str = Query(..., min_length=1)) -> QuotaStatusResponse:
    try:
        quota_status = quota_service.get_quota_tracker().describe(email)
    except ApiError as exc:
        raise exc.to_http_exception() from exc
    return QuotaStatusResponse.from_status(quota_status)


@router.get("/uploads/history", response_model=UploadHistoryResponse)
def get_upload_history(*, email: str = Query(..., min_length=1)) -> UploadHistoryResponse:
    try:
        tracker = quota_service.get_quota_tracker()
        events = tracker.get_upload_history(email)
    except ApiError as exc:
        raise exc.to_http_exception() from exc
    return UploadHistoryResponse.from_events(normalize_identity(email), events)
