"""API schemas for upload and quota endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..quota import QuotaStatus, UploadEvent
from ..services.uploads import UploadOutcome


class QuotaStatusResponse(BaseModel):
    email: str
    count: int = Field(ge=0)
    ceiling: int = Field(ge=1)
    remaining: int = Field(ge=0)
    can_upload: bool = Field(alias="canUpload")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_status(cls, quota_status: QuotaStatus) -> "QuotaStatusResponse":
        return cls(
            email=quota_status.identity,
            count=quota_status.count,
            ceiling=quota_status.ceiling,
            remaining=quota_status.remaining,
            can_upload=quota_status.can_upload,
        )


class UploadEventResponse(BaseModel):
    timestamp: datetime
    file_name: str = Field(alias="fileName")
    file_id: Optional[str] = Field(alias="fileId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class UploadHistoryResponse(BaseModel):
    email: str
    uploads: List[UploadEventResponse] = Field(default_factory=list)

    @classmethod
    def from_events(cls, email: str, events: Sequence[UploadEvent]) -> "UploadHistoryResponse":
        return cls(
            email=email,
            uploads=[
                UploadEventResponse(
                    timestamp=event.timestamp,
                    file_name=event.file_name,
                    file_id=event.file_id,
                )
                for event in events
            ],
        )


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    remaining: int = Field(ge=0)
    web_view_link: Optional[str] = Field(alias="webViewLink", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: UploadOutcome) -> "UploadResponse":
        return cls(
            message=outcome.message,
            file_id=outcome.file_id,
            file_name=outcome.file_name,
            remaining=outcome.remaining,
            web_view_link=outcome.web_view_link,
        )
