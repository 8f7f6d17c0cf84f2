from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from uploader.app.quota import InMemoryQuotaStore, QuotaTracker, StorageUnavailable
from uploader.app.routes import uploads as uploads_routes
from uploader.app.schemas.uploads import QuotaStatusResponse, UploadHistoryResponse, UploadResponse
from uploader.app.services import quota as quota_service
from uploader.app.uploads import StoredFile


class _StaticUploader:
    def upload(self, data, file_name, content_type, email):
        return StoredFile(file_id="drive-123", file_name=f"stored-{file_name}", web_view_link="https://drive/view")


@pytest.fixture
def tracker(monkeypatch) -> QuotaTracker:
    tracker = QuotaTracker(
        InMemoryQuotaStore(),
        ceiling=2,
        clock=lambda: datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    monkeypatch.setattr(quota_service, "get_quota_tracker", lambda: tracker)
    monkeypatch.setattr(quota_service, "get_storage_uploader", lambda: _StaticUploader())
    return tracker


def _video(name: str = "clip.mp4", content_type: str = "video/mp4") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(b"fake-video"),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


def test_upload_returns_remaining_message(tracker):
    response = uploads_routes.upload_video(video=_video(), email="Me@Example.com")

    assert isinstance(response, UploadResponse)
    assert response.file_id == "drive-123"
    assert response.file_name == "stored-clip.mp4"
    assert response.remaining == 1
    assert response.message == "Video uploaded successfully! You have 1 upload remaining."
    assert response.model_dump(by_alias=True)["webViewLink"] == "https://drive/view"
    assert tracker.get_upload_count("me@example.com") == 1


def test_upload_over_quota_returns_429(tracker):
    tracker.record_upload("me@example.com", "1.mp4")
    tracker.record_upload("me@example.com", "2.mp4")

    with pytest.raises(HTTPException) as exc:
        uploads_routes.upload_video(video=_video(), email="me@example.com")

    assert exc.value.status_code == 429
    assert exc.value.detail["error"] == "ceiling_reached"


@pytest.mark.parametrize(
    "video, email, error",
    [
        (None, "me@example.com", "missing_video"),
        ("clip.mp4", "", "invalid_identity"),
        ("clip.mp4", "nobody", "invalid_identity"),
    ],
)
def test_upload_validation_errors_return_400(tracker, video, email, error):
    with pytest.raises(HTTPException) as exc:
        uploads_routes.upload_video(video=_video(video) if video else None, email=email)

    assert exc.value.status_code == 400
    assert exc.value.detail["error"] == error


def test_upload_rejects_unsupported_type(tracker):
    with pytest.raises(HTTPException) as exc:
        uploads_routes.upload_video(video=_video("clip.avi", "video/x-msvideo"), email="me@example.com")

    assert exc.value.status_code == 400
    assert exc.value.detail["message"] == "Only MP4 and MOV files are allowed"


def test_upload_storage_unavailable_returns_503(monkeypatch):
    def _unavailable():
        raise StorageUnavailable("MongoDB not configured.", backend="mongo")

    monkeypatch.setattr(quota_service, "get_quota_tracker", _unavailable)

    with pytest.raises(HTTPException) as exc:
        uploads_routes.upload_video(video=_video(), email="me@example.com")

    assert exc.value.status_code == 503
    assert exc.value.detail["backend"] == "mongo"


def test_upload_unexpected_error_returns_500(tracker, monkeypatch):
    class _Broken:
        def upload(self, data, file_name, content_type, email):
            raise RuntimeError("socket closed")

    monkeypatch.setattr(quota_service, "get_storage_uploader", lambda: _Broken())

    with pytest.raises(HTTPException) as exc:
        uploads_routes.upload_video(video=_video(), email="me@example.com")

    assert exc.value.status_code == 500
    assert exc.value.detail == "Upload failed: socket closed"


def test_quota_status_endpoint(tracker):
    tracker.record_upload("status@example.com", "1.mp4")

    response = uploads_routes.get_quota_status(email=" Status@Example.com ")

    assert isinstance(response, QuotaStatusResponse)
    assert response.model_dump(by_alias=True) == {
        "email": "status@example.com",
        "count": 1,
        "ceiling": 2,
        "remaining": 1,
        "canUpload": True,
    }


def test_history_endpoint_returns_events_in_order(tracker):
    tracker.record_upload("hist@example.com", "a.mp4", "id-a")
    tracker.record_upload("hist@example.com", "b.mp4")

    response = uploads_routes.get_upload_history(email="HIST@example.com")

    assert isinstance(response, UploadHistoryResponse)
    assert response.email == "hist@example.com"
    payload = response.model_dump(by_alias=True)
    assert [item["fileName"] for item in payload["uploads"]] == ["a.mp4", "b.mp4"]
    assert payload["uploads"][0]["fileId"] == "id-a"
    assert payload["uploads"][1]["fileId"] is None


def test_history_endpoint_rejects_blank_email(tracker):
    with pytest.raises(HTTPException) as exc:
        uploads_routes.get_upload_history(email="   ")

    assert exc.value.status_code == 400
