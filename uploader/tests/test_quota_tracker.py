from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from uploader.app.quota import (
    CEILING_REACHED_ERROR,
    CeilingReached,
    InMemoryQuotaStore,
    InvalidIdentity,
    QuotaTracker,
    StorageUnavailable,
    normalize_identity,
)
from uploader.app.quota.backends import JsonFileQuotaStore


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryQuotaStore()
    return JsonFileQuotaStore(tmp_path / "uploads.json")


@pytest.fixture
def tracker(store) -> QuotaTracker:
    return QuotaTracker(store, ceiling=2, clock=_Clock())


@pytest.mark.parametrize(
    "raw",
    ["Foo@Bar.com", "  foo@bar.com", "FOO@BAR.COM \t", "foo@bar.com"],
)
def test_normalize_identity_is_idempotent(raw: str) -> None:
    normalized = normalize_identity(raw)

    assert normalized == "foo@bar.com"
    assert normalize_identity(normalized) == normalized


@pytest.mark.parametrize("raw", ["", "   ", None, 42])
def test_normalize_identity_rejects_blank_or_non_string(raw) -> None:
    with pytest.raises(InvalidIdentity) as exc:
        normalize_identity(raw)

    assert exc.value.code == "invalid_identity"
    assert exc.value.status_code == 400


def test_fresh_identity_reads(tracker: QuotaTracker) -> None:
    assert tracker.get_upload_count("new@x.com") == 0
    assert tracker.can_upload("new@x.com") is True
    assert tracker.get_remaining_uploads("new@x.com") == 2
    assert tracker.get_upload_history("new@x.com") == []


def test_record_upload_normalizes_identity(tracker: QuotaTracker) -> None:
    result = tracker.record_upload("Foo@Bar.com ", "a.mp4")

    assert result.success is True
    assert result.remaining == 1
    assert tracker.get_upload_count("foo@bar.com") == 1
    assert tracker.get_upload_count("  FOO@bar.COM") == 1


def test_history_preserves_insertion_order(tracker: QuotaTracker) -> None:
    tracker.record_upload("x@example.com", "a.mp4", "drive-a")
    tracker.record_upload("x@example.com", "b.mp4")

    history = tracker.get_upload_history("X@example.com")

    assert [event.file_name for event in history] == ["a.mp4", "b.mp4"]
    assert history[0].file_id == "drive-a"
    assert history[1].file_id is None
    assert history[0].timestamp < history[1].timestamp
    assert history[0].timestamp.tzinfo is not None


def test_rejection_at_ceiling_is_idempotent(tracker: QuotaTracker) -> None:
    assert tracker.record_upload("cap@example.com", "1.mp4").remaining == 1
    assert tracker.record_upload("cap@example.com", "2.mp4").remaining == 0

    for _ in range(3):
        result = tracker.record_upload("cap@example.com", "extra.mp4")
        assert result.success is False
        assert result.remaining == 0
        assert result.error == CEILING_REACHED_ERROR

    assert tracker.get_upload_count("cap@example.com") == 2
    assert len(tracker.get_upload_history("cap@example.com")) == 2
    assert tracker.can_upload("cap@example.com") is False


def test_remaining_matches_formula_at_every_step(tracker: QuotaTracker) -> None:
    identity = "steps@example.com"
    for attempt in range(4):
        count = tracker.get_upload_count(identity)
        assert tracker.get_remaining_uploads(identity) == max(0, 2 - count)
        assert len(tracker.get_upload_history(identity)) == count
        tracker.record_upload(identity, f"{attempt}.mp4")


def test_rejected_result_serializes_error(tracker: QuotaTracker) -> None:
    tracker.record_upload("s@example.com", "1.mp4")
    tracker.record_upload("s@example.com", "2.mp4")

    assert tracker.record_upload("s@example.com", "3.mp4").to_dict() == {
        "success": False,
        "remaining": 0,
        "error": "ceiling_reached",
    }


def test_assert_can_upload_raises_ceiling_reached(tracker: QuotaTracker) -> None:
    tracker.assert_can_upload("gate@example.com")
    tracker.record_upload("gate@example.com", "1.mp4")
    tracker.record_upload("gate@example.com", "2.mp4")

    with pytest.raises(CeilingReached) as exc:
        tracker.assert_can_upload("GATE@example.com")

    assert exc.value.status_code == 429
    assert exc.value.payload["ceiling"] == 2
    assert exc.value.payload["remaining"] == 0


def test_describe_reports_snapshot(tracker: QuotaTracker) -> None:
    tracker.record_upload("desc@example.com", "1.mp4")

    snapshot = tracker.describe(" Desc@Example.com")

    assert snapshot.to_dict() == {
        "identity": "desc@example.com",
        "count": 1,
        "ceiling": 2,
        "remaining": 1,
        "can_upload": True,
    }


def test_concurrent_records_admit_exactly_ceiling(tracker: QuotaTracker) -> None:
    barrier = threading.Barrier(5)

    def _record(index: int):
        barrier.wait()
        return tracker.record_upload("race@example.com", f"{index}.mp4")

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(_record, range(5)))

    assert sum(1 for result in results if result.success) == 2
    assert sum(1 for result in results if not result.success) == 3
    assert tracker.get_upload_count("race@example.com") == 2
    assert len(tracker.get_upload_history("race@example.com")) == 2


def test_tracker_rejects_non_positive_ceiling() -> None:
    with pytest.raises(ValueError):
        QuotaTracker(InMemoryQuotaStore(), ceiling=0)


def test_custom_ceiling_is_honoured() -> None:
    tracker = QuotaTracker(InMemoryQuotaStore(), ceiling=3)

    results = [tracker.record_upload("three@example.com", f"{i}.mp4") for i in range(4)]

    assert [result.success for result in results] == [True, True, True, False]
    assert [result.remaining for result in results] == [2, 1, 0, 0]


def test_memory_store_expires_records_after_retention() -> None:
    now = {"value": datetime(2024, 1, 1, tzinfo=timezone.utc)}
    store = InMemoryQuotaStore(ttl_seconds=60, clock=lambda: now["value"])
    tracker = QuotaTracker(store, ceiling=2, clock=lambda: now["value"])

    tracker.record_upload("ttl@example.com", "1.mp4")
    tracker.record_upload("ttl@example.com", "2.mp4")
    assert tracker.can_upload("ttl@example.com") is False

    now["value"] = now["value"] + timedelta(seconds=61)

    assert tracker.get_upload_count("ttl@example.com") == 0
    assert tracker.record_upload("ttl@example.com", "3.mp4").success is True


class _BrokenStore:
    def get(self, identity):
        raise StorageUnavailable("store offline", backend="test")

    def conditional_increment(self, identity, ceiling, event):
        raise StorageUnavailable("store offline", backend="test")

    def close(self) -> None:
        return None


@pytest.mark.parametrize(
    "operation",
    [
        lambda tracker: tracker.get_upload_count("a@b.com"),
        lambda tracker: tracker.can_upload("a@b.com"),
        lambda tracker: tracker.get_remaining_uploads("a@b.com"),
        lambda tracker: tracker.record_upload("a@b.com", "a.mp4"),
        lambda tracker: tracker.get_upload_history("a@b.com"),
    ],
)
def test_storage_failures_propagate(operation: Callable[[QuotaTracker], object]) -> None:
    tracker = QuotaTracker(_BrokenStore())

    with pytest.raises(StorageUnavailable) as exc:
        operation(tracker)

    assert exc.value.status_code == 503
    assert exc.value.payload["backend"] == "test"
