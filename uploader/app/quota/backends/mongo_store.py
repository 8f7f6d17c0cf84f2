"""MongoDB-backed quota store."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..exceptions import StorageUnavailable
from ..models import IncrementOutcome, UploadEvent, UploadRecord

logger = logging.getLogger(__name__)

BACKEND_NAME = "mongo"
INSERT_RACE_RETRIES = 3


def create_mongo_client(uri: Optional[str], *, timeout_seconds: float = 5.0) -> MongoClient:
    """Build a client with bounded server-selection and socket timeouts."""

    if not uri:
        raise StorageUnavailable(
            "MongoDB not configured. Set MONGODB_URI environment variable.",
            backend=BACKEND_NAME,
        )
    timeout_ms = int(timeout_seconds * 1000)
    return MongoClient(
        uri,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
        tz_aware=True,
    )


def _event_document(event: UploadEvent) -> Dict[str, Any]:
    document: Dict[str, Any] = {"timestamp": event.timestamp, "fileName": event.file_name}
    if event.file_id is not None:
        document["fileId"] = event.file_id
    return document


class MongoQuotaStore:
    """Stores one document per identity: ``{email, count, uploads}``.

    The conditional increment is a single ``find_one_and_update`` whose filter
    only matches documents below the ceiling. When the filter misses, the
    upsert collides with the unique ``email`` index. That happens either at
    the ceiling or when a concurrent writer inserted the first document; the
    count is re-read to tell the two apart and the update is retried in the
    second case.
    """

    def __init__(
        self,
        collection: Collection,
        *,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.collection = collection
        self._ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._create_indexes()

    def _create_indexes(self) -> None:
        try:
            self.collection.create_index([("email", ASCENDING)], unique=True)
            if self._ttl_seconds:
                self.collection.create_index("expires_at", expireAfterSeconds=0)
            logger.info("Ensured indexes on %s collection", self.collection.name)
        except PyMongoError as exc:
            logger.error("Failed to create indexes: %s", exc)
            raise StorageUnavailable(f"Failed to prepare upload collection: {exc}", backend=BACKEND_NAME) from exc

    def _live_filter(self, identity: str) -> Dict[str, Any]:
        query: Dict[str, Any] = {"email": identity}
        if self._ttl_seconds:
            query["$or"] = [
                {"expires_at": {"$exists": False}},
                {"expires_at": {"$gt": self._clock()}},
            ]
        return query

    def get(self, identity: str) -> Optional[UploadRecord]:
        try:
            document = self.collection.find_one(self._live_filter(identity))
        except PyMongoError as exc:
            logger.error("Failed to load upload record for %s: %s", identity, exc)
            raise StorageUnavailable(f"Failed to read upload record: {exc}", backend=BACKEND_NAME) from exc
        return UploadRecord.from_document(identity, document) if document else None

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        update: Dict[str, Any] = {
            "$inc": {"count": 1},
            "$push": {"uploads": _event_document(event)},
        }
        if self._ttl_seconds:
            update["$set"] = {"expires_at": self._clock() + timedelta(seconds=self._ttl_seconds)}

        for attempt in range(1, INSERT_RACE_RETRIES + 1):
            try:
                if self._ttl_seconds:
                    self.collection.delete_one({"email": identity, "expires_at": {"$lte": self._clock()}})
                document = self.collection.find_one_and_update(
                    {"email": identity, "count": {"$lt": ceiling}},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                existing = self.get(identity)
                if existing is not None and existing.count >= ceiling:
                    return IncrementOutcome(accepted=False, new_count=existing.count)
                logger.info("Lost first-insert race for %s, retrying (attempt %s)", identity, attempt)
                continue
            except PyMongoError as exc:
                logger.error("Failed to record upload for %s: %s", identity, exc)
                raise StorageUnavailable(f"Failed to record upload: {exc}", backend=BACKEND_NAME) from exc
            return IncrementOutcome(accepted=True, new_count=int(document["count"]))

        raise StorageUnavailable(
            f"Failed to record upload after {INSERT_RACE_RETRIES} conflicting writes",
            backend=BACKEND_NAME,
        )

    def close(self) -> None:
        self.collection.database.client.close()
