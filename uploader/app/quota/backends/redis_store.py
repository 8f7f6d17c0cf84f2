"""Redis-backed quota store with per-key expiry."""
from __future__ import annotations

import json
import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

from ..exceptions import StorageUnavailable
from ..models import IncrementOutcome, UploadEvent, UploadRecord

logger = logging.getLogger(__name__)

BACKEND_NAME = "redis"


def create_redis_client(url: Optional[str], *, timeout_seconds: float = 5.0) -> redis.Redis:
    if not url:
        raise StorageUnavailable(
            "Redis not configured. Set REDIS_URL environment variable.",
            backend=BACKEND_NAME,
        )
    return redis.Redis.from_url(
        url,
        socket_timeout=timeout_seconds,
        socket_connect_timeout=timeout_seconds,
        decode_responses=True,
        health_check_interval=30,
    )


class RedisQuotaStore:
    """Keeps each identity's record as a JSON string under ``<prefix><identity>``.

    Writes go through a WATCH/MULTI transaction on the identity key, so a
    concurrent writer invalidates the transaction and the check is re-run
    against the fresh value.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "uploads:",
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self.client = client
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds

    def _key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    @staticmethod
    def _decode(identity: str, raw) -> Optional[UploadRecord]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return UploadRecord.from_document(identity, json.loads(raw))

    def get(self, identity: str) -> Optional[UploadRecord]:
        try:
            raw = self.client.get(self._key(identity))
        except RedisError as exc:
            logger.error("Failed to load upload record for %s: %s", identity, exc)
            raise StorageUnavailable(f"Failed to read upload record: {exc}", backend=BACKEND_NAME) from exc
        return self._decode(identity, raw)

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        key = self._key(identity)

        def _apply(pipe) -> IncrementOutcome:
            record = self._decode(identity, pipe.get(key)) or UploadRecord(identity=identity)
            if record.count >= ceiling:
                return IncrementOutcome(accepted=False, new_count=record.count)
            record.count += 1
            record.events.append(event)
            pipe.multi()
            pipe.set(key, json.dumps(record.to_document()), ex=self._ttl_seconds)
            return IncrementOutcome(accepted=True, new_count=record.count)

        try:
            return self.client.transaction(_apply, key, value_from_callable=True)
        except RedisError as exc:
            logger.error("Failed to record upload for %s: %s", identity, exc)
            raise StorageUnavailable(f"Failed to record upload: {exc}", backend=BACKEND_NAME) from exc

    def close(self) -> None:
        self.client.close()
