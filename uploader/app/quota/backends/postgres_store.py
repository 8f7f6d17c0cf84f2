"""PostgreSQL-backed quota store."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..exceptions import StorageUnavailable
from ..models import IncrementOutcome, UploadEvent, UploadRecord

logger = logging.getLogger(__name__)

BACKEND_NAME = "postgres"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS upload_quotas (
    identity TEXT PRIMARY KEY,
    count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
    uploads JSONB NOT NULL DEFAULT '[]'::jsonb,
    expires_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

_SELECT_SQL = """
SELECT identity, count, uploads
FROM upload_quotas
WHERE identity = %s
  AND (expires_at IS NULL OR expires_at > NOW())
LIMIT 1
"""

# Expired rows restart from the inserted values; live rows at the ceiling are
# left untouched and RETURNING yields nothing.
_CONDITIONAL_INCREMENT_SQL = """
INSERT INTO upload_quotas (identity, count, uploads, expires_at)
VALUES (%(identity)s, 1, %(uploads)s, %(expires_at)s)
ON CONFLICT (identity) DO UPDATE SET
    count = CASE
        WHEN upload_quotas.expires_at <= NOW() THEN 1
        ELSE upload_quotas.count + 1
    END,
    uploads = CASE
        WHEN upload_quotas.expires_at <= NOW() THEN EXCLUDED.uploads
        ELSE upload_quotas.uploads || EXCLUDED.uploads
    END,
    expires_at = EXCLUDED.expires_at,
    updated_at = NOW()
WHERE upload_quotas.count < %(ceiling)s
   OR upload_quotas.expires_at <= NOW()
RETURNING count
"""


def connection_factory(
    *,
    host: str,
    port: int,
    dbname: str,
    user: str,
    password: str,
    timeout_seconds: float = 5.0,
) -> Callable[[], PgConnection]:
    """Return a callable opening a new connection with a bounded connect timeout."""

    params: Dict[str, Any] = dict(
        host=host,
        port=port,
        dbname=dbname,
        user=user,
        password=password,
        connect_timeout=max(1, int(round(timeout_seconds))),
    )

    def _connect() -> PgConnection:
        return psycopg2.connect(**params)

    return _connect


class PostgresQuotaStore:
    """Persists upload quotas in the ``upload_quotas`` table.

    The conditional increment is one ``INSERT ... ON CONFLICT DO UPDATE``
    statement guarded by ``count < ceiling``; the row lock taken by the
    conflicting update serializes concurrent writers for the same identity.
    """

    def __init__(
        self,
        conn_factory: Callable[[], PgConnection],
        *,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._conn_factory = conn_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            connection = self._conn_factory()
        except psycopg2.Error as exc:
            logger.error("Failed to connect to quota database: %s", exc)
            raise StorageUnavailable(f"Quota database unreachable: {exc}", backend=BACKEND_NAME) from exc

        try:
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                connection.commit()
            except Exception:
                connection.rollback()
                raise
            finally:
                cursor.close()
        except psycopg2.Error as exc:
            logger.error("Quota database statement failed: %s", exc)
            raise StorageUnavailable(f"Quota database error: {exc}", backend=BACKEND_NAME) from exc
        finally:
            connection.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(SCHEMA_SQL)

    def get(self, identity: str) -> Optional[UploadRecord]:
        with self._cursor() as cursor:
            cursor.execute(_SELECT_SQL, (identity,))
            row = cursor.fetchone()
        if not row:
            return None
        return UploadRecord.from_document(identity, {"count": row["count"], "uploads": row["uploads"]})

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        expires_at = None
        if self._ttl_seconds:
            expires_at = self._clock() + timedelta(seconds=self._ttl_seconds)

        with self._cursor() as cursor:
            cursor.execute(
                _CONDITIONAL_INCREMENT_SQL,
                {
                    "identity": identity,
                    "uploads": psycopg2.extras.Json([event.to_document()]),
                    "expires_at": expires_at,
                    "ceiling": ceiling,
                },
            )
            row = cursor.fetchone()
            if row:
                return IncrementOutcome(accepted=True, new_count=int(row["count"]))

            cursor.execute(_SELECT_SQL, (identity,))
            current = cursor.fetchone()
        return IncrementOutcome(accepted=False, new_count=int(current["count"]) if current else ceiling)

    def close(self) -> None:
        return None
