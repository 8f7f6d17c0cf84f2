"""Upload quota tracking: models, store protocol and tracker service."""

from .exceptions import CeilingReached, InvalidIdentity, QuotaError, StorageUnavailable
from .models import (
    CEILING_REACHED_ERROR,
    IncrementOutcome,
    QuotaStatus,
    RecordUploadResult,
    UploadEvent,
    UploadRecord,
    normalize_identity,
)
from .service import DEFAULT_CEILING, QuotaTracker
from .store import InMemoryQuotaStore, QuotaStore

__all__ = [
    "CEILING_REACHED_ERROR",
    "DEFAULT_CEILING",
    "CeilingReached",
    "InMemoryQuotaStore",
    "IncrementOutcome",
    "InvalidIdentity",
    "QuotaError",
    "QuotaStatus",
    "QuotaStore",
    "QuotaTracker",
    "RecordUploadResult",
    "StorageUnavailable",
    "UploadEvent",
    "UploadRecord",
    "normalize_identity",
]
