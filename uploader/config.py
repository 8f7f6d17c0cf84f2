"""Quota tracker configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

SUPPORTED_BACKENDS = frozenset({"memory", "mongo", "redis", "postgres", "json"})


@dataclass(frozen=True)
class QuotaConfig:
    """Configuration for the upload quota tracker and its backing store."""

    backend: str
    ceiling: int
    retention_seconds: Optional[int]
    timeout_seconds: float
    mongodb_uri: Optional[str]
    mongodb_database: str
    mongodb_collection: str
    redis_url: Optional[str]
    redis_key_prefix: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    file_path: str
    upload_dir: str


def _to_int(value: Optional[str], *, default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_quota_config(env: Optional[Mapping[str, str]] = None) -> QuotaConfig:
    """Load :class:`QuotaConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    backend = (env_mapping.get("QUOTA_BACKEND") or "memory").strip().lower() or "memory"
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"Unsupported QUOTA_BACKEND {backend!r}; expected one of {sorted(SUPPORTED_BACKENDS)}"
        )

    ceiling = _to_int(env_mapping.get("UPLOAD_CEILING"), default=2)
    if ceiling is None or ceiling < 1:
        raise ValueError("UPLOAD_CEILING must be at least 1")

    retention_seconds = _to_int(env_mapping.get("QUOTA_RETENTION_SECONDS"), default=None)
    if retention_seconds is not None and retention_seconds <= 0:
        retention_seconds = None

    timeout_seconds = max(0.1, _to_float(env_mapping.get("STORAGE_TIMEOUT_SECONDS"), default=5.0))

    return QuotaConfig(
        backend=backend,
        ceiling=ceiling,
        retention_seconds=retention_seconds,
        timeout_seconds=timeout_seconds,
        mongodb_uri=env_mapping.get("MONGODB_URI") or None,
        mongodb_database=env_mapping.get("MONGODB_DATABASE", "video-upload"),
        mongodb_collection=env_mapping.get("MONGODB_COLLECTION", "uploads"),
        redis_url=env_mapping.get("REDIS_URL") or None,
        redis_key_prefix=env_mapping.get("REDIS_KEY_PREFIX", "uploads:"),
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "uploads_db"),
        db_user=env_mapping.get("DB_USER", "upload_user"),
        db_password=env_mapping.get("DB_PASSWORD", "upload_pass"),
        file_path=env_mapping.get("QUOTA_FILE_PATH", "data/uploads.json"),
        upload_dir=env_mapping.get("UPLOAD_DIR", "data/videos"),
    )
