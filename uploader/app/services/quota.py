"""Application wiring for the upload quota tracker."""
from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Mapping, Optional

from ... import app_context
from ...config import QuotaConfig, load_quota_config
from ..quota import InMemoryQuotaStore, QuotaStore, QuotaTracker
from ..quota.backends import (
    JsonFileQuotaStore,
    MongoQuotaStore,
    PostgresQuotaStore,
    RedisQuotaStore,
    connection_factory,
    create_mongo_client,
    create_redis_client,
)
from ..uploads import LocalDirectoryUploader, StorageUploader

logger = logging.getLogger("uploads")


def build_quota_store(config: QuotaConfig) -> QuotaStore:
    """Construct the backing store selected by ``config.backend``."""

    backend = config.backend
    if backend == "mongo":
        client = create_mongo_client(config.mongodb_uri, timeout_seconds=config.timeout_seconds)
        collection = client[config.mongodb_database][config.mongodb_collection]
        store: QuotaStore = MongoQuotaStore(collection, ttl_seconds=config.retention_seconds)
    elif backend == "redis":
        client = create_redis_client(config.redis_url, timeout_seconds=config.timeout_seconds)
        store = RedisQuotaStore(
            client,
            key_prefix=config.redis_key_prefix,
            ttl_seconds=config.retention_seconds,
        )
    elif backend == "postgres":
        postgres_store = PostgresQuotaStore(
            connection_factory(
                host=config.db_host,
                port=config.db_port,
                dbname=config.db_name,
                user=config.db_user,
                password=config.db_password,
                timeout_seconds=config.timeout_seconds,
            ),
            ttl_seconds=config.retention_seconds,
        )
        postgres_store.ensure_schema()
        store = postgres_store
    elif backend == "json":
        if config.retention_seconds:
            logger.warning("QUOTA_RETENTION_SECONDS is ignored by the json backend")
        store = JsonFileQuotaStore(config.file_path)
    else:
        store = InMemoryQuotaStore(ttl_seconds=config.retention_seconds)

    logger.info("Quota store ready backend=%s ceiling=%s", backend, config.ceiling)
    return store


_active_config: Optional[QuotaConfig] = None
_configure_lock = threading.RLock()


@lru_cache(maxsize=1)
def get_quota_config() -> QuotaConfig:
    return load_quota_config()


def configure_quota_context(
    config: Optional[QuotaConfig] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> QuotaConfig:
    """Register store and uploader factories for ``config`` in the app context."""

    global _active_config

    resolved = config or (load_quota_config(env) if env is not None else get_quota_config())
    with _configure_lock:
        app_context.configure(
            store_factory=lambda: build_quota_store(resolved),
            uploader_factory=lambda: LocalDirectoryUploader(resolved.upload_dir),
        )
        _active_config = resolved
    return resolved


def get_active_config() -> QuotaConfig:
    """Return the configuration the app context was wired with, wiring it from the environment if needed."""

    config = _active_config
    if config is not None and app_context.is_configured():
        return config
    with _configure_lock:
        if _active_config is not None and app_context.is_configured():
            return _active_config
        return configure_quota_context()


def get_quota_tracker() -> QuotaTracker:
    config = get_active_config()
    return QuotaTracker(app_context.get_quota_store(), ceiling=config.ceiling)


def get_storage_uploader() -> StorageUploader:
    get_active_config()
    return app_context.get_storage_uploader()


__all__ = [
    "build_quota_store",
    "configure_quota_context",
    "get_active_config",
    "get_quota_config",
    "get_quota_tracker",
    "get_storage_uploader",
]
