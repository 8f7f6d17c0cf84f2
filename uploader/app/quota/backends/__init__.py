"""Backing-store implementations for the quota tracker."""

from .json_file_store import JsonFileQuotaStore
from .mongo_store import MongoQuotaStore, create_mongo_client
from .postgres_store import PostgresQuotaStore, connection_factory
from .redis_store import RedisQuotaStore, create_redis_client

__all__ = [
    "JsonFileQuotaStore",
    "MongoQuotaStore",
    "PostgresQuotaStore",
    "RedisQuotaStore",
    "connection_factory",
    "create_mongo_client",
    "create_redis_client",
]
