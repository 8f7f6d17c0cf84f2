"""Upload handling collaborators: storage uploaders and their results."""

from .exceptions import (
    ALLOWED_CONTENT_TYPES,
    MissingVideo,
    StorageUploadFailed,
    UnsupportedMediaType,
    UploadError,
)
from .storage import LocalDirectoryUploader, StorageUploader, StoredFile, build_unique_name

__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "LocalDirectoryUploader",
    "MissingVideo",
    "StorageUploadFailed",
    "StorageUploader",
    "StoredFile",
    "UnsupportedMediaType",
    "UploadError",
    "build_unique_name",
]
