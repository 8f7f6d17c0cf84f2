"""Storage uploader collaborators persisting video bytes."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol
from uuid import uuid4

from .exceptions import StorageUploadFailed

logger = logging.getLogger(__name__)

_EXTENSION_PATTERN = re.compile(r"[A-Za-z0-9]{1,8}")
DEFAULT_EXTENSION = "mp4"


@dataclass(frozen=True)
class StoredFile:
    """Identifiers returned by a storage uploader."""

    file_id: str
    file_name: str
    web_view_link: Optional[str] = None


class StorageUploader(Protocol):
    """External collaborator persisting bytes and returning an opaque id."""

    def upload(self, data: bytes, file_name: str, content_type: str, email: str) -> StoredFile:
        ...


def build_unique_name(email: str, file_name: str, now: datetime) -> str:
    """Return ``<sanitized-email>_<timestamp>.<ext>`` for a stored upload."""

    timestamp = re.sub(r"[:.]", "-", now.isoformat())
    sanitized_email = re.sub(r"[^a-zA-Z0-9]", "_", email)
    extension = file_name.rsplit(".", 1)[-1] if "." in file_name else ""
    if not _EXTENSION_PATTERN.fullmatch(extension):
        extension = DEFAULT_EXTENSION
    return f"{sanitized_email}_{timestamp}.{extension}"


class LocalDirectoryUploader:
    """Minimal uploader writing files to a local directory for development and tests."""

    def __init__(
        self,
        directory: str | os.PathLike[str],
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.directory = Path(directory)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def upload(self, data: bytes, file_name: str, content_type: str, email: str) -> StoredFile:
        stored_name = build_unique_name(email, file_name, self._clock())
        target = self.directory / stored_name
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Local upload failed for %s: %s", stored_name, exc)
            raise StorageUploadFailed(f"Failed to store video: {exc}") from exc

        file_id = uuid4().hex
        logger.info(
            "Stored upload locally",
            extra={"upload_file_id": file_id, "upload_path": str(target), "upload_content_type": content_type},
        )
        return StoredFile(file_id=file_id, file_name=stored_name, web_view_link=target.resolve().as_uri())
