"""Flat-file JSON quota store."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import StorageUnavailable
from ..models import IncrementOutcome, UploadEvent, UploadRecord

logger = logging.getLogger(__name__)

BACKEND_NAME = "json"


class JsonFileQuotaStore:
    """Keeps every identity in one JSON document rewritten on each mutation.

    Shape: ``{identity: {"count": int, "uploads": [{timestamp, fileName, fileId?}]}}``.

    Read-check-write is serialized by a lock held by this instance and the
    file is replaced atomically. Writers in other processes pointing at the
    same path are not serialized and can lose updates.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.error("Failed to read quota file %s: %s", self.path, exc)
            raise StorageUnavailable(f"Failed to read quota file: {exc}", backend=BACKEND_NAME) from exc
        if not isinstance(data, dict):
            raise StorageUnavailable("Quota file does not contain a JSON object", backend=BACKEND_NAME)
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".uploads-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            logger.error("Failed to write quota file %s: %s", self.path, exc)
            raise StorageUnavailable(f"Failed to write quota file: {exc}", backend=BACKEND_NAME) from exc

    def get(self, identity: str) -> Optional[UploadRecord]:
        with self._lock:
            document = self._load().get(identity)
        return UploadRecord.from_document(identity, document) if document else None

    def conditional_increment(
        self, identity: str, ceiling: int, event: UploadEvent
    ) -> IncrementOutcome:
        with self._lock:
            data = self._load()
            document = data.get(identity) or {"count": 0, "uploads": []}
            current = int(document.get("count") or 0)
            if current >= ceiling:
                return IncrementOutcome(accepted=False, new_count=current)

            data[identity] = {
                "count": current + 1,
                "uploads": list(document.get("uploads") or []) + [event.to_document()],
            }
            self._save(data)
            return IncrementOutcome(accepted=True, new_count=current + 1)

    def close(self) -> None:
        return None
