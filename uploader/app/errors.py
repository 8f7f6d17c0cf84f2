"""Base error type for failures surfaced to API callers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException


@dataclass
class ApiError(Exception):
    """Domain failure carrying a stable error code and its HTTP status."""

    code: str
    message: str
    status_code: int
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))
