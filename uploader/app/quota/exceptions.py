"""Exceptions raised by the upload quota tracker."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import status

from ..errors import ApiError


class QuotaError(ApiError):
    """Failure raised while reading or enforcing an upload quota."""


class InvalidIdentity(QuotaError):
    """The submitter identity is empty or not a string."""

    def __init__(self, message: str = "A valid email is required.", **detail: Any) -> None:
        super().__init__(
            code="invalid_identity",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail or None,
        )


class CeilingReached(QuotaError):
    """The identity has already used every permitted upload."""

    def __init__(self, ceiling: int, **detail: Any) -> None:
        super().__init__(
            code="ceiling_reached",
            message=f"Maximum {ceiling} uploads per email reached",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"ceiling": ceiling, "remaining": 0, **detail},
        )


class StorageUnavailable(QuotaError):
    """The backing store is unreachable, misconfigured, or a read/write failed."""

    def __init__(self, message: str, *, backend: Optional[str] = None) -> None:
        super().__init__(
            code="storage_unavailable",
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"backend": backend} if backend else None,
        )
