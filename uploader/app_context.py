"""Shared application context owning the process-wide quota store handle."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class LazyHandle(Generic[T]):
    """Builds a long-lived resource on first use and reuses it afterwards.

    Initialization is double-checked under a lock: concurrent first callers
    converge on a single instance. A factory that raises leaves the handle
    empty so the next call tries again.
    """

    def __init__(self, factory: Callable[[], T], *, name: str) -> None:
        self._factory = factory
        self._name = name
        self._value: Optional[T] = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._value is not None

    def get(self) -> T:
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                logger.info("Initializing shared handle %s", self._name)
                self._value = self._factory()
            return self._value

    def reset(self, closer: Optional[Callable[[T], Any]] = None) -> None:
        with self._lock:
            value, self._value = self._value, None
        if value is not None and closer is not None:
            closer(value)


_store_handle: Optional[LazyHandle[Any]] = None
_uploader_handle: Optional[LazyHandle[Any]] = None
_config_lock = threading.Lock()


def configure(
    *,
    store_factory: Callable[[], Any],
    uploader_factory: Optional[Callable[[], Any]] = None,
) -> None:
    """Register factories for the quota store and storage uploader handles."""

    global _store_handle
    global _uploader_handle

    with _config_lock:
        previous = _store_handle
        _store_handle = LazyHandle(store_factory, name="quota_store")
        if uploader_factory is not None:
            _uploader_handle = LazyHandle(uploader_factory, name="storage_uploader")
    if previous is not None:
        previous.reset(lambda store: store.close())


def _require(value: Optional[LazyHandle[Any]], name: str) -> LazyHandle[Any]:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def is_configured() -> bool:
    return _store_handle is not None


def get_quota_store() -> Any:
    return _require(_store_handle, "store_factory").get()


def get_storage_uploader() -> Any:
    return _require(_uploader_handle, "uploader_factory").get()


def reset() -> None:
    """Drop configured handles, closing the quota store if it was built."""

    global _store_handle
    global _uploader_handle

    with _config_lock:
        store_handle, _store_handle = _store_handle, None
        _uploader_handle = None
    if store_handle is not None:
        store_handle.reset(lambda store: store.close())
