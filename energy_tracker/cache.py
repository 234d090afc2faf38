# cache.py
"""Process-local read-through cache.

Entries are keyed by (kind, key) and never expire; writes that could change a
cached value must call ``invalidate``. The ``categories`` kind is never
invalidated, so categories edited directly in the backend stay stale until the
process restarts.
"""
import logging
import threading
from typing import Any, Awaitable, Callable, Hashable

_LOGGER = logging.getLogger(__name__)

KIND_CATEGORIES = "categories"
KIND_USER_DEVICES = "user_devices"

_MISSING = object()


class CacheLayer:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, Hashable], Any] = {}
        # bumped on invalidate so a load racing an invalidation is dropped
        self._generations: dict[tuple[str, Hashable], int] = {}

    def get(self, kind: str, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._entries.get((kind, key), default)

    def contains(self, kind: str, key: Hashable) -> bool:
        with self._lock:
            return (kind, key) in self._entries

    def put(self, kind: str, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[(kind, key)] = value

    def invalidate(self, kind: str, key: Hashable) -> None:
        with self._lock:
            self._entries.pop((kind, key), None)
            self._generations[(kind, key)] = self._generations.get((kind, key), 0) + 1
        _LOGGER.debug(f"Invalidated cache entry {kind}/{key}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()

    async def get_or_load(
        self,
        kind: str,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        with self._lock:
            value = self._entries.get((kind, key), _MISSING)
            generation = self._generations.get((kind, key), 0)
        if value is not _MISSING:
            return value

        value = await loader()

        with self._lock:
            if self._generations.get((kind, key), 0) == generation:
                self._entries[(kind, key)] = value
            else:
                _LOGGER.debug(f"Dropped stale load for {kind}/{key}")
        return value
