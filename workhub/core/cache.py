"""Read-through cache for entity look-ups.

Writers call ``forget`` on every key they touch before returning, so a cached
value is never older than the last committed write made through the services.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import TypeAdapter

logger = logging.getLogger(__name__)


class Cache(ABC):
    @abstractmethod
    def get(self, key: str, adapter: TypeAdapter) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int, adapter: TypeAdapter) -> None:
        ...

    @abstractmethod
    def forget(self, *keys: str) -> None:
        ...

    def remember(self, key: str, ttl: int, loader: Callable[[], Any], adapter: TypeAdapter):
        """Return the cached value for ``key`` or load, store and return it.

        ``None`` results are passed through without being stored so a missing
        row is looked up again on the next call.
        """
        cached = self.get(key, adapter)
        if cached is not None:
            return cached
        logger.debug("Cache miss for %s", key)
        value = loader()
        if value is not None:
            self.set(key, value, ttl, adapter)
        return value


class InMemoryCache(Cache):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key, adapter):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key, value, ttl, adapter):
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def forget(self, *keys):
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisCache(Cache):
    """Redis-backed cache; values are stored as pydantic JSON."""

    def __init__(self, client, prefix: str = "workhub:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "workhub:") -> "RedisCache":
        import redis

        return cls(redis.Redis.from_url(url), prefix=prefix)

    def get(self, key, adapter):
        raw = self._client.get(self._prefix + key)
        if raw is None:
            return None
        return adapter.validate_json(raw)

    def set(self, key, value, ttl, adapter):
        self._client.set(self._prefix + key, adapter.dump_json(value), ex=ttl)

    def forget(self, *keys):
        if keys:
            self._client.delete(*(self._prefix + key for key in keys))


def create_cache(settings) -> Cache:
    if settings.CACHE_BACKEND == "redis":
        return RedisCache.from_url(settings.REDIS_URL)
    return InMemoryCache()
