"""
Query Cache — TTL-bounded caching of search payloads.

Entries are keyed by :meth:`QueryCache.generate_key` and carry an absolute
expiry.  Two backends are available: an in-process dict and JSON files on
disk.  Expiry is always checked at read time; an expired entry reads as a
miss, never as stale data.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

KEY_PREFIX = "sym:search"


def _escape_key_part(part: str) -> str:
    # ':' separates key fields, '%' is the escape character itself
    return part.replace("%", "%25").replace(":", "%3A")


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class CacheBackend(ABC):
    """Raw storage of ``(value, expires_at)`` pairs.  Knows nothing about TTLs."""

    @abstractmethod
    def read(self, key: str) -> Optional[tuple[Any, float]]:
        ...

    @abstractmethod
    def write(self, key: str, value: Any, expires_at: float) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> int:
        ...

    @abstractmethod
    def size(self) -> int:
        ...


class MemoryCacheBackend(CacheBackend):
    """In-process dict storage.  Values are stored as given."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}

    def read(self, key: str) -> Optional[tuple[Any, float]]:
        return self._entries.get(key)

    def write(self, key: str, value: Any, expires_at: float) -> None:
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def size(self) -> int:
        return len(self._entries)


class DiskCacheBackend(CacheBackend):
    """
    JSON-file storage, one file per key under *cache_dir*.

    Values must be JSON-serialisable.  Expiry timestamps are absolute, so the
    owning cache should use a wall-clock (``time.time``) when entries must
    survive a process restart.
    """

    def __init__(self, cache_dir: str = ".symfind/cache") -> None:
        self._cache_dir = cache_dir
        os.makedirs(cache_dir, exist_ok=True)

    def _cache_path(self, key: str) -> str:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return os.path.join(self._cache_dir, f"{digest}.json")

    def read(self, key: str) -> Optional[tuple[Any, float]]:
        path = self._cache_path(key)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                entry = json.load(f)
            return entry["value"], float(entry["expires_at"])
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning("[QueryCache] Read error for %s: %s", path, e)
            return None

    def write(self, key: str, value: Any, expires_at: float) -> None:
        path = self._cache_path(key)
        entry = {
            "key": key[:200],  # truncated, for debugging only
            "expires_at": expires_at,
            "value": value,
        }
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(entry, f)
        except (OSError, TypeError) as e:
            logger.warning("[QueryCache] Write error for %s: %s", path, e)

    def delete(self, key: str) -> None:
        try:
            os.remove(self._cache_path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("[QueryCache] Delete error: %s", e)

    def clear(self) -> int:
        count = 0
        try:
            for fname in os.listdir(self._cache_dir):
                if fname.endswith(".json"):
                    os.remove(os.path.join(self._cache_dir, fname))
                    count += 1
        except OSError as e:
            logger.warning("[QueryCache] Clear error: %s", e)
        return count

    def size(self) -> int:
        try:
            return sum(1 for f in os.listdir(self._cache_dir) if f.endswith(".json"))
        except OSError:
            return 0


# ---------------------------------------------------------------------------
# QueryCache
# ---------------------------------------------------------------------------

class QueryCache:
    """
    TTL cache for search payloads.

    Parameters
    ----------
    backend:
        Storage backend.  Defaults to :class:`MemoryCacheBackend`.
    default_ttl:
        Lifetime in seconds used when :meth:`set` is called without a TTL.
    clock:
        Returns the current time in seconds.  Inject a fake in tests.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        default_ttl: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend or MemoryCacheBackend()
        self._default_ttl = default_ttl
        self._clock = clock
        # Disk I/O is moved off the event loop; dict access is not worth it
        self._blocking = not isinstance(self._backend, MemoryCacheBackend)

    @staticmethod
    def generate_key(query: str, limit: int, type_: Optional[str] = None) -> str:
        """
        Build a deterministic key from the request parameters.

        Identical requests produce the same key; the field separator is
        escaped inside values so distinct requests never collide.
        """
        type_part = _escape_key_part(type_) if type_ else "all"
        return f"{KEY_PREFIX}:{_escape_key_part(query)}:{type_part}:{int(limit)}"

    async def _run(self, fn, *args):
        if self._blocking:
            return await asyncio.to_thread(fn, *args)
        return fn(*args)

    async def get_fuzzy(self, key: str) -> Any:
        """Return the cached value for *key*, or None when missing or expired."""
        entry = await self._run(self._backend.read, key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            logger.debug("[QueryCache] Expired entry: %s", key)
            await self._run(self._backend.delete, key)
            return None
        logger.debug("[QueryCache] Cache hit: %s", key)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value* under *key* until ``now + ttl``."""
        lifetime = self._default_ttl if ttl is None else ttl
        expires_at = self._clock() + lifetime
        await self._run(self._backend.write, key, value, expires_at)
        logger.debug("[QueryCache] Stored: %s (ttl=%ss)", key, lifetime)

    async def delete(self, key: str) -> None:
        await self._run(self._backend.delete, key)

    async def clear(self) -> int:
        """Remove all entries; returns how many were removed."""
        count = await self._run(self._backend.clear)
        logger.info("[QueryCache] Cleared %d entries", count)
        return count

    @property
    def size(self) -> int:
        """Number of stored entries, expired ones included until read."""
        return self._backend.size()
