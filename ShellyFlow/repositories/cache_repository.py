# -*- coding: utf-8 -*-
"""
Cache repository implementations for computed dashboard snapshots.

The engine itself is stateless. The refresh loop caches the last computed
daily snapshot per device so that a push event arriving inside the
refresh interval does not recompute the whole day.

Key points:
- Thread-safe access using threading.RLock()
- Values are replaced wholesale, never patched
- Per-key locking so one device does not block another
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import RLock
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class CacheRepository(ABC):
    """
    Abstract base class for snapshot cache operations.

    Allows switching between the in-process cache and Redis.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve cached data by key.

        Args:
            key: Cache key identifier

        Returns:
            Cached data if exists, None otherwise
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Store data in cache, replacing any previous value.

        Args:
            key: Cache key identifier
            value: Data to cache
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryCacheRepository(CacheRepository):
    """
    Thread-safe in-process cache.

    Suitable when the refresh timer and the push callback live in the same
    process. Use RedisCacheRepository to share snapshots across processes.

    Example:
        >>> cache = MemoryCacheRepository()
        >>> cache.set('dailySnapshot_abc', snapshot)
        >>> cache.get('dailySnapshot_abc')
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._locks: Dict[str, RLock] = {}
        self._global_lock = RLock()  # Guards _locks and _data membership

        logger.info("MemoryCacheRepository initialized")

    @contextmanager
    def _key_lock(self, key: str):
        """
        Context manager for per-key locking.

        Args:
            key: Cache key to lock

        Yields:
            None (lock is held within context)
        """
        with self._global_lock:
            if key not in self._locks:
                self._locks[key] = RLock()
            key_lock = self._locks[key]

        with key_lock:
            yield

    def get(self, key: str) -> Optional[Any]:
        with self._key_lock(key):
            value = self._data.get(key)

        if value is not None:
            logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any) -> None:
        with self._key_lock(key):
            with self._global_lock:
                self._data[key] = value

        logger.debug(f"Cache written: {key}")

    def exists(self, key: str) -> bool:
        with self._global_lock:
            return key in self._data

    def delete(self, key: str) -> None:
        with self._key_lock(key):
            with self._global_lock:
                removed = self._data.pop(key, None)

        if removed is not None:
            logger.debug(f"Cache deleted: {key}")

    def clear(self) -> None:
        """Remove every cached snapshot."""
        with self._global_lock:
            count = len(self._data)
            self._data.clear()
            self._locks.clear()

        logger.debug(f"Cleared {count} cache entries")
