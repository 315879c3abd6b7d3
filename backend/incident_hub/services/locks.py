"""Keyed locks that serialize duplicate detection with incident creation.

Two reports that fall inside each other's match box must not both miss each
other. The plane is split into cells as wide as the match radius; a report
locks the 3x3 block of cells around its own cell, so any two reports within
one radius of each other share at least one lock.
"""

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from incident_hub.config import settings
from incident_hub.core.exceptions import ServiceUnavailableException

logger = logging.getLogger(__name__)


def dedup_lock_keys(
    incident_type: str,
    latitude: float,
    longitude: float,
    radius_degrees: float,
) -> List[str]:
    """Sorted lock keys for the 3x3 cell neighbourhood around a point."""
    cell_lat = math.floor(latitude / radius_degrees)
    cell_lon = math.floor(longitude / radius_degrees)
    return sorted(
        f"{incident_type}:{cell_lat + d_lat}:{cell_lon + d_lon}"
        for d_lat in (-1, 0, 1)
        for d_lon in (-1, 0, 1)
    )


class InMemoryLockManager:
    """
    Per-key asyncio locks for a single process.

    Note: This does not coordinate across workers. Use the Redis manager
    when more than one process serves requests.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, keys: List[str]) -> AsyncIterator[None]:
        registered: List[str] = []
        acquired: List[str] = []
        try:
            for key in sorted(keys):
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] = self._waiters.get(key, 0) + 1
                registered.append(key)
                await lock.acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in registered:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]


class RedisLockManager:
    """Redis-backed locks shared by every worker."""

    def __init__(self, redis_url: str, timeout_seconds: float):
        self._redis_url = redis_url
        self._timeout = timeout_seconds
        self._redis = None

    def _get_redis(self):
        if self._redis is None:
            import redis.asyncio as redis
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    @asynccontextmanager
    async def hold(self, keys: List[str]) -> AsyncIterator[None]:
        redis = self._get_redis()
        held = []
        try:
            for key in sorted(keys):
                lock = redis.lock(
                    f"dedup:{key}",
                    timeout=self._timeout,
                    blocking_timeout=self._timeout,
                )
                try:
                    acquired = await lock.acquire()
                except Exception as e:
                    logger.error(f"Redis lock error for {key}: {e}")
                    raise ServiceUnavailableException("Duplicate detection lock") from e
                if not acquired:
                    logger.warning(f"Timed out waiting for dedup lock {key}")
                    raise ServiceUnavailableException("Duplicate detection lock")
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                try:
                    await lock.release()
                except Exception as e:
                    # Lock expired while held; the TTL already freed it
                    logger.warning(f"Failed to release dedup lock: {e}")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()


_lock_manager: Optional[object] = None


def get_lock_manager():
    """Get or create the configured lock manager."""
    global _lock_manager
    if _lock_manager is None:
        if settings.dedup_lock_backend == "redis":
            _lock_manager = RedisLockManager(settings.redis_url, settings.dedup_lock_timeout_seconds)
            logger.info("Duplicate detection locks using Redis")
        else:
            _lock_manager = InMemoryLockManager()
    return _lock_manager
