import json
import logging
from typing import Any, Awaitable, Iterable, Optional, TypeVar

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheService:
    """Best-effort Redis access for cached rule lists and counters.

    Built with ``redis_client=None`` when Redis is down; every method
    then returns ``None`` (or does nothing) and callers read through to
    the database.  Redis errors are logged, never raised.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    async def _attempt(self, op: str, key: str, call: Awaitable[T]) -> Optional[T]:
        try:
            return await call
        except Exception:
            logger.warning("Redis %s failed for %s", op, key)
            return None

    async def get_json(self, key: str) -> Optional[Any]:
        """Decoded JSON stored under *key*, or ``None`` on miss or bad data."""
        if self._redis is None:
            return None
        raw = await self._attempt("GET", key, self._redis.get(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        """Store *data* as JSON, expiring after *ttl* seconds when given."""
        if self._redis is None:
            return
        try:
            payload = json.dumps(data, default=str)
        except (TypeError, ValueError):
            logger.warning("Value for cache key %s is not JSON-serialisable", key)
            return
        if ttl:
            await self._attempt("SETEX", key, self._redis.setex(key, ttl, payload))
        else:
            await self._attempt("SET", key, self._redis.set(key, payload))

    async def invalidate(self, keys: Iterable[str]) -> None:
        """Drop cached entries after a write to the data behind them."""
        keys = list(keys)
        if self._redis is None or not keys:
            return
        await self._attempt("DELETE", ", ".join(keys), self._redis.delete(*keys))

    async def incr(self, key: str, ttl: Optional[int] = None) -> Optional[int]:
        """Atomically bump the counter at *key* and return its new value.

        ``None`` means Redis could not be reached; the caller keeps its
        own counter in that case.  *ttl* is refreshed on every bump.
        """
        if self._redis is None:
            return None
        value = await self._attempt("INCR", key, self._redis.incr(key))
        if value is not None and ttl:
            await self._attempt("EXPIRE", key, self._redis.expire(key, ttl))
        return value
