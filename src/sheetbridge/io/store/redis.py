"""Redis storage backend for shared state across instances.

Uses redis.asyncio so store access is a suspension point, never a blocking
call. TTL is handled natively by Redis (SETEX/EXPIRE). The sliding-window
admission runs as one Lua script, which Redis executes atomically, so
concurrent checks for the same user cannot over-admit even across processes.

Requires: pip install sheetbridge[redis]
"""

from __future__ import annotations

import math
import uuid
from typing import Protocol, runtime_checkable

from .store import WindowState

# KEYS[1] = window key; ARGV = now, window, quota, member
# Scores are returned as strings; Lua numbers would be truncated to integers.
_WINDOW_ADMIT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local quota = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= quota then
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  return {0, count, oldest[2] or ''}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, math.ceil(window))
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {1, count + 1, oldest[2] or ''}
"""


@runtime_checkable
class AsyncRedisClient(Protocol):
    """Protocol for async Redis client (duck typing)."""
    async def get(self, key: str) -> bytes | None: ...
    async def setex(self, name: str, time: int, value: str) -> bool: ...
    async def expire(self, name: str, time: int) -> bool: ...
    async def exists(self, *names: str) -> int: ...
    async def delete(self, *names: str) -> int: ...
    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> list[object]: ...
    async def ping(self) -> bool: ...


def _seconds(ttl: float) -> int:
    """Redis TTLs are whole seconds; never round a positive TTL down to zero."""
    return max(1, math.ceil(ttl))


def _text(value: object) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisStore:
    """Redis-backed key-value store.

    Args:
        client: Existing async Redis client instance
        prefix: Key prefix for namespacing (default: "sheetbridge:")

    Example:
        >>> import redis.asyncio as redis
        >>> store = RedisStore(redis.from_url("redis://localhost:6379/0"))

        # Or from URL directly:
        >>> store = RedisStore.from_url("redis://localhost:6379/0")
    """

    __slots__ = ("_client", "_prefix")

    def __init__(self, client: AsyncRedisClient, prefix: str = "sheetbridge:") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "sheetbridge:", **redis_kwargs: object) -> RedisStore:
        """Create store from Redis URL.

        Args:
            url: Redis connection URL (redis://host:port/db)
            prefix: Key prefix for namespacing
            **redis_kwargs: Additional args passed to redis.asyncio.from_url
        """
        try:
            import redis.asyncio as aioredis
        except ImportError as e:
            raise ImportError(
                "Redis store requires redis package. "
                "Install with: pip install sheetbridge[redis]"
            ) from e
        return cls(aioredis.from_url(url, **redis_kwargs), prefix)  # type: ignore[arg-type]

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        val = await self._client.get(self._key(key))
        return _text(val) if val is not None else None

    async def set(self, key: str, value: str, ttl: float) -> None:
        await self._client.setex(self._key(key), _seconds(ttl), value)

    async def expire(self, key: str, ttl: float) -> bool:
        return bool(await self._client.expire(self._key(key), _seconds(ttl)))

    async def exists(self, key: str) -> bool:
        return await self._client.exists(self._key(key)) > 0

    async def delete(self, key: str) -> bool:
        return await self._client.delete(self._key(key)) > 0

    async def window_admit(self, key: str, now: float, window: float, quota: int) -> WindowState:
        member = f"{now!r}-{uuid.uuid4().hex[:12]}"
        admitted, count, oldest = await self._client.eval(
            _WINDOW_ADMIT_SCRIPT, 1, self._key(key), repr(now), repr(window), str(quota), member,
        )
        oldest_text = _text(oldest)
        return WindowState(bool(int(admitted)), int(count), float(oldest_text) if oldest_text else None)

    async def ping(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(await self._client.ping())
        except Exception:  # noqa: BLE001 - health check reports, never raises
            return False

    async def close(self) -> None:
        if (aclose := getattr(self._client, "aclose", None)) is not None:
            await aclose()
