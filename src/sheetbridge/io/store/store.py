"""Key-value storage with TTL support.

Backs the session cache, idempotency records and rate-limit windows.
Every operation is atomic with respect to the key it acts on; no operation
spans keys.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class WindowState:
    """Outcome of one atomic sliding-window admission.

    Attributes:
        admitted: Whether the new timestamp was recorded
        count: Entries in the window after the step (including the new one if admitted)
        oldest: Timestamp of the oldest surviving entry, None for an empty window
    """
    admitted: bool
    count: int
    oldest: float | None


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for async storage backends."""

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl: float) -> None: ...
    async def expire(self, key: str, ttl: float) -> bool: ...
    async def exists(self, key: str) -> bool: ...
    async def delete(self, key: str) -> bool: ...
    async def window_admit(self, key: str, now: float, window: float, quota: int) -> WindowState:
        """Drop entries at or before now - window, then admit now if under quota. One atomic step."""
        ...


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float


@dataclass(slots=True)
class _Window:
    stamps: deque[float] = field(default_factory=deque)
    expires_at: float = 0.0


class MemoryStore:
    """Thread-safe in-memory store with TTL-based expiration.

    Expiry is passive: entries past their deadline are dropped when read.
    Uses RLock for synchronization, so each call is atomic per key even when
    shared across threads. Nothing here awaits, so a call also never
    interleaves with other coroutines.

    Args:
        clock: Time source in seconds (default: time.time)
        max_entries: Capacity, shared by values and rate windows, before expired/oldest are evicted

    Example:
        >>> store = MemoryStore()
        >>> await store.set("idem:k1", '{"applied": []}', ttl=86400)
        >>> await store.get("idem:k1")
        '{"applied": []}'
    """

    __slots__ = ("_entries", "_windows", "_clock", "_max_entries", "_lock")

    def __init__(self, *, clock: Callable[[], float] = time.time, max_entries: int = 10_000) -> None:
        self._entries: dict[str, _Entry] = {}
        self._windows: dict[str, _Window] = {}
        self._clock = clock
        self._max_entries = max_entries
        self._lock = threading.RLock()

    def _live(self, key: str) -> _Entry | None:
        """Get unexpired entry. Caller must hold lock."""
        if (entry := self._entries.get(key)) is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _full(self) -> bool:
        return len(self._entries) + len(self._windows) >= self._max_entries

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    async def set(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            if key not in self._entries and self._full():
                self._evict_unlocked()
            self._entries[key] = _Entry(value, self._clock() + ttl)

    async def expire(self, key: str, ttl: float) -> bool:
        with self._lock:
            if (entry := self._live(key)) is None:
                return False
            entry.expires_at = self._clock() + ttl
            return True

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None or self._windows.pop(key, None) is not None

    async def window_admit(self, key: str, now: float, window: float, quota: int) -> WindowState:
        with self._lock:
            win = self._windows.get(key)
            if win is None or now >= win.expires_at:
                if win is None and self._full():
                    self._evict_unlocked()
                win = self._windows[key] = _Window()
            stamps = win.stamps
            cutoff = now - window
            while stamps and stamps[0] <= cutoff:
                stamps.popleft()
            if len(stamps) >= quota:
                return WindowState(False, len(stamps), stamps[0] if stamps else None)
            stamps.append(now)
            win.expires_at = now + window
            return WindowState(True, len(stamps), stamps[0])

    def _evict_unlocked(self) -> None:
        """Remove expired values and windows, then the soonest-expiring quarter if still full. Caller must hold lock."""
        now = self._clock()
        for key in [k for k, v in self._entries.items() if now >= v.expires_at]:
            del self._entries[key]
        for key in [k for k, w in self._windows.items() if now >= w.expires_at]:
            del self._windows[key]
        if self._full():
            held = sorted(
                [(e.expires_at, 0, k) for k, e in self._entries.items()]
                + [(w.expires_at, 1, k) for k, w in self._windows.items()]
            )
            for _, kind, key in held[: max(1, self._max_entries // 4)]:
                del (self._windows if kind else self._entries)[key]

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries) + len(self._windows)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
            self._windows.clear()
