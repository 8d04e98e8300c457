"""Session cache: one current remote session per document.

A hit renews the entry's TTL (keep-alive on read). A miss creates a remote
session through the "createSession" breaker and caches it. Entries leave the
cache by TTL expiry or by an explicit close; a session the remote side closed
on its own is discovered when a call against it fails.

Concurrent misses for the same document may each create a remote session.
Multiple live sessions against one workbook are valid, and the cache keeps
whichever was stored last.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from pydantic import ValidationError as PydanticValidationError

from sheetbridge.runtime.observability import get_logger

from .models import Session

if TYPE_CHECKING:
    from sheetbridge.io.store import KeyValueStore
    from sheetbridge.runtime.resilience import RemoteGuard

    from .client import WorkbookClient
    from .models import DocumentHandle

log = get_logger("sheetbridge.sessions")


@dataclass(slots=True)
class SessionCache:
    """Document handle → remote session, with TTL renewed on every hit.

    Args:
        store: Backing key-value store
        guard: Breaker/retry protection for session creation
        ttl: Seconds a cached session stays current without use (default: 300)
        persist_changes: Request persisted-changes semantics from the remote API
        clock: Wall-clock time source in epoch seconds
    """

    store: KeyValueStore
    guard: RemoteGuard
    ttl: float = 300.0
    persist_changes: bool = True
    clock: Callable[[], float] = field(default=time.time, repr=False)

    async def peek(self, handle: DocumentHandle) -> Session | None:
        """Cached session without renewing it."""
        if (raw := await self.store.get(handle.cache_key)) is None:
            return None
        try:
            return Session.model_validate_json(raw)
        except PydanticValidationError:
            log.warning("discarding unreadable cached session", item_id=handle.item_id)
            return None

    async def acquire(self, handle: DocumentHandle, client: WorkbookClient) -> Session:
        """Return the current session for handle, creating one on miss.

        Raises:
            SheetbridgeError: Session creation failed after retries, or the breaker is open
        """
        key = handle.cache_key
        if (cached := await self.peek(handle)) is not None and await self.store.expire(key, self.ttl):
            log.debug("session cache hit", item_id=handle.item_id, session_id=cached.session_id)
            return cached.extended(self.clock() + self.ttl)

        session_id = await self.guard.call(
            "createSession", lambda: client.create_session(handle, persist_changes=self.persist_changes),
        )
        now = self.clock()
        session = Session(session_id=session_id, handle=handle, created_at=now, expires_at=now + self.ttl)
        await self.store.set(key, session.model_dump_json(by_alias=True), self.ttl)
        log.info("session created", item_id=handle.item_id, session_id=session_id)
        return session

    async def invalidate(self, handle: DocumentHandle) -> bool:
        """Forget the cached session so the next batch creates a fresh one."""
        removed = await self.store.delete(handle.cache_key)
        if removed:
            log.debug("session cache entry removed", item_id=handle.item_id)
        return removed
