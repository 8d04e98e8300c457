"""Idempotent replay of completed batches.

A batch submitted with an idempotency key runs at most once per retention
window. Its result is stored after execution, partial errors included, and
later submissions with the same key get the stored result back without any
remote call.

In-flight deduplication: while the first submission of a key is still
running, later submissions of that key in the same process wait for it and
share its outcome instead of executing again. A batch-level failure is
shared the same way and leaves the key unrecorded, so a later resubmission
runs fresh.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from pydantic import ValidationError as PydanticValidationError

from sheetbridge.runtime.observability import get_logger

from .models import IdempotencyRecord, OperationResult

if TYPE_CHECKING:
    from sheetbridge.io.store import KeyValueStore

log = get_logger("sheetbridge.idempotency")


def _consume(fut: asyncio.Future[OperationResult]) -> None:
    """Mark a settled future's exception as retrieved when nobody joined it."""
    if not fut.cancelled():
        fut.exception()


@dataclass(slots=True)
class IdempotencyStore:
    """Idempotency key → stored batch result.

    Args:
        store: Backing key-value store
        ttl: Retention window in seconds (default: 24h)
        prefix: Key prefix for stored records
        clock: Wall-clock time source in epoch seconds

    Example:
        >>> idem = IdempotencyStore(MemoryStore())
        >>> result, replayed = await idem.run_once("k1", lambda: execute(batch))
        >>> result, replayed = await idem.run_once("k1", lambda: execute(batch))
        >>> replayed
        True
    """

    store: KeyValueStore
    ttl: float = 86400.0
    prefix: str = "idem:"
    clock: Callable[[], float] = field(default=time.time, repr=False)
    _inflight: dict[str, asyncio.Future[OperationResult]] = field(default_factory=dict, init=False, repr=False)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def has(self, key: str) -> bool:
        return await self.store.exists(self._key(key))

    async def get(self, key: str) -> OperationResult | None:
        """Stored result for key, or None. Expiry is passive: an expired key simply misses."""
        if (raw := await self.store.get(self._key(key))) is None:
            return None
        try:
            return IdempotencyRecord.model_validate_json(raw).result
        except PydanticValidationError:
            log.warning("discarding unreadable idempotency record", key=key)
            return None

    async def put(self, key: str, result: OperationResult) -> IdempotencyRecord:
        record = IdempotencyRecord(key=key, result=result, stored_at=self.clock())
        await self.store.set(self._key(key), record.model_dump_json(by_alias=True), self.ttl)
        return record

    def pending(self, key: str) -> asyncio.Future[OperationResult] | None:
        """Future of a submission currently executing under key, if any."""
        return self._inflight.get(key)

    async def run_once(
        self, key: str, work: Callable[[], Awaitable[OperationResult]],
    ) -> tuple[OperationResult, bool]:
        """Replay, join or execute the batch identified by key.

        Returns:
            (result, replayed) where replayed is True when no execution happened in this call
        """
        if (stored := await self.get(key)) is not None:
            log.info("idempotent replay", idempotency_key=key)
            return stored, True
        if (fut := self._inflight.get(key)) is not None:
            log.info("joining in-flight submission", idempotency_key=key)
            return await asyncio.shield(fut), True

        fut = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_consume)
        self._inflight[key] = fut
        try:
            result = await work()
        except BaseException as e:
            self._inflight.pop(key, None)
            if isinstance(e, asyncio.CancelledError):
                fut.cancel()
            else:
                fut.set_exception(e)
            raise
        # Waiters get the result even if the write below fails or is cancelled.
        fut.set_result(result)
        try:
            await self.put(key, result)
        except Exception as e:  # noqa: BLE001 - edits are applied; a lost record only costs replay
            log.error("idempotency record not stored", idempotency_key=key, error=str(e))
        finally:
            self._inflight.pop(key, None)
        return result, False
