from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from src.shared.logging import get_logger
from src.tenancy.domain.entities.connection import CachedConnectionEntry

logger = get_logger(__name__)

Builder = Callable[[], Awaitable[CachedConnectionEntry]]
Discard = Callable[[CachedConnectionEntry], Awaitable[None]]


class ConnectionCache:
    """
    In-process map store_id -> live tenant handle, owned by one ConnectionManager.

    Single-flight: concurrent first resolutions of the same store share one
    in-flight build. The entry is inserted only when the build returns (after
    its probe passed); a failing build propagates to every waiter and leaves
    nothing behind. No TTL, no size bound: entries live until evicted.

    Eviction also invalidates a build still in flight for that key: its handle
    is discarded instead of cached, and its waiters start a fresh resolution.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CachedConnectionEntry] = {}
        self._inflight: Dict[str, "asyncio.Future[Optional[CachedConnectionEntry]]"] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, store_id: object) -> bool:
        return store_id in self._entries

    def get(self, store_id: str) -> Optional[CachedConnectionEntry]:
        return self._entries.get(store_id)

    def is_building(self, store_id: str) -> bool:
        return store_id in self._inflight

    def _token(self, store_id: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(store_id, 0)

    async def get_or_create(
        self, store_id: str, build: Builder, discard: Optional[Discard] = None
    ) -> CachedConnectionEntry:
        while True:
            entry = self._entries.get(store_id)
            if entry is not None:
                return entry

            fut = self._inflight.get(store_id)
            if fut is None:
                fut = asyncio.ensure_future(self._run_build(store_id, build, discard))
                self._inflight[store_id] = fut
            else:
                logger.debug("Joining in-flight connection build", store_id=store_id)
            # shield: one cancelled waiter must not cancel the build for the others
            entry = await asyncio.shield(fut)
            if entry is not None:
                return entry
            logger.info("In-flight build was evicted, resolving again", store_id=store_id)

    async def _run_build(
        self, store_id: str, build: Builder, discard: Optional[Discard]
    ) -> Optional[CachedConnectionEntry]:
        token = self._token(store_id)
        task = asyncio.current_task()
        try:
            entry = await build()
        finally:
            if self._inflight.get(store_id) is task:
                del self._inflight[store_id]

        if self._token(store_id) != token:
            if discard is not None:
                await discard(entry)
            return None
        self._entries[store_id] = entry
        return entry

    def pop(self, store_id: str) -> Optional[CachedConnectionEntry]:
        self._generations[store_id] = self._generations.get(store_id, 0) + 1
        self._inflight.pop(store_id, None)
        return self._entries.pop(store_id, None)

    def pop_all(self) -> List[Tuple[str, CachedConnectionEntry]]:
        self._epoch += 1
        self._inflight.clear()
        items = list(self._entries.items())
        self._entries.clear()
        return items
