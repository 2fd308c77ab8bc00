"""In-process cache of carrier quotes.

Reads never take a lock and re-check ``expires_at`` on every hit, so an
expired quote is never returned even if no sweep has run. Writes only ever
replace the entry for their own key. Concurrent misses on one key may both
call the carrier; the last write wins.
"""

import asyncio
import contextlib
import threading
from datetime import datetime

import structlog

from storefront.shared.clock import Clock, utcnow
from storefront.shipping.quote import ShippingQuote

logger = structlog.get_logger(__name__)

# (carrier identity, from_zip, to_zip, weight bucket)
CacheKey = tuple[str, str, str, int]


class RateCache:
    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self._entries: dict[CacheKey, ShippingQuote] = {}
        self._write_lock = threading.Lock()

    def get(self, key: CacheKey, now: datetime | None = None) -> ShippingQuote | None:
        quote = self._entries.get(key)
        if quote is None:
            return None
        if quote.is_expired(now or self.clock()):
            return None
        return quote

    def put(self, key: CacheKey, quote: ShippingQuote) -> None:
        with self._write_lock:
            self._entries[key] = quote

    def sweep(self, now: datetime | None = None) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = now or self.clock()
        removed = 0
        with self._write_lock:
            for key in [key for key, quote in self._entries.items() if quote.is_expired(now)]:
                del self._entries[key]
                removed += 1
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RateCacheSweeper:
    """Periodically reclaims expired cache entries on the running event loop."""

    def __init__(self, cache: RateCache, interval: float = 60.0):
        self.cache = cache
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            removed = self.cache.sweep()
            if removed:
                logger.debug("Swept expired shipping quotes", removed=removed, remaining=len(self.cache))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
