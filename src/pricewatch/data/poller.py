from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from pricewatch.config import PRICE_POLL_INTERVAL_MS
from pricewatch.data.price_cache import PriceCache
from pricewatch.utils.time import ms_to_s

log = structlog.get_logger("poller")

Sleep = Callable[[float], Awaitable[None]]


class PricePoller:
    """
    Drives PriceCache.fetch_all_prices(): once immediately on start, then every
    interval_ms. The timer task belongs to this instance; start/stop are
    idempotent and never leave a second timer behind.

    A tick that lands while the previous fetch is still running is skipped
    rather than stacking a second request.
    """

    def __init__(
        self,
        cache: PriceCache,
        *,
        interval_ms: int = PRICE_POLL_INTERVAL_MS,
        sleep: Sleep = asyncio.sleep,
    ):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be >= 1")
        self.cache = cache
        self.interval_ms = interval_ms
        self._sleep = sleep
        self.is_polling: bool = False
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

    def start_polling(self) -> None:
        """Requires a running event loop."""
        if self.is_polling:
            return
        self.is_polling = True
        self._timer = asyncio.create_task(self._loop(), name="price-poller")
        log.info("polling_started", interval_ms=self.interval_ms)

    def stop_polling(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.is_polling:
            log.info("polling_stopped")
        self.is_polling = False

    async def close(self) -> None:
        """Stop the timer and wait for it (and any in-flight fetch) to finish."""
        timer = self._timer
        self.stop_polling()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
            try:
                await self._inflight
            except asyncio.CancelledError:
                pass

    async def _loop(self) -> None:
        self._tick()
        while True:
            await self._sleep(ms_to_s(self.interval_ms))
            self._tick()

    def _tick(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            log.info("poll_tick_skipped_inflight")
            return
        self._inflight = asyncio.create_task(self.cache.fetch_all_prices(), name="price-poll-fetch")
        self._inflight.add_done_callback(self._on_fetch_done)

    @staticmethod
    def _on_fetch_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("poll_fetch_crashed", err_type=type(exc).__name__, err=str(exc))
