from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from pricewatch.alerts.formatting import format_raw_alert, format_triggered_alert
from pricewatch.alerts.state import TriggeredAlert
from pricewatch.api.errors import ApiError
from pricewatch.api.http import FetchClient, RequestOptions
from pricewatch.notify.queue import NotifyQueue

log = structlog.get_logger("telegram")

# --------- token bucket ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1, clock: Callable[[], float] | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self._clock = clock or (lambda: asyncio.get_running_loop().time())
        self._sleep = sleep
        self.updated: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = self._clock()
            if self.updated is not None:
                self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                await self._sleep((1.0 - self.tokens) / self.rate)
                self.updated = self._clock()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & worker ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    api_base: str = "https://api.telegram.org"
    parse_mode: Optional[str] = None  # "HTML" | "MarkdownV2" | None
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3
    tz_name: str = "UTC"

def config_from_env() -> TelegramConfig:
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")
    if not token or not chat_id:
        raise RuntimeError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set")
    return TelegramConfig(
        bot_token=token,
        chat_id=chat_id,
        parse_mode=os.getenv("TELEGRAM_PARSE_MODE") or None,
        tz_name=os.getenv("DISPLAY_TZ", "UTC"),
    )

class TelegramNotifier:
    """
    Drains a NotifyQueue and posts each triggered alert to a Telegram chat.
    Retries/backoff come from the FetchClient; a message that still fails is
    logged and dropped so one bad alert cannot stall the queue.
    """
    def __init__(self, cfg: TelegramConfig, client: FetchClient, queue: NotifyQueue,
                 format_fn: Optional[Callable[[TriggeredAlert], str]] = None):
        self.cfg = cfg
        self.client = client
        self.q = queue
        self._rl = RateLimiter(rate_per_sec=cfg.per_chat_rate_per_sec, burst=cfg.per_chat_burst)
        self._format_fn = format_fn or (lambda t: format_triggered_alert(t, cfg.tz_name))
        self._task: Optional[asyncio.Task] = None
        self.sent: int = 0
        self.failed: int = 0

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name="telegram-notifier")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            t = await self.q.get()
            await self._rl.acquire()
            await self.send(t)

    async def send(self, t: TriggeredAlert) -> bool:
        try:
            text = self._format_fn(t)
        except Exception as e:
            # e.g. unknown DISPLAY_TZ; the alert still goes out
            log.warning("telegram_format_failed", alert_id=t.id, err=str(e))
            text = format_raw_alert(t)
        return await self.send_text(text)

    async def send_text(self, text: str) -> bool:
        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload = {"chat_id": self.cfg.chat_id, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode
        try:
            await self.client.fetch_with_retry(url, RequestOptions(method="POST", data=payload, log_name="telegram:sendMessage"))
        except ApiError as e:
            self.failed += 1
            log.error("telegram_send_failed", kind=e.kind.value, err=e.message)
            return False
        self.sent += 1
        return True
