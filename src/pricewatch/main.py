# src/pricewatch/main.py
import asyncio
from typing import Optional

import aiohttp
import structlog
from dotenv import load_dotenv

from pricewatch.alerts.evaluator import AlertEngine
from pricewatch.alerts.formatting import format_triggered_alert
from pricewatch.alerts.notifiers import ConsoleNotifier
from pricewatch.api.coingecko import CoinGeckoSource
from pricewatch.api.http import FetchClient, FetchConfig
from pricewatch.config import AppConfig, config_from_env
from pricewatch.data.chart_cache import ChartCache
from pricewatch.data.poller import PricePoller
from pricewatch.data.price_cache import PriceCache, PriceMap
from pricewatch.data.repository import CryptoRepository
from pricewatch.data.settings import SettingsStore
from pricewatch.instruments import select_instruments
from pricewatch.logging_setup import configure_logging
from pricewatch.notify.queue import NotifyQueue
from pricewatch.notify.telegram import TelegramNotifier
from pricewatch.notify.telegram import config_from_env as telegram_config_from_env
from pricewatch.storage.blob import BlobStore, MemoryBlobStore, RedisBlobStore

log = structlog.get_logger()


class App:
    """
    Wires the fetch layer, caches, alert engine and notifiers around one
    aiohttp session and one blob store.

    Price flow: poller → PriceCache.fetch_all_prices → listener →
    AlertEngine.evaluate → console (+ Telegram queue when configured).
    """

    def __init__(self, cfg: AppConfig, session: aiohttp.ClientSession, store: BlobStore):
        self.cfg = cfg
        self.session = session
        self.store = store

        self.client = FetchClient(session, FetchConfig(
            api_key=cfg.api_key,
            timeout_ms=cfg.request_timeout_ms,
            max_retries=cfg.max_retries,
            initial_delay_ms=cfg.initial_retry_delay_ms,
        ))
        self.source = CoinGeckoSource(
            self.client, base_url=cfg.base_url, ids=select_instruments(cfg.instrument_ids)
        )
        self.repository = CryptoRepository(self.source)

        self.prices = PriceCache(self.repository, store=store, stale_threshold_ms=cfg.stale_threshold_ms)
        self.charts = ChartCache(
            self.repository,
            store=store,
            ttl_ms=cfg.chart_cache_ttl_ms,
            max_entries=cfg.chart_cache_max_entries,
        )
        self.alerts = AlertEngine(store=store)
        self.settings = SettingsStore(store)
        self.poller = PricePoller(self.prices, interval_ms=cfg.poll_interval_ms)

        self.console = ConsoleNotifier(format_fn=lambda t: format_triggered_alert(t, cfg.display_tz))
        self.notify_q: Optional[NotifyQueue] = None
        self.telegram: Optional[TelegramNotifier] = None
        try:
            tg_cfg = telegram_config_from_env()  # raises if env missing
            # separate client: no pricing API key header on Telegram requests
            tg_client = FetchClient(session, FetchConfig(timeout_ms=cfg.request_timeout_ms))
            self.notify_q = NotifyQueue()
            self.telegram = TelegramNotifier(tg_cfg, tg_client, self.notify_q)
            log.info("telegram_enabled")
        except RuntimeError:
            log.info("telegram_disabled_missing_env")

        self.prices.add_listener(self.on_prices)

    async def on_prices(self, prices: PriceMap) -> None:
        for t in await self.alerts.evaluate(prices):
            await self.console.send(t)
            if self.notify_q is not None:
                self.notify_q.try_put(t)  # drop if full

    async def start(self) -> None:
        for component in (self.prices, self.charts, self.alerts, self.settings):
            await component.hydrate()
        log.info(
            "app_hydrated",
            prices=len(self.prices.prices),
            charts=len(self.charts.entries),
            active_alerts=len(self.alerts.active_alerts),
            api_key=self.repository.has_api_key(),
        )
        if self.telegram is not None:
            await self.telegram.start()
        self.poller.start_polling()

    async def stop(self) -> None:
        await self.poller.close()
        if self.telegram is not None:
            await self.telegram.stop()


def make_store(cfg: AppConfig) -> BlobStore:
    if cfg.redis_url:
        return RedisBlobStore(cfg.redis_url)
    return MemoryBlobStore()


async def main() -> None:
    load_dotenv()
    cfg = config_from_env()
    configure_logging(cfg.log_level, cfg.log_json)

    store = make_store(cfg)
    async with aiohttp.ClientSession() as session:
        app = App(cfg, session, store)
        try:
            await app.start()
            await asyncio.Event().wait()  # run until cancelled
        finally:
            await app.stop()
            await store.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
