from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from pricewatch.api.errors import ApiError
from pricewatch.config import CHART_CACHE_MAX_ENTRIES, CHART_CACHE_TTL_MS
from pricewatch.data.repository import CryptoRepository
from pricewatch.storage.blob import CHARTS_KEY, BlobStore, load_json, save_json
from pricewatch.utils.time import age_ms, now_ms
from pricewatch.utils.types import ChartSeries, Timeframe, series_from_list, series_to_list

log = structlog.get_logger("chart_cache")


def cache_key(instrument_id: str, timeframe: Timeframe | str) -> str:
    return f"{instrument_id}-{Timeframe(timeframe).value}"


@dataclass(slots=True)
class ChartCacheEntry:
    prices: ChartSeries
    volumes: ChartSeries
    timeframe: Timeframe
    fetched_at_ms: int

    def to_dict(self) -> dict:
        return {
            "prices": series_to_list(self.prices),
            "volumes": series_to_list(self.volumes),
            "timeframe": self.timeframe.value,
            "fetched_at_ms": self.fetched_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ChartCacheEntry":
        return cls(
            prices=series_from_list(d["prices"]),
            volumes=series_from_list(d.get("volumes") or []),
            timeframe=Timeframe(d["timeframe"]),
            fetched_at_ms=int(d["fetched_at_ms"]),
        )


@dataclass(slots=True)
class ChartLoadingState:
    is_loading: bool = False
    error: Optional[ApiError] = None


@dataclass(slots=True)
class ChartResult:
    """
    What a chart view gets back. Non-empty series together with an error means
    "showing cached data, refresh failed".
    """
    prices: ChartSeries = field(default_factory=list)
    volumes: ChartSeries = field(default_factory=list)
    error: Optional[ApiError] = None


class ChartCache:
    """
    Per (instrument, timeframe) chart cache.

    - fresh hit (age < ttl_ms, same timeframe): no network, no state change
    - miss/stale: fetch through the repository; on failure keep the old entry
      and return it (or empty series) with the error
    - after each insert, evict oldest fetched_at_ms until size == max_entries
    Concurrent requests for the same key share one fetch.
    """

    def __init__(
        self,
        repository: CryptoRepository,
        *,
        store: Optional[BlobStore] = None,
        clock: Callable[[], int] = now_ms,
        ttl_ms: int = CHART_CACHE_TTL_MS,
        max_entries: int = CHART_CACHE_MAX_ENTRIES,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.repository = repository
        self.store = store
        self._clock = clock
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries

        self.entries: dict[str, ChartCacheEntry] = {}
        self.loading_states: dict[str, ChartLoadingState] = {}
        self.has_hydrated: bool = False
        self._inflight: dict[str, asyncio.Task] = {}

    # ---------------- reads ----------------

    def is_fresh(self, entry: ChartCacheEntry, timeframe: Timeframe) -> bool:
        now = self._clock()
        # an entry stamped in the future (clock skew across runs) is not trusted
        if entry.timeframe != timeframe or entry.fetched_at_ms > now:
            return False
        return age_ms(entry.fetched_at_ms, now) < self.ttl_ms

    def loading_state(self, instrument_id: str, timeframe: Timeframe | str) -> ChartLoadingState:
        return self.loading_states.get(cache_key(instrument_id, timeframe), ChartLoadingState())

    async def get_chart_data(self, instrument_id: str, timeframe: Timeframe | str) -> ChartResult:
        tf = Timeframe(timeframe)
        key = cache_key(instrument_id, tf)

        cached = self.entries.get(key)
        if cached is not None and self.is_fresh(cached, tf):
            log.debug("chart_cache_hit", key=key)
            return ChartResult(prices=list(cached.prices), volumes=list(cached.volumes))

        task = self._inflight.get(key)
        if task is None:
            log.debug("chart_cache_miss", key=key, stale=cached is not None)
            task = asyncio.create_task(self._fetch(instrument_id, tf, key), name=f"chart-fetch-{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        # a caller going away must not cancel the shared fetch
        return await asyncio.shield(task)

    # ---------------- fetch + insert ----------------

    async def _fetch(self, instrument_id: str, tf: Timeframe, key: str) -> ChartResult:
        self.loading_states[key] = ChartLoadingState(is_loading=True)

        try:
            result = await self.repository.get_chart_data(instrument_id, tf)
        except BaseException:
            self.loading_states[key] = ChartLoadingState()
            raise

        if result.ok and result.data is not None:
            entry = ChartCacheEntry(
                prices=result.data.prices,
                volumes=result.data.volumes,
                timeframe=tf,
                fetched_at_ms=self._clock(),
            )
            self._insert(key, entry)
            self.loading_states[key] = ChartLoadingState()
            await self._persist()
            return ChartResult(prices=list(entry.prices), volumes=list(entry.volumes))

        self.loading_states[key] = ChartLoadingState(is_loading=False, error=result.error)
        log.warning(
            "chart_fetch_failed",
            key=key,
            kind=result.error.kind.value if result.error else None,
            has_cached=key in self.entries,
        )
        fallback = self.entries.get(key)
        if fallback is not None:
            return ChartResult(prices=list(fallback.prices), volumes=list(fallback.volumes), error=result.error)
        return ChartResult(error=result.error)

    def _insert(self, key: str, entry: ChartCacheEntry) -> None:
        entries = dict(self.entries)
        entries[key] = entry
        while len(entries) > self.max_entries:
            oldest = min(entries, key=lambda k: entries[k].fetched_at_ms)
            del entries[oldest]
            log.debug("chart_cache_evicted", key=oldest)
        # swap in one step
        self.entries = entries

    def clear_chart_cache(self) -> None:
        self.entries = {}
        self.loading_states = {}

    async def clear(self) -> None:
        """clear_chart_cache() and drop the persisted blob contents."""
        self.clear_chart_cache()
        await self._persist()

    # ---------------- persistence ----------------

    async def hydrate(self) -> None:
        blob = await load_json(self.store, CHARTS_KEY)
        if isinstance(blob, dict):
            entries: dict[str, ChartCacheEntry] = {}
            for key, raw in blob.items():
                try:
                    entries[key] = ChartCacheEntry.from_dict(raw)
                except (KeyError, TypeError, ValueError) as e:
                    log.warning("chart_entry_hydrate_failed", key=key, err=str(e))
            self.entries = entries
        self.has_hydrated = True

    async def _persist(self) -> None:
        await save_json(self.store, CHARTS_KEY, {k: e.to_dict() for k, e in self.entries.items()})
