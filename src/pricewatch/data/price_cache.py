from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Optional, Union

import structlog

from pricewatch.api.errors import ApiError, ApiResult, ErrorKind
from pricewatch.config import STALE_THRESHOLD_MS
from pricewatch.data.repository import CryptoRepository
from pricewatch.storage.blob import PRICES_KEY, BlobStore, load_json, save_json
from pricewatch.utils.time import is_older_than, now_ms
from pricewatch.utils.types import ConnectionStatus, PriceSnapshot

log = structlog.get_logger("price_cache")

PriceMap = dict[str, PriceSnapshot]
PriceListener = Callable[[PriceMap], Union[None, Awaitable[None]]]

OFFLINE_AFTER_FAILURES = 2


def is_stale(last_fetch_at_ms: Optional[int], now: int, threshold_ms: int = STALE_THRESHOLD_MS) -> bool:
    """No data yet is not stale; stale means the last success is too old."""
    if last_fetch_at_ms is None:
        return False
    return is_older_than(last_fetch_at_ms, threshold_ms, now)


def connection_status(
    *,
    is_loading: bool,
    last_fetch_at_ms: Optional[int],
    consecutive_failures: int,
    error: Optional[ApiError],
) -> ConnectionStatus:
    """Connectivity inferred from fetch outcomes, not checked separately."""
    if (
        consecutive_failures >= OFFLINE_AFTER_FAILURES
        and error is not None
        and error.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)
    ):
        return "offline"
    if is_loading and last_fetch_at_ms is None:
        return "checking"
    return "online"


class PriceCache:
    """
    Authoritative in-memory price snapshot.

    - fetch_all_prices(): background/poll fetch; shows loading only while no
      failure streak is in progress.
    - refresh_prices(): user-initiated; always shows loading and resets the
      failure streak first.
    - A successful fetch replaces the whole map; a failed one leaves it as is.
    Listeners run (awaited, in order) after every successful replacement.
    """

    def __init__(
        self,
        repository: CryptoRepository,
        *,
        store: Optional[BlobStore] = None,
        clock: Callable[[], int] = now_ms,
        stale_threshold_ms: int = STALE_THRESHOLD_MS,
    ):
        self.repository = repository
        self.store = store
        self._clock = clock
        self.stale_threshold_ms = stale_threshold_ms

        self.prices: PriceMap = {}
        self.is_loading: bool = False
        self.error: Optional[ApiError] = None
        self.last_fetch_at_ms: Optional[int] = None
        self.consecutive_failures: int = 0
        self.has_hydrated: bool = False

        self._listeners: list[PriceListener] = []

    # ---------------- listeners ----------------

    def add_listener(self, fn: PriceListener) -> None:
        self._listeners.append(fn)

    def remove_listener(self, fn: PriceListener) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    async def _notify(self) -> None:
        snapshot = dict(self.prices)
        for fn in list(self._listeners):
            try:
                res = fn(snapshot)
                if inspect.isawaitable(res):
                    await res
            except Exception as e:
                log.warning("price_listener_failed", listener=getattr(fn, "__name__", repr(fn)), err=str(e))

    # ---------------- fetching ----------------

    async def fetch_all_prices(self) -> ApiResult[list[PriceSnapshot]]:
        # repeated background failures must not flicker the spinner
        if self.consecutive_failures == 0:
            self.is_loading = True

        result = await self._load()

        if result.ok:
            self._apply(result.data or [])
            self.error = None
            self.consecutive_failures = 0
            log.info("prices_updated", count=len(self.prices))
            await self._persist()
            await self._notify()
        else:
            self.is_loading = False
            self.error = result.error
            self.consecutive_failures += 1
            log.warning(
                "prices_fetch_failed",
                kind=result.error.kind.value if result.error else None,
                consecutive_failures=self.consecutive_failures,
            )
        return result

    async def refresh_prices(self) -> ApiResult[list[PriceSnapshot]]:
        self.is_loading = True
        self.error = None
        self.consecutive_failures = 0

        result = await self._load()

        if result.ok:
            self._apply(result.data or [])
            log.info("prices_refreshed", count=len(self.prices))
            await self._persist()
            await self._notify()
        else:
            self.is_loading = False
            self.error = result.error
            log.warning("prices_refresh_failed", kind=result.error.kind.value if result.error else None)
        return result

    async def _load(self) -> ApiResult[list[PriceSnapshot]]:
        try:
            return await self.repository.get_prices()
        except BaseException:
            # crashed or cancelled source: never leave the spinner on
            self.is_loading = False
            raise

    def _apply(self, snapshots: list[PriceSnapshot]) -> None:
        # single assignment: readers never see a half-built map
        self.prices = {p.instrument_id: p for p in snapshots}
        self.is_loading = False
        self.last_fetch_at_ms = self._clock()

    def clear_error(self) -> None:
        self.error = None

    # ---------------- derived views ----------------

    def get_price(self, instrument_id: str) -> Optional[PriceSnapshot]:
        return self.prices.get(instrument_id)

    def prices_list(self) -> list[PriceSnapshot]:
        return list(self.prices.values())

    def is_stale(self) -> bool:
        return is_stale(self.last_fetch_at_ms, self._clock(), self.stale_threshold_ms)

    def is_initial_loading(self) -> bool:
        return self.is_loading and self.last_fetch_at_ms is None

    def connection_status(self) -> ConnectionStatus:
        return connection_status(
            is_loading=self.is_loading,
            last_fetch_at_ms=self.last_fetch_at_ms,
            consecutive_failures=self.consecutive_failures,
            error=self.error,
        )

    def is_online(self) -> bool:
        return self.connection_status() == "online"

    # ---------------- persistence ----------------

    async def hydrate(self) -> None:
        """Restore prices + last fetch time; loading/error state is never persisted."""
        blob = await load_json(self.store, PRICES_KEY)
        if isinstance(blob, dict):
            try:
                prices = {
                    k: PriceSnapshot.from_dict(v) for k, v in (blob.get("prices") or {}).items()
                }
                last = blob.get("last_fetch_at_ms")
                self.prices = prices
                self.last_fetch_at_ms = int(last) if last is not None else None
            except (KeyError, TypeError, ValueError) as e:
                log.warning("prices_hydrate_failed", err=str(e))
        self.has_hydrated = True

    async def _persist(self) -> None:
        await save_json(self.store, PRICES_KEY, {
            "prices": {k: v.to_dict() for k, v in self.prices.items()},
            "last_fetch_at_ms": self.last_fetch_at_ms,
        })
