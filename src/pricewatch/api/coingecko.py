from __future__ import annotations

import math
from numbers import Real
from typing import Any, Callable, Iterable, Optional

import numpy as np
import structlog

from pricewatch.api.errors import ApiError, ApiResult, ErrorKind, not_found, parse_error
from pricewatch.api.http import FetchClient, RequestOptions
from pricewatch.config import COINGECKO_BASE_URL
from pricewatch.instruments import instrument_ids
from pricewatch.utils.time import now_ms
from pricewatch.utils.types import (
    ONE_HOUR_MS,
    ChartData,
    ChartPoint,
    ChartSeries,
    PriceSnapshot,
    Timeframe,
)

log = structlog.get_logger("coingecko")


def _as_float(v: Any) -> Optional[float]:
    """float(v) for real numbers; None for bools, non-numbers and ints too large for a float."""
    if not isinstance(v, Real) or isinstance(v, bool):
        return None
    try:
        return float(v)
    except OverflowError:
        return None


def is_valid_price(v: Any) -> bool:
    """Finite, positive number."""
    f = _as_float(v)
    return f is not None and math.isfinite(f) and f > 0


def _finite_or_zero(v: Any) -> float:
    f = _as_float(v)
    return f if f is not None and math.isfinite(f) else 0.0


def parse_price_entry(instrument_id: str, info: Any, observed_at_ms: int) -> Optional[PriceSnapshot]:
    """
    Normalize one `/simple/price` entry; None when the price is unusable.
    Missing change/market cap default to 0.
    """
    if not isinstance(info, dict):
        return None
    price = info.get("usd")
    if not is_valid_price(price):
        return None
    return PriceSnapshot(
        instrument_id=instrument_id,
        price=float(price),
        price_change_24h_pct=_finite_or_zero(info.get("usd_24h_change")),
        market_cap_usd=max(0.0, _finite_or_zero(info.get("usd_market_cap"))),
        observed_at_ms=observed_at_ms,
    )


def sanitize_series(
    raw: Any,
    *,
    allow_zero: bool,
    min_timestamp_ms: Optional[int] = None,
) -> ChartSeries:
    """
    [[ts, value], ...] -> ascending ChartSeries.

    Drops points whose timestamp or value is non-numeric / non-finite, values
    <= 0 (prices) or < 0 (volumes, allow_zero=True), and points older than
    min_timestamp_ms when given. Sort is stable; duplicates are kept.
    """
    if not isinstance(raw, list):
        return []
    pairs: list[tuple[float, float]] = []
    for p in raw:
        if not isinstance(p, (list, tuple)) or len(p) < 2:
            continue
        ts, v = _as_float(p[0]), _as_float(p[1])
        if ts is not None and v is not None:
            pairs.append((ts, v))
    if not pairs:
        return []

    arr = np.asarray(pairs, dtype=np.float64)
    ts, vals = arr[:, 0], arr[:, 1]
    mask = np.isfinite(ts) & np.isfinite(vals)
    mask &= (vals >= 0) if allow_zero else (vals > 0)
    if min_timestamp_ms is not None:
        mask &= ts >= min_timestamp_ms

    ts, vals = ts[mask], vals[mask]
    order = np.argsort(ts, kind="stable")
    return [ChartPoint(int(t), float(v)) for t, v in zip(ts[order], vals[order])]


class CoinGeckoSource:
    """
    CoinGecko-backed price and chart data. Never retries on its own (the
    FetchClient does) and never raises for fetch outcomes: every call returns
    an ApiResult.
    """

    def __init__(
        self,
        client: FetchClient,
        *,
        base_url: str = COINGECKO_BASE_URL,
        ids: Optional[Iterable[str]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.ids = list(ids) if ids is not None else instrument_ids()
        self._clock = clock

    def has_api_key(self) -> bool:
        return self.client.has_api_key()

    def _price_options(self, ids: list[str]) -> RequestOptions:
        return RequestOptions(params={
            "ids": ",".join(ids),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
            "include_market_cap": "true",
        })

    async def fetch_prices(self) -> ApiResult[list[PriceSnapshot]]:
        """One batched request for every tracked id; invalid entries are dropped."""
        try:
            resp = await self.client.fetch_with_retry(
                f"{self.base_url}/simple/price", self._price_options(self.ids)
            )
            data = resp.json()
        except ApiError as e:
            return ApiResult.failure(e)

        if not isinstance(data, dict) or not data:
            return ApiResult.failure(parse_error("Empty or invalid price data received."))

        observed = self._clock()
        prices: list[PriceSnapshot] = []
        for instrument_id, info in data.items():
            snap = parse_price_entry(str(instrument_id), info, observed)
            if snap is not None:
                prices.append(snap)

        if not prices:
            return ApiResult.failure(parse_error("No valid price data received."))
        if len(prices) < len(data):
            log.debug("price_entries_dropped", dropped=len(data) - len(prices))
        return ApiResult.success(prices)

    async def fetch_single_price(self, instrument_id: str) -> ApiResult[PriceSnapshot]:
        try:
            resp = await self.client.fetch_with_retry(
                f"{self.base_url}/simple/price", self._price_options([instrument_id])
            )
            data = resp.json()
        except ApiError as e:
            return ApiResult.failure(e)

        if not isinstance(data, dict) or not data.get(instrument_id):
            return ApiResult.failure(not_found(f'Crypto "{instrument_id}" not found.'))

        snap = parse_price_entry(instrument_id, data[instrument_id], self._clock())
        if snap is None:
            return ApiResult.failure(parse_error("Invalid price data received."))
        return ApiResult.success(snap)

    async def fetch_chart_series(self, instrument_id: str, timeframe: Timeframe) -> ApiResult[ChartData]:
        """
        Historical prices + volumes. 1h is fetched as 1 day and cut to the last
        hour. An empty sanitized price series is a PARSE_ERROR.
        """
        tf = Timeframe(timeframe)
        url = f"{self.base_url}/coins/{instrument_id}/market_chart"
        opts = RequestOptions(params={"vs_currency": "usd", "days": tf.days_param})
        try:
            resp = await self.client.fetch_with_retry(url, opts)
            data = resp.json()
        except ApiError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                return ApiResult.failure(not_found(f'Crypto "{instrument_id}" not found.'))
            return ApiResult.failure(e)

        if not isinstance(data, dict) or not isinstance(data.get("prices"), list):
            return ApiResult.failure(parse_error("Invalid chart data format."))

        cutoff = self._clock() - ONE_HOUR_MS if tf is Timeframe.H1 else None
        prices = sanitize_series(data["prices"], allow_zero=False, min_timestamp_ms=cutoff)
        volumes = sanitize_series(data.get("total_volumes") or [], allow_zero=True, min_timestamp_ms=cutoff)

        if not prices:
            return ApiResult.failure(parse_error("No valid chart data available."))
        return ApiResult.success(ChartData(prices=prices, volumes=volumes))
