from __future__ import annotations

from typing import Protocol

from pricewatch.api.errors import ApiResult
from pricewatch.utils.types import ChartData, PriceSnapshot, Timeframe


class PriceDataSource(Protocol):
    """Anything that can serve prices and charts (CoinGeckoSource, test fakes)."""

    async def fetch_prices(self) -> ApiResult[list[PriceSnapshot]]: ...

    async def fetch_single_price(self, instrument_id: str) -> ApiResult[PriceSnapshot]: ...

    async def fetch_chart_series(self, instrument_id: str, timeframe: Timeframe) -> ApiResult[ChartData]: ...

    def has_api_key(self) -> bool: ...


class CryptoRepository:
    """Thin seam between the caches and a swappable data source."""

    def __init__(self, source: PriceDataSource):
        self._source = source

    async def get_prices(self) -> ApiResult[list[PriceSnapshot]]:
        return await self._source.fetch_prices()

    async def get_price(self, instrument_id: str) -> ApiResult[PriceSnapshot]:
        return await self._source.fetch_single_price(instrument_id)

    async def get_chart_data(self, instrument_id: str, timeframe: Timeframe) -> ApiResult[ChartData]:
        return await self._source.fetch_chart_series(instrument_id, timeframe)

    def has_api_key(self) -> bool:
        return self._source.has_api_key()

    def set_data_source(self, source: PriceDataSource) -> None:
        self._source = source
