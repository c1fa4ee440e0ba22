import asyncio

from pricewatch.api.errors import ApiError, ApiResult, ErrorKind
from pricewatch.utils.types import ChartData, ChartPoint, PriceSnapshot


def snap(instrument_id="bitcoin", price=100_000.0, at=0):
    return PriceSnapshot(
        instrument_id=instrument_id,
        price=price,
        price_change_24h_pct=1.5,
        market_cap_usd=1e12,
        observed_at_ms=at,
    )


def chart(*values, start=1_000):
    return ChartData(
        prices=[ChartPoint(start + i, v) for i, v in enumerate(values)],
        volumes=[ChartPoint(start + i, 10.0) for i, _ in enumerate(values)],
    )


NETWORK_ERR = ApiError(ErrorKind.NETWORK, "Unable to connect.", True)
TIMEOUT_ERR = ApiError(ErrorKind.TIMEOUT, "Request timed out.", True)
SERVER_ERR = ApiError(ErrorKind.SERVER_ERROR, "Server error.", True)


class FakeSource:
    """
    Scripted PriceDataSource. `price_results` / `chart_results` are consumed in
    order (last one repeats). Set `gate` to an asyncio.Event to hold fetches
    until it is set.
    """
    def __init__(self, price_results=None, chart_results=None, api_key=False):
        self.price_results = list(price_results or [ApiResult.success([snap()])])
        self.chart_results = list(chart_results or [ApiResult.success(chart(1.0, 2.0))])
        self.price_calls = 0
        self.chart_calls = []
        self.gate = None
        self._api_key = api_key

    @staticmethod
    def _pick(results, n):
        return results[min(n, len(results) - 1)]

    @staticmethod
    def _result(r):
        # scripted exceptions stand in for a source that crashes
        if isinstance(r, BaseException):
            raise r
        return r

    async def fetch_prices(self):
        n = self.price_calls
        self.price_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self._result(self._pick(self.price_results, n))

    async def fetch_single_price(self, instrument_id):
        res = await self.fetch_prices()
        if not res.ok:
            return res
        for s in res.data:
            if s.instrument_id == instrument_id:
                return ApiResult.success(s)
        return ApiResult.failure(ApiError(ErrorKind.NOT_FOUND, "not found", False))

    async def fetch_chart_series(self, instrument_id, timeframe):
        n = len(self.chart_calls)
        self.chart_calls.append((instrument_id, timeframe))
        if self.gate is not None:
            await self.gate.wait()
        return self._result(self._pick(self.chart_results, n))

    def has_api_key(self):
        return self._api_key
