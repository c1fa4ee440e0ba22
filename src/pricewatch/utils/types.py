from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

# ---- reference data ----

@dataclass(frozen=True, slots=True)
class Instrument:
    id: str          # remote API id, e.g. "bitcoin"
    symbol: str      # ticker, e.g. "BTC"
    name: str
    color: str       # UI color hex

# ---- price snapshots ----

@dataclass(slots=True)
class PriceSnapshot:
    instrument_id: str
    price: float                     # > 0, finite
    price_change_24h_pct: float
    market_cap_usd: float            # >= 0
    observed_at_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument_id": self.instrument_id,
            "price": self.price,
            "price_change_24h_pct": self.price_change_24h_pct,
            "market_cap_usd": self.market_cap_usd,
            "observed_at_ms": self.observed_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "PriceSnapshot":
        return cls(
            instrument_id=str(d["instrument_id"]),
            price=float(d["price"]),
            price_change_24h_pct=float(d.get("price_change_24h_pct", 0.0)),
            market_cap_usd=float(d.get("market_cap_usd", 0.0)),
            observed_at_ms=int(d["observed_at_ms"]),
        )

# ---- chart series ----

class Timeframe(str, Enum):
    H1 = "1h"
    H24 = "24h"
    D7 = "7d"
    D30 = "30d"
    D90 = "90d"
    Y1 = "1y"

    @property
    def days_param(self) -> str:
        """Remote `days=` value; 1h is fetched as 1 day and filtered locally."""
        return _DAYS[self]

_DAYS = {
    Timeframe.H1: "1",
    Timeframe.H24: "1",
    Timeframe.D7: "7",
    Timeframe.D30: "30",
    Timeframe.D90: "90",
    Timeframe.Y1: "365",
}

ONE_HOUR_MS = 60 * 60 * 1000

@dataclass(frozen=True, slots=True)
class ChartPoint:
    timestamp_ms: int
    value: float

ChartSeries = list[ChartPoint]

@dataclass(slots=True)
class ChartData:
    prices: ChartSeries = field(default_factory=list)
    volumes: ChartSeries = field(default_factory=list)

def series_to_list(series: ChartSeries) -> list[list[float]]:
    return [[p.timestamp_ms, p.value] for p in series]

def series_from_list(raw: list) -> ChartSeries:
    out: ChartSeries = []
    for ts, v in raw:
        if math.isfinite(float(ts)) and math.isfinite(float(v)):
            out.append(ChartPoint(int(ts), float(v)))
    return out

# ---- connectivity ----

ConnectionStatus = Literal["online", "offline", "checking"]
