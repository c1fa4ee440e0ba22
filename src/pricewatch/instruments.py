from __future__ import annotations

from typing import Iterable, Optional

from pricewatch.utils.types import Instrument

# top 10 by market cap; ids match the CoinGecko API
INSTRUMENTS: tuple[Instrument, ...] = (
    Instrument(id="bitcoin", symbol="BTC", name="Bitcoin", color="#F7931A"),
    Instrument(id="ethereum", symbol="ETH", name="Ethereum", color="#627EEA"),
    Instrument(id="tether", symbol="USDT", name="Tether", color="#26A17B"),
    Instrument(id="usd-coin", symbol="USDC", name="USD Coin", color="#2775CA"),
    Instrument(id="binancecoin", symbol="BNB", name="BNB", color="#F3BA2F"),
    Instrument(id="ripple", symbol="XRP", name="XRP", color="#23292F"),
    Instrument(id="solana", symbol="SOL", name="Solana", color="#9945FF"),
    Instrument(id="cardano", symbol="ADA", name="Cardano", color="#0033AD"),
    Instrument(id="dogecoin", symbol="DOGE", name="Dogecoin", color="#C2A633"),
    Instrument(id="tron", symbol="TRX", name="TRON", color="#FF0013"),
)

_BY_ID = {i.id: i for i in INSTRUMENTS}

DEFAULT_INSTRUMENT_ID = "bitcoin"


def get_instrument_by_id(instrument_id: str) -> Optional[Instrument]:
    return _BY_ID.get(instrument_id)


def get_instrument_by_symbol(symbol: str) -> Optional[Instrument]:
    """Case-insensitive ticker lookup."""
    s = symbol.lower()
    for inst in INSTRUMENTS:
        if inst.symbol.lower() == s:
            return inst
    return None


def instrument_ids() -> list[str]:
    return [i.id for i in INSTRUMENTS]


def select_instruments(ids: Iterable[str]) -> list[str]:
    """
    Restrict tracking to a subset of the static table. Unknown ids raise;
    an empty selection means "track everything".
    """
    wanted = list(ids)
    if not wanted:
        return instrument_ids()
    unknown = [i for i in wanted if i not in _BY_ID]
    if unknown:
        raise ValueError(f"unknown instrument ids: {', '.join(unknown)}")
    return wanted
