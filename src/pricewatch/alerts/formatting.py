from __future__ import annotations

from datetime import timezone
from zoneinfo import ZoneInfo

from pricewatch.alerts.rules import Direction
from pricewatch.alerts.state import TriggeredAlert
from pricewatch.instruments import get_instrument_by_id
from pricewatch.utils.time import utc_dt

def format_price(price: float) -> str:
    """$1,234.56 for prices >= 1; small prices keep 4-6 decimals ($0.0712)."""
    if price >= 1:
        return f"${price:,.2f}"
    s = f"{price:,.6f}"
    whole, frac = s.split(".")
    frac = frac.rstrip("0").ljust(4, "0")
    return f"${whole}.{frac}"

def format_percent_change(change: float) -> str:
    sign = "+" if change >= 0 else ""
    return f"{sign}{change:.2f}%"

def format_volume(volume: float) -> str:
    if volume >= 1_000_000_000:
        return f"${volume / 1_000_000_000:.1f}B"
    if volume >= 1_000_000:
        return f"${volume / 1_000_000:.1f}M"
    if volume >= 1_000:
        return f"${volume / 1_000:.1f}K"
    return f"${volume:.0f}"

def _fmt_ts(ts_ms: int, tz_name: str) -> str:
    tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
    return utc_dt(ts_ms).astimezone(tz).strftime("%H:%M:%S %Z")

def format_triggered_alert(t: TriggeredAlert, tz_name: str = "UTC") -> str:
    """
    One-line alert text, e.g.
    [BTC ABOVE] 14:02:11 UTC ↑ Bitcoin is now $100,250.00 (above $100,000.00)
    """
    inst = get_instrument_by_id(t.alert.instrument_id)
    symbol = inst.symbol if inst else t.alert.instrument_id.upper()
    name = inst.name if inst else t.alert.instrument_id
    above = t.alert.direction is Direction.ABOVE
    arrow = "↑" if above else "↓"
    word = "above" if above else "below"
    return (
        f"[{symbol} {word.upper()}] {_fmt_ts(t.triggered_at_ms, tz_name)} {arrow} "
        f"{name} is now {format_price(t.triggered_price)} "
        f"({word} {format_price(t.alert.threshold)})"
    )

def format_raw_alert(t: TriggeredAlert) -> str:
    """Plain fallback line; needs no instrument table or timezone data."""
    return (
        f"[ALERT] {t.alert.instrument_id} {t.alert.direction.value} "
        f"threshold={t.alert.threshold} price={t.triggered_price}"
    )
