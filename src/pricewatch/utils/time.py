from __future__ import annotations

import time
from datetime import datetime, timezone

# all domain timestamps are epoch milliseconds (int)

def now_ms() -> int:
    """Unix epoch milliseconds (int)."""
    return time.time_ns() // 1_000_000

def ms_to_s(ms: int | float) -> float:
    return float(ms) / 1000.0

def utc_dt(ts_ms: int | float) -> datetime:
    """Epoch milliseconds -> timezone-aware UTC datetime."""
    return datetime.fromtimestamp(float(ts_ms) / 1000.0, tz=timezone.utc)

def age_ms(ts_ms: int, now: int) -> int:
    """Non-negative age of ts_ms relative to now (clamped at 0)."""
    return max(0, now - ts_ms)

def is_older_than(ts_ms: int, duration_ms: int, now: int) -> bool:
    return now - ts_ms > duration_ms
