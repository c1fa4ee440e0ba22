from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

# defaults (ms unless stated)
COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
API_KEY_HEADER = "x-cg-demo-api-key"
REQUEST_TIMEOUT_MS = 10_000
MAX_RETRIES = 3
INITIAL_RETRY_DELAY_MS = 1_000
PRICE_POLL_INTERVAL_MS = 30_000      # free tier: 30 calls/min, we use ~2/min
STALE_THRESHOLD_MS = 2 * 60 * 1000
CHART_CACHE_TTL_MS = 5 * 60 * 1000
CHART_CACHE_MAX_ENTRIES = 20


@dataclass(slots=True)
class AppConfig:
    base_url: str = COINGECKO_BASE_URL
    api_key: Optional[str] = None
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    max_retries: int = MAX_RETRIES
    initial_retry_delay_ms: int = INITIAL_RETRY_DELAY_MS
    poll_interval_ms: int = PRICE_POLL_INTERVAL_MS
    stale_threshold_ms: int = STALE_THRESHOLD_MS
    chart_cache_ttl_ms: int = CHART_CACHE_TTL_MS
    chart_cache_max_entries: int = CHART_CACHE_MAX_ENTRIES
    instrument_ids: list[str] = field(default_factory=list)   # empty = all static instruments
    redis_url: Optional[str] = None
    log_level: str = "INFO"
    log_json: bool = False
    display_tz: str = "UTC"


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        v = int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if v < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {v}")
    return v


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def config_from_env() -> AppConfig:
    """
    Build AppConfig from the environment. Call load_dotenv() first if a .env
    file should be honored.
    """
    ids_env = os.getenv("INSTRUMENTS", "")
    return AppConfig(
        base_url=os.getenv("COINGECKO_BASE_URL", COINGECKO_BASE_URL).rstrip("/"),
        api_key=os.getenv("COINGECKO_API_KEY") or None,
        request_timeout_ms=_env_int("REQUEST_TIMEOUT_MS", REQUEST_TIMEOUT_MS, minimum=1),
        max_retries=_env_int("MAX_RETRIES", MAX_RETRIES),
        initial_retry_delay_ms=_env_int("INITIAL_RETRY_DELAY_MS", INITIAL_RETRY_DELAY_MS),
        poll_interval_ms=_env_int("PRICE_POLL_INTERVAL_MS", PRICE_POLL_INTERVAL_MS, minimum=1),
        stale_threshold_ms=_env_int("STALE_THRESHOLD_MS", STALE_THRESHOLD_MS),
        chart_cache_ttl_ms=_env_int("CHART_CACHE_TTL_MS", CHART_CACHE_TTL_MS),
        chart_cache_max_entries=_env_int("CHART_CACHE_MAX_ENTRIES", CHART_CACHE_MAX_ENTRIES, minimum=1),
        instrument_ids=[s.strip().lower() for s in ids_env.split(",") if s.strip()],
        redis_url=os.getenv("REDIS_URL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON"),
        display_tz=os.getenv("DISPLAY_TZ", "UTC"),
    )
