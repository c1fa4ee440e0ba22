from __future__ import annotations

import json
from typing import Any, Optional, Protocol

import redis.asyncio as redis
import structlog

log = structlog.get_logger("blob_store")

# namespaced keys, one blob per component
PRICES_KEY = "pricewatch:prices"
CHARTS_KEY = "pricewatch:charts"
ALERTS_KEY = "pricewatch:alerts"
SETTINGS_KEY = "pricewatch:settings"


class BlobStore(Protocol):
    """Opaque async key-value store of strings."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


class MemoryBlobStore:
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)

    async def close(self) -> None:
        pass


class RedisBlobStore:
    """Blob store on plain Redis strings."""

    def __init__(self, url: str):
        self.url = url
        self._r = redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._r.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._r.set(key, value)

    async def remove(self, key: str) -> None:
        await self._r.delete(key)

    async def close(self) -> None:
        await self._r.aclose()


async def load_json(store: Optional[BlobStore], key: str) -> Optional[Any]:
    """Read and decode a blob; missing or corrupt blobs yield None."""
    if store is None:
        return None
    try:
        raw = await store.get(key)
    except Exception as e:
        log.warning("blob_read_failed", key=key, err=str(e))
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        log.warning("blob_corrupt", key=key, err=str(e))
        return None


async def save_json(store: Optional[BlobStore], key: str, value: Any) -> None:
    """Best-effort write; failures are logged, never raised."""
    if store is None:
        return
    try:
        await store.set(key, json.dumps(value, separators=(",", ":")))
    except Exception as e:
        log.warning("blob_write_failed", key=key, err=str(e))
