import json

import pytest

from pricewatch.data.settings import SettingsStore, UserSettings
from pricewatch.storage.blob import SETTINGS_KEY, MemoryBlobStore, load_json, save_json


class FailingStore(MemoryBlobStore):
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_memory_store_basics():
    store = MemoryBlobStore()
    assert await store.get("k") is None
    await store.set("k", "v")
    assert await store.get("k") == "v"
    await store.remove("k")
    await store.remove("k")
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_json_helpers():
    store = MemoryBlobStore({"bad": "{oops"})
    await save_json(store, "good", {"a": [1, 2]})
    assert await load_json(store, "good") == {"a": [1, 2]}
    assert await load_json(store, "bad") is None
    assert await load_json(store, "missing") is None
    # no store configured
    assert await load_json(None, "good") is None
    await save_json(None, "good", {})


@pytest.mark.asyncio
async def test_store_failures_are_swallowed():
    store = FailingStore()
    await save_json(store, "k", {"a": 1})
    assert await load_json(store, "k") is None


@pytest.mark.asyncio
async def test_settings_defaults_and_persistence():
    store = MemoryBlobStore()
    settings = SettingsStore(store)
    assert settings.settings == UserSettings(show_volume_chart=False, dark_mode=True)

    await settings.set_show_volume_chart(True)
    await settings.set_dark_mode(False)
    assert json.loads(store.data[SETTINGS_KEY]) == {"show_volume_chart": True, "dark_mode": False}

    restored = SettingsStore(store)
    await restored.hydrate()
    assert restored.has_hydrated
    assert restored.settings == UserSettings(show_volume_chart=True, dark_mode=False)


@pytest.mark.asyncio
async def test_settings_hydrate_without_blob_keeps_defaults():
    settings = SettingsStore(MemoryBlobStore({SETTINGS_KEY: json.dumps({"legacy": 1})}))
    await settings.hydrate()
    assert settings.settings == UserSettings()
