from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

import structlog

from pricewatch.storage.blob import SETTINGS_KEY, BlobStore, load_json, save_json

log = structlog.get_logger("settings")


@dataclass(slots=True)
class UserSettings:
    show_volume_chart: bool = False
    dark_mode: bool = True


class SettingsStore:
    def __init__(self, store: Optional[BlobStore] = None):
        self.store = store
        self.settings = UserSettings()
        self.has_hydrated: bool = False

    async def set_show_volume_chart(self, show: bool) -> None:
        self.settings.show_volume_chart = bool(show)
        await self._persist()

    async def set_dark_mode(self, dark: bool) -> None:
        self.settings.dark_mode = bool(dark)
        await self._persist()

    async def hydrate(self) -> None:
        blob = await load_json(self.store, SETTINGS_KEY)
        if isinstance(blob, dict):
            # unknown keys from older versions are ignored
            self.settings = UserSettings(
                show_volume_chart=bool(blob.get("show_volume_chart", False)),
                dark_mode=bool(blob.get("dark_mode", True)),
            )
        self.has_hydrated = True

    async def _persist(self) -> None:
        await save_json(self.store, SETTINGS_KEY, asdict(self.settings))
