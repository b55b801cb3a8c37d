"""
Settings Cache - process-lifetime cache in front of the settings table

Entries never expire; the settings write route calls flush_all() after a
successful save. There is no lock: a read racing a flush can
return the old value once, and the next read repopulates from the store.
"""
from typing import Any, Dict
from loguru import logger

from config import settings as app_settings
from models.setting import JOB_QUEUEING, TRAINING_FOLDER, DATASETS_FOLDER, HF_TOKEN, DATA_ROOT


class _Miss:
    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


# Returned by SettingsCache.get when the key is not cached
MISS = _Miss()


class SettingsCache:
    """Unbounded key/value cache"""

    def __init__(self):
        self._entries: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._entries.get(key, MISS)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def flush_all(self) -> None:
        self._entries = {}
        logger.debug("Settings cache flushed")

    def __len__(self) -> int:
        return len(self._entries)


class SettingsService:
    """
    Typed getters for runtime settings.

    Each getter checks the cache, falls back to the store on a miss, resolves
    the default for an absent or empty row and caches the resolved value.
    """

    def __init__(self, store, cache: SettingsCache):
        self.store = store
        self.cache = cache

    async def _resolve(self, key: str, default: Any, convert=None) -> Any:
        cached = self.cache.get(key)
        if cached is not MISS:
            return cached

        raw = await self.store.get_setting(key)
        value = default
        if raw:
            value = convert(raw) if convert else raw

        self.cache.set(key, value)
        return value

    async def get_job_queueing(self) -> bool:
        # default to false (parallel mode)
        return await self._resolve(JOB_QUEUEING, False, lambda raw: raw == "true")

    async def get_training_folder(self) -> str:
        return await self._resolve(TRAINING_FOLDER, app_settings.default_training_folder)

    async def get_datasets_root(self) -> str:
        return await self._resolve(DATASETS_FOLDER, app_settings.default_datasets_folder)

    async def get_hf_token(self) -> str:
        return await self._resolve(HF_TOKEN, "")

    async def get_data_root(self) -> str:
        return await self._resolve(DATA_ROOT, app_settings.default_data_root)

    def invalidate(self) -> None:
        """Drop every cached value; call after writing settings"""
        self.cache.flush_all()
