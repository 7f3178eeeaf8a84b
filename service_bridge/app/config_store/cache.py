"""
Read-through in-memory cache over the config store.
"""

import asyncio
from typing import Dict, Optional, Protocol

from shared.logging import get_logger


class ConfigSource(Protocol):
    async def get_config(self, key: str) -> Optional[str]: ...

    async def get_all_configs(self) -> Dict[str, str]: ...


class ConfigCache:
    """Cache-aside lookups: memory first, then the store (populating memory)."""

    def __init__(self, store: ConfigSource):
        self.store = store
        self.logger = get_logger("config_store.cache")
        self._values: Dict[str, str] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def refresh(self) -> Dict[str, str]:
        """Reload every key from the store.

        On failure the previous snapshot is kept and returned.
        """
        async with self._lock:
            try:
                values = await self.store.get_all_configs()
            except Exception as e:
                self.logger.error("Failed to refresh config cache", error=str(e))
                return dict(self._values)

            self._values = dict(values)
            self._initialized = True

        self.logger.info("Config cache refreshed", keys=len(values))
        return dict(values)

    async def lookup(self, key: str) -> Optional[str]:
        if not self._initialized:
            await self.refresh()

        if key in self._values:
            return self._values[key]

        value = await self.store.get_config(key)
        if value is not None:
            self._values[key] = value
        return value

    def snapshot(self) -> Dict[str, str]:
        return dict(self._values)

    def clear(self) -> None:
        self._values = {}
        self._initialized = False
