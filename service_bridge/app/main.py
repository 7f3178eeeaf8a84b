"""
Assistant bridge service.
"""

from typing import Any, Dict, Optional

import httpx

from shared.base_service import BaseService
from shared.config import BridgeSettings
from shared.errors import ExternalServiceError

from .assistant import FunctionCallDispatcher
from .config_store import (
    ConfigCache,
    ConfigStore,
    apply_function_mappings,
    default_configs,
    fetch_function_mappings,
    gateway_config_from_settings,
    materialize_settings,
)
from .gateway import GatewayClient, GatewayConfig, create_gateway_client


class BridgeService(BaseService):
    """Composition root: config store, gateway client and tool-call dispatcher."""

    def __init__(
        self,
        settings: Optional[BridgeSettings] = None,
        *,
        store: Optional[ConfigStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("bridge", settings=settings)
        if store is None and self.settings.database_url:
            store = ConfigStore(self.settings.database_url, ssl=self.settings.database_ssl)
        self.store = store
        self.config_cache = ConfigCache(store) if store is not None else None
        self.gateway: Optional[GatewayClient] = None
        self.dispatcher: Optional[FunctionCallDispatcher] = None
        self._transport = transport

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_bridge_routes()

        self.app.state.bridge_service = self

    async def start(self):
        """Connect the config store, materialize settings, build the gateway."""
        if self.store is not None:
            try:
                await self.store.start()
                if await self.store.count_configs() == 0:
                    self.logger.info("Config table is empty, seeding from environment")
                    await self.store.seed_defaults(default_configs(self.settings))
            except ExternalServiceError as e:
                self.logger.error("Config store unavailable, continuing with environment settings", error=e.message)
        else:
            self.logger.warning("DATABASE_URL not set, using environment settings only")

        await self.reload()
        self.logger.info("Bridge service started", bot_name=self.settings.bot_name)

    async def stop(self):
        if self.gateway is not None:
            await self.gateway.aclose()
            self.gateway = None
        if self.store is not None:
            await self.store.stop()

    async def reload(self) -> Dict[str, Any]:
        """Re-read settings and mappings; reconfigure the live gateway."""
        self.settings = await materialize_settings(self.config_cache)
        gateway_config = gateway_config_from_settings(self.settings)

        if self.gateway is None:
            self.gateway = self._create_gateway(gateway_config)
        else:
            await self.gateway.reconfigure(gateway_config)

        loaded = apply_function_mappings(
            self.gateway,
            await fetch_function_mappings(self.config_cache, self.settings),
            prune=True,
        )
        return {
            "status": "refreshed",
            "mappings_loaded": loaded,
            "gateway": self.gateway.describe(),
        }

    def _create_gateway(self, config: GatewayConfig) -> GatewayClient:
        gateway = create_gateway_client(config, metrics=self.metrics, transport=self._transport)
        self.dispatcher = FunctionCallDispatcher(gateway)
        return gateway

    def _setup_bridge_routes(self):
        """Set up bridge routes."""

        @self.app.get("/")
        async def root():
            return {
                "message": f"{self.settings.bot_name} The AI Companion",
                "version": self.version,
                "status": "online",
            }

        @self.app.post("/api/config/refresh")
        async def refresh_config():
            """Reload configuration from the database and apply it."""
            result = await self.reload()
            self.logger.info("Configuration refreshed", mappings_loaded=result["mappings_loaded"])
            return result

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check bridge dependencies."""
        dependencies = {}

        if self.store is None:
            dependencies["config_store"] = "disabled"
        else:
            dependencies["config_store"] = "ok" if await self.store.check_health() else "error"

        dependencies["gateway"] = "ok" if self.gateway is not None else "not_initialized"
        return dependencies


def create_app():
    """Create FastAPI application."""
    service = BridgeService()
    return service.app


if __name__ == "__main__":
    service = BridgeService()
    service.run()
