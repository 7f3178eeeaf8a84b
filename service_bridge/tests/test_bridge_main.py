"""
Unit tests for the bridge service.
"""

import json
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_bridge.app.config_store.loader import SETTINGS_KEYS
from service_bridge.app.main import BridgeService
from shared.config import get_settings
from shared.errors import ExternalServiceError
from shared.test_helpers import StubBackend, TestDataFactory


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the host environment."""
    for key in SETTINGS_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))


def make_store(rows=None, count=1):
    store = MagicMock()
    store.start = AsyncMock()
    store.stop = AsyncMock()
    store.count_configs = AsyncMock(return_value=count)
    store.seed_defaults = AsyncMock(return_value=0)
    store.get_all_configs = AsyncMock(return_value=rows or {})
    store.get_config = AsyncMock(return_value=None)
    store.check_health = AsyncMock(return_value=True)
    return store


class TestBridgeService:
    """Test cases for BridgeService routes."""

    @pytest.fixture
    def service(self):
        """Create BridgeService without a database."""
        return BridgeService(settings=get_settings({"BOT_NAME": "Garra"}))

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_root(self, client):
        """Test the status route."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Garra The AI Companion",
            "version": "1.0.0",
            "status": "online",
        }

    def test_health(self, client):
        """Test the health route reports dependencies."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "bridge"
        assert data["dependencies"] == {"config_store": "disabled", "gateway": "not_initialized"}

    def test_metrics(self, client):
        """Test the Prometheus route."""
        client.get("/")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_refresh_without_base_url(self, client):
        """Test a missing API_BASE_URL maps to a configuration error body."""
        response = client.post("/api/config/refresh", headers={"X-Request-ID": "req-1"})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "CONFIGURATION_ERROR"
        assert body["request_id"] == "req-1"


class TestBridgeServiceLifecycle:
    """Test cases for startup, refresh and shutdown."""

    @pytest.mark.asyncio
    async def test_start_loads_gateway_from_database(self):
        """Test startup materializes settings and registers stored mappings."""
        backend = StubBackend((200, {"id": "A1"}))
        store = make_store(TestDataFactory.create_config_rows())
        service = BridgeService(settings=get_settings(), store=store, transport=backend.transport)

        await service.start()

        store.start.assert_awaited_once()
        store.seed_defaults.assert_not_awaited()
        assert service.settings.assistant_id == "asst_test_123"
        assert len(service.gateway.registry) == 5
        assert service.dispatcher is not None

        result = await service.gateway.invoke("get_order", {"order_id": "A1"})
        assert result == {"id": "A1"}
        assert str(backend.requests[0].url) == "https://api.example.test/v1/orders/A1"

        await service.stop()
        store.stop.assert_awaited_once()
        assert service.gateway is None

    @pytest.mark.asyncio
    async def test_start_seeds_empty_table(self, monkeypatch):
        """Test an empty configs table is seeded from the environment."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-abcdefghijkl")
        monkeypatch.setenv("API_BASE_URL", "https://env.example.test")
        store = make_store(count=0)
        service = BridgeService(store=store, transport=StubBackend(200).transport)

        await service.start()

        seeded = store.seed_defaults.await_args.args[0]
        assert seeded["OPENAI_API_KEY"][0] == "sk-env-abcdefghijkl"
        assert service.gateway.config.base_url == "https://env.example.test"
        await service.stop()

    @pytest.mark.asyncio
    async def test_start_survives_unavailable_database(self, monkeypatch):
        """Test an unreachable database falls back to environment settings."""
        monkeypatch.setenv("API_BASE_URL", "https://env.example.test")
        store = make_store()
        store.start.side_effect = ExternalServiceError("postgres", "Could not connect")
        store.get_all_configs.side_effect = ExternalServiceError("postgres", "Config store is not started")
        service = BridgeService(store=store, transport=StubBackend(200).transport)

        await service.start()

        assert service.gateway.config.base_url == "https://env.example.test"
        assert len(service.gateway.registry) == 0
        await service.stop()

    @pytest.mark.asyncio
    async def test_refresh_route_reconfigures_gateway(self):
        """Test POST /api/config/refresh applies new database values."""
        rows = TestDataFactory.create_config_rows()
        store = make_store(rows)
        backend = StubBackend(200)
        service = BridgeService(settings=get_settings(), store=store, transport=backend.transport)
        await service.start()
        gateway = service.gateway

        store.get_all_configs.return_value = {
            **rows,
            "API_BASE_URL": "https://new.example.test",
            "API_MAX_RETRIES": "0",
            "API_FUNCTION_MAPPINGS": json.dumps([{"functionName": "ping", "path": "/ping", "method": "GET"}]),
        }

        transport = httpx.ASGITransport(app=service.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://bridge.test") as client:
            response = await client.post("/api/config/refresh")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "refreshed"
        assert data["mappings_loaded"] == 1
        assert data["gateway"]["base_url"] == "https://new.example.test"
        assert service.gateway is gateway
        assert gateway.config.max_retries == 0
        assert "ping" in gateway.registry
        assert "get_order" not in gateway.registry
        assert len(gateway.registry) == 1
        await service.stop()

    @pytest.mark.asyncio
    async def test_health_checks_store(self):
        """Test the store health feeds the dependency report."""
        store = make_store()
        store.check_health.return_value = False
        service = BridgeService(settings=get_settings(), store=store)

        assert await service._check_dependencies() == {"config_store": "error", "gateway": "not_initialized"}
