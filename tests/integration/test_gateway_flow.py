"""
Integration tests for the gateway against an in-process backend API.
"""

import json
import pytest
import httpx
from fastapi import FastAPI, HTTPException, Response

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_bridge.app.assistant import FunctionCallDispatcher, ToolCall
from service_bridge.app.config_store import apply_function_mappings, parse_function_mappings
from service_bridge.app.gateway import GatewayClient
from shared.test_helpers import FakeClock, RecordingSleep, TestDataFactory


def create_backend():
    """Small order API with a flaky endpoint."""
    app = FastAPI()
    app.state.hits = {"orders": 0, "products": 0, "flaky": 0}
    orders = {"A1": {"id": "A1", "status": "shipped"}}

    @app.get("/v1/orders/{order_id}")
    async def get_order(order_id: str):
        app.state.hits["orders"] += 1
        if order_id not in orders:
            raise HTTPException(status_code=404, detail="order not found")
        return orders[order_id]

    @app.get("/v1/products")
    async def list_products(page: int = 1):
        app.state.hits["products"] += 1
        return [{"sku": f"P{page}"}]

    @app.post("/v1/orders")
    async def create_order(payload: dict):
        order_id = f"A{len(orders) + 1}"
        orders[order_id] = {"id": order_id, "status": "created", **payload}
        return orders[order_id]

    @app.put("/v1/orders/{order_id}/cancel")
    async def cancel_order(order_id: str):
        app.state.hits["flaky"] += 1
        if app.state.hits["flaky"] < 3:
            return Response(status_code=503)
        orders[order_id]["status"] = "cancelled"
        return Response(status_code=204)

    return app


class TestGatewayFlow:
    """Integration tests for the tool-call -> gateway -> backend flow."""

    @pytest.fixture
    def backend(self):
        return create_backend()

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def sleep(self, clock):
        return RecordingSleep(clock)

    @pytest.fixture
    def gateway(self, backend, clock, sleep):
        gateway = GatewayClient(
            TestDataFactory.create_gateway_config(),
            transport=httpx.ASGITransport(app=backend),
            sleep=sleep,
            clock=clock,
        )
        apply_function_mappings(
            gateway, parse_function_mappings(json.dumps(TestDataFactory.create_function_mappings()))
        )
        return gateway

    @pytest.mark.asyncio
    async def test_order_lifecycle(self, gateway, backend, sleep):
        """Test create, read (cached) and a retried cancel."""
        created = await gateway.invoke("create_order", {"sku": "X", "qty": 2})
        assert created["status"] == "created"
        order_id = created["id"]

        first = await gateway.invoke("get_order", {"order_id": order_id})
        second = await gateway.invoke("get_order", {"order_id": order_id})
        assert first == second
        assert backend.state.hits["orders"] == 1

        result = await gateway.invoke("cancel_order", {"order_id": order_id})
        assert result is None
        assert backend.state.hits["flaky"] == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])

        fresh = await gateway.invoke("get_order", {"order_id": order_id}, bypass_cache=True)
        assert fresh["status"] == "cancelled"
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_query_arguments_and_ttl(self, gateway, backend, clock):
        """Test GET arguments travel as query params and expire with the TTL."""
        assert await gateway.invoke("list_products", {"page": 2}) == [{"sku": "P2"}]
        await gateway.invoke("list_products", {"page": 2})
        assert backend.state.hits["products"] == 1

        clock.advance(61)
        await gateway.invoke("list_products", {"page": 2})
        assert backend.state.hits["products"] == 2
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_tool_calls_report_backend_errors(self, gateway):
        """Test backend rejections reach the assistant as tagged outputs."""
        dispatcher = FunctionCallDispatcher(gateway)

        outputs = await dispatcher.dispatch_all([
            ToolCall(id="c1", name="get_order", arguments='{"order_id": "A1"}'),
            ToolCall(id="c2", name="get_order", arguments='{"order_id": "ZZ"}'),
            ToolCall(id="c3", name="get_invoice", arguments="{}"),
        ])

        assert json.loads(outputs[0].output)["status"] == "shipped"
        assert json.loads(outputs[1].output)["error"] == "GATEWAY_REQUEST_REJECTED"
        assert json.loads(outputs[2].output)["error"] == "UNKNOWN_FUNCTION"
        await gateway.aclose()
