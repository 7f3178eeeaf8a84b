"""
Unit tests for the gateway endpoint registry.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_bridge.app.gateway.registry import EndpointRegistry, HttpMethod, to_query_params
from shared.errors import MissingPathParameter, UnknownFunction, ValidationError


class TestEndpointRegistry:
    """Test cases for EndpointRegistry."""

    @pytest.fixture
    def registry(self):
        """Create a registry with a few routes."""
        registry = EndpointRegistry()
        registry.add_endpoint_mapping("get_order", "/orders/{order_id}", "GET")
        registry.add_endpoint_mapping("create_order", "/orders")
        registry.add_endpoint_mapping("cancel_order", "/orders/:order_id/cancel", "put")
        return registry

    def test_default_method_is_post(self, registry):
        """Test mappings default to POST."""
        assert registry.resolve("create_order").method is HttpMethod.POST

    def test_method_is_case_insensitive(self, registry):
        """Test lowercase methods are accepted."""
        assert registry.resolve("cancel_order").method is HttpMethod.PUT

    def test_last_write_wins(self, registry):
        """Test re-registering a function replaces the route."""
        registry.add_endpoint_mapping("get_order", "/v2/orders/{order_id}", "GET")

        mapping = registry.resolve("get_order")
        assert mapping.path_template == "/v2/orders/{order_id}"
        assert len(registry) == 3

    def test_unknown_function(self, registry):
        """Test resolving an unregistered function."""
        with pytest.raises(UnknownFunction) as exc_info:
            registry.resolve("refund_order")

        assert exc_info.value.code == "UNKNOWN_FUNCTION"
        assert exc_info.value.details["function_name"] == "refund_order"

    def test_invalid_method(self, registry):
        """Test unsupported methods are rejected."""
        with pytest.raises(ValidationError):
            registry.add_endpoint_mapping("trace_order", "/orders", "TRACE")

    @pytest.mark.parametrize("name,path", [("", "/orders"), ("   ", "/orders"), ("x", ""), (None, "/orders")])
    def test_empty_names_rejected(self, registry, name, path):
        """Test empty function names and paths are rejected."""
        with pytest.raises(ValidationError):
            registry.add_endpoint_mapping(name, path)

    def test_remove_and_contains(self, registry):
        """Test removing a mapping."""
        assert "get_order" in registry
        assert registry.remove("get_order") is True
        assert "get_order" not in registry
        assert registry.remove("get_order") is False

    def test_mappings_snapshot(self, registry):
        """Test mappings() returns an independent snapshot."""
        snapshot = registry.mappings()
        registry.add_endpoint_mapping("list_products", "/products", "GET")

        assert len(snapshot) == 3
        assert len(registry.mappings()) == 4

    def test_cacheable_rules(self):
        """Test only GET mappings are cacheable."""
        registry = EndpointRegistry()
        get = registry.add_endpoint_mapping("a", "/a", "GET")
        opted_out = registry.add_endpoint_mapping("b", "/b", "GET", cacheable=False)
        write = registry.add_endpoint_mapping("c", "/c", "POST", cacheable=True)

        assert get.is_cacheable is True
        assert opted_out.is_cacheable is False
        assert write.is_cacheable is False


class TestBuildRoute:
    """Test cases for route building."""

    @pytest.fixture
    def registry(self):
        registry = EndpointRegistry()
        registry.add_endpoint_mapping("get_order", "/orders/{order_id}", "GET")
        registry.add_endpoint_mapping("cancel_order", "/orders/:order_id/cancel", "PUT")
        return registry

    def test_get_leftovers_become_query(self, registry):
        """Test unused GET arguments are sent as query parameters."""
        mapping = registry.resolve("get_order")
        route = registry.build_route(mapping, {"order_id": 42, "expand": True, "tags": ["a", "b"]})

        assert route.path == "/orders/42"
        assert route.query == {"expand": "true", "tags": ["a", "b"]}
        assert route.body is None

    def test_write_leftovers_become_body(self, registry):
        """Test unused write arguments are sent as the JSON body."""
        mapping = registry.resolve("cancel_order")
        route = registry.build_route(mapping, {"order_id": "A-1", "reason": "late"})

        assert route.path == "/orders/A-1/cancel"
        assert route.body == {"reason": "late"}
        assert route.query == {}

    def test_placeholder_values_are_url_encoded(self, registry):
        """Test path values are percent-encoded."""
        mapping = registry.resolve("get_order")
        route = registry.build_route(mapping, {"order_id": "a/b c"})

        assert route.path == "/orders/a%2Fb%20c"

    def test_missing_placeholder(self, registry):
        """Test a missing path argument."""
        mapping = registry.resolve("get_order")

        with pytest.raises(MissingPathParameter) as exc_info:
            registry.build_route(mapping, {"expand": True})

        assert exc_info.value.parameter == "order_id"
        assert exc_info.value.status_code == 400

    def test_none_placeholder_is_missing(self, registry):
        """Test None does not satisfy a placeholder."""
        mapping = registry.resolve("cancel_order")

        with pytest.raises(MissingPathParameter):
            registry.build_route(mapping, {"order_id": None})

    def test_placeholders_listed(self, registry):
        """Test both placeholder syntaxes are recognised."""
        assert registry.resolve("get_order").placeholders == ["order_id"]
        assert registry.resolve("cancel_order").placeholders == ["order_id"]


def test_to_query_params_drops_none():
    """Test None values are omitted from the query string."""
    assert to_query_params({"a": None, "b": 0, "c": False}) == {"b": "0", "c": "false"}
