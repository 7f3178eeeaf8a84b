"""
Dynamic API gateway package.

Maps logical function names onto backend HTTP routes and calls them with
bounded retries and optional response caching. Only idempotent (GET)
responses are ever cached.
"""

from .cache import CacheEntry, ResponseCache
from .client import (
    GatewayClient,
    close_instance,
    create_gateway_client,
    get_instance,
)
from .config import CachePolicy, GatewayConfig
from .executor import RequestSpec, RetryExecutor
from .registry import EndpointMapping, EndpointRegistry, HttpMethod

__all__ = [
    "CacheEntry",
    "CachePolicy",
    "EndpointMapping",
    "EndpointRegistry",
    "GatewayClient",
    "GatewayConfig",
    "HttpMethod",
    "RequestSpec",
    "ResponseCache",
    "RetryExecutor",
    "close_instance",
    "create_gateway_client",
    "get_instance",
]
