"""
Dynamic API gateway client.

Callers address the external backend by logical function name; the client
resolves the route, runs the request through the retry executor and caches
idempotent responses.
"""

import asyncio
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

import httpx

from shared.errors import ConfigurationError, GatewayError, ValidationError
from shared.logging import get_logger, set_logger_level
from shared.metrics import MetricsCollector

from .cache import ResponseCache
from .config import GatewayConfig
from .executor import RequestSpec, RetryExecutor, retry_config_from
from .registry import EndpointMapping, EndpointRegistry


_MISSING = object()

ConfigInput = Union[GatewayConfig, Mapping[str, Any]]


class GatewayClient:
    """Gateway to the configured backend, shared by every chat/route handler."""

    def __init__(
        self,
        config: ConfigInput,
        *,
        registry: Optional[EndpointRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = GatewayConfig.from_mapping(config)
        self.metrics = metrics
        self.registry = registry or EndpointRegistry()
        self.cache = ResponseCache(
            enabled=self._config.cache.enabled,
            ttl_ms=self._config.cache.ttl_ms,
            max_entries=self._config.cache.max_entries,
            clock=clock,
        )
        self._sleep = sleep

        # Timeouts are passed per request, so one HTTP client serves every config.
        self._http_client = httpx.AsyncClient(follow_redirects=True, transport=transport)
        self.executor = self._build_executor(self._config)
        self._apply_log_level(self._config.log_level)

        self.logger.info(
            "Gateway client initialized",
            base_url=self._config.base_url,
            timeout_ms=self._config.timeout_ms,
            max_retries=self._config.max_retries,
            retry_delay_ms=self._config.retry_delay_ms,
            cache_enabled=self._config.cache.enabled,
            cache_ttl_ms=self._config.cache.ttl_ms
        )

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _build_executor(self, config: GatewayConfig) -> RetryExecutor:
        return RetryExecutor(
            self._http_client,
            retry_config_from(config),
            metrics=self.metrics,
            sleep=self._sleep,
            log_level=config.log_level,
        )

    def _apply_log_level(self, log_level: str) -> None:
        """Gateway loggers drop events below ``log_level`` on their own."""
        set_logger_level("gateway", log_level)
        self.logger = get_logger("gateway.client", log_level)
        self.registry.logger = get_logger("gateway.registry", log_level)
        self.cache.logger = get_logger("gateway.cache", log_level)

    def add_endpoint_mapping(
        self,
        function_name: str,
        path_template: str,
        method: Any = "POST",
        cacheable: Optional[bool] = None,
    ) -> EndpointMapping:
        """Register or replace a route; cached responses of the old route are dropped."""
        mapping = self.registry.add_endpoint_mapping(function_name, path_template, method, cacheable)
        self.cache.invalidate_function(mapping.function_name)
        return mapping

    def remove_endpoint_mapping(self, function_name: str) -> bool:
        """Drop a route and its cached responses."""
        removed = self.registry.remove(function_name)
        if removed:
            self.cache.invalidate_function(function_name)
        return removed

    async def invoke(
        self,
        function_name: str,
        args: Optional[Mapping[str, Any]] = None,
        *,
        bypass_cache: bool = False,
    ) -> Any:
        """
        Call the backend endpoint mapped to ``function_name``.

        Args:
            function_name: Logical function name registered in the routing table
            args: JSON-compatible arguments; path placeholders are filled from
                them, the rest is sent as query (GET) or JSON body
            bypass_cache: Skip the cache lookup (a fresh result is still stored)

        Returns:
            Decoded response payload

        Raises:
            UnknownFunction: no mapping for ``function_name``
            MissingPathParameter: a placeholder has no matching argument
            GatewayRequestRejected: backend returned 4xx / non-transient failure
            GatewayUnavailable: retries exhausted on transient failures
        """
        if args is not None and not isinstance(args, Mapping):
            raise ValidationError(
                "Gateway arguments must be a mapping",
                details={"function_name": function_name, "type": type(args).__name__}
            )
        args = dict(args or {})
        config = self._config
        executor = self.executor
        started = time.monotonic()

        mapping = self.registry.resolve(function_name)
        caching = config.cache.enabled and mapping.is_cacheable
        key = self.cache.make_key(function_name, args)

        if caching and not bypass_cache:
            cached = self.cache.get(key, _MISSING)
            if cached is not _MISSING:
                self.logger.debug("Gateway cache hit", function_name=function_name)
                self._count("cache_hits_total", cache_type="gateway")
                return cached
            self._count("cache_misses_total", cache_type="gateway")

        route = self.registry.build_route(mapping, args)
        request = RequestSpec(
            function_name=function_name,
            method=mapping.method.value,
            url=self._url_for(config, route.path),
            timeout_ms=config.timeout_ms,
            params=route.query,
            json=route.body,
        )

        try:
            result = await executor.execute(request)
        except GatewayError as e:
            self._count("gateway_requests_total", function=function_name, outcome=e.code.lower())
            raise
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "gateway_request_duration_seconds",
                    time.monotonic() - started,
                    function=function_name
                )

        # A reconfigure during the call already cleared the cache.
        if caching and self._config is config:
            self.cache.put(key, result, ttl_ms=config.cache.ttl_ms)
        self._count("gateway_requests_total", function=function_name, outcome="success")
        return result

    def invalidate(self, function_name: Optional[str] = None, args: Optional[Mapping[str, Any]] = None) -> int:
        """Forced cache bypass: one call, one function, or everything."""
        if function_name is None:
            count = len(self.cache)
            self.cache.clear()
            return count
        if args is not None:
            return int(self.cache.invalidate(self.cache.make_key(function_name, args)))
        return self.cache.invalidate_function(function_name)

    async def reconfigure(self, config: ConfigInput) -> GatewayConfig:
        """Explicit hot reload. Mappings survive; cached responses do not.

        Calls already in flight finish under the configuration they started with.
        """
        new_config = GatewayConfig.from_mapping(config)
        self._config = new_config
        self.executor = self._build_executor(new_config)
        self.cache.enabled = new_config.cache.enabled
        self.cache.ttl_ms = new_config.cache.ttl_ms
        self.cache.max_entries = new_config.cache.max_entries
        self.cache.clear()
        self._apply_log_level(new_config.log_level)

        self.logger.info(
            "Gateway client reconfigured",
            base_url=new_config.base_url,
            max_retries=new_config.max_retries,
            cache_enabled=new_config.cache.enabled
        )
        return new_config

    def describe(self) -> Dict[str, Any]:
        """Routing table and cache state, for status endpoints."""
        return {
            "base_url": self._config.base_url,
            "mappings": [
                {
                    "function_name": m.function_name,
                    "path": m.path_template,
                    "method": m.method.value,
                    "cacheable": m.is_cacheable,
                }
                for m in self.registry.mappings()
            ],
            "cache": self.cache.stats(),
        }

    async def aclose(self) -> None:
        await self._http_client.aclose()
        self.logger.info("Gateway client closed")

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def _url_for(config: GatewayConfig, path: str) -> str:
        return f"{config.base_url}/{path.lstrip('/')}"

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)


_instance: Optional[GatewayClient] = None
_instance_lock = threading.Lock()


def create_gateway_client(config: ConfigInput, **kwargs: Any) -> GatewayClient:
    """Explicit factory: the caller owns and shares the returned instance."""
    return GatewayClient(config, **kwargs)


def get_instance(config: Optional[ConfigInput] = None, **kwargs: Any) -> GatewayClient:
    """
    Process-wide gateway client, created by the first caller.

    Later calls return the existing instance and ignore ``config``; use
    ``GatewayClient.reconfigure`` to change a live client.

    Raises:
        ConfigurationError: no instance exists yet and no config was given,
            or the first config is invalid
    """
    global _instance
    with _instance_lock:
        if _instance is None:
            if config is None:
                raise ConfigurationError("Gateway client is not initialized; a configuration is required")
            _instance = create_gateway_client(config, **kwargs)
            return _instance
        instance = _instance

    if config is not None:
        try:
            requested = GatewayConfig.from_mapping(config)
        except ConfigurationError:
            requested = None
        if requested != instance.config:
            instance.logger.warning(
                "Gateway client already initialized; ignoring new configuration",
                current_base_url=instance.config.base_url
            )
    return instance


async def close_instance() -> None:
    """Close and forget the process-wide client."""
    global _instance
    with _instance_lock:
        instance, _instance = _instance, None
    if instance is not None:
        await instance.aclose()
