"""
Retry/backoff executor for outbound gateway requests.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from shared.errors import GatewayRequestRejected, GatewayUnavailable, describe_error
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, calculate_delay

from .config import GatewayConfig


# Transient failures: worth another attempt.
RETRYABLE_EXCEPTIONS = (
    asyncio.TimeoutError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


@dataclass(frozen=True)
class RequestSpec:
    """A fully resolved outbound request."""

    function_name: str
    method: str
    url: str
    timeout_ms: int
    params: Dict[str, Any] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None


@dataclass
class RequestAttempt:
    attempt_number: int
    outcome: Optional[AttemptOutcome] = None
    status_code: Optional[int] = None
    error: Optional[BaseException] = None


class _RetryableStatus(Exception):
    """A 5xx response, carried through the retry loop like a transport error."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Server error {response.status_code}")


def retry_config_from(config: GatewayConfig) -> RetryConfig:
    return RetryConfig(
        max_attempts=config.total_attempts,
        base_delay=config.retry_delay_ms / 1000.0,
        max_delay=None,
        jitter=False,
        backoff_strategy=config.backoff_strategy,
    )


class RetryExecutor:
    """Runs one request with up to ``max_retries + 1`` bounded attempts."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_config: RetryConfig,
        *,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        log_level: Optional[str] = None,
    ):
        self.http_client = http_client
        self.retry_config = retry_config
        self.metrics = metrics
        self.sleep = sleep
        self.logger = get_logger("gateway.executor", log_level)

    async def execute(self, request: RequestSpec) -> Any:
        """Perform ``request``; return the decoded payload.

        Raises:
            GatewayRequestRejected: 4xx or another non-transient failure (no retry).
            GatewayUnavailable: every attempt failed transiently.
        """
        max_attempts = max(1, self.retry_config.max_attempts)
        last_error: Optional[BaseException] = None

        for attempt_number in range(1, max_attempts + 1):
            attempt = RequestAttempt(attempt_number=attempt_number)
            self.logger.debug(
                "Gateway attempt started",
                function_name=request.function_name,
                method=request.method,
                url=request.url,
                attempt=attempt_number,
                max_attempts=max_attempts
            )
            started = time.monotonic()

            try:
                response = await self._send(request)
                if response.status_code >= 500:
                    raise _RetryableStatus(response)
            except (_RetryableStatus,) + RETRYABLE_EXCEPTIONS as e:
                attempt.outcome = AttemptOutcome.RETRYABLE_FAILURE
                attempt.error = e
                if isinstance(e, _RetryableStatus):
                    attempt.status_code = e.response.status_code
                last_error = e
            except Exception as e:
                attempt.outcome = AttemptOutcome.FATAL_FAILURE
                attempt.error = e
                self._record_attempt(request, attempt, started)
                self.logger.error(
                    "Gateway request failed with non-retryable error",
                    function_name=request.function_name,
                    attempt=attempt_number,
                    error=describe_error(e),
                    error_type=type(e).__name__
                )
                raise GatewayRequestRejected(request.function_name, reason=describe_error(e)) from e
            else:
                attempt.status_code = response.status_code
                if 200 <= response.status_code < 300:
                    attempt.outcome = AttemptOutcome.SUCCESS
                    self._record_attempt(request, attempt, started)
                    self.logger.info(
                        "Gateway request succeeded",
                        function_name=request.function_name,
                        status_code=response.status_code,
                        attempts=attempt_number
                    )
                    return decode_response(response)

                attempt.outcome = AttemptOutcome.FATAL_FAILURE
                self._record_attempt(request, attempt, started)
                body = decode_response(response)
                self.logger.error(
                    "Gateway request rejected",
                    function_name=request.function_name,
                    status_code=response.status_code,
                    attempts=attempt_number,
                    body=body
                )
                raise GatewayRequestRejected(request.function_name, response.status_code, body)

            self._record_attempt(request, attempt, started)

            if attempt_number < max_attempts:
                delay = calculate_delay(attempt_number, self.retry_config)
                self.logger.debug(
                    "Gateway attempt failed, backing off",
                    function_name=request.function_name,
                    attempt=attempt_number,
                    status_code=attempt.status_code,
                    error=describe_error(last_error),
                    delay_ms=round(delay * 1000)
                )
                await self.sleep(delay)

        self.logger.error(
            "Gateway request failed after all attempts",
            function_name=request.function_name,
            attempts=max_attempts,
            error=describe_error(last_error)
        )
        raise GatewayUnavailable(request.function_name, max_attempts, last_error)

    async def _send(self, request: RequestSpec) -> httpx.Response:
        """One attempt, hard-bounded by the request timeout."""
        timeout_s = request.timeout_ms / 1000.0
        return await asyncio.wait_for(
            self.http_client.request(
                request.method,
                request.url,
                params=request.params or None,
                json=request.json,
                timeout=timeout_s,
            ),
            timeout=timeout_s,
        )

    def _record_attempt(self, request: RequestSpec, attempt: RequestAttempt, started: float) -> None:
        self.logger.debug(
            "Gateway attempt finished",
            function_name=request.function_name,
            attempt=attempt.attempt_number,
            outcome=attempt.outcome.value if attempt.outcome else None,
            status_code=attempt.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2)
        )
        if self.metrics:
            self.metrics.increment_counter(
                "gateway_attempts_total",
                function=request.function_name,
                outcome=attempt.outcome.value if attempt.outcome else "unknown"
            )


def decode_response(response: httpx.Response) -> Any:
    """JSON when the body is JSON, text otherwise, ``None`` for an empty body."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
