"""
Retry helpers: backoff delays and an async retry decorator.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from shared.logging import get_logger


# strategy -> delay before the next attempt, given the failed attempt number
_BACKOFF: Dict[str, Callable[["RetryConfig", int], float]] = {
    "fixed": lambda config, attempt: config.base_delay,
    "linear": lambda config, attempt: config.base_delay * attempt,
    "exponential": lambda config, attempt: config.base_delay * config.exponential_base ** (attempt - 1),
}

BACKOFF_STRATEGIES = tuple(_BACKOFF)

JITTER_RATIO = 0.1


@dataclass
class RetryConfig:
    """Attempt budget and backoff shape.

    ``max_delay=None`` leaves the delay uncapped. Unknown strategies fall back
    to a fixed delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: Optional[float] = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    backoff_strategy: str = "exponential"


class RetryError(Exception):
    """Every attempt failed; ``last_exception`` is the final cause."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1-based)."""
    backoff = _BACKOFF.get(config.backoff_strategy, _BACKOFF["fixed"])
    delay = backoff(config, attempt)

    if config.max_delay is not None:
        delay = min(delay, config.max_delay)
    if config.jitter:
        delay += random.uniform(-1, 1) * delay * JITTER_RATIO

    return max(0.0, delay)


def retry_on_exception(
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable:
    """Retry the decorated coroutine function when it raises ``exceptions``.

    Other exceptions propagate at once. When the budget is spent a
    ``RetryError`` chained to the last failure is raised.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        name = func.__name__
        logger = get_logger(f"retry.{name}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            if config.max_attempts < 1:
                raise RetryError(
                    f"{name} has no attempts configured",
                    last_exception=ValueError("max_attempts < 1"),
                    attempts=0
                )

            attempt = 0
            while True:
                attempt += 1
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= config.max_attempts:
                        logger.error("Retries exhausted", function=name, attempts=attempt, error=str(e))
                        raise RetryError(
                            f"{name} failed after {attempt} attempts", last_exception=e, attempts=attempt
                        ) from e

                    delay = calculate_delay(attempt, config)
                    logger.warning("Attempt failed, retrying", function=name, attempt=attempt, delay=delay, error=str(e))
                    await sleep(delay)
                    continue

                if attempt > 1:
                    logger.info("Succeeded after retry", function=name, attempts=attempt)
                return result

        return wrapper

    return decorator
