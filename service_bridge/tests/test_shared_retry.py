"""
Unit tests for the shared retry utilities.
"""

import pytest
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.retry import RetryConfig, RetryError, calculate_delay, retry_on_exception
from shared.test_helpers import RecordingSleep


class TestCalculateDelay:
    """Test cases for calculate_delay."""

    def test_linear(self):
        config = RetryConfig(base_delay=0.5, jitter=False, backoff_strategy="linear")

        assert [calculate_delay(n, config) for n in (1, 2, 3)] == [0.5, 1.0, 1.5]

    def test_exponential(self):
        config = RetryConfig(base_delay=1.0, jitter=False, backoff_strategy="exponential")

        assert [calculate_delay(n, config) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_fixed(self):
        config = RetryConfig(base_delay=2.0, jitter=False, backoff_strategy="fixed")

        assert calculate_delay(4, config) == 2.0

    def test_max_delay_caps(self):
        config = RetryConfig(base_delay=10.0, max_delay=15.0, jitter=False)

        assert calculate_delay(5, config) == 15.0

    def test_unbounded_when_max_delay_none(self):
        config = RetryConfig(base_delay=10.0, max_delay=None, jitter=False)

        assert calculate_delay(5, config) == 160.0

    def test_jitter_stays_within_ten_percent(self):
        config = RetryConfig(base_delay=1.0, jitter=True, backoff_strategy="fixed")

        for _ in range(20):
            assert 0.9 <= calculate_delay(1, config) <= 1.1


class TestRetryOnException:
    """Test cases for the retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        sleep = RecordingSleep()
        operation = AsyncMock(side_effect=[ConnectionError("down"), "ok"])

        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=3, base_delay=2.0, jitter=False, backoff_strategy="fixed"), sleep=sleep)
        async def call():
            return await operation()

        assert await call() == "ok"
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_retry_error(self):
        sleep = RecordingSleep()
        error = ConnectionError("down")

        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=2, jitter=False), sleep=sleep)
        async def call():
            raise error

        with pytest.raises(RetryError) as exc_info:
            await call()

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_exception is error

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self):
        sleep = RecordingSleep()

        @retry_on_exception((ConnectionError,), sleep=sleep)
        async def call():
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await call()
        assert sleep.delays == []
