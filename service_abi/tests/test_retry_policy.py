"""
Unit tests for the shared retry policy.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from shared.errors import (
    ConnectionFailedError,
    PackageNotFoundError,
    RpcRateLimitedError,
    RpcTimeoutError,
)
from shared.retry import RetryPolicy, calculate_delay, call_with_retry


class TestRetryPolicy:
    """Test cases for call_with_retry and calculate_delay."""

    @pytest.fixture
    def on_retry(self):
        return MagicMock()

    @pytest.fixture
    def policy(self, on_retry):
        """Fast policy that records retries."""
        return RetryPolicy(max_attempts=4, base_delay=0.0, jitter=False, on_retry=on_retry)

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, policy, on_retry):
        """Test no retry callback fires when the first attempt succeeds."""
        func = AsyncMock(return_value="ok")

        assert await call_with_retry(func, policy) == "ok"
        assert func.await_count == 1
        on_retry.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [2, 3, 4])
    async def test_success_on_attempt_k(self, policy, on_retry, k):
        """Test k-1 transient failures then success resolves with k-1 callbacks."""
        failures = [RpcTimeoutError("https://rpc", 30000) for _ in range(k - 1)]
        func = AsyncMock(side_effect=failures + ["ok"])

        assert await call_with_retry(func, policy) == "ok"
        assert func.await_count == k
        assert on_retry.call_count == k - 1

        attempts = [call.args[1] for call in on_retry.call_args_list]
        assert attempts == list(range(1, k))
        assert all(b > a for a, b in zip(attempts, attempts[1:]))

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, policy, on_retry):
        """Test the last error propagates unchanged after max_attempts."""
        errors = [
            RpcTimeoutError("https://rpc", 30000),
            RpcRateLimitedError("https://rpc"),
            ConnectionFailedError("https://rpc", "reset"),
            RpcRateLimitedError("https://rpc"),
        ]
        func = AsyncMock(side_effect=errors)

        with pytest.raises(RpcRateLimitedError) as exc_info:
            await call_with_retry(func, policy)

        assert exc_info.value is errors[-1]
        assert func.await_count == 4
        assert on_retry.call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, on_retry):
        """Test exceptions outside retry_on are not retried."""
        policy = RetryPolicy(
            max_attempts=5,
            base_delay=0.0,
            retry_on=(RpcTimeoutError,),
            on_retry=on_retry,
        )
        func = AsyncMock(side_effect=PackageNotFoundError("0x1", "mainnet"))

        with pytest.raises(PackageNotFoundError):
            await call_with_retry(func, policy)

        assert func.await_count == 1
        on_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_on_retry_receives_error_and_delay(self, on_retry):
        """Test the callback gets the error, attempt number and delay."""
        policy = RetryPolicy(max_attempts=2, base_delay=0.01, jitter=False, on_retry=on_retry)
        error = RpcTimeoutError("https://rpc", 30000)
        func = AsyncMock(side_effect=[error, "ok"])

        await call_with_retry(func, policy)

        on_retry.assert_called_once_with(error, 1, 0.01)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self, on_retry):
        """Test cancelling during back-off propagates without another attempt."""
        policy = RetryPolicy(max_attempts=5, base_delay=10.0, jitter=False, on_retry=on_retry)
        func = AsyncMock(side_effect=RpcTimeoutError("https://rpc", 30000))

        task = asyncio.create_task(call_with_retry(func, policy))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert func.await_count == 1
        assert on_retry.call_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_attempt_does_not_count_as_failure(self, on_retry):
        """Test a CancelledError raised by an attempt is never retried."""
        policy = RetryPolicy(max_attempts=3, base_delay=0.0, on_retry=on_retry)
        func = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await call_with_retry(func, policy)

        assert func.await_count == 1
        on_retry.assert_not_called()

    def test_exponential_delay_is_capped(self):
        """Test exponential back-off doubles and stops at max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, exponential_base=2.0, jitter=False)

        assert [calculate_delay(a, policy) for a in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_linear_and_fixed_delay(self):
        """Test the linear and fixed strategies."""
        linear = RetryPolicy(base_delay=0.5, jitter=False, backoff_strategy="linear")
        fixed = RetryPolicy(base_delay=0.5, jitter=False, backoff_strategy="fixed")

        assert calculate_delay(3, linear) == 1.5
        assert calculate_delay(3, fixed) == 0.5

    def test_jitter_stays_within_ten_percent(self):
        """Test jitter perturbs the delay by at most 10%."""
        policy = RetryPolicy(base_delay=1.0, jitter=True)

        for _ in range(100):
            assert 0.9 <= calculate_delay(1, policy) <= 1.1

    def test_max_attempts_must_be_positive(self):
        """Test a policy needs at least one attempt."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
