"""Tests for durable tier retry/backoff.

Verifies:
- Deterministic exponential backoff with cap
- Only StoreError and timeouts are retried
- NotFoundError passes through on the first attempt
"""

from __future__ import annotations

import asyncio

import pytest

from casgate.errors import NotFoundError, StoreError
from casgate.storage.retry import RetryPolicy, call_with_retry, compute_backoff_seconds


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestComputeBackoff:
    """Tests for the backoff schedule."""

    def test_exponential_schedule(self) -> None:
        assert compute_backoff_seconds(0) == pytest.approx(0.1)
        assert compute_backoff_seconds(1) == pytest.approx(0.2)
        assert compute_backoff_seconds(2) == pytest.approx(0.4)

    def test_capped(self) -> None:
        assert compute_backoff_seconds(10) == 2.0
        assert compute_backoff_seconds(3, base_seconds=1.0, cap_seconds=5.0) == 5.0

    def test_negative_index_is_zero(self) -> None:
        assert compute_backoff_seconds(-1) == 0.0

    def test_jitter_bounded(self) -> None:
        for _ in range(20):
            delay = compute_backoff_seconds(0, base_seconds=1.0, jitter=True)
            assert 1.0 <= delay <= 1.1


class TestRetryPolicy:
    """Tests for policy validation."""

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(timeout_seconds=0)


class TestCallWithRetry:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self) -> None:
        attempts = 0

        async def flaky() -> bytes:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise StoreError("transient")
            return b"ok"

        sleep = SleepRecorder()
        result = await call_with_retry(flaky, RetryPolicy(), description="read", sleep=sleep)

        assert result == b"ok"
        assert attempts == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_last_error_raised_when_exhausted(self) -> None:
        attempts = 0

        async def down() -> None:
            nonlocal attempts
            attempts += 1
            raise StoreError(f"attempt {attempts}")

        with pytest.raises(StoreError, match="attempt 2"):
            await call_with_retry(
                down, RetryPolicy(max_attempts=2), description="write", sleep=SleepRecorder()
            )
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self) -> None:
        attempts = 0

        async def missing() -> bytes:
            nonlocal attempts
            attempts += 1
            raise NotFoundError()

        sleep = SleepRecorder()
        with pytest.raises(NotFoundError):
            await call_with_retry(missing, RetryPolicy(), description="read", sleep=sleep)

        assert attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_timeout_becomes_store_error(self) -> None:
        async def hang() -> bytes:
            await asyncio.sleep(10)
            return b""

        policy = RetryPolicy(max_attempts=2, timeout_seconds=0.01)
        with pytest.raises(StoreError, match="timed out") as exc_info:
            await call_with_retry(hang, policy, description="read", sleep=SleepRecorder())

        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self) -> None:
        attempts = 0

        async def broken() -> None:
            nonlocal attempts
            attempts += 1
            raise ValueError("bug")

        with pytest.raises(ValueError):
            await call_with_retry(broken, RetryPolicy(), description="read", sleep=SleepRecorder())
        assert attempts == 1
