"""Retry/backoff primitives for durable tier calls.

Durable tier reads and writes cross the network, so DurableBlockStore wraps
them in a timeout and a bounded retry loop:

- Only StoreError is retried; NotFoundError is final and returned at once
- Exponential backoff: base * 2^attempt_index, capped
- No jitter by default (deterministic for testing)

Backoff schedule (default base=0.1s, cap=2s, 3 attempts):
  Attempt 0: immediate
  Attempt 1: after 0.1s
  Attempt 2: after 0.2s
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final, TypeVar

from casgate.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_BASE_SECONDS: Final[float] = 0.1
DEFAULT_CAP_SECONDS: Final[float] = 2.0
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry settings for durable tier calls.

    Attributes:
        max_attempts: Total attempts including the first (1 disables retry).
        base_seconds: Delay before the first retry.
        cap_seconds: Upper bound for any single delay.
        timeout_seconds: Per-attempt timeout; None disables the timeout.
        jitter: Add up to 10% random jitter to each delay.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_seconds: float = DEFAULT_BASE_SECONDS
    cap_seconds: float = DEFAULT_CAP_SECONDS
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


def compute_backoff_seconds(
    attempt_index: int,
    base_seconds: float = DEFAULT_BASE_SECONDS,
    cap_seconds: float = DEFAULT_CAP_SECONDS,
    jitter: bool = False,
) -> float:
    """Compute backoff delay in seconds for a given retry index.

    Args:
        attempt_index: Zero-based retry index (0 = first retry).
        base_seconds: Base delay in seconds.
        cap_seconds: Maximum delay cap in seconds.
        jitter: If True, add random jitter up to 10% of delay.

    Returns:
        Backoff delay in seconds for this retry.

    Example:
        >>> compute_backoff_seconds(0)
        0.1
        >>> compute_backoff_seconds(10)
        2.0
    """
    if attempt_index < 0:
        return 0.0

    delay = min(base_seconds * (2**attempt_index), cap_seconds)

    if jitter:
        delay += delay * 0.1 * random.random()

    return delay


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run a durable tier call with timeout and bounded retry.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Timeout and retry settings.
        description: Short label for log messages (e.g., "read blocks/b...").
        sleep: Sleep function (tests pass a no-op).

    Returns:
        The operation's result.

    Raises:
        StoreError: After the last failed attempt (or on timeout).
        NotFoundError: Immediately, never retried.
    """
    last_error: StoreError | None = None

    for attempt in range(policy.max_attempts):
        if attempt > 0:
            delay = compute_backoff_seconds(
                attempt - 1, policy.base_seconds, policy.cap_seconds, policy.jitter
            )
            logger.warning(
                "Retrying durable call: op=%s attempt=%d/%d delay=%.3fs error=%s",
                description,
                attempt + 1,
                policy.max_attempts,
                delay,
                last_error,
            )
            await sleep(delay)

        try:
            if policy.timeout_seconds is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError as e:
            last_error = StoreError(
                f"Durable call timed out after {policy.timeout_seconds}s", cause=e
            )
        except StoreError as e:
            last_error = e

    assert last_error is not None
    raise last_error
