"""Fixed-delay retry for async operations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY_S = 10.0


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay_s: float = DEFAULT_DELAY_S,
    *,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """Run ``operation`` up to ``max_attempts`` times, sequentially.

    Waits ``delay_s`` between attempts (fixed, no jitter). The last failure
    propagates unchanged. When ``should_retry`` is given and returns False for
    a failure, that failure propagates immediately.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        max_attempts: Attempt budget (>= 1)
        delay_s: Seconds to wait between attempts
        should_retry: Optional predicate deciding whether a failure is retryable
        sleep: Awaitable sleep function (injectable for tests)
        description: Label used in log messages

    Returns:
        The first successful result.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_attempts:
                logger.error("%s failed after %d attempt(s): %s", description, attempt, e)
                raise
            if should_retry is not None and not should_retry(e):
                logger.error("%s failed with non-retryable error: %s", description, e)
                raise
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %.1fs",
                description, attempt, max_attempts, e, delay_s,
            )
        await sleep(delay_s)
        attempt += 1
