"""
Retry combinator for optimistic cache protocols.

append/prepend grow a list optimistically: try the atomic grow, fall back
to creating the list, and start over if another writer created it first.
That loop is expressed here as a generic retry with an injected backoff
policy, so tests can bound it and production can tune it.

Invariants:
    - Only the exception types named in retry_on are retried, and of
      those only the ones retry_if accepts
    - The last exception is re-raised unchanged once the policy is exhausted
    - The default policy retries forever without sleeping, but still
      yields to the event loop between attempts
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """How often and how patiently to retry.

    Attributes:
        max_attempts: Total attempts allowed (None = unbounded)
        initial_delay: Delay before the first retry, in seconds
        multiplier: Factor applied to the delay after each retry
        max_delay: Upper bound for a single delay, in seconds
    """

    max_attempts: Optional[int] = None
    initial_delay: float = 0.0
    multiplier: float = 2.0
    max_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def exhausted(self, attempt: int) -> bool:
        """True if no attempt may follow attempt number `attempt` (1-based)."""
        return self.max_attempts is not None and attempt >= self.max_attempts

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt`."""
        if self.initial_delay <= 0:
            return 0.0
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)


NO_BACKOFF = BackoffPolicy()


async def retry(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: Tuple[Type[BaseException], ...],
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    policy: BackoffPolicy = NO_BACKOFF,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """Run `operation` until it succeeds or raises something not in `retry_on`.

    Args:
        operation: Zero-argument coroutine function, called once per attempt
        retry_on: Exception types that trigger another attempt
        retry_if: Optional predicate; a matching exception it rejects
            propagates immediately
        policy: Attempt limit and delays
        sleep: Awaitable sleep, injectable for tests
        description: Name used in log messages

    Returns:
        The result of the first successful attempt
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as e:
            if retry_if is not None and not retry_if(e):
                raise
            if policy.exhausted(attempt):
                logger.warning(
                    "Giving up on %s after %d attempts: %s", description, attempt, e
                )
                raise
            delay = policy.delay(attempt)
            logger.info(
                "Retrying %s",
                description,
                extra={"attempt": attempt, "delay": delay, "reason": type(e).__name__},
            )
            await sleep(delay)
            attempt += 1
