"""Retry policy shared by the LLM client and the response poster.

A RetryPolicy bundles the maximum number of attempts with a backoff
function mapping a 0-indexed retry number to a delay in seconds. The
policy only retries errors whose ``retryable`` flag is set; everything
else propagates on the first occurrence.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from issue_responder.errors import RateLimitedError, ResponderError


logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int], float]


def exponential_backoff(
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
) -> BackoffFn:
    """Build an exponential backoff function.

    The delay for retry ``n`` is ``base_delay * 2**n`` capped at
    ``max_delay``. With jitter enabled the delay is drawn uniformly from
    ``[0, capped]`` (full jitter).

    Args:
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        jitter: Whether to apply full jitter.

    Returns:
        A function mapping the retry number to a delay in seconds.
    """

    def backoff(retry_number: int) -> float:
        capped = min(base_delay * (2 ** retry_number), max_delay)
        if jitter:
            return random.uniform(0, capped)
        return capped

    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with backoff for typed pipeline failures.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        backoff: Maps the retry number (0 for the first retry) to a delay.
        max_delay: Cap applied to server-requested Retry-After delays.
        sleep: Awaitable sleep function, replaceable in tests.
    """

    max_attempts: int = 3
    backoff: BackoffFn = field(default_factory=exponential_backoff)
    max_delay: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, retry_number: int, error: ResponderError) -> float:
        """Compute the delay before the next attempt.

        Honors a Retry-After hint from rate-limited responses when it is
        longer than the computed backoff, capped at ``max_delay``.
        """
        delay = self.backoff(retry_number)
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            delay = max(delay, min(error.retry_after, self.max_delay))
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """Run an async operation under this policy.

        Args:
            operation: Zero-argument callable returning a fresh awaitable
                for every attempt.
            description: Label used in log messages.

        Returns:
            The operation's result.

        Raises:
            ResponderError: The last failure once attempts are exhausted,
                or the first non-retryable failure.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except ResponderError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    if exc.retryable:
                        logger.error(
                            "Retries exhausted",
                            extra={
                                "operation": description,
                                "attempts": attempt,
                                "failure_kind": exc.kind.value,
                            },
                        )
                    raise

                delay = self.delay_for(attempt - 1, exc)
                logger.warning(
                    "Transient failure, retrying",
                    extra={
                        "operation": description,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "failure_kind": exc.kind.value,
                        "delay": delay,
                    },
                )
                await self.sleep(delay)
