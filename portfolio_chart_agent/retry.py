"""Bounded retries with jittered exponential backoff for outbound calls."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    # Upper bound of the uniform random term added to every delay.
    jitter: float = 1.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES

    def delay_for(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        return min(
            self.initial_delay * 2**attempt + rand() * self.jitter,
            self.max_delay,
        )


PORTFOLIO_POLICY = RetryPolicy(max_attempts=3, initial_delay=1.0, max_delay=10.0)
LIVE_SEARCH_POLICY = RetryPolicy(max_attempts=2, initial_delay=2.0, max_delay=8.0)
GENERATION_POLICY = RetryPolicy(max_attempts=3, initial_delay=2.0, max_delay=15.0)


def status_code_of(error: BaseException) -> int | None:
    """Best-effort extraction of an HTTP status code carried by ``error``."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    status = status_code_of(error)
    if status is None:
        # Network failures and other uncoded errors are treated as transient.
        return True
    if 400 <= status < 500 and status != 429:
        return False
    if policy.retryable_status_codes and status not in policy.retryable_status_codes:
        return False
    return status == 429 or status >= 500


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    rand: Callable[[], float] = random.random,
) -> T:
    """Await ``operation()`` until it succeeds or ``policy`` gives up.

    Terminal failures (4xx other than 429, codes outside the policy, or the
    last allowed attempt) are re-raised unchanged so callers can tell the
    failure classes apart.
    """
    name = label or getattr(operation, "__name__", "operation")
    attempts = max(policy.max_attempts, 1)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as error:
            if not is_retryable(error, policy) or attempt == attempts - 1:
                raise
            delay = policy.delay_for(attempt, rand)
            logger.warning(
                "%s failed (status=%s); retry attempt %d/%d after %.2fs",
                name,
                status_code_of(error),
                attempt + 1,
                attempts,
                delay,
            )
            await sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
