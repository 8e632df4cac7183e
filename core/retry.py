# core/retry.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait after the given 1-based attempt fails."""
    return float(2**attempt)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = exponential_backoff
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


class RetryExhausted(Exception):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def run_with_retry(
    policy: RetryPolicy,
    attempt_fn: Callable[[int], Awaitable[T]],
    *,
    name: str = "op",
) -> Tuple[T, int]:
    """
    Call attempt_fn(attempt) until it succeeds or the policy is exhausted.
    Returns (value, attempts_used); raises RetryExhausted with the last error.
    Exceptions outside policy.retry_on propagate immediately.
    """
    attempt = 1
    while True:
        try:
            return await attempt_fn(attempt), attempt
        except policy.retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error("%s.exhausted attempts=%d", name, attempt)
                raise RetryExhausted(attempt, e) from e
            delay = policy.backoff(attempt)
            logger.warning(
                "%s.retry attempt=%d err=%s wait_s=%.1f",
                name,
                attempt,
                type(e).__name__,
                delay,
            )
            await policy.sleep(delay)
        attempt += 1
