"""Retry policy with exponential backoff for transfer requests."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field, field_validator

from .errors import RetryExhaustedError, TransientTransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Retry policy for individual chunk and segment requests.

    Attributes:
        max_attempts: Maximum number of attempts, including the first
        base_delay_s: Delay before the first retry
        max_delay_s: Cap on the exponential delay
        jitter: Random spread as a fraction of the delay (0.15 = +/-15%)
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=5, ge=1)
    base_delay_s: float = Field(default=1.0, ge=0.0)
    max_delay_s: float = Field(default=30.0, ge=0.0)
    jitter: float = Field(default=0.15, ge=0.0, le=1.0)

    @field_validator("max_delay_s")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure max_delay_s >= base_delay_s."""
        base = info.data.get("base_delay_s", 1.0)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    def compute_delay(self, attempt: int) -> float:
        """Compute the delay before the next attempt.

        Args:
            attempt: Attempt that just failed (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def is_retryable(self, error: BaseException) -> bool:
        """Only transient transport failures are retried."""
        return isinstance(error, TransientTransportError)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Non-retryable errors propagate immediately and unchanged.

    Args:
        operation: Zero-argument coroutine factory
        policy: Retry policy to apply
        description: Label used in log messages and errors
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            if attempt >= policy.max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise RetryExhaustedError(description, attempt, e) from e
            delay = policy.compute_delay(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{policy.max_attempts}): {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)
            attempt += 1
