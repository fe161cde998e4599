"""Retry policy and the generic retrying fetch primitive used by the query client."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]
RetryCallback = Callable[[int, BaseException, float], Any]


class RetryExhausted(Exception):
    """Raised once every retry allowed by a policy has failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be zero or positive")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be zero or positive")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    @classmethod
    def disabled(cls) -> "RetryPolicy":
        return cls(max_retries=0)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt_index: int) -> float:
        """Return the pause before retry ``attempt_index`` (0 for the first retry)."""

        delay = min(self.base_delay * 2**attempt_index, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter * delay)
        return delay

    def should_retry(self, error: BaseException, failure_count: int) -> bool:
        return failure_count <= self.max_retries and isinstance(error, self.retry_on)


async def retrying_fetch(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    on_retry: RetryCallback | None = None,
) -> T:
    """Await ``fn`` until it succeeds or ``policy`` runs out of retries."""

    failure_count = 0
    while True:
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if not isinstance(exc, policy.retry_on):
                raise
            failure_count += 1
            if not policy.should_retry(exc, failure_count):
                raise RetryExhausted(failure_count, exc) from exc

            delay = policy.delay_for(failure_count - 1)
            logger.debug(
                "Retrying fetch failure_count={} delay={:.3f}s error={}",
                failure_count,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(failure_count, exc, delay)
            await sleep(delay)
