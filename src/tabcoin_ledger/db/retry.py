"""Retry with exponential backoff for database connection attempts."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

RetryObserver = Callable[[BaseException, int], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy.

    Attributes:
        retries: Retries allowed after the first attempt, so a policy makes at
            most ``retries + 1`` attempts.
        min_timeout: Delay in seconds before the first retry.
        max_timeout: Upper bound for any single delay.
        factor: Multiplier applied to the delay after every retry.
    """

    retries: int
    min_timeout: float = 0.15
    max_timeout: float = 5.0
    factor: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        on_retry: RetryObserver | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """Await ``fn`` until it succeeds or the attempts run out.

        Args:
            fn: Zero-argument coroutine function to invoke.
            on_retry: Called with the error and the failed attempt number
                before each backoff sleep.
            sleep: Coroutine used to wait between attempts.

        Returns:
            The first successful result of ``fn``.

        Raises:
            Exception: The error from the last attempt once retries are exhausted.
        """

        def _before_sleep(retry_state: RetryCallState) -> None:
            if on_retry is None or retry_state.outcome is None:
                return
            error = retry_state.outcome.exception()
            if error is not None:
                on_retry(error, retry_state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.min_timeout,
                exp_base=self.factor,
                max=self.max_timeout,
            ),
            retry=retry_if_exception_type(Exception),
            before_sleep=_before_sleep,
            sleep=sleep,
            reraise=True,
        )
        return await retrying(fn)
