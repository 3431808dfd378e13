"""Tests for the exponential backoff retry policy."""

from unittest.mock import AsyncMock

import pytest

from tabcoin_ledger.db.retry import RetryPolicy


class Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError(f"failure {self.calls}")
        return "connected"


def test_max_attempts_counts_first_try() -> None:
    assert RetryPolicy(retries=1).max_attempts == 2
    assert RetryPolicy(retries=12).max_attempts == 13


@pytest.mark.asyncio
async def test_succeeds_after_failures_below_cap() -> None:
    sleep = AsyncMock()
    flaky = Flaky(failures=3)

    result = await RetryPolicy(retries=3).call(flaky, sleep=sleep)

    assert result == "connected"
    assert flaky.calls == 4


@pytest.mark.asyncio
async def test_reraises_last_error_when_exhausted() -> None:
    sleep = AsyncMock()
    flaky = Flaky(failures=10)

    with pytest.raises(OSError, match="failure 3"):
        await RetryPolicy(retries=2).call(flaky, sleep=sleep)

    assert flaky.calls == 3


@pytest.mark.asyncio
async def test_backoff_grows_by_factor_and_is_capped() -> None:
    sleep = AsyncMock()
    flaky = Flaky(failures=7)

    await RetryPolicy(retries=7, min_timeout=0.15, max_timeout=5.0, factor=2).call(flaky, sleep=sleep)

    delays = [call.args[0] for call in sleep.await_args_list]
    assert delays == pytest.approx([0.15, 0.3, 0.6, 1.2, 2.4, 4.8, 5.0])


@pytest.mark.asyncio
async def test_zero_min_timeout_never_waits() -> None:
    sleep = AsyncMock()

    await RetryPolicy(retries=5, min_timeout=0).call(Flaky(failures=5), sleep=sleep)

    assert all(call.args[0] == 0 for call in sleep.await_args_list)
    assert sleep.await_count == 5


@pytest.mark.asyncio
async def test_observer_sees_each_failed_attempt() -> None:
    seen: list[tuple[str, int]] = []

    await RetryPolicy(retries=2).call(
        Flaky(failures=2),
        on_retry=lambda error, attempt: seen.append((str(error), attempt)),
        sleep=AsyncMock(),
    )

    assert seen == [("failure 1", 1), ("failure 2", 2)]


@pytest.mark.asyncio
async def test_no_retry_when_first_attempt_succeeds() -> None:
    sleep = AsyncMock()
    observer = []

    await RetryPolicy(retries=3).call(Flaky(failures=0), on_retry=lambda e, a: observer.append(a), sleep=sleep)

    sleep.assert_not_awaited()
    assert observer == []
