import random

import pytest

from zkrollup_sdk.utils.clock import VirtualClock
from zkrollup_sdk.utils.retry import (RetryError, aretry_call, backoff_delay,
                                      poll_iters)


class Flaky:
    def __init__(self, failures: int, exc: type = ConnectionError) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self, value: str = "ok") -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"failure {self.calls}")
        return value


@pytest.mark.asyncio
async def test_succeeds_after_failures():
    clock = VirtualClock()
    fn = Flaky(2)
    assert await aretry_call(fn, "done", retries=3, base=0.1, jitter="none", clock=clock) == "done"
    assert fn.calls == 3
    assert clock.sleeps == [0.1, 0.2]


@pytest.mark.asyncio
async def test_exhausted_raises_retry_error():
    fn = Flaky(10)
    with pytest.raises(RetryError) as ei:
        await aretry_call(fn, retries=2, clock=VirtualClock())
    assert ei.value.attempts == 2
    assert isinstance(ei.value.last_exception, ConnectionError)
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_reraise_keeps_original_exception():
    with pytest.raises(ConnectionError):
        await aretry_call(Flaky(10), retries=1, reraise=True, clock=VirtualClock())


@pytest.mark.asyncio
async def test_non_matching_exceptions_are_not_retried():
    fn = Flaky(1, exc=KeyError)
    with pytest.raises(KeyError):
        await aretry_call(fn, exceptions=(ConnectionError,), clock=VirtualClock())
    assert fn.calls == 1

    fn = Flaky(1)
    with pytest.raises(ConnectionError):
        await aretry_call(fn, retry_if=lambda e: False, clock=VirtualClock())
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_on_retry_and_total_timeout():
    clock = VirtualClock()
    seen = []
    with pytest.raises(RetryError):
        await aretry_call(
            Flaky(10),
            retries=10,
            base=1.0,
            max_delay=1.0,
            jitter="none",
            total_timeout=2.5,
            clock=clock,
            on_retry=lambda attempt, exc, delay: seen.append((attempt, delay)),
        )
    assert seen == [(1, 1.0), (2, 1.0), (3, 0.5)]
    assert clock.monotonic() == 2.5


def test_backoff_delay_bounds():
    rng = random.Random(7)
    assert backoff_delay(1, base=0.25, max_delay=5.0, jitter="none") == 0.25
    assert backoff_delay(10, base=0.25, max_delay=5.0, jitter="none") == 5.0
    for attempt in range(1, 8):
        cap = min(0.25 * 2 ** (attempt - 1), 5.0)
        assert 0.0 <= backoff_delay(attempt, base=0.25, max_delay=5.0, rng=rng) <= cap
        assert cap / 2 <= backoff_delay(attempt, base=0.25, max_delay=5.0, jitter="equal", rng=rng) <= cap
    with pytest.raises(ValueError):
        backoff_delay(1, base=0.1, max_delay=1.0, jitter="bogus")


def test_poll_iters():
    assert poll_iters(1.0, 10.0) == 10
    assert poll_iters(3.0, 10.0) == 4
    assert poll_iters(5.0, 0.0) == 1
    with pytest.raises(ValueError):
        poll_iters(0, 10.0)
