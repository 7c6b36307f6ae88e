"""
Retry helpers with exponential backoff and jitter.

Implements the three AWS Architecture Blog strategies:
- full jitter        : sleep U(0, cap)
- equal jitter       : sleep cap/2 + U(0, cap/2)
- decorrelated jitter: sleep U(base, prev*3) capped

Only the async variant is provided: every network call in the SDK is awaited.

Example
-------
from zkrollup_sdk.utils.retry import aretry_call

async def aflaky():
    ...

result = await aretry_call(aflaky, retries=5, base=0.2, max_delay=2.0)

Notes
-----
- By default, retries on Exception; customize via `exceptions` and/or `retry_if`.
- `on_retry` callback receives (attempt_index, exception, sleep_seconds).
- `total_timeout` puts a ceiling on overall time spent retrying.
- Pass a `clock` (see utils.clock) to control time; the default is the system clock.
"""

from __future__ import annotations

import logging
import math
import random
from typing import (Any, Awaitable, Callable, Literal, Optional, Sequence,
                    Tuple, Type, TypeVar, Union)

from .clock import Clock, SystemClock

__all__ = [
    "RetryError",
    "BackoffState",
    "JitterMode",
    "backoff_delay",
    "aretry_call",
    "poll_iters",
]

log = logging.getLogger(__name__)

T = TypeVar("T")

JitterMode = Literal["full", "equal", "decorrelated", "none"]


class RetryError(RuntimeError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: BaseException, attempts: int) -> None:
        super().__init__(f"exhausted after {attempts} attempts: {last_exception!r}")
        self.last_exception = last_exception
        self.attempts = attempts


class BackoffState:
    """
    Mutable state for decorrelated jitter.

    You usually don't need to create this yourself; it's managed by retry helpers.
    """

    __slots__ = ("prev_delay",)

    def __init__(self) -> None:
        self.prev_delay: float = 0.0


def _cap(val: float, max_delay: float) -> float:
    return min(val, max_delay)


def backoff_delay(
    attempt: int,
    *,
    base: float,
    max_delay: float,
    jitter: JitterMode = "full",
    state: Optional[BackoffState] = None,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Compute a backoff delay (in seconds) for the given attempt (1-based).

    - base: initial backoff (seconds), e.g. 0.1
    - max_delay: maximum per-attempt delay (cap)
    - jitter: strategy name (full|equal|decorrelated|none)
    - state: required only for decorrelated to persist `prev_delay`
    - rng: optional random source (seeded in tests)
    """
    r = rng or random
    if attempt < 1:
        attempt = 1
    cap = _cap(base * (2 ** (attempt - 1)), max_delay)

    if jitter == "none":
        delay = cap
    elif jitter == "full":
        delay = r.uniform(0.0, cap)
    elif jitter == "equal":
        delay = (cap * 0.5) + r.uniform(0.0, cap * 0.5)
    elif jitter == "decorrelated":
        if state is None:
            state = BackoffState()
        low = base
        high = max(base, state.prev_delay * 3.0 if state.prev_delay > 0 else base)
        delay = _cap(r.uniform(low, high), max_delay)
        state.prev_delay = delay
    else:
        raise ValueError(f"unknown jitter mode: {jitter}")
    return max(0.0, float(delay))


def _should_retry(
    exc: BaseException,
    exceptions: Tuple[Type[BaseException], ...],
    retry_if: Optional[Callable[[BaseException], bool]],
) -> bool:
    if not isinstance(exc, exceptions):
        return False
    if retry_if is not None:
        try:
            return bool(retry_if(exc))
        except Exception:
            # If predicate itself fails, be conservative and do not retry
            return False
    return True


async def aretry_call(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    retries: int = 5,
    base: float = 0.2,
    max_delay: float = 3.0,
    jitter: JitterMode = "full",
    exceptions: Union[Type[BaseException], Sequence[Type[BaseException]]] = Exception,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    total_timeout: Optional[float] = None,
    clock: Optional[Clock] = None,
    reraise: bool = False,
    **kwargs: Any,
) -> T:
    """
    Await `fn(*args, **kwargs)` with retries.

    When retries are exhausted a `RetryError` is raised, or the last exception
    itself when `reraise=True`.
    """
    if isinstance(exceptions, type):
        exc_types: Tuple[Type[BaseException], ...] = (exceptions,)
    else:
        exc_types = tuple(exceptions)  # type: ignore[arg-type]

    clk = clock or SystemClock()
    deadline = clk.monotonic() + total_timeout if total_timeout is not None else None
    state = BackoffState()

    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            if not _should_retry(exc, exc_types, retry_if):
                raise
            if attempt > retries:
                if reraise:
                    raise
                raise RetryError(exc, attempts=attempt - 1) from exc

            sleep_s = backoff_delay(
                attempt=attempt,
                base=base,
                max_delay=max_delay,
                jitter=jitter,
                state=state if jitter == "decorrelated" else None,
            )
            if deadline is not None:
                remaining = deadline - clk.monotonic()
                if remaining <= 0:
                    if reraise:
                        raise
                    raise RetryError(exc, attempts=attempt - 1) from exc
                sleep_s = min(sleep_s, max(0.0, remaining))

            log.debug("retry %d/%d in %.3fs after %r", attempt, retries, sleep_s, exc)
            if on_retry is not None:
                try:
                    on_retry(attempt, exc, sleep_s)
                except Exception:
                    log.exception("on_retry callback failed")

            await clk.sleep(sleep_s)


def poll_iters(delay_interval: float, max_wait: float) -> int:
    """
    Number of polls of `delay_interval` that fit into `max_wait`, rounding up.

    Always at least 1 so a zero budget still performs a single check.
    """
    if delay_interval <= 0:
        raise ValueError("delay interval must be positive")
    return max(1, math.ceil(max(0.0, float(max_wait)) / float(delay_interval)))
