"""
Clock abstraction used by every polling and retry loop.

All waiting in the SDK goes through a `Clock` so that callers (and tests) can
drive state machines deterministically without real delays.

- SystemClock : time.monotonic() + asyncio.sleep()
- VirtualClock: manually advanced time; `sleep` returns immediately and
                moves the virtual time forward by the requested amount.
"""

from __future__ import annotations

import asyncio
import time
from typing import List, Protocol, runtime_checkable

__all__ = ["Clock", "SystemClock", "VirtualClock"]


@runtime_checkable
class Clock(Protocol):
    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, float(seconds)))


class VirtualClock:
    """
    Deterministic clock for tests and simulations.

    `sleep` yields control to the event loop once (so concurrent tasks still
    interleave) and advances the virtual time. Every requested delay is
    recorded in `sleeps`.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += max(0.0, float(seconds))

    async def sleep(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)
