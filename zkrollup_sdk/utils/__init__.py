"""
Utility helpers for the Python SDK.

Re-exports:
- bytes: hex helpers and fixed-width integer encoding
- clock: injectable clock (system / virtual)
- retry: async retry with exponential backoff and jitter
"""

from .bytes import ensure_bytes, from_hex, int_to_be, to_hex
from .clock import Clock, SystemClock, VirtualClock
from .retry import RetryError, aretry_call, backoff_delay, poll_iters

__all__ = [
    # bytes
    "to_hex",
    "from_hex",
    "ensure_bytes",
    "int_to_be",
    # clock
    "Clock",
    "SystemClock",
    "VirtualClock",
    # retry
    "RetryError",
    "aretry_call",
    "backoff_delay",
    "poll_iters",
]
