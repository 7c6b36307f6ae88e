"""
Version helpers for the zk-rollup Python SDK.
We keep a static __version__ (PEP 440) and expose a small structured view that
the CLI and the HTTP User-Agent both read.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass

# Bump this when publishing
__version__ = "0.3.0"


@dataclass(frozen=True)
class VersionInfo:
    base: str
    python: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.base} (python {self.python})"


def version_info() -> VersionInfo:
    """Structured version info (SDK version plus interpreter version)."""
    return VersionInfo(base=__version__, python=platform.python_version())


def user_agent() -> str:
    """Default User-Agent sent with every operator request."""
    return f"zkrollup-sdk-py/{__version__}"


__all__ = ["__version__", "VersionInfo", "version_info", "user_agent"]
