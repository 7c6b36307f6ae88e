"""
zkrollup_sdk.types
==================

Shared SDK datatypes; see :mod:`zkrollup_sdk.types.core`.

    from zkrollup_sdk.types import TxType, TxState, AccountState
"""

from __future__ import annotations

from .core import *  # noqa: F401,F403
from .core import __all__ as __all__  # noqa: F401
