"""
zkrollup_sdk.tx.fees
====================

Fee quotes from the operator, turned into fees a transaction can carry.

- `estimate()` returns the operator's advisory `FeeEstimate`.
- `suggest()` applies a tolerance margin, rounds **up** to the closest
  packable fee and enforces an optional caller maximum.
- `check()` validates a caller-supplied fee without any network call.

The operator re-validates fees at submission; a quote can go stale between
estimate and submit and is then rejected with `RejectReason.FEE_TOO_LOW`.
"""

from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Optional

from ..amounts import closest_greater_or_eq_packable_fee, is_packable_fee
from ..errors import FeeTooHigh, FeeUnavailable, Rejected, ValidationError
from ..rpc.operator import OperatorClient, TokenLike
from ..types.core import Address, FeeEstimate, TxType

log = logging.getLogger(__name__)


def _with_tolerance(total: int, tolerance: float) -> int:
    if tolerance < 0:
        raise ValueError("tolerance must be non-negative")
    # Decimal keeps large base-unit totals exact before the ceiling.
    scaled = Decimal(int(total)) * (Decimal(1) + Decimal(str(tolerance)))
    return int(math.ceil(scaled))


class FeeEstimator:
    def __init__(self, operator: OperatorClient, tolerance: float = 0.0) -> None:
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        self._operator = operator
        self.tolerance = float(tolerance)

    async def estimate(
        self,
        tx_type: TxType,
        token: TokenLike,
        address: Address,
        *,
        fast: bool = False,
    ) -> FeeEstimate:
        """Operator quote; a refusal to price the combination becomes FeeUnavailable."""
        try:
            est = await self._operator.estimate_fee(tx_type, address, token, fast=fast)
        except Rejected as e:
            raise FeeUnavailable(e.message, tx_type=tx_type.wire_name, token=str(token)) from e
        log.debug("fee quote %s/%s: total=%d", tx_type.wire_name, token, est.total_fee)
        return est

    async def suggest(
        self,
        tx_type: TxType,
        token: TokenLike,
        address: Address,
        max_fee: Optional[int] = None,
        tolerance: Optional[float] = None,
        *,
        fast: bool = False,
    ) -> int:
        """
        ceil(total_fee * (1 + tolerance)) rounded up to a packable fee.

        Raises FeeTooHigh when the result exceeds `max_fee`.
        """
        est = await self.estimate(tx_type, token, address, fast=fast)
        tol = self.tolerance if tolerance is None else float(tolerance)
        fee = closest_greater_or_eq_packable_fee(_with_tolerance(est.total_fee, tol)).value
        if max_fee is not None and fee > max_fee:
            raise FeeTooHigh(fee=fee, max_fee=int(max_fee), token=str(token))
        return fee

    @staticmethod
    def check(fee: int, max_fee: Optional[int] = None) -> int:
        """Validate a caller-supplied fee: packable and within `max_fee`."""
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
            raise ValidationError(f"fee must be a non-negative integer, got {fee!r}", field="fee")
        if not is_packable_fee(fee):
            raise ValidationError(f"fee {fee} is not packable", field="fee")
        if max_fee is not None and fee > max_fee:
            raise FeeTooHigh(fee=fee, max_fee=int(max_fee))
        return fee


__all__ = ["FeeEstimator"]
