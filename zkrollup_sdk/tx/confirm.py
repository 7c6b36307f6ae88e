"""
zkrollup_sdk.tx.confirm
=======================

Confirmation state machine for a submitted L2 transaction.

    SENT -> PENDING -> COMMITTED -> VERIFIED -> EXECUTED
    (any non-terminal state) -> FAILED

- `poll()` performs exactly one `tx_info` call and applies the observed status.
  `polls` counts every attempt, failed ones included.
  States only move forward; an observed regression (a lagging operator
  replica, say) is logged and ignored. Terminal states are never left.
- `wait_for(target, config)` polls on the `PollConfig` schedule until `target`
  or a terminal state is reached. A FAILED transaction resolves normally
  (check `receipt.failed`); only an exhausted budget raises `Timeout`, and
  tracking can continue afterwards from the same object.
- Transient RPC errors during polling are logged and polling continues while
  the budget allows.

All waiting goes through the injected `Clock`.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import PollConfig
from ..errors import Timeout, Transient
from ..rpc.operator import OperatorClient
from ..types.core import TxId, TxReceipt, TxState
from ..utils.clock import Clock, SystemClock

log = logging.getLogger(__name__)


class ConfirmationTracker:
    def __init__(
        self,
        operator: OperatorClient,
        tx_id: TxId,
        *,
        clock: Optional[Clock] = None,
        initial: TxState = TxState.SENT,
    ) -> None:
        self._operator = operator
        self.tx_id = tx_id
        self.clock = clock or operator.clock or SystemClock()
        self.state = initial
        self.receipt: Optional[TxReceipt] = None
        self.polls = 0

    def apply(self, receipt: TxReceipt) -> bool:
        """Apply an observed receipt; returns True when the state changed."""
        observed = receipt.state
        if observed is self.state:
            self.receipt = receipt
            return False
        if self.state.is_terminal:
            log.warning("%s: ignoring %s after terminal %s", self.tx_id, observed.value, self.state.value)
            return False
        if observed is not TxState.FAILED and observed.rank < self.state.rank:
            log.warning("%s: ignoring regression %s -> %s", self.tx_id, self.state.value, observed.value)
            return False
        log.info("%s: %s -> %s", self.tx_id, self.state.value, observed.value)
        self.state = observed
        self.receipt = receipt
        return True

    async def poll(self) -> TxState:
        self.polls += 1
        receipt = await self._operator.get_status(self.tx_id)
        self.apply(receipt)
        return self.state

    def reached(self, target: TxState) -> bool:
        return self.state.is_terminal or self.state.rank >= target.rank

    async def wait_for(self, target: TxState = TxState.COMMITTED, config: Optional[PollConfig] = None) -> TxReceipt:
        cfg = config or PollConfig()
        started = self.clock.monotonic()
        n = 0
        while True:
            try:
                await self.poll()
            except Transient as e:
                log.warning("%s: status poll failed, will retry: %s", self.tx_id, e)
            n += 1
            if self.reached(target):
                return self.receipt or TxReceipt(tx_id=self.tx_id, state=self.state)

            waited = self.clock.monotonic() - started
            remaining = cfg.max_wait - waited
            if (cfg.max_polls is not None and n >= cfg.max_polls) or remaining <= 0:
                raise Timeout(
                    f"{self.tx_id} did not reach {target.value}",
                    waited=waited,
                    polls=n,
                    last_state=self.state.value,
                )
            await self.clock.sleep(min(cfg.delay(n), remaining))


__all__ = ["ConfirmationTracker"]
