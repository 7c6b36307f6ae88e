"""
zkrollup_sdk.l1.priority
========================

Tracking of priority operations: requests submitted on the base chain (L1)
that the rollup must process, such as deposits and full exits.

State machine
-------------
    SUBMITTED -> AWAITING_SERIAL_ID -> SERIAL_ID_KNOWN -> L2_PENDING -> L2_CONFIRMED | L2_FAILED

- SUBMITTED           L1 transaction sent, not yet included
- AWAITING_SERIAL_ID  included on L1; serial id not yet read from the logs
- SERIAL_ID_KNOWN     `NewPriorityRequest` decoded; serial id assigned
- L2_PENDING          operator knows the request, not yet in a committed block
- L2_CONFIRMED        committed (or verified, with `require_verified=True`)
- L2_FAILED           L1 transaction reverted, or the operator failed the op

Every wait polls on a `PollConfig` schedule through the injected `Clock` and
raises `Timeout` on an exhausted budget, leaving the state as it was.
Tracking can be resumed later from just the serial id with `resume()`.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from eth_abi import decode as abi_decode
from eth_utils import keccak

from ..config import PollConfig
from ..errors import JsonRpcCode, Rejected, Timeout, Transient
from ..rpc.operator import OperatorClient
from ..types.core import Address, Hex, PriorityOperation, PriorityOpReceipt, PriorityOpState
from ..utils.clock import Clock, SystemClock
from .gateway import L1Gateway, L1Receipt

log = logging.getLogger(__name__)

T = TypeVar("T")

NEW_PRIORITY_REQUEST_EVENT = "NewPriorityRequest(address,uint64,uint8,bytes,uint256)"
NEW_PRIORITY_REQUEST_TOPIC = keccak(text=NEW_PRIORITY_REQUEST_EVENT)
_EVENT_TYPES = ["address", "uint64", "uint8", "bytes", "uint256"]


def decode_priority_requests(receipt: L1Receipt, contract_address: Optional[Address] = None) -> List[PriorityOperation]:
    """All `NewPriorityRequest` events in `receipt`, optionally filtered by emitting contract."""
    out: List[PriorityOperation] = []
    for entry in receipt.logs:
        if not entry.topics or entry.topics[0] != NEW_PRIORITY_REQUEST_TOPIC:
            continue
        if contract_address and entry.address.lower() != contract_address.lower():
            continue
        sender, serial_id, op_type, payload, expiration = abi_decode(_EVENT_TYPES, entry.data)
        out.append(
            PriorityOperation(
                serial_id=int(serial_id),
                op_type=int(op_type),
                payload=bytes(payload),
                l1_tx_hash=receipt.tx_hash,
                sender=str(sender),
                expiration_block=int(expiration),
            )
        )
    return out


class PriorityOpTracker:
    def __init__(
        self,
        gateway: Optional[L1Gateway],
        operator: OperatorClient,
        *,
        l1_tx_hash: Optional[Hex] = None,
        contract_address: Optional[Address] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._gateway = gateway
        self._operator = operator
        self.contract_address = contract_address
        self.clock = clock or operator.clock or SystemClock()
        self.l1_tx_hash = l1_tx_hash
        self.state = PriorityOpState.SUBMITTED
        self.l1_receipt: Optional[L1Receipt] = None
        self.operation: Optional[PriorityOperation] = None
        self.operations: List[PriorityOperation] = []
        self.serial_id: Optional[int] = None
        self.receipt: Optional[PriorityOpReceipt] = None
        self.fail_reason: Optional[str] = None
        self.polls = 0

    @classmethod
    def resume(
        cls,
        serial_id: int,
        operator: OperatorClient,
        *,
        gateway: Optional[L1Gateway] = None,
        clock: Optional[Clock] = None,
    ) -> "PriorityOpTracker":
        """Continue tracking an operation whose serial id is already known."""
        tracker = cls(gateway, operator, clock=clock)
        tracker.serial_id = int(serial_id)
        tracker.state = PriorityOpState.SERIAL_ID_KNOWN
        return tracker

    # --- internals -------------------------------------------------------

    def _move(self, new: PriorityOpState) -> None:
        if new is not self.state:
            ref = self.serial_id if self.serial_id is not None else self.l1_tx_hash
            log.info("priority op %s: %s -> %s", ref, self.state.value, new.value)
            self.state = new

    def _fail(self, reason: str) -> None:
        self.fail_reason = reason
        self._move(PriorityOpState.L2_FAILED)

    async def _poll_until(
        self,
        step: Callable[[], Awaitable[Optional[T]]],
        config: Optional[PollConfig],
        what: str,
    ) -> T:
        """Await `step()` on the poll schedule until it returns non-None."""
        cfg = config or PollConfig()
        started = self.clock.monotonic()
        n = 0
        while True:
            try:
                result = await step()
            except Transient as e:
                log.warning("%s: poll failed, will retry: %s", what, e)
                result = None
            n += 1
            self.polls += 1
            if result is not None:
                return result
            waited = self.clock.monotonic() - started
            remaining = cfg.max_wait - waited
            if (cfg.max_polls is not None and n >= cfg.max_polls) or remaining <= 0:
                raise Timeout(f"timed out waiting for {what}", waited=waited, polls=n, last_state=self.state.value)
            await self.clock.sleep(min(cfg.delay(n), remaining))

    def _require_gateway(self) -> L1Gateway:
        if self._gateway is None:
            raise ValueError("an L1 gateway is required for this step")
        return self._gateway

    # --- steps -----------------------------------------------------------

    async def submit(self, raw_tx: bytes) -> Hex:
        """Broadcast a signed L1 transaction carrying the priority request."""
        self.l1_tx_hash = await self._require_gateway().send_raw_transaction(raw_tx)
        self.state = PriorityOpState.SUBMITTED
        return self.l1_tx_hash

    async def wait_l1_inclusion(self, config: Optional[PollConfig] = None, *, confirmations: int = 1) -> L1Receipt:
        """
        Wait until the L1 transaction is included with `confirmations` blocks
        on top (1 = included). A reverted transaction moves to L2_FAILED and
        its receipt is returned.
        """
        gateway = self._require_gateway()
        if self.l1_tx_hash is None:
            raise ValueError("no L1 transaction hash to wait for")
        tx_hash = self.l1_tx_hash

        async def step() -> Optional[L1Receipt]:
            receipt = await gateway.get_receipt(tx_hash)
            if receipt is None:
                return None
            if confirmations > 1 and receipt.success:
                head = await gateway.block_number()
                if head - receipt.block_number + 1 < confirmations:
                    return None
            return receipt

        receipt = await self._poll_until(step, config, f"L1 inclusion of {tx_hash}")
        self.l1_receipt = receipt
        if not receipt.success:
            self._fail(f"L1 transaction {tx_hash} reverted")
        else:
            self._move(PriorityOpState.AWAITING_SERIAL_ID)
        return receipt

    async def wait_serial_id(self, config: Optional[PollConfig] = None) -> int:
        """
        Serial id assigned by the rollup contract, read from the L1 receipt logs.

        A receipt with several requests tracks the first; all of them are kept
        in `operations` so each can be followed with `resume()`.
        """
        if self.serial_id is not None:
            return self.serial_id
        if self.l1_receipt is None:
            await self.wait_l1_inclusion(config)
        assert self.l1_receipt is not None
        if self.state is PriorityOpState.L2_FAILED:
            raise Rejected(
                method="eth_getTransactionReceipt",
                code=JsonRpcCode.SERVER_ERROR,
                message=self.fail_reason or "L1 transaction failed",
            )
        ops = decode_priority_requests(self.l1_receipt, self.contract_address)
        if not ops:
            self._fail("no NewPriorityRequest event in L1 receipt")
            raise Rejected(
                method="eth_getTransactionReceipt",
                code=JsonRpcCode.SERVER_ERROR,
                message=f"no NewPriorityRequest event in receipt of {self.l1_receipt.tx_hash}",
            )
        if len(ops) > 1:
            log.warning(
                "L1 receipt %s carries %d priority requests (serial ids %s); tracking %d",
                self.l1_receipt.tx_hash,
                len(ops),
                [op.serial_id for op in ops],
                ops[0].serial_id,
            )
        self.operations = ops
        self.operation = ops[0]
        self.serial_id = ops[0].serial_id
        self._move(PriorityOpState.SERIAL_ID_KNOWN)
        return self.serial_id

    async def wait_l2(self, config: Optional[PollConfig] = None, *, require_verified: bool = False) -> PriorityOpReceipt:
        """Poll `ethop_info` until the operation is committed (or verified), or failed."""
        if self.serial_id is None:
            raise ValueError("serial id unknown; call wait_serial_id() first")
        serial_id = self.serial_id

        async def step() -> Optional[PriorityOpReceipt]:
            receipt = await self._operator.get_priority_op_status(serial_id)
            self.receipt = receipt
            if receipt.failed:
                return receipt
            if self.state is PriorityOpState.SERIAL_ID_KNOWN:
                self._move(PriorityOpState.L2_PENDING)
            done = receipt.verified if require_verified else receipt.committed
            return receipt if done else None

        receipt = await self._poll_until(step, config, f"L2 processing of priority op {serial_id}")
        if receipt.failed:
            self._fail(receipt.fail_reason or "operator reported failure")
        else:
            self._move(PriorityOpState.L2_CONFIRMED)
        return receipt

    async def track(
        self,
        config: Optional[PollConfig] = None,
        *,
        confirmations: int = 1,
        require_verified: bool = False,
    ) -> PriorityOpState:
        """Run every remaining step; returns the terminal state reached."""
        if self.serial_id is None:
            receipt = await self.wait_l1_inclusion(config, confirmations=confirmations)
            if not receipt.success:
                return self.state
            await self.wait_serial_id(config)
        await self.wait_l2(config, require_verified=require_verified)
        return self.state


__all__ = [
    "NEW_PRIORITY_REQUEST_EVENT",
    "NEW_PRIORITY_REQUEST_TOPIC",
    "decode_priority_requests",
    "PriorityOpTracker",
]
