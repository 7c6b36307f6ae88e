"""
Typed client for the rollup operator's JSON-RPC API.

    tx_submit         submit(tx, bundle)            -> TxId
    submit_txs_batch  submit_batch([(tx, bundle)])  -> [TxId]
    tx_info           get_status(tx_id)             -> TxReceipt
    account_info      get_account_state(address)    -> AccountState
    get_tx_fee        estimate_fee(type, addr, tok) -> FeeEstimate
    ethop_info        get_priority_op_status(id)    -> PriorityOpReceipt
    tokens            tokens()                      -> {id: Token}

Every method raises `Transient` or `Rejected` (see zkrollup_sdk.errors) on
failure; a result that cannot be parsed is `Rejected` with
`JsonRpcCode.MALFORMED_RESPONSE`. Submitting is safe to repeat: the
transaction hash is computed locally, and an "already submitted" rejection
resolves to that hash.
"""

from __future__ import annotations

import logging
from typing import (Any, Callable, Dict, List, Mapping, Optional, Sequence,
                    Tuple, TypeVar, Union)

import httpx

from ..config import ClientConfig
from ..errors import JsonRpcCode, Rejected, RejectReason, RpcError
from ..tx.encode import to_wire, tx_hash
from ..tx.model import Transaction, tx_type
from ..types.core import (AccountState, Address, FeeEstimate, HealthStatus,
                          L1Signature, PriorityOpReceipt, SignatureBundle,
                          Token, TxId, TxReceipt, TxType)
from ..utils.clock import Clock, SystemClock
from .http import RpcTransport

log = logging.getLogger(__name__)

TokenLike = Union[int, str]
T = TypeVar("T")


def fee_type_name(t: TxType, *, fast: bool = False) -> str:
    if fast and t is TxType.WITHDRAW:
        return "FastWithdraw"
    if fast and t is TxType.WITHDRAW_NFT:
        return "FastWithdrawNFT"
    return t.wire_name


def _l1_param(sig: Optional[L1Signature]) -> Optional[Dict[str, str]]:
    return sig.to_rpc_dict() if sig is not None else None


def _parse(method: str, result: Any, parse: Callable[[Any], T]) -> T:
    """Run `parse` over a call result; a payload it cannot read is a malformed response."""
    try:
        return parse(result)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise Rejected(
            method=method,
            code=JsonRpcCode.MALFORMED_RESPONSE,
            message=f"unreadable {method} result: {e}",
            data=result,
        ) from e


class OperatorClient:
    """
    Operator API over an `RpcTransport`.

    The transport is owned by the caller when passed in; `from_config` builds
    (and owns) one.
    """

    def __init__(self, transport: RpcTransport, *, clock: Optional[Clock] = None) -> None:
        self.transport = transport
        self.clock = clock or transport.clock or SystemClock()
        self._owns_transport = False

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        clock: Optional[Clock] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "OperatorClient":
        op = cls(RpcTransport.from_config(config, clock=clock, client=client), clock=clock)
        op._owns_transport = True
        return op

    async def __aenter__(self) -> "OperatorClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_transport:
            await self.transport.aclose()

    # --- transactions ----------------------------------------------------

    async def submit(self, tx: Transaction, bundle: SignatureBundle) -> TxId:
        local = tx_hash(tx)
        fast = bool(getattr(tx, "fast_processing", False))
        params = [to_wire(tx, bundle), _l1_param(bundle.l1), fast]
        try:
            result = await self.transport.request("tx_submit", params)
        except Rejected as e:
            if e.reason is RejectReason.ALREADY_SUBMITTED:
                log.info("%s already known to operator; using local hash", local)
                return local
            raise
        remote = str(result) if result else local
        if remote != local:
            log.warning("operator returned hash %s, local hash is %s", remote, local)
        log.info("submitted %s nonce=%d -> %s", tx_type(tx).wire_name, tx.nonce, remote)
        return remote

    async def submit_batch(
        self,
        items: Sequence[Tuple[Transaction, SignatureBundle]],
        batch_l1_signature: Optional[L1Signature] = None,
    ) -> List[TxId]:
        """Submit several transactions atomically; all are accepted or none."""
        txs = [{"tx": to_wire(tx, b), "signature": _l1_param(b.l1)} for tx, b in items]
        params: List[Any] = [txs]
        if batch_l1_signature is not None:
            params.append([batch_l1_signature.to_rpc_dict()])
        result = await self.transport.request("submit_txs_batch", params)
        hashes = [str(h) for h in (result or [])]
        if not hashes:
            hashes = [tx_hash(tx) for tx, _ in items]
        log.info("submitted batch of %d transactions", len(hashes))
        return hashes

    async def get_status(self, tx_id: TxId) -> TxReceipt:
        result = await self.transport.request("tx_info", [tx_id])
        return _parse("tx_info", result, lambda r: TxReceipt.from_rpc_dict(tx_id, r))

    # --- accounts / fees / tokens ----------------------------------------

    async def get_account_state(self, address: Address) -> AccountState:
        result = await self.transport.request("account_info", [address])
        return _parse("account_info", result, lambda r: AccountState.from_rpc_dict(address, r))

    async def estimate_fee(
        self,
        t: TxType,
        address: Address,
        token: TokenLike,
        *,
        fast: bool = False,
    ) -> FeeEstimate:
        result = await self.transport.request("get_tx_fee", [fee_type_name(t, fast=fast), address, token])
        if not isinstance(result, Mapping):
            raise Rejected(method="get_tx_fee", code=JsonRpcCode.MALFORMED_RESPONSE, message="fee response is not an object", data=result)
        return _parse("get_tx_fee", result, lambda r: FeeEstimate.from_rpc_dict(str(token), r))

    async def tokens(self) -> Dict[int, Token]:
        result = await self.transport.request("tokens", [])

        def read(r: Any) -> Dict[int, Token]:
            entries = r.values() if isinstance(r, Mapping) else (r or [])
            tokens = (Token.from_rpc_dict(entry) for entry in entries)
            return {t.id: t for t in tokens}

        return _parse("tokens", result, read)

    # --- priority operations ---------------------------------------------

    async def get_priority_op_status(self, serial_id: int) -> PriorityOpReceipt:
        result = await self.transport.request("ethop_info", [int(serial_id)])
        return _parse("ethop_info", result, lambda r: PriorityOpReceipt.from_rpc_dict(int(serial_id), r))

    # --- health ----------------------------------------------------------

    async def check_health(self) -> HealthStatus:
        """Round-trip a cheap call; never raises for RPC failures."""
        started = self.clock.monotonic()
        try:
            await self.transport.request("tokens", [])
        except RpcError as e:
            return HealthStatus(healthy=False, latency_s=self.clock.monotonic() - started, detail=str(e))
        return HealthStatus(healthy=True, latency_s=self.clock.monotonic() - started)


__all__ = ["OperatorClient", "fee_type_name", "TokenLike"]
