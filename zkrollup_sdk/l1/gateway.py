"""
Base-chain (L1) access needed for priority operations.

`L1Gateway` is the narrow interface the priority tracker depends on; any
object with these three coroutines works (a web3 provider wrapper, a test
fake). `EthJsonRpcGateway` implements it over plain Ethereum JSON-RPC using
the SDK's own `RpcTransport`, so retries and error typing are shared with the
operator client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Tuple, runtime_checkable

import httpx

from ..config import ClientConfig
from ..rpc.http import RpcTransport
from ..types.core import Address, Hex
from ..utils.bytes import from_hex, to_hex
from ..utils.clock import Clock

log = logging.getLogger(__name__)


def _qty(value: Any) -> int:
    if isinstance(value, int):
        return value
    s = str(value)
    return int(s, 16) if s.startswith(("0x", "0X")) else int(s)


@dataclass(frozen=True)
class L1Log:
    address: Address
    topics: Tuple[bytes, ...]
    data: bytes
    log_index: int = 0

    @classmethod
    def from_rpc_dict(cls, d: Mapping[str, Any]) -> "L1Log":
        return cls(
            address=str(d.get("address", "")),
            topics=tuple(from_hex(t) for t in d.get("topics") or ()),
            data=from_hex(d.get("data") or "0x"),
            log_index=_qty(d.get("logIndex", 0)),
        )


@dataclass(frozen=True)
class L1Receipt:
    tx_hash: Hex
    block_number: int
    success: bool
    logs: Tuple[L1Log, ...] = field(default_factory=tuple)

    @classmethod
    def from_rpc_dict(cls, d: Mapping[str, Any]) -> "L1Receipt":
        return cls(
            tx_hash=str(d["transactionHash"]),
            block_number=_qty(d["blockNumber"]),
            success=_qty(d.get("status", 1)) == 1,
            logs=tuple(L1Log.from_rpc_dict(entry) for entry in d.get("logs") or ()),
        )


@runtime_checkable
class L1Gateway(Protocol):
    async def send_raw_transaction(self, raw_tx: bytes) -> Hex: ...

    async def get_receipt(self, tx_hash: Hex) -> Optional[L1Receipt]: ...

    async def block_number(self) -> int: ...


class EthJsonRpcGateway:
    """L1Gateway over eth_sendRawTransaction / eth_getTransactionReceipt / eth_blockNumber."""

    def __init__(self, transport: RpcTransport) -> None:
        self.transport = transport

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        clock: Optional[Clock] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "EthJsonRpcGateway":
        if not config.l1_rpc_url:
            raise ValueError("l1_rpc_url is not configured")
        return cls(RpcTransport.from_config(config, url=config.l1_rpc_url, clock=clock, client=client))

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def send_raw_transaction(self, raw_tx: bytes) -> Hex:
        tx_hash = await self.transport.request("eth_sendRawTransaction", [to_hex(raw_tx)])
        log.info("L1 transaction sent: %s", tx_hash)
        return str(tx_hash)

    async def get_receipt(self, tx_hash: Hex) -> Optional[L1Receipt]:
        result = await self.transport.request("eth_getTransactionReceipt", [tx_hash])
        if not result:
            return None
        return L1Receipt.from_rpc_dict(result)

    async def block_number(self) -> int:
        return _qty(await self.transport.request("eth_blockNumber", []))


__all__ = ["L1Log", "L1Receipt", "L1Gateway", "EthJsonRpcGateway"]
