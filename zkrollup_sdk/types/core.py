from __future__ import annotations

"""
Core rollup types for the Python SDK.

Ergonomic `@dataclass` models and enums shared across the SDK, each with
`from_rpc_dict()` / `to_rpc_dict()` converters for the operator's JSON shapes:
- RPC dicts use hex strings for binary fields and decimal strings for amounts.
- Dataclasses use Python `int` for amounts and `bytes`/`str` as documented.

Nothing here performs network I/O; these are just types and converters.
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Union

# --- Common aliases ----------------------------------------------------------

Address = str  # 0x-prefixed 20-byte L1 address
TxId = str  # "sync-tx:<hex>"
PubKeyHash = str  # "sync:<40 hex>"
Hex = str  # 0x-prefixed hex string

PUB_KEY_HASH_PREFIX = "sync:"
TX_HASH_PREFIX = "sync-tx:"
ZERO_PUB_KEY_HASH = PUB_KEY_HASH_PREFIX + "00" * 20

MIN_NFT_TOKEN_ID = 65536
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1


# --- Enums --------------------------------------------------------------------


class TxType(IntEnum):
    """Closed set of rollup transaction variants; values are the protocol type ids."""

    WITHDRAW = 3
    TRANSFER = 5
    CHANGE_PUB_KEY = 7
    FORCED_EXIT = 8
    MINT_NFT = 9
    WITHDRAW_NFT = 10
    SWAP = 11

    @property
    def wire_name(self) -> str:
        return _WIRE_NAMES[self]

    @classmethod
    def parse(cls, value: Union["TxType", str, int]) -> "TxType":
        if isinstance(value, TxType):
            return value
        if isinstance(value, int):
            return cls(value)
        key = str(value).strip()
        for t, name in _WIRE_NAMES.items():
            if key == name or key.upper() == t.name:
                return t
        raise ValueError(f"unknown transaction type: {value!r}")


_WIRE_NAMES: Dict[TxType, str] = {
    TxType.WITHDRAW: "Withdraw",
    TxType.TRANSFER: "Transfer",
    TxType.CHANGE_PUB_KEY: "ChangePubKey",
    TxType.FORCED_EXIT: "ForcedExit",
    TxType.MINT_NFT: "MintNFT",
    TxType.WITHDRAW_NFT: "WithdrawNFT",
    TxType.SWAP: "Swap",
}


class TxState(Enum):
    """
    Lifecycle of an L2 transaction as observed by the client.

    SENT -> PENDING -> COMMITTED -> VERIFIED -> EXECUTED, with FAILED reachable
    from any non-terminal state. UNKNOWN means the operator has no record yet.
    """

    UNKNOWN = "unknown"
    SENT = "sent"
    PENDING = "pending"
    COMMITTED = "committed"
    VERIFIED = "verified"
    EXECUTED = "executed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _TX_STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TxState.EXECUTED, TxState.FAILED)


_TX_STATE_RANK: Dict[TxState, int] = {
    TxState.UNKNOWN: 0,
    TxState.SENT: 1,
    TxState.PENDING: 2,
    TxState.COMMITTED: 3,
    TxState.VERIFIED: 4,
    TxState.EXECUTED: 5,
    TxState.FAILED: 6,
}


class PriorityOpState(Enum):
    SUBMITTED = "submitted"
    AWAITING_SERIAL_ID = "awaiting_serial_id"
    SERIAL_ID_KNOWN = "serial_id_known"
    L2_PENDING = "l2_pending"
    L2_CONFIRMED = "l2_confirmed"
    L2_FAILED = "l2_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PriorityOpState.L2_CONFIRMED, PriorityOpState.L2_FAILED)


class L1AuthPolicy(str, Enum):
    """
    When a transaction additionally carries an L1 (base-chain) signature.

    - KEY_REGISTRATION     : only ChangePubKey authorised by ECDSA
    - UNREGISTERED_ACCOUNT : ChangePubKey, plus every tx while the account's
                             registered key hash is unset or differs from the signer
    - ALWAYS               : every transaction (two-factor mode)
    """

    KEY_REGISTRATION = "key_registration"
    UNREGISTERED_ACCOUNT = "unregistered_account"
    ALWAYS = "always"


class ChangePubKeyAuth(str, Enum):
    ECDSA = "ECDSA"
    ONCHAIN = "Onchain"


# --- Tokens --------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    id: int
    symbol: str
    decimals: int
    address: Optional[Address] = None

    @property
    def is_nft(self) -> bool:
        return self.id >= MIN_NFT_TOKEN_ID

    def to_base_units(self, amount: Union[str, int, Decimal]) -> int:
        """
        Convert a human amount ("1.5") to integer base units.

        Raises ValueError if the amount has more fractional digits than the
        token supports; base units are never silently truncated here.
        """
        try:
            d = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValueError(f"invalid amount: {amount!r}") from e
        scaled = d.scaleb(self.decimals)
        if scaled != scaled.to_integral_value(rounding=ROUND_DOWN):
            raise ValueError(f"{amount} has more than {self.decimals} decimals for {self.symbol}")
        return int(scaled)

    def format(self, base_units: int) -> str:
        """Render base units as a human amount without trailing zeros ("1.0" stays "1.0")."""
        d = Decimal(int(base_units)).scaleb(-self.decimals)
        text = format(d.normalize(), "f")
        if "." not in text:
            text += ".0"
        return text

    @classmethod
    def from_rpc_dict(cls, d: Mapping[str, Any]) -> "Token":
        return cls(
            id=int(d["id"]),
            symbol=str(d.get("symbol", f"token#{d['id']}")),
            decimals=int(d.get("decimals", 18)),
            address=d.get("address"),
        )


# --- Accounts ----------------------------------------------------------------


def normalize_pub_key_hash(value: Optional[str]) -> Optional[PubKeyHash]:
    """Return None for unset (missing or all-zero) hashes, else the lowercased hash."""
    if not value:
        return None
    v = str(value).lower()
    if not v.startswith(PUB_KEY_HASH_PREFIX):
        v = PUB_KEY_HASH_PREFIX + (v[2:] if v.startswith("0x") else v)
    if v == ZERO_PUB_KEY_HASH:
        return None
    return v


@dataclass
class AccountState:
    """
    Operator view of an account.

    `nonce` is the committed nonce (the next one the operator will accept);
    `balances` is informational only.
    """

    address: Address
    account_id: Optional[int]
    nonce: int
    pub_key_hash: Optional[PubKeyHash] = None
    balances: Dict[str, int] = field(default_factory=dict)
    verified_nonce: Optional[int] = None

    @property
    def has_signing_key(self) -> bool:
        return self.pub_key_hash is not None

    @classmethod
    def from_rpc_dict(cls, address: Address, d: Optional[Mapping[str, Any]]) -> "AccountState":
        """
        Parse an `account_info` result.

        Accepts the nested {"committed": {...}, "verified": {...}} shape and a
        flat {"nonce": ..., "pubKeyHash": ...} shape.
        """
        if not d:
            return cls(address=address, account_id=None, nonce=0)
        committed = d.get("committed") if isinstance(d.get("committed"), Mapping) else d
        verified = d.get("verified") if isinstance(d.get("verified"), Mapping) else None
        balances = {
            str(k): int(v) for k, v in dict(committed.get("balances") or {}).items()
        }
        acc_id = d.get("id", d.get("accountId"))
        return cls(
            address=str(d.get("address") or address),
            account_id=int(acc_id) if acc_id is not None else None,
            nonce=int(committed.get("nonce", 0)),
            pub_key_hash=normalize_pub_key_hash(committed.get("pubKeyHash")),
            balances=balances,
            verified_nonce=int(verified["nonce"]) if verified and "nonce" in verified else None,
        )


# --- Signatures ----------------------------------------------------------------


@dataclass(frozen=True)
class Signature:
    """Rollup-native signature: raw public key and signature bytes."""

    pub_key: bytes
    signature: bytes

    def to_rpc_dict(self) -> Dict[str, str]:
        return {"pubKey": self.pub_key.hex(), "signature": self.signature.hex()}

    @classmethod
    def from_rpc_dict(cls, d: Mapping[str, str]) -> "Signature":
        return cls(pub_key=bytes.fromhex(d["pubKey"]), signature=bytes.fromhex(d["signature"]))


@dataclass(frozen=True)
class L1Signature:
    """Base-chain (EIP-191 personal_sign) signature over a human-readable message."""

    signature: bytes
    message: str
    signer: Address

    def to_rpc_dict(self) -> Dict[str, str]:
        return {"type": "EthereumSignature", "signature": "0x" + self.signature.hex()}


@dataclass(frozen=True)
class SignatureBundle:
    rollup: Signature
    l1: Optional[L1Signature] = None


# --- Fees --------------------------------------------------------------------


@dataclass(frozen=True)
class FeeEstimate:
    """Advisory fee quote; the operator re-validates the fee at submission."""

    fee_type: str
    token: str
    gas_tx_amount: int
    gas_price_wei: int
    gas_fee: int
    zkp_fee: int
    total_fee: int

    @classmethod
    def from_rpc_dict(cls, token: str, d: Mapping[str, Any]) -> "FeeEstimate":
        fee_type = d.get("feeType", "")
        if isinstance(fee_type, Mapping):
            fee_type = ",".join(f"{k}:{v}" for k, v in fee_type.items())
        return cls(
            fee_type=str(fee_type),
            token=token,
            gas_tx_amount=int(d.get("gasTxAmount", 0)),
            gas_price_wei=int(d.get("gasPriceWei", 0)),
            gas_fee=int(d.get("gasFee", 0)),
            zkp_fee=int(d.get("zkpFee", 0)),
            total_fee=int(d["totalFee"]),
        )


# --- Receipts ------------------------------------------------------------------


_STATUS_ALIASES: Dict[str, TxState] = {
    "unknown": TxState.UNKNOWN,
    "sent": TxState.SENT,
    "queued": TxState.PENDING,
    "pending": TxState.PENDING,
    "committed": TxState.COMMITTED,
    "verified": TxState.VERIFIED,
    "executed": TxState.EXECUTED,
    "finalized": TxState.EXECUTED,
    "failed": TxState.FAILED,
    "rejected": TxState.FAILED,
}


def parse_tx_state(d: Optional[Mapping[str, Any]]) -> TxState:
    """
    Map an operator status payload to a TxState.

    Two shapes are understood:
      - explicit: {"status": "committed", ...}
      - block flags: {"executed": bool, "success": bool,
                      "block": {"committed": bool, "verified": bool, "finalized": bool}}
    """
    if not d:
        return TxState.UNKNOWN
    status = d.get("status")
    if isinstance(status, str):
        try:
            return _STATUS_ALIASES[status.strip().lower()]
        except KeyError:
            raise ValueError(f"unknown transaction status: {status!r}") from None
    if "executed" not in d:
        return TxState.UNKNOWN
    if not d.get("executed"):
        return TxState.PENDING
    if d.get("success") is False:
        return TxState.FAILED
    block = d.get("block") or {}
    if block.get("finalized"):
        return TxState.EXECUTED
    if block.get("verified"):
        return TxState.VERIFIED
    if block.get("committed"):
        return TxState.COMMITTED
    return TxState.PENDING


@dataclass(frozen=True)
class TxReceipt:
    tx_id: TxId
    state: TxState
    block_number: Optional[int] = None
    fail_reason: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def failed(self) -> bool:
        return self.state is TxState.FAILED

    @classmethod
    def from_rpc_dict(cls, tx_id: TxId, d: Optional[Mapping[str, Any]]) -> "TxReceipt":
        state = parse_tx_state(d)
        block = (d or {}).get("block") or {}
        number = block.get("blockNumber", (d or {}).get("blockNumber"))
        return cls(
            tx_id=tx_id,
            state=state,
            block_number=int(number) if number is not None else None,
            fail_reason=(d or {}).get("failReason"),
            raw=dict(d) if d else None,
        )


@dataclass(frozen=True)
class PriorityOperation:
    """An L1-originated operation queued for L2 processing."""

    serial_id: int
    op_type: int
    payload: bytes
    l1_tx_hash: Optional[Hex] = None
    sender: Optional[Address] = None
    expiration_block: Optional[int] = None


@dataclass(frozen=True)
class PriorityOpReceipt:
    serial_id: int
    executed: bool
    committed: bool = False
    verified: bool = False
    failed: bool = False
    block_number: Optional[int] = None
    fail_reason: Optional[str] = None

    @classmethod
    def from_rpc_dict(cls, serial_id: int, d: Optional[Mapping[str, Any]]) -> "PriorityOpReceipt":
        if not d:
            return cls(serial_id=serial_id, executed=False)
        status = str(d.get("status", "")).lower()
        block = d.get("block") or {}
        committed = bool(block.get("committed")) or status in ("committed", "confirmed", "verified")
        verified = bool(block.get("verified")) or status == "verified"
        executed = bool(d.get("executed")) or committed
        failed = status == "failed" or d.get("success") is False
        number = block.get("blockNumber")
        return cls(
            serial_id=serial_id,
            executed=executed,
            committed=committed,
            verified=verified,
            failed=failed,
            block_number=int(number) if number is not None else None,
            fail_reason=d.get("failReason"),
        )


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    latency_s: float
    detail: Optional[str] = None


__all__ = [
    "Address",
    "TxId",
    "PubKeyHash",
    "Hex",
    "PUB_KEY_HASH_PREFIX",
    "TX_HASH_PREFIX",
    "ZERO_PUB_KEY_HASH",
    "MIN_NFT_TOKEN_ID",
    "MAX_U32",
    "MAX_U64",
    "MAX_U128",
    "TxType",
    "TxState",
    "PriorityOpState",
    "L1AuthPolicy",
    "ChangePubKeyAuth",
    "Token",
    "normalize_pub_key_hash",
    "AccountState",
    "Signature",
    "L1Signature",
    "SignatureBundle",
    "FeeEstimate",
    "parse_tx_state",
    "TxReceipt",
    "PriorityOperation",
    "PriorityOpReceipt",
    "HealthStatus",
]
