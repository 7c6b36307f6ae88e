"""
Typed error classes for the rollup SDK.

Every public operation raises one of these so callers can decide whether to
rebuild-and-resubmit, wait longer, or abort:

    ZkRollupError (base)
    ├── ValidationError        local, malformed/out-of-range fields, never retried
    │   └── PrecisionLoss      amount not exactly representable in packed form
    ├── SigningError           key material absent or rejected, fatal to the attempt
    ├── RpcError               operator/L1 call failed (method, code, message, data)
    │   ├── Transient          transport failure, already retried with backoff
    │   └── Rejected           operator refused the request; rebuild before resubmitting
    ├── Timeout                waiting budget exceeded; the operation itself may still complete
    └── FeeError
        ├── FeeTooHigh         estimate above the caller's maximum
        └── FeeUnavailable     operator cannot price the type/token combination

Local errors (validation, signing, fee policy) never cross the network boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

__all__ = [
    "ZkRollupError",
    "ValidationError",
    "PrecisionLoss",
    "SigningError",
    "RpcError",
    "Transient",
    "Rejected",
    "RejectReason",
    "Timeout",
    "FeeError",
    "FeeTooHigh",
    "FeeUnavailable",
    "JsonRpcCode",
    "OperatorCode",
    "reject_reason",
    "from_jsonrpc_error",
]


class ZkRollupError(Exception):
    """Base class for all SDK errors."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 standard codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    RATE_LIMITED = -32001
    SERVICE_UNAVAILABLE = -32003

    # Client-side codes used when no server error object exists
    TRANSPORT_ERROR = -32098
    MALFORMED_RESPONSE = -32097


class OperatorCode(IntEnum):
    """Application error codes returned by the rollup operator."""

    NONCE_MISMATCH = 101
    INSUFFICIENT_BALANCE = 102
    INCORRECT_SIGNATURE = 103
    FEE_TOO_LOW = 104
    ALREADY_SUBMITTED = 105
    ACCOUNT_NOT_FOUND = 106
    UNSUPPORTED_TOKEN = 107


class RejectReason(str, Enum):
    NONCE_MISMATCH = "nonce_mismatch"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_SIGNATURE = "invalid_signature"
    FEE_TOO_LOW = "fee_too_low"
    ALREADY_SUBMITTED = "already_submitted"
    UNSUPPORTED_TOKEN = "unsupported_token"
    UNKNOWN = "unknown"


_CODE_REASONS: Dict[int, RejectReason] = {
    OperatorCode.NONCE_MISMATCH: RejectReason.NONCE_MISMATCH,
    OperatorCode.INSUFFICIENT_BALANCE: RejectReason.INSUFFICIENT_BALANCE,
    OperatorCode.INCORRECT_SIGNATURE: RejectReason.INVALID_SIGNATURE,
    OperatorCode.FEE_TOO_LOW: RejectReason.FEE_TOO_LOW,
    OperatorCode.ALREADY_SUBMITTED: RejectReason.ALREADY_SUBMITTED,
    OperatorCode.UNSUPPORTED_TOKEN: RejectReason.UNSUPPORTED_TOKEN,
}

# Checked in order; the first keyword found in the lowercased message wins.
# Nonce comes first: "nonce already used" is a stale nonce, not a resubmission.
_MESSAGE_REASONS = (
    (("nonce",), RejectReason.NONCE_MISMATCH),
    (
        ("already submitted", "already in mempool", "already in the mempool", "already known", "duplicate transaction"),
        RejectReason.ALREADY_SUBMITTED,
    ),
    (("signature",), RejectReason.INVALID_SIGNATURE),
    (("fee",), RejectReason.FEE_TOO_LOW),
    (("balance", "insufficient", "not enough"), RejectReason.INSUFFICIENT_BALANCE),
    (("token",), RejectReason.UNSUPPORTED_TOKEN),
)

_TRANSIENT_CODES = frozenset(
    {
        JsonRpcCode.RATE_LIMITED,
        JsonRpcCode.SERVICE_UNAVAILABLE,
        JsonRpcCode.TRANSPORT_ERROR,
    }
)


def reject_reason(code: Optional[int], message: str) -> RejectReason:
    """Derive a stable rejection reason from an operator code or message."""
    if code is not None and int(code) in _CODE_REASONS:
        return _CODE_REASONS[int(code)]
    if code is not None and int(code) == JsonRpcCode.MALFORMED_RESPONSE:
        # raised locally; the message names the method, not an operator reason
        return RejectReason.UNKNOWN
    text = (message or "").lower()
    for keywords, reason in _MESSAGE_REASONS:
        if any(k in text for k in keywords):
            return reason
    return RejectReason.UNKNOWN


@dataclass(eq=False)
class ValidationError(ZkRollupError):
    """Raised when transaction fields are malformed or out of range."""

    message: str
    field: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" [{self.field}]" if self.field else ""
        return f"ValidationError{where}: {self.message}"


@dataclass(eq=False)
class PrecisionLoss(ValidationError):
    """
    Raised when an amount cannot be packed exactly.

    `packable` is the closest representable amount not above `requested`;
    callers confirm it by rebuilding with that amount (or `accept_rounded=True`).
    """

    requested: int = 0
    packable: int = 0

    @property
    def lost(self) -> int:
        return self.requested - self.packable

    def __str__(self) -> str:  # pragma: no cover - trivial
        return (
            f"PrecisionLoss [{self.field or 'amount'}]: {self.requested} is not packable, "
            f"closest packable amount is {self.packable} (loses {self.lost})"
        )


@dataclass(eq=False)
class SigningError(ZkRollupError):
    """Raised when key material is missing or the primitive adapter rejects it."""

    message: str
    tx_type: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        kind = f" [{self.tx_type}]" if self.tx_type else ""
        return f"SigningError{kind}: {self.message}"


@dataclass(eq=False)
class RpcError(ZkRollupError):
    """Raised when an operator or L1 JSON-RPC call fails."""

    method: Optional[str]
    code: int
    message: str
    data: Optional[Any] = None
    request_id: Optional[Any] = None
    http_status: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.request_id is not None:
            parts.append(f"id={self.request_id}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(eq=False)
class Transient(RpcError):
    """
    Transport-level failure (timeout, connection refused, 5xx, rate limit).

    Raised only after the bounded retry budget is exhausted; `attempts` counts
    every try including the first one.
    """

    attempts: int = 1

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Transient after {self.attempts} attempt(s): {RpcError.__str__(self)}"


@dataclass(eq=False)
class Rejected(RpcError):
    """
    The operator refused the request (stale nonce, bad signature, balance...).

    Never retried verbatim: rebuild the transaction (refresh nonce/fee) first.
    """

    reason: RejectReason = RejectReason.UNKNOWN

    def __post_init__(self) -> None:
        if self.reason is RejectReason.UNKNOWN:
            self.reason = reject_reason(self.code, self.message)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Rejected({self.reason.value}): {RpcError.__str__(self)}"


@dataclass(eq=False)
class Timeout(ZkRollupError):
    """
    Waiting exceeded its budget.

    This is not a failure of the underlying transaction or operation: it may
    still complete later and tracking can be resumed.
    """

    message: str
    waited: float = 0.0
    polls: int = 0
    last_state: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        state = f" last_state={self.last_state}" if self.last_state else ""
        return f"Timeout after {self.waited:.2f}s/{self.polls} polls: {self.message}{state}"


class FeeError(ZkRollupError):
    """Base class for fee pricing failures."""


@dataclass(eq=False)
class FeeTooHigh(FeeError):
    fee: int
    max_fee: int
    token: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        tok = f" {self.token}" if self.token else ""
        return f"FeeTooHigh: fee {self.fee}{tok} exceeds maximum {self.max_fee}{tok}"


@dataclass(eq=False)
class FeeUnavailable(FeeError):
    message: str
    tx_type: Optional[str] = None
    token: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"FeeUnavailable [{self.tx_type or '-'}/{self.token or '-'}]: {self.message}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    request_id: Optional[Any] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into `Transient` or `Rejected`.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    Rate-limit and service-unavailable codes are transient; every other
    server-reported error is a rejection.
    """
    code = int(err_obj.get("code", JsonRpcCode.SERVER_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    data = err_obj.get("data")
    cls = Transient if code in _TRANSIENT_CODES else Rejected
    return cls(
        method=method,
        code=code,
        message=message,
        data=data,
        request_id=request_id,
        http_status=http_status,
    )
