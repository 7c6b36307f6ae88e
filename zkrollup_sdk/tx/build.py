"""
zkrollup_sdk.tx.build
=====================

Validated construction of rollup transactions.

`build(variant, **fields)` is the single entry point for every variant; it
checks structural constraints and returns the frozen dataclass from
`zkrollup_sdk.tx.model`. Nothing here touches the network: nonce and fee must
already be known (the wallet facade fills them in before calling).

Examples
--------
    from zkrollup_sdk.tx.build import build, build_order
    from zkrollup_sdk.types import TxType

    tx = build(
        TxType.TRANSFER,
        account_id=7, account="0x1111...", to="0x2222...",
        token=0, amount=10**18, fee=10**15, nonce=5,
    )

Precision
---------
Transfer and swap amounts travel in packed form. An amount that cannot be
represented exactly raises `PrecisionLoss` carrying the closest packable
amount (always rounded down); pass `accept_rounded=True` to take it instead.
Fees must always be exactly packable, see `zkrollup_sdk.tx.fees`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import MISSING, fields as dc_fields
from typing import Any, Callable, Dict, Type, Union

from ..amounts import closest_greater_or_eq_packable_fee, closest_packable_amount
from ..errors import PrecisionLoss, ValidationError
from ..types.core import (MAX_U32, MAX_U64, MAX_U128, MIN_NFT_TOKEN_ID,
                          PUB_KEY_HASH_PREFIX, ChangePubKeyAuth, TxType)
from ..utils.bytes import ensure_bytes
from .model import VARIANTS, Order, Transaction

log = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PKH_RE = re.compile(r"^sync:[0-9a-fA-F]{40}$")
MAX_U120 = 2**120 - 1

Variant = Union[TxType, str, int, Type[Any]]


# -----------------------------------------------------------------------------
# Field checks
# -----------------------------------------------------------------------------


def _uint(value: Any, limit: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {type(value).__name__}", field=field)
    if value < 0:
        raise ValidationError(f"{field} must be non-negative", field=field)
    if value > limit:
        raise ValidationError(f"{field} {value} exceeds maximum {limit}", field=field)
    return value


def _address(value: Any, field: str) -> str:
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise ValidationError(f"{field} must be a 0x-prefixed 20-byte hex address", field=field)
    return value.lower()


def _pub_key_hash(value: Any, field: str = "new_pk_hash") -> str:
    if not isinstance(value, str) or not _PKH_RE.match(value):
        raise ValidationError(
            f"{field} must be '{PUB_KEY_HASH_PREFIX}' followed by 40 hex chars", field=field
        )
    return value.lower()


def _token(value: Any, field: str = "token") -> int:
    return _uint(value, MAX_U32, field)


def _fee_token(value: Any, field: str = "fee_token") -> int:
    token = _token(value, field)
    if token >= MIN_NFT_TOKEN_ID:
        raise ValidationError(f"fees cannot be paid in NFT token {token}", field=field)
    return token


def _fee(value: Any) -> int:
    fee = _uint(value, MAX_U128, "fee")
    up = closest_greater_or_eq_packable_fee(fee)
    if up.lossy:
        raise ValidationError(
            f"fee {fee} is not packable; closest packable fee above is {up.value}", field="fee"
        )
    return fee


def _packed_amount(value: Any, field: str, accept_rounded: bool) -> int:
    amount = _uint(value, MAX_U128, field)
    p = closest_packable_amount(amount)
    if not p.lossy:
        return amount
    if not accept_rounded:
        raise PrecisionLoss(
            f"{field} {amount} is not packable",
            field=field,
            requested=amount,
            packable=p.value,
        )
    log.warning("%s %d rounded down to packable %d (loses %d)", field, amount, p.value, amount - p.value)
    return p.value


def _validity(data: Dict[str, Any]) -> None:
    if "valid_from" not in data:
        return
    vf = _uint(data["valid_from"], MAX_U64, "valid_from")
    vu = _uint(data["valid_until"], MAX_U64, "valid_until")
    if vf > vu:
        raise ValidationError(f"valid_from {vf} is after valid_until {vu}", field="valid_from")


def _common(data: Dict[str, Any]) -> None:
    data["account_id"] = _uint(data["account_id"], MAX_U32, "account_id")
    data["account"] = _address(data["account"], "account")
    data["nonce"] = _uint(data["nonce"], MAX_U32, "nonce")
    data["fee"] = _fee(data["fee"])
    _validity(data)


# -----------------------------------------------------------------------------
# Per-variant checks (mutate the collected field dict in place)
# -----------------------------------------------------------------------------


def _check_transfer(data: Dict[str, Any], accept_rounded: bool) -> None:
    data["to"] = _address(data["to"], "to")
    data["token"] = _token(data["token"])
    data["amount"] = _packed_amount(data["amount"], "amount", accept_rounded)


def _check_withdraw(data: Dict[str, Any], accept_rounded: bool) -> None:
    data["to"] = _address(data["to"], "to")
    data["token"] = _token(data["token"])
    # Withdrawals carry the full amount; no packing.
    data["amount"] = _uint(data["amount"], MAX_U128, "amount")
    data["fee_token"] = _fee_token(data.get("fee_token", data["token"]))
    data["fast_processing"] = bool(data.get("fast_processing", False))


def _check_change_pub_key(data: Dict[str, Any], accept_rounded: bool) -> None:
    data["new_pk_hash"] = _pub_key_hash(data["new_pk_hash"])
    data["fee_token"] = _fee_token(data["fee_token"])
    try:
        data["auth_type"] = ChangePubKeyAuth(data.get("auth_type", ChangePubKeyAuth.ECDSA))
    except ValueError:
        raise ValidationError(f"unknown auth_type {data['auth_type']!r}", field="auth_type") from None


def _check_forced_exit(data: Dict[str, Any], accept_rounded: bool) -> None:
    data["target"] = _address(data["target"], "target")
    data["token"] = _fee_token(data["token"], "token")


def _check_mint_nft(data: Dict[str, Any], accept_rounded: bool) -> None:
    try:
        content_hash = ensure_bytes(data["content_hash"])
    except (TypeError, ValueError) as e:
        raise ValidationError(f"content_hash: {e}", field="content_hash") from e
    if len(content_hash) != 32:
        raise ValidationError("content_hash must be 32 bytes", field="content_hash")
    data["content_hash"] = content_hash
    data["recipient"] = _address(data["recipient"], "recipient")
    data["fee_token"] = _fee_token(data["fee_token"])


def _check_withdraw_nft(data: Dict[str, Any], accept_rounded: bool) -> None:
    data["to"] = _address(data["to"], "to")
    token = _token(data["token"])
    if token < MIN_NFT_TOKEN_ID:
        raise ValidationError(f"token {token} is not an NFT id", field="token")
    data["token"] = token
    data["fee_token"] = _fee_token(data["fee_token"])
    data["fast_processing"] = bool(data.get("fast_processing", False))


def _check_swap(data: Dict[str, Any], accept_rounded: bool) -> None:
    orders = tuple(data["orders"])
    if len(orders) != 2 or not all(isinstance(o, Order) for o in orders):
        raise ValidationError("swap needs exactly two Order objects", field="orders")
    o0, o1 = orders
    if o0.token_sell != o1.token_buy or o0.token_buy != o1.token_sell:
        raise ValidationError("swap orders must trade the same token pair in opposite directions", field="orders")
    for i, o in enumerate(orders):
        if o.signature is None:
            raise ValidationError(f"order {i} is not signed", field="orders")
    amounts = tuple(data["amounts"])
    if len(amounts) != 2:
        raise ValidationError("swap needs two amounts", field="amounts")
    data["orders"] = orders
    data["amounts"] = tuple(
        _packed_amount(a, f"amounts[{i}]", accept_rounded) for i, a in enumerate(amounts)
    )
    data["fee_token"] = _fee_token(data["fee_token"])


_CHECKS: Dict[TxType, Callable[[Dict[str, Any], bool], None]] = {
    TxType.TRANSFER: _check_transfer,
    TxType.WITHDRAW: _check_withdraw,
    TxType.CHANGE_PUB_KEY: _check_change_pub_key,
    TxType.FORCED_EXIT: _check_forced_exit,
    TxType.MINT_NFT: _check_mint_nft,
    TxType.WITHDRAW_NFT: _check_withdraw_nft,
    TxType.SWAP: _check_swap,
}


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def resolve_variant(variant: Variant) -> TxType:
    if isinstance(variant, type):
        for t, cls in VARIANTS.items():
            if cls is variant:
                return t
        raise ValidationError(f"{variant.__name__} is not a transaction variant", field="variant")
    try:
        return TxType.parse(variant)
    except ValueError as e:
        raise ValidationError(str(e), field="variant") from e


def _collect(cls: Type[Any], given: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name: f for f in dc_fields(cls)}
    unknown = sorted(set(given) - set(known))
    if unknown:
        raise ValidationError(f"unknown field(s) for {cls.__name__}: {', '.join(unknown)}", field=unknown[0])
    data = dict(given)
    for name, f in known.items():
        if name in data:
            continue
        if f.default is not MISSING:
            data[name] = f.default
        elif name == "fee_token" and "token" in data:
            # Withdraw defaults the fee token to the withdrawn token.
            data[name] = data["token"]
        else:
            raise ValidationError(f"missing field for {cls.__name__}: {name}", field=name)
    return data


def build(variant: Variant, *, accept_rounded: bool = False, **fields: Any) -> Transaction:
    """
    Validate `fields` and construct the transaction for `variant`.

    `variant` may be a TxType, its wire name ("Transfer"), its type id, or the
    dataclass itself. Raises ValidationError (or PrecisionLoss) on any
    malformed or out-of-range field.
    """
    t = resolve_variant(variant)
    cls = VARIANTS[t]
    data = _collect(cls, fields)
    _common(data)
    _CHECKS[t](data, accept_rounded)
    return cls(**data)


def build_order(*, accept_rounded: bool = False, **fields: Any) -> Order:
    """Validate and construct an unsigned swap `Order`."""
    data = _collect(Order, fields)
    data["account_id"] = _uint(data["account_id"], MAX_U32, "account_id")
    data["recipient"] = _address(data["recipient"], "recipient")
    data["nonce"] = _uint(data["nonce"], MAX_U32, "nonce")
    data["token_sell"] = _token(data["token_sell"], "token_sell")
    data["token_buy"] = _token(data["token_buy"], "token_buy")
    if data["token_sell"] == data["token_buy"]:
        raise ValidationError("order cannot sell and buy the same token", field="token_buy")
    ratio = tuple(data["ratio"])
    if len(ratio) != 2:
        raise ValidationError("ratio must be a (sell, buy) pair", field="ratio")
    data["ratio"] = (_uint(ratio[0], MAX_U120, "ratio[0]"), _uint(ratio[1], MAX_U120, "ratio[1]"))
    if 0 in data["ratio"]:
        raise ValidationError("ratio terms must be positive", field="ratio")
    data["amount"] = _packed_amount(data["amount"], "amount", accept_rounded)
    _validity(data)
    return Order(**data)


__all__ = ["build", "build_order", "resolve_variant", "MAX_U120"]
