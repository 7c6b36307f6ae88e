"""
zkrollup_sdk.tx.encode
======================

Canonical byte encoding of rollup transactions.

This module provides:
- `encode(tx)` -> the exact bytes the rollup circuit checks signatures over
- `encode_order(order)` -> bytes of a swap order (signed separately)
- `tx_hash(tx)` -> "sync-tx:" + hex(sha256(encode(tx)))
- `to_wire(tx, bundle)` -> JSON object accepted by the operator's `tx_submit`

Design notes
------------
* Every layout starts with `0xFF - type_id` followed by version byte 0x01;
  all integers are fixed-width big-endian.
* Encoding is pure: same transaction, same bytes, on every host.
* Dispatch goes through `_ENCODERS`, keyed by `TxType`; a transaction type
  without an entry is rejected with TypeError.
"""

from __future__ import annotations

import hashlib
from typing import Any, Callable, Dict, Optional

from ..amounts import pack_amount, pack_fee
from ..types.core import (PUB_KEY_HASH_PREFIX, TX_HASH_PREFIX, ChangePubKeyAuth,
                          SignatureBundle, TxId, TxType)
from ..utils.bytes import from_hex, int_to_be, to_hex
from .model import (ChangePubKey, ForcedExit, MintNFT, Order, Swap, Transaction,
                    Transfer, Withdraw, WithdrawNFT, tx_type)

VERSION = 0x01
ORDER_TAG = b"o"


def tag_byte(t: TxType) -> int:
    return 0xFF - int(t)


def _u32(v: int, field: str) -> bytes:
    return int_to_be(v, 4, field=field)


def _u64(v: int, field: str) -> bytes:
    return int_to_be(v, 8, field=field)


def _addr(a: str) -> bytes:
    return from_hex(a)


def _pkh(h: str) -> bytes:
    return bytes.fromhex(h[len(PUB_KEY_HASH_PREFIX):])


def _header(t: TxType) -> bytes:
    return bytes([tag_byte(t), VERSION])


def _validity(tx: Any) -> bytes:
    return _u64(tx.valid_from, "valid_from") + _u64(tx.valid_until, "valid_until")


# -----------------------------------------------------------------------------
# Per-variant encoders
# -----------------------------------------------------------------------------


def _encode_withdraw(tx: Withdraw) -> bytes:
    return b"".join(
        (
            _header(TxType.WITHDRAW),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            _addr(tx.to),
            _u32(tx.token, "token"),
            int_to_be(tx.amount, 16, field="amount"),
            _u32(tx.fee_token, "fee_token"),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
            _validity(tx),
        )
    )


def _encode_transfer(tx: Transfer) -> bytes:
    return b"".join(
        (
            _header(TxType.TRANSFER),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            _addr(tx.to),
            _u32(tx.token, "token"),
            pack_amount(tx.amount),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
            _validity(tx),
        )
    )


def _encode_change_pub_key(tx: ChangePubKey) -> bytes:
    return b"".join(
        (
            _header(TxType.CHANGE_PUB_KEY),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            _pkh(tx.new_pk_hash),
            _u32(tx.fee_token, "fee_token"),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
            _validity(tx),
        )
    )


def _encode_forced_exit(tx: ForcedExit) -> bytes:
    return b"".join(
        (
            _header(TxType.FORCED_EXIT),
            _u32(tx.account_id, "account_id"),
            _addr(tx.target),
            _u32(tx.token, "token"),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
            _validity(tx),
        )
    )


def _encode_mint_nft(tx: MintNFT) -> bytes:
    return b"".join(
        (
            _header(TxType.MINT_NFT),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            bytes(tx.content_hash),
            _addr(tx.recipient),
            _u32(tx.fee_token, "fee_token"),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
        )
    )


def _encode_withdraw_nft(tx: WithdrawNFT) -> bytes:
    return b"".join(
        (
            _header(TxType.WITHDRAW_NFT),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            _addr(tx.to),
            _u32(tx.token, "token"),
            _u32(tx.fee_token, "fee_token"),
            pack_fee(tx.fee),
            _u32(tx.nonce, "nonce"),
            _validity(tx),
        )
    )


def encode_order(order: Order) -> bytes:
    """Bytes an order owner signs; the signature itself is not included."""
    return b"".join(
        (
            ORDER_TAG,
            bytes([VERSION]),
            _u32(order.account_id, "account_id"),
            _addr(order.recipient),
            _u32(order.nonce, "nonce"),
            _u32(order.token_sell, "token_sell"),
            _u32(order.token_buy, "token_buy"),
            int_to_be(order.ratio[0], 15, field="ratio[0]"),
            int_to_be(order.ratio[1], 15, field="ratio[1]"),
            pack_amount(order.amount),
            _validity(order),
        )
    )


def _encode_swap(tx: Swap) -> bytes:
    orders_digest = hashlib.sha256(encode_order(tx.orders[0]) + encode_order(tx.orders[1])).digest()
    return b"".join(
        (
            _header(TxType.SWAP),
            _u32(tx.account_id, "account_id"),
            _addr(tx.account),
            _u32(tx.nonce, "nonce"),
            orders_digest,
            _u32(tx.fee_token, "fee_token"),
            pack_fee(tx.fee),
            pack_amount(tx.amounts[0]),
            pack_amount(tx.amounts[1]),
        )
    )


_ENCODERS: Dict[TxType, Callable[[Any], bytes]] = {
    TxType.WITHDRAW: _encode_withdraw,
    TxType.TRANSFER: _encode_transfer,
    TxType.CHANGE_PUB_KEY: _encode_change_pub_key,
    TxType.FORCED_EXIT: _encode_forced_exit,
    TxType.MINT_NFT: _encode_mint_nft,
    TxType.WITHDRAW_NFT: _encode_withdraw_nft,
    TxType.SWAP: _encode_swap,
}


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def encode(tx: Transaction) -> bytes:
    """Canonical bytes of `tx`; pure and deterministic."""
    t = tx_type(tx)
    try:
        encoder = _ENCODERS[t]
    except KeyError:
        raise TypeError(f"no encoder registered for {t!r}") from None
    return encoder(tx)


def tx_hash(tx: Transaction) -> TxId:
    return TX_HASH_PREFIX + hashlib.sha256(encode(tx)).hexdigest()


def _order_wire(order: Order) -> Dict[str, Any]:
    return {
        "accountId": order.account_id,
        "recipient": order.recipient,
        "nonce": order.nonce,
        "tokenSell": order.token_sell,
        "tokenBuy": order.token_buy,
        "ratio": [str(order.ratio[0]), str(order.ratio[1])],
        "amount": str(order.amount),
        "validFrom": order.valid_from,
        "validUntil": order.valid_until,
        "signature": order.signature.to_rpc_dict() if order.signature else None,
    }


def to_wire(tx: Transaction, bundle: Optional[SignatureBundle] = None) -> Dict[str, Any]:
    """
    JSON object for `tx_submit`: camelCase keys, amounts as decimal strings,
    and the rollup signature under "signature" when `bundle` is given.
    """
    t = tx_type(tx)
    out: Dict[str, Any] = {"type": t.wire_name, "accountId": tx.account_id}
    if t is TxType.SWAP:
        out.update(
            submitterAddress=tx.account,
            orders=[_order_wire(o) for o in tx.orders],
            amounts=[str(a) for a in tx.amounts],
            feeToken=tx.fee_token,
        )
    elif t is TxType.MINT_NFT:
        out.update(
            creatorAddress=tx.account,
            contentHash=to_hex(tx.content_hash),
            recipient=tx.recipient,
            feeToken=tx.fee_token,
        )
    elif t is TxType.FORCED_EXIT:
        out.update(initiatorAccountId=out.pop("accountId"), target=tx.target, token=tx.token)
    elif t is TxType.CHANGE_PUB_KEY:
        out.update(account=tx.account, newPkHash=tx.new_pk_hash, feeToken=tx.fee_token)
    else:
        out.update({"from": tx.account, "to": tx.to, "token": tx.token})
        if t is TxType.TRANSFER or t is TxType.WITHDRAW:
            out["amount"] = str(tx.amount)
        if t is not TxType.TRANSFER:
            out["feeToken"] = tx.fee_token
    out["fee"] = str(tx.fee)
    out["nonce"] = tx.nonce
    if hasattr(tx, "valid_from"):
        out["validFrom"] = tx.valid_from
        out["validUntil"] = tx.valid_until
    if bundle is not None:
        out["signature"] = bundle.rollup.to_rpc_dict()
        if t is TxType.CHANGE_PUB_KEY:
            out["ethAuthData"] = _eth_auth_data(tx, bundle)
    return out


def _eth_auth_data(tx: ChangePubKey, bundle: SignatureBundle) -> Dict[str, Any]:
    if tx.auth_type is ChangePubKeyAuth.ONCHAIN or bundle.l1 is None:
        return {"type": "Onchain"}
    return {"type": "ECDSA", "ethSignature": to_hex(bundle.l1.signature), "batchHash": "0x" + "00" * 32}


__all__ = ["VERSION", "ORDER_TAG", "tag_byte", "encode", "encode_order", "tx_hash", "to_wire"]
