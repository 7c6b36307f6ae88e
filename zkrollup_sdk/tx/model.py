"""
zkrollup_sdk.tx.model
=====================

Typed transaction variants.

`Transaction` is a closed union: each variant is an independent frozen
dataclass tagged by a `TYPE` class attribute, and every operation over
transactions (encode, wire format, L1 messages, fee typing) dispatches on
that tag through an explicit table. New variants are added here and in those
tables, never by subclassing.

Common fields, named identically on every variant:
    account_id  : rollup account id of the signer (u32)
    account     : L1 address of the signer
    nonce       : signer's nonce (u32)
    fee         : fee in base units of the fee token (packable)
    valid_from / valid_until : block-timestamp validity range (u64), where present

Construct through `zkrollup_sdk.tx.build`, which validates every field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from ..types.core import (MAX_U32, Address, ChangePubKeyAuth, PubKeyHash,
                          Signature, TxType)

DEFAULT_VALID_FROM = 0
DEFAULT_VALID_UNTIL = MAX_U32


@dataclass(frozen=True)
class Transfer:
    TYPE: ClassVar[TxType] = TxType.TRANSFER

    account_id: int
    account: Address
    to: Address
    token: int
    amount: int
    fee: int
    nonce: int
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL

    @property
    def fee_token(self) -> int:
        return self.token


@dataclass(frozen=True)
class Withdraw:
    """Withdraw `amount` of `token` to an L1 address; the fee is paid in `fee_token`."""

    TYPE: ClassVar[TxType] = TxType.WITHDRAW

    account_id: int
    account: Address
    to: Address
    token: int
    amount: int
    fee: int
    nonce: int
    fee_token: int
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL
    # Submission flag only; not part of the signed bytes.
    fast_processing: bool = False


@dataclass(frozen=True)
class ChangePubKey:
    """Register (or rotate) the rollup signing key of an account."""

    TYPE: ClassVar[TxType] = TxType.CHANGE_PUB_KEY

    account_id: int
    account: Address
    new_pk_hash: PubKeyHash
    fee_token: int
    fee: int
    nonce: int
    auth_type: ChangePubKeyAuth = ChangePubKeyAuth.ECDSA
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL

    @property
    def token(self) -> int:
        return self.fee_token


@dataclass(frozen=True)
class ForcedExit:
    """Withdraw the whole `token` balance of `target` (an account without a signing key) to L1."""

    TYPE: ClassVar[TxType] = TxType.FORCED_EXIT

    account_id: int
    account: Address
    target: Address
    token: int
    fee: int
    nonce: int
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL

    @property
    def fee_token(self) -> int:
        return self.token


@dataclass(frozen=True)
class MintNFT:
    TYPE: ClassVar[TxType] = TxType.MINT_NFT

    account_id: int
    account: Address
    content_hash: bytes
    recipient: Address
    fee_token: int
    fee: int
    nonce: int

    @property
    def token(self) -> int:
        return self.fee_token


@dataclass(frozen=True)
class WithdrawNFT:
    TYPE: ClassVar[TxType] = TxType.WITHDRAW_NFT

    account_id: int
    account: Address
    to: Address
    token: int
    fee_token: int
    fee: int
    nonce: int
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL
    fast_processing: bool = False


@dataclass(frozen=True)
class Order:
    """
    One side of a swap: sell `token_sell` for `token_buy` at `ratio`
    (sell units : buy units), up to `amount` (0 = unlimited limit order).

    Orders are signed by their owner's rollup key and embedded in a Swap.
    """

    account_id: int
    recipient: Address
    nonce: int
    token_sell: int
    token_buy: int
    ratio: Tuple[int, int]
    amount: int
    valid_from: int = DEFAULT_VALID_FROM
    valid_until: int = DEFAULT_VALID_UNTIL
    signature: Optional[Signature] = None


@dataclass(frozen=True)
class Swap:
    """Settle two matching orders; submitted and fee-paid by `account`."""

    TYPE: ClassVar[TxType] = TxType.SWAP

    account_id: int
    account: Address
    orders: Tuple[Order, Order]
    amounts: Tuple[int, int]
    fee_token: int
    fee: int
    nonce: int

    @property
    def token(self) -> int:
        return self.fee_token


Transaction = Union[Transfer, Withdraw, ChangePubKey, ForcedExit, MintNFT, WithdrawNFT, Swap]

VARIANTS = {
    TxType.TRANSFER: Transfer,
    TxType.WITHDRAW: Withdraw,
    TxType.CHANGE_PUB_KEY: ChangePubKey,
    TxType.FORCED_EXIT: ForcedExit,
    TxType.MINT_NFT: MintNFT,
    TxType.WITHDRAW_NFT: WithdrawNFT,
    TxType.SWAP: Swap,
}


def tx_type(tx: Transaction) -> TxType:
    try:
        return tx.TYPE
    except AttributeError:
        raise TypeError(f"not a rollup transaction: {type(tx).__name__}") from None


__all__ = [
    "DEFAULT_VALID_FROM",
    "DEFAULT_VALID_UNTIL",
    "Transfer",
    "Withdraw",
    "ChangePubKey",
    "ForcedExit",
    "MintNFT",
    "WithdrawNFT",
    "Order",
    "Swap",
    "Transaction",
    "VARIANTS",
    "tx_type",
]
