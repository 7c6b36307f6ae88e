"""
zkrollup_sdk.tx.sign
====================

Dual signing: every transaction is signed with the rollup key over its
canonical bytes; some additionally carry an L1 (EIP-191) signature over a
human-readable summary, as decided by an `L1AuthPolicy`.

Signing is pure. It never reads account state from the network: callers pass
what they know about key registration via `key_registered`.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, Mapping, Optional, Union

from ..errors import SigningError
from ..types.core import (ChangePubKeyAuth, L1AuthPolicy, L1Signature,
                          SignatureBundle, Token, TxType)
from ..utils.bytes import to_hex
from ..wallet.eth import L1Signer, recover_signer
from ..wallet.signer import RollupSigner, pub_key_hash, verify
from .encode import encode, encode_order
from .model import (ChangePubKey, ForcedExit, MintNFT, Order, Swap, Transaction,
                    Transfer, Withdraw, WithdrawNFT, tx_type)

log = logging.getLogger(__name__)

TokenMap = Mapping[int, Token]
# True/False, or the pub-key hash currently registered for the account.
KeyRegistration = Union[bool, str, None]

CHANGE_PUB_KEY_TEMPLATE = (
    "Register rollup pubkey:\n"
    "\n"
    "{pk_hash}\n"
    "nonce: 0x{nonce:08x}\n"
    "account id: 0x{account_id:08x}\n"
    "\n"
    "Only sign this message for a trusted client!"
)


# -----------------------------------------------------------------------------
# L1 messages
# -----------------------------------------------------------------------------


def _amount(value: int, token_id: int, tokens: Optional[TokenMap]) -> str:
    token = (tokens or {}).get(token_id)
    if token is None:
        return f"{value} token#{token_id}"
    return f"{token.format(value)} {token.symbol}"


def _summary(head: str, tx: Transaction, tokens: Optional[TokenMap]) -> str:
    return f"{head}\nNonce: {tx.nonce}\nFee: {_amount(tx.fee, tx.fee_token, tokens)}"


def _msg_transfer(tx: Transfer, tokens: Optional[TokenMap]) -> str:
    return _summary(f"Transfer {_amount(tx.amount, tx.token, tokens)} to: {tx.to}", tx, tokens)


def _msg_withdraw(tx: Withdraw, tokens: Optional[TokenMap]) -> str:
    return _summary(f"Withdraw {_amount(tx.amount, tx.token, tokens)} to: {tx.to}", tx, tokens)


def _msg_change_pub_key(tx: ChangePubKey, tokens: Optional[TokenMap]) -> str:
    return CHANGE_PUB_KEY_TEMPLATE.format(
        pk_hash=tx.new_pk_hash.split(":", 1)[1],
        nonce=tx.nonce,
        account_id=tx.account_id,
    )


def _msg_forced_exit(tx: ForcedExit, tokens: Optional[TokenMap]) -> str:
    symbol = tokens[tx.token].symbol if tokens and tx.token in tokens else f"token#{tx.token}"
    return _summary(f"ForcedExit {symbol} to: {tx.target}", tx, tokens)


def _msg_mint_nft(tx: MintNFT, tokens: Optional[TokenMap]) -> str:
    return _summary(f"MintNFT {to_hex(tx.content_hash)} for: {tx.recipient}", tx, tokens)


def _msg_withdraw_nft(tx: WithdrawNFT, tokens: Optional[TokenMap]) -> str:
    return _summary(f"WithdrawNFT {tx.token} to: {tx.to}", tx, tokens)


def _msg_swap(tx: Swap, tokens: Optional[TokenMap]) -> str:
    o0, o1 = tx.orders
    head = (
        f"Swap {_amount(tx.amounts[0], o0.token_sell, tokens)}"
        f" for {_amount(tx.amounts[1], o1.token_sell, tokens)}"
    )
    return _summary(head, tx, tokens)


_MESSAGES: Dict[TxType, Callable[..., str]] = {
    TxType.TRANSFER: _msg_transfer,
    TxType.WITHDRAW: _msg_withdraw,
    TxType.CHANGE_PUB_KEY: _msg_change_pub_key,
    TxType.FORCED_EXIT: _msg_forced_exit,
    TxType.MINT_NFT: _msg_mint_nft,
    TxType.WITHDRAW_NFT: _msg_withdraw_nft,
    TxType.SWAP: _msg_swap,
}


def l1_message(tx: Transaction, tokens: Optional[TokenMap] = None) -> str:
    """Human-readable text the L1 key signs for `tx`."""
    return _MESSAGES[tx_type(tx)](tx, tokens)


# -----------------------------------------------------------------------------
# Signer
# -----------------------------------------------------------------------------


def _is_registered(key_registered: KeyRegistration, rollup_key: RollupSigner) -> bool:
    if key_registered is None:
        return False
    if isinstance(key_registered, str):
        return key_registered.lower() == rollup_key.pub_key_hash
    return bool(key_registered)


class DualSigner:
    """
    Produces a `SignatureBundle` for a transaction.

    The rollup signature is always present. Whether an L1 signature is added
    depends on `policy`:

      KEY_REGISTRATION      ChangePubKey with ECDSA auth only
      UNREGISTERED_ACCOUNT  as above, plus every tx while the account's
                            registered key is unknown, unset or another key
      ALWAYS                every transaction
    """

    def __init__(self, policy: L1AuthPolicy = L1AuthPolicy.UNREGISTERED_ACCOUNT) -> None:
        self.policy = L1AuthPolicy(policy)

    def needs_l1(self, tx: Transaction, rollup_key: RollupSigner, key_registered: KeyRegistration = None) -> bool:
        t = tx_type(tx)
        if self.policy is L1AuthPolicy.ALWAYS:
            return True
        if t is TxType.CHANGE_PUB_KEY:
            return tx.auth_type is ChangePubKeyAuth.ECDSA
        if self.policy is L1AuthPolicy.KEY_REGISTRATION:
            return False
        return not _is_registered(key_registered, rollup_key)

    def sign(
        self,
        tx: Transaction,
        rollup_key: RollupSigner,
        l1_signer: Optional[L1Signer] = None,
        *,
        key_registered: KeyRegistration = None,
        tokens: Optional[TokenMap] = None,
    ) -> SignatureBundle:
        t = tx_type(tx)
        if rollup_key is None:
            raise SigningError("rollup key is required", tx_type=t.wire_name)
        if t is TxType.CHANGE_PUB_KEY and tx.new_pk_hash != rollup_key.pub_key_hash:
            raise SigningError(
                f"new_pk_hash {tx.new_pk_hash} does not match signing key {rollup_key.pub_key_hash}",
                tx_type=t.wire_name,
            )
        if t is TxType.SWAP:
            for i, o in enumerate(tx.orders):
                if o.signature is None or not verify(o.signature.pub_key, encode_order(o), o.signature.signature):
                    raise SigningError(f"order {i} carries no valid signature", tx_type=t.wire_name)

        rollup_sig = rollup_key.sign(encode(tx))

        l1: Optional[L1Signature] = None
        if self.needs_l1(tx, rollup_key, key_registered):
            if l1_signer is None:
                raise SigningError(
                    f"L1 signature required by policy {self.policy.value} but no L1 signer given",
                    tx_type=t.wire_name,
                )
            if l1_signer.address.lower() != tx.account.lower():
                raise SigningError(
                    f"L1 signer {l1_signer.address} is not the account owner {tx.account}",
                    tx_type=t.wire_name,
                )
            message = l1_message(tx, tokens)
            try:
                l1_sig = l1_signer.sign_message(message)
            except SigningError:
                raise
            except Exception as e:  # remote and hardware signers raise their own errors
                raise SigningError(f"L1 signer failed: {e}", tx_type=t.wire_name) from e
            l1 = L1Signature(signature=l1_sig, message=message, signer=l1_signer.address)

        log.debug("signed %s nonce=%d l1=%s", t.wire_name, tx.nonce, l1 is not None)
        return SignatureBundle(rollup=rollup_sig, l1=l1)

    def sign_order(self, order: Order, rollup_key: RollupSigner) -> Order:
        """Return `order` with its owner's rollup signature attached."""
        if rollup_key is None:
            raise SigningError("rollup key is required", tx_type="Order")
        return replace(order, signature=rollup_key.sign(encode_order(order)))

    def verify_bundle(self, tx: Transaction, bundle: SignatureBundle) -> bool:
        """
        Re-check a bundle: the rollup signature must verify over encode(tx),
        a ChangePubKey must register the signing key, and an L1 signature
        (when present) must recover to the transaction's account.
        """
        if not verify(bundle.rollup.pub_key, encode(tx), bundle.rollup.signature):
            return False
        if tx_type(tx) is TxType.CHANGE_PUB_KEY and pub_key_hash(bundle.rollup.pub_key) != tx.new_pk_hash:
            return False
        if bundle.l1 is not None:
            try:
                signer = recover_signer(bundle.l1.message, bundle.l1.signature)
            except Exception:  # malformed signature bytes
                return False
            if signer.lower() != tx.account.lower():
                return False
        return True


__all__ = ["CHANGE_PUB_KEY_TEMPLATE", "DualSigner", "l1_message", "KeyRegistration", "TokenMap"]
