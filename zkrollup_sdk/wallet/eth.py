"""
zkrollup_sdk.wallet.eth
=======================

Base-chain (L1) message signing.

L1 authentication on the rollup is an EIP-191 `personal_sign` signature over
a human-readable message, produced here with `eth_account`. Any object with
an `address` attribute and a `sign_message(text) -> bytes` method can stand in
for `LocalL1Signer` (hardware wallets, remote signers).
"""

from __future__ import annotations

from typing import Protocol, Union, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from ..errors import SigningError
from ..types.core import Address
from .signer import RollupSigner, create_signer_from_seed

__all__ = [
    "L1Signer",
    "LocalL1Signer",
    "recover_signer",
    "ROLLUP_KEY_MESSAGE",
    "derive_rollup_signer",
]

# Signed once by the L1 key to derive the rollup key deterministically.
ROLLUP_KEY_MESSAGE = (
    "Access rollup account.\n\n"
    "Only sign this message for a trusted client!"
)


@runtime_checkable
class L1Signer(Protocol):
    @property
    def address(self) -> Address: ...

    def sign_message(self, message: str) -> bytes: ...


class LocalL1Signer:
    """personal_sign with an in-memory private key."""

    def __init__(self, private_key: Union[str, bytes]) -> None:
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"invalid L1 private key: {e}") from e

    @property
    def address(self) -> Address:
        return self._account.address

    def sign_message(self, message: str) -> bytes:
        signed = self._account.sign_message(encode_defunct(text=message))
        return bytes(signed.signature)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"LocalL1Signer(address={self.address})"


def recover_signer(message: str, signature: bytes) -> Address:
    """Address that produced `signature` over `message` (EIP-191)."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def derive_rollup_signer(l1_signer: L1Signer, chain_id: int) -> RollupSigner:
    """
    Rollup key derived from the L1 key's signature over a fixed message.

    The same L1 key and chain always yield the same rollup key, so the key
    never needs to be stored separately.
    """
    sig = l1_signer.sign_message(ROLLUP_KEY_MESSAGE)
    return create_signer_from_seed(sig, domain=int(chain_id).to_bytes(4, "big"))
