"""
zkrollup_sdk.wallet.signer
==========================

Rollup-native signers for the SDK.

This module is the crypto adapter the rest of the SDK signs through. It wraps
Ed25519 from `cryptography`; callers only ever see `RollupSigner.sign(msg)`,
`verify(...)` and the public-key hash the rollup registers for an account.

Key features
------------
- Deterministic signatures over the canonical transaction bytes
- Seeded key generation (any seed length, hashed to 32 bytes) and raw-key import
- Public-key hash derivation: "sync:" + hex(sha256(pub_key)[:20])

Notes
-----
- Signing is stateless and never touches the network.
- Key material problems surface as `SigningError`, never as a library exception.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (Ed25519PrivateKey,
                                                               Ed25519PublicKey)

from ..errors import SigningError
from ..types.core import PUB_KEY_HASH_PREFIX, PubKeyHash, Signature

__all__ = [
    "ALG_NAME",
    "SignerInfo",
    "RollupSigner",
    "pub_key_hash",
    "verify",
    "create_signer_from_seed",
    "create_signer_from_private_key",
]

ALG_NAME = "ed25519"
PRIVATE_KEY_LEN = 32
PUBLIC_KEY_LEN = 32


@dataclass(frozen=True)
class SignerInfo:
    """
    Lightweight description of a signer.

    Attributes
    ----------
    alg_name : str
        Algorithm name (always 'ed25519').
    public_key : bytes
        Raw 32-byte public key.
    pub_key_hash : str
        Hash registered on the rollup by ChangePubKey ("sync:<40 hex>").
    """

    alg_name: str
    public_key: bytes
    pub_key_hash: PubKeyHash


def pub_key_hash(public_key: bytes) -> PubKeyHash:
    return PUB_KEY_HASH_PREFIX + hashlib.sha256(bytes(public_key)).digest()[:20].hex()


def verify(public_key: bytes, msg: bytes, signature: bytes) -> bool:
    """True iff `signature` over `msg` verifies under `public_key`; malformed keys verify False."""
    try:
        Ed25519PublicKey.from_public_bytes(bytes(public_key)).verify(bytes(signature), bytes(msg))
    except (InvalidSignature, ValueError):
        return False
    return True


class RollupSigner:
    """
    Ed25519 signer for rollup transactions and swap orders.

    Usage
    -----
        signer = create_signer_from_seed(b"...")
        sig = signer.sign(encode(tx))      # -> Signature(pub_key, signature)
        assert signer.verify(encode(tx), sig.signature)
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._sk = private_key
        self._pk = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def alg_name(self) -> str:
        return ALG_NAME

    @property
    def public_key(self) -> bytes:
        return self._pk

    @property
    def pub_key_hash(self) -> PubKeyHash:
        return pub_key_hash(self._pk)

    def info(self) -> SignerInfo:
        return SignerInfo(alg_name=ALG_NAME, public_key=self._pk, pub_key_hash=self.pub_key_hash)

    def sign(self, msg: bytes) -> Signature:
        if not isinstance(msg, (bytes, bytearray, memoryview)):
            raise SigningError(f"message must be bytes, got {type(msg).__name__}")
        return Signature(pub_key=self._pk, signature=self._sk.sign(bytes(msg)))

    def verify(self, msg: bytes, signature: bytes) -> bool:
        return verify(self._pk, msg, signature)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"RollupSigner(alg={ALG_NAME}, pub_key_hash={self.pub_key_hash})"


def create_signer_from_private_key(private_key: bytes) -> RollupSigner:
    raw = bytes(private_key)
    if len(raw) != PRIVATE_KEY_LEN:
        raise SigningError(f"private key must be {PRIVATE_KEY_LEN} bytes, got {len(raw)}")
    try:
        return RollupSigner(Ed25519PrivateKey.from_private_bytes(raw))
    except ValueError as e:
        raise SigningError(f"invalid private key: {e}") from e


def create_signer_from_seed(seed: bytes, *, domain: Optional[bytes] = None) -> RollupSigner:
    """
    Deterministically derive a signer from `seed`.

    The key is sha256(domain || seed); the same seed always yields the same key.
    An empty seed is refused.
    """
    if not seed:
        raise SigningError("seed must be non-empty")
    material = hashlib.sha256((domain or b"") + bytes(seed)).digest()
    return create_signer_from_private_key(material)
