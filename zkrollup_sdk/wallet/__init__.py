"""
zkrollup_sdk.wallet
===================

Key material and signers:

- Rollup signer (Ed25519), public-key hash derivation.
- L1 (EIP-191) signer over eth-account, and rollup-key derivation from it.

The high-level `Wallet` lives in `zkrollup_sdk.wallet.wallet` (also exported
from the package root).
"""

from .eth import L1Signer, LocalL1Signer, derive_rollup_signer, recover_signer
from .signer import (RollupSigner, SignerInfo, create_signer_from_private_key,
                     create_signer_from_seed, pub_key_hash)

__all__ = [
    # rollup
    "RollupSigner",
    "SignerInfo",
    "create_signer_from_seed",
    "create_signer_from_private_key",
    "pub_key_hash",
    # L1
    "L1Signer",
    "LocalL1Signer",
    "recover_signer",
    "derive_rollup_signer",
]
