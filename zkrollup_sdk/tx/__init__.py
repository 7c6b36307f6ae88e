"""
zkrollup_sdk.tx
===============

Rollup transactions: model, build, encode, sign; plus fee and confirmation helpers.

Submodules
----------
- model  : frozen dataclasses for each transaction variant (closed union)
- build  : validated construction (`build(variant, **fields)`, `build_order`)
- encode : canonical bytes, tx hash and the operator wire format
- sign   : `DualSigner` (rollup signature + policy-driven L1 signature)
- fees   : `FeeEstimator` (operator quotes -> packable fees)
- confirm: `ConfirmationTracker` (status polling state machine)

Typical usage
-------------
    from zkrollup_sdk.tx import build, encode, DualSigner
    from zkrollup_sdk.types import TxType

    tx = build(TxType.TRANSFER, account_id=7, account=addr, to=dest,
               token=0, amount=10**18, fee=10**15, nonce=5)
    bundle = DualSigner().sign(tx, rollup_key, l1_signer)

`fees` and `confirm` talk to the operator; import them from their submodules.
"""

from .build import build, build_order
from .encode import encode, encode_order, to_wire, tx_hash
from .model import (ChangePubKey, ForcedExit, MintNFT, Order, Swap, Transaction,
                    Transfer, Withdraw, WithdrawNFT)
from .sign import DualSigner, l1_message

__all__ = [
    "build",
    "build_order",
    "encode",
    "encode_order",
    "to_wire",
    "tx_hash",
    "Transaction",
    "Transfer",
    "Withdraw",
    "ChangePubKey",
    "ForcedExit",
    "MintNFT",
    "WithdrawNFT",
    "Order",
    "Swap",
    "DualSigner",
    "l1_message",
]
