"""
zkrollup_sdk.wallet.wallet
==========================

High-level wallet: one account, one rollup key, optionally one L1 signer.

Every send runs the same pipeline:

    account state -> reserve nonce -> fee (given & checked, or suggested)
      -> build -> dual-sign -> submit -> SubmittedTx

The nonce reservation wraps build/sign/submit, so a failure anywhere in the
pipeline is reported to the nonce tracker with its real cause (see
zkrollup_sdk.account.nonce).

Usage
-----
    async with Wallet.from_config(cfg, rollup_key, l1_signer) as w:
        sent = await w.transfer("0x...", token=0, amount=10**18)
        receipt = await sent.wait_for(TxState.COMMITTED)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from ..account.nonce import NonceTracker
from ..config import ClientConfig, PollConfig
from ..errors import ValidationError
from ..rpc.operator import OperatorClient
from ..tx.build import Variant, build, build_order, resolve_variant
from ..tx.confirm import ConfirmationTracker
from ..tx.fees import FeeEstimator
from ..tx.model import Order, Transaction
from ..tx.sign import DualSigner
from ..types.core import (AccountState, Address, ChangePubKeyAuth,
                          SignatureBundle, Token, TxId, TxReceipt, TxState,
                          TxType)
from ..utils.clock import Clock
from .eth import L1Signer
from .signer import RollupSigner

log = logging.getLogger(__name__)


@dataclass
class SubmittedTx:
    """A transaction accepted by the operator, with its confirmation tracker."""

    tx_id: TxId
    tx: Transaction
    bundle: SignatureBundle
    tracker: ConfirmationTracker

    @property
    def state(self) -> TxState:
        return self.tracker.state

    async def wait_for(self, target: TxState = TxState.COMMITTED, config: Optional[PollConfig] = None) -> TxReceipt:
        return await self.tracker.wait_for(target, config)


class Wallet:
    def __init__(
        self,
        operator: OperatorClient,
        rollup_key: RollupSigner,
        l1_signer: Optional[L1Signer] = None,
        *,
        address: Optional[Address] = None,
        config: Optional[ClientConfig] = None,
        clock: Optional[Clock] = None,
        nonces: Optional[NonceTracker] = None,
        fees: Optional[FeeEstimator] = None,
        signer: Optional[DualSigner] = None,
    ) -> None:
        address = address or (l1_signer.address if l1_signer is not None else None)
        if not address:
            raise ValueError("wallet needs an account address or an L1 signer")
        self.operator = operator
        self.rollup_key = rollup_key
        self.l1_signer = l1_signer
        self.address: Address = address
        self.config = config or ClientConfig()
        self.clock = clock or operator.clock
        self.nonces = nonces or NonceTracker(operator)
        self.fees = fees or FeeEstimator(operator, tolerance=self.config.fee_tolerance)
        self.signer = signer or DualSigner(self.config.l1_auth_policy)
        self._tokens: Optional[Dict[int, Token]] = None
        self._owns_operator = False

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        rollup_key: RollupSigner,
        l1_signer: Optional[L1Signer] = None,
        *,
        address: Optional[Address] = None,
        clock: Optional[Clock] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "Wallet":
        operator = OperatorClient.from_config(config, clock=clock, client=client)
        w = cls(operator, rollup_key, l1_signer, address=address, config=config, clock=clock)
        w._owns_operator = True
        return w

    async def __aenter__(self) -> "Wallet":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_operator:
            await self.operator.aclose()

    # --- account ---------------------------------------------------------

    async def account_state(self, refresh: bool = False) -> AccountState:
        return await self.nonces.account_state(self.address, refresh=refresh)

    async def is_signing_key_set(self) -> bool:
        state = await self.account_state(refresh=True)
        return state.pub_key_hash == self.rollup_key.pub_key_hash

    async def tokens(self, refresh: bool = False) -> Dict[int, Token]:
        """Token metadata, cached; also used to format L1 messages once loaded."""
        if self._tokens is None or refresh:
            self._tokens = await self.operator.tokens()
        return self._tokens

    # --- pipeline --------------------------------------------------------

    async def submit(
        self,
        variant: Variant,
        *,
        fee: Optional[int] = None,
        max_fee: Optional[int] = None,
        accept_rounded: bool = False,
        **fields: Any,
    ) -> SubmittedTx:
        """
        Build, sign and submit a transaction of `variant` from this account.

        `fields` are the variant's own fields; account, account id and nonce
        are filled in. Without `fee` the estimator suggests one (bounded by
        `max_fee`); an explicit fee is checked against `max_fee` instead.
        """
        t = resolve_variant(variant)
        async with self.nonces.reserve(self.address) as r:
            if r.account.account_id is None:
                raise ValidationError(f"account {self.address} has no rollup account id yet", field="account_id")
            fee_token = fields.get("fee_token", fields.get("token"))
            if fee is None:
                if fee_token is None:
                    raise ValidationError("fee token is required to estimate a fee", field="fee_token")
                fast = bool(fields.get("fast_processing", False))
                fee = await self.fees.suggest(t, fee_token, self.address, max_fee=max_fee, fast=fast)
            else:
                FeeEstimator.check(fee, max_fee)
            tx = build(
                t,
                accept_rounded=accept_rounded,
                account_id=r.account.account_id,
                account=self.address,
                nonce=r.nonce,
                fee=fee,
                **fields,
            )
            bundle = self.signer.sign(
                tx,
                self.rollup_key,
                self.l1_signer,
                key_registered=r.account.pub_key_hash,
                tokens=self._tokens,
            )
            tx_id = await self.operator.submit(tx, bundle)
        tracker = ConfirmationTracker(self.operator, tx_id, clock=self.clock)
        return SubmittedTx(tx_id=tx_id, tx=tx, bundle=bundle, tracker=tracker)

    # --- variants --------------------------------------------------------

    async def transfer(self, to: Address, token: int, amount: int, **kw: Any) -> SubmittedTx:
        return await self.submit(TxType.TRANSFER, to=to, token=token, amount=amount, **kw)

    async def withdraw(
        self,
        to: Address,
        token: int,
        amount: int,
        *,
        fee_token: Optional[int] = None,
        fast_processing: bool = False,
        **kw: Any,
    ) -> SubmittedTx:
        return await self.submit(
            TxType.WITHDRAW,
            to=to,
            token=token,
            amount=amount,
            fee_token=token if fee_token is None else fee_token,
            fast_processing=fast_processing,
            **kw,
        )

    async def set_signing_key(
        self,
        fee_token: int = 0,
        *,
        auth_type: ChangePubKeyAuth = ChangePubKeyAuth.ECDSA,
        **kw: Any,
    ) -> SubmittedTx:
        """Register this wallet's rollup key for the account (ChangePubKey)."""
        return await self.submit(
            TxType.CHANGE_PUB_KEY,
            new_pk_hash=self.rollup_key.pub_key_hash,
            fee_token=fee_token,
            auth_type=auth_type,
            **kw,
        )

    async def forced_exit(self, target: Address, token: int, **kw: Any) -> SubmittedTx:
        return await self.submit(TxType.FORCED_EXIT, target=target, token=token, **kw)

    async def mint_nft(self, content_hash: bytes, recipient: Address, fee_token: int, **kw: Any) -> SubmittedTx:
        return await self.submit(
            TxType.MINT_NFT, content_hash=content_hash, recipient=recipient, fee_token=fee_token, **kw
        )

    async def withdraw_nft(self, to: Address, token: int, fee_token: int, **kw: Any) -> SubmittedTx:
        return await self.submit(TxType.WITHDRAW_NFT, to=to, token=token, fee_token=fee_token, **kw)

    async def sign_order(
        self,
        token_sell: int,
        token_buy: int,
        ratio: Tuple[int, int],
        amount: int = 0,
        *,
        recipient: Optional[Address] = None,
        nonce: Optional[int] = None,
        **kw: Any,
    ) -> Order:
        """
        Signed swap order from this account. Uses the current nonce without
        consuming it: the nonce is spent when the swap executes.
        """
        state = await self.account_state()
        if state.account_id is None:
            raise ValidationError(f"account {self.address} has no rollup account id yet", field="account_id")
        order = build_order(
            account_id=state.account_id,
            recipient=recipient or self.address,
            nonce=await self.nonces.current_nonce(self.address) if nonce is None else nonce,
            token_sell=token_sell,
            token_buy=token_buy,
            ratio=ratio,
            amount=amount,
            **kw,
        )
        return self.signer.sign_order(order, self.rollup_key)

    async def swap(self, orders: Sequence[Order], amounts: Sequence[int], fee_token: int, **kw: Any) -> SubmittedTx:
        return await self.submit(
            TxType.SWAP, orders=tuple(orders), amounts=tuple(amounts), fee_token=fee_token, **kw
        )


__all__ = ["Wallet", "SubmittedTx"]
