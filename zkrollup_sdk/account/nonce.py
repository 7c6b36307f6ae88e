"""
zkrollup_sdk.account.nonce
==========================

Per-account nonce issuance with optimistic increment.

Design
------
- One `_Slot` per account address holding the cached `AccountState`, the
  next nonce to issue, a `stale` flag and an `asyncio.Lock`.
- The lock serializes *issuance only*: `reserve()` takes the next nonce and
  bumps the local counter before releasing it, so concurrent senders on the
  same account always get distinct, increasing nonces.
- What happens to a reserved nonce when the work inside `reserve()` fails:

    local error (ValidationError, SigningError, FeeError)
        nonce handed back if it is still the latest issued, otherwise the
        account is marked stale (a later nonce is already in flight)
    Rejected(NONCE_MISMATCH)
        immediate re-sync from the operator
    any other Rejected, Transient, cancellation
        account marked stale; the next query re-syncs

  The tracker never guesses: after anything ambiguous it asks the operator.
- A reservation whose body exits cleanly counts as submitted. Its nonce is
  kept as a floor (`submitted`), and every re-sync issues at least
  `submitted + 1`, because the operator's committed nonce lags behind
  transactions still waiting in its mempool.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from ..errors import (FeeError, Rejected, RejectReason, RpcError,
                      SigningError, ValidationError)
from ..rpc.operator import OperatorClient
from ..types.core import AccountState, Address

log = logging.getLogger(__name__)

_LOCAL_ERRORS = (ValidationError, SigningError, FeeError)


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    state: Optional[AccountState] = None
    next_nonce: Optional[int] = None
    submitted: Optional[int] = None
    stale: bool = True


@dataclass(frozen=True)
class NonceReservation:
    """A nonce issued to one in-flight transaction, with the account view it was issued from."""

    address: Address
    nonce: int
    account: AccountState


class NonceTracker:
    """
    Usage
    -----
        tracker = NonceTracker(operator)
        async with tracker.reserve(addr) as r:
            tx = build(..., nonce=r.nonce)
            ...
            await operator.submit(tx, bundle)
    """

    def __init__(self, operator: OperatorClient) -> None:
        self._operator = operator
        self._slots: Dict[str, _Slot] = {}

    def _slot(self, address: Address) -> _Slot:
        key = address.lower()
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        return slot

    async def _load(self, slot: _Slot, address: Address) -> None:
        # Caller holds slot.lock.
        state = await self._operator.get_account_state(address)
        previous = slot.next_nonce
        nonce = state.nonce
        if slot.submitted is not None and slot.submitted >= nonce:
            log.debug("operator nonce %d for %s is behind submitted %d", nonce, address, slot.submitted)
            nonce = slot.submitted + 1
        slot.state = state
        slot.next_nonce = nonce
        slot.stale = False
        if previous is not None and previous != nonce:
            log.info("nonce for %s re-synced %d -> %d", address, previous, nonce)
        else:
            log.debug("nonce for %s loaded: %d", address, nonce)

    # --- queries ---------------------------------------------------------

    async def account_state(self, address: Address, refresh: bool = False) -> AccountState:
        slot = self._slot(address)
        async with slot.lock:
            if refresh or slot.stale or slot.state is None:
                await self._load(slot, address)
            assert slot.state is not None
            return slot.state

    async def current_nonce(self, address: Address) -> int:
        """Next nonce `reserve()` would issue; loads from the operator on first use."""
        slot = self._slot(address)
        async with slot.lock:
            if slot.stale or slot.next_nonce is None:
                await self._load(slot, address)
            assert slot.next_nonce is not None
            return slot.next_nonce

    def is_stale(self, address: Address) -> bool:
        return self._slot(address).stale

    # --- maintenance -----------------------------------------------------

    async def resync(self, address: Address) -> int:
        slot = self._slot(address)
        async with slot.lock:
            await self._load(slot, address)
            assert slot.next_nonce is not None
            return slot.next_nonce

    def invalidate(self, address: Address, *, forget_submitted: bool = False) -> None:
        """
        Forget the local counter; the next query re-syncs.

        With `forget_submitted=True` the submitted floor is dropped too, for
        when the operator is known to have discarded this process's pending
        transactions.
        """
        slot = self._slot(address)
        slot.stale = True
        if forget_submitted:
            slot.submitted = None
        log.debug("nonce for %s invalidated", address)

    # --- issuance --------------------------------------------------------

    @asynccontextmanager
    async def reserve(self, address: Address) -> AsyncIterator[NonceReservation]:
        slot = self._slot(address)
        async with slot.lock:
            if slot.stale or slot.next_nonce is None:
                await self._load(slot, address)
            assert slot.next_nonce is not None and slot.state is not None
            nonce = slot.next_nonce
            slot.next_nonce = nonce + 1
            account = slot.state
        log.debug("issued nonce %d for %s", nonce, address)

        try:
            yield NonceReservation(address=address, nonce=nonce, account=account)
        except _LOCAL_ERRORS:
            async with slot.lock:
                if slot.next_nonce == nonce + 1 and not slot.stale:
                    slot.next_nonce = nonce
                    log.debug("nonce %d for %s handed back", nonce, address)
                else:
                    slot.stale = True
            raise
        except Rejected as e:
            if e.reason is RejectReason.NONCE_MISMATCH:
                log.warning("operator rejected nonce %d for %s; re-syncing", nonce, address)
                async with slot.lock:
                    slot.stale = True
                    try:
                        await self._load(slot, address)
                    except RpcError as sync_err:
                        log.warning("re-sync for %s failed: %s", address, sync_err)
            else:
                slot.stale = True
            raise
        except BaseException:
            # Transient failures and cancellation: the nonce may or may not
            # have reached the operator.
            slot.stale = True
            raise
        else:
            if slot.submitted is None or nonce > slot.submitted:
                slot.submitted = nonce


__all__ = ["NonceTracker", "NonceReservation"]
