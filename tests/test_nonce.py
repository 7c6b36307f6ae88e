import asyncio

import pytest

from conftest import ADDR_A
from zkrollup_sdk.account.nonce import NonceTracker
from zkrollup_sdk.errors import (JsonRpcCode, OperatorCode, Rejected,
                                 Transient, ValidationError)
from zkrollup_sdk.types.core import AccountState


def _state(nonce: int) -> AccountState:
    return AccountState(address=ADDR_A, account_id=7, nonce=nonce)


def _nonce_mismatch() -> Rejected:
    return Rejected(method="tx_submit", code=OperatorCode.NONCE_MISMATCH, message="Nonce mismatch")


@pytest.mark.asyncio
async def test_sequential_reservations(operator):
    operator.set_account(ADDR_A, _state(5))
    tracker = NonceTracker(operator)
    issued = []
    for _ in range(3):
        async with tracker.reserve(ADDR_A) as r:
            issued.append(r.nonce)
    assert issued == [5, 6, 7]
    assert operator.count("account_info") == 1
    assert await tracker.current_nonce(ADDR_A) == 8


@pytest.mark.asyncio
async def test_concurrent_reservations_are_unique(operator):
    operator.set_account(ADDR_A, _state(5))
    tracker = NonceTracker(operator)

    async def send() -> int:
        async with tracker.reserve(ADDR_A) as r:
            await asyncio.sleep(0)
            return r.nonce

    nonces = await asyncio.gather(*(send() for _ in range(10)))
    assert sorted(nonces) == list(range(5, 15))
    assert operator.count("account_info") == 1


@pytest.mark.asyncio
async def test_local_error_hands_nonce_back(operator):
    operator.set_account(ADDR_A, _state(5))
    tracker = NonceTracker(operator)
    with pytest.raises(ValidationError):
        async with tracker.reserve(ADDR_A):
            raise ValidationError("bad field", field="amount")
    async with tracker.reserve(ADDR_A) as r:
        assert r.nonce == 5
    assert not tracker.is_stale(ADDR_A)


@pytest.mark.asyncio
async def test_local_error_after_later_nonce_marks_stale(operator):
    operator.set_account(ADDR_A, _state(5))
    tracker = NonceTracker(operator)
    with pytest.raises(ValidationError):
        async with tracker.reserve(ADDR_A) as r1:
            async with tracker.reserve(ADDR_A) as r2:
                assert (r1.nonce, r2.nonce) == (5, 6)
            raise ValidationError("late failure")
    assert tracker.is_stale(ADDR_A)


@pytest.mark.asyncio
async def test_nonce_mismatch_resyncs_immediately(operator):
    # Operator has seen nonce 5 from elsewhere: it now expects 6.
    operator.set_account(ADDR_A, _state(5), _state(6))
    tracker = NonceTracker(operator)
    with pytest.raises(Rejected):
        async with tracker.reserve(ADDR_A) as r:
            assert r.nonce == 5
            raise _nonce_mismatch()
    assert operator.count("account_info") == 2
    assert not tracker.is_stale(ADDR_A)
    async with tracker.reserve(ADDR_A) as r:
        assert r.nonce == 6


@pytest.mark.asyncio
async def test_failed_resync_keeps_original_error(operator):
    operator.set_account(
        ADDR_A,
        _state(5),
        Transient(method="account_info", code=JsonRpcCode.SERVICE_UNAVAILABLE, message="HTTP 503"),
        _state(6),
    )
    tracker = NonceTracker(operator)
    with pytest.raises(Rejected):
        async with tracker.reserve(ADDR_A):
            raise _nonce_mismatch()
    assert tracker.is_stale(ADDR_A)
    assert await tracker.current_nonce(ADDR_A) == 6


@pytest.mark.asyncio
async def test_transient_and_other_rejections_mark_stale(operator):
    operator.set_account(ADDR_A, _state(5), _state(6), _state(6))
    tracker = NonceTracker(operator)

    with pytest.raises(Transient):
        async with tracker.reserve(ADDR_A):
            raise Transient(method="tx_submit", code=JsonRpcCode.TRANSPORT_ERROR, message="network error")
    assert tracker.is_stale(ADDR_A)
    async with tracker.reserve(ADDR_A) as r:
        assert r.nonce == 6

    with pytest.raises(Rejected):
        async with tracker.reserve(ADDR_A):
            raise Rejected(method="tx_submit", code=OperatorCode.INSUFFICIENT_BALANCE, message="Not enough balance")
    assert tracker.is_stale(ADDR_A)
    assert operator.count("account_info") == 2


@pytest.mark.asyncio
async def test_invalidate_and_resync(operator):
    operator.set_account(ADDR_A, _state(5), _state(9))
    tracker = NonceTracker(operator)
    assert await tracker.current_nonce(ADDR_A) == 5
    tracker.invalidate(ADDR_A)
    assert tracker.is_stale(ADDR_A)
    assert await tracker.current_nonce(ADDR_A) == 9
    assert operator.count("account_info") == 2


@pytest.mark.asyncio
async def test_resync_never_reissues_a_submitted_nonce(operator):
    # The operator keeps reporting 5 while our earlier submits sit in its mempool.
    operator.set_account(ADDR_A, _state(5))
    tracker = NonceTracker(operator)
    async with tracker.reserve(ADDR_A) as a:
        pass
    with pytest.raises(Transient):
        async with tracker.reserve(ADDR_A) as b:
            raise Transient(method="tx_submit", code=JsonRpcCode.TRANSPORT_ERROR, message="network error")
    async with tracker.reserve(ADDR_A) as c:
        pass
    assert (a.nonce, b.nonce, c.nonce) == (5, 6, 6)
    assert operator.count("account_info") == 2

    assert await tracker.resync(ADDR_A) == 7
    tracker.invalidate(ADDR_A, forget_submitted=True)
    assert await tracker.current_nonce(ADDR_A) == 5
