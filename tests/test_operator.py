import pytest

from conftest import ADDR_A, ADDR_B, RPC_URL, RpcFault
from zkrollup_sdk.errors import JsonRpcCode, Rejected, RejectReason, reject_reason
from zkrollup_sdk.rpc.http import RpcTransport
from zkrollup_sdk.rpc.operator import OperatorClient, fee_type_name
from zkrollup_sdk.tx.build import build
from zkrollup_sdk.tx.encode import encode, tx_hash
from zkrollup_sdk.types.core import (L1Signature, SignatureBundle, TxState,
                                     TxType)
from zkrollup_sdk.utils.clock import VirtualClock


def _operator(**kw) -> OperatorClient:
    return OperatorClient(RpcTransport(url=RPC_URL, clock=VirtualClock(), **kw))


def _signed_transfer(rollup_key, nonce=5, l1=None):
    tx = build(TxType.TRANSFER, account_id=7, account=ADDR_A, to=ADDR_B, token=0, amount=10**18, fee=10**15, nonce=nonce)
    return tx, SignatureBundle(rollup=rollup_key.sign(encode(tx)), l1=l1)


def test_fee_type_names():
    assert fee_type_name(TxType.TRANSFER) == "Transfer"
    assert fee_type_name(TxType.WITHDRAW, fast=True) == "FastWithdraw"
    assert fee_type_name(TxType.WITHDRAW_NFT, fast=True) == "FastWithdrawNFT"
    assert fee_type_name(TxType.CHANGE_PUB_KEY, fast=True) == "ChangePubKey"


@pytest.mark.asyncio
async def test_submit_sends_wire_tx(rpc_stub, rollup_key):
    tx, bundle = _signed_transfer(rollup_key)
    rpc_stub.on("tx_submit", tx_hash(tx))
    async with _operator() as op:
        tx_id = await op.submit(tx, bundle)
    assert tx_id == tx_hash(tx)
    (params,) = rpc_stub.params_of("tx_submit")
    wire, l1, fast = params
    assert wire["type"] == "Transfer" and wire["nonce"] == 5
    assert l1 is None and fast is False


@pytest.mark.asyncio
async def test_submit_with_l1_signature(rpc_stub, rollup_key):
    l1 = L1Signature(signature=b"\x02" * 65, message="m", signer=ADDR_A)
    tx, bundle = _signed_transfer(rollup_key, l1=l1)
    rpc_stub.on("tx_submit", tx_hash(tx))
    async with _operator() as op:
        await op.submit(tx, bundle)
    (params,) = rpc_stub.params_of("tx_submit")
    assert params[1] == {"type": "EthereumSignature", "signature": "0x" + "02" * 65}


@pytest.mark.asyncio
async def test_resubmission_resolves_to_local_hash(rpc_stub, rollup_key):
    tx, bundle = _signed_transfer(rollup_key)

    def handler(params):
        raise RpcFault(105, "Transaction already submitted")

    rpc_stub.on_call("tx_submit", handler)
    async with _operator() as op:
        assert await op.submit(tx, bundle) == tx_hash(tx)


@pytest.mark.asyncio
async def test_submit_rejection_propagates(rpc_stub, rollup_key):
    tx, bundle = _signed_transfer(rollup_key)

    def handler(params):
        raise RpcFault(102, "Not enough balance")

    rpc_stub.on_call("tx_submit", handler)
    async with _operator() as op:
        with pytest.raises(Rejected):
            await op.submit(tx, bundle)


@pytest.mark.asyncio
async def test_used_nonce_is_not_a_resubmission(rpc_stub, rollup_key):
    tx, bundle = _signed_transfer(rollup_key)

    def handler(params):
        raise RpcFault(-32000, "Nonce already used")

    rpc_stub.on_call("tx_submit", handler)
    async with _operator() as op:
        with pytest.raises(Rejected) as ei:
            await op.submit(tx, bundle)
    assert ei.value.reason is RejectReason.NONCE_MISMATCH


@pytest.mark.parametrize(
    "message, reason",
    [
        ("Nonce already used", RejectReason.NONCE_MISMATCH),
        ("Transaction already submitted", RejectReason.ALREADY_SUBMITTED),
        ("tx is already in mempool", RejectReason.ALREADY_SUBMITTED),
        ("Token already paused", RejectReason.UNSUPPORTED_TOKEN),
        ("already processed", RejectReason.UNKNOWN),
    ],
)
def test_reject_reason_from_message(message, reason):
    assert reject_reason(JsonRpcCode.SERVER_ERROR, message) is reason


@pytest.mark.asyncio
async def test_submit_batch(rpc_stub, rollup_key):
    a, ba = _signed_transfer(rollup_key, nonce=5)
    b, bb = _signed_transfer(rollup_key, nonce=6)
    rpc_stub.on("submit_txs_batch", [tx_hash(a), tx_hash(b)])
    async with _operator() as op:
        hashes = await op.submit_batch([(a, ba), (b, bb)])
    assert hashes == [tx_hash(a), tx_hash(b)]
    (params,) = rpc_stub.params_of("submit_txs_batch")
    assert [item["tx"]["nonce"] for item in params[0]] == [5, 6]


@pytest.mark.asyncio
async def test_status_and_account(rpc_stub):
    rpc_stub.on(
        "tx_info",
        {"executed": True, "success": True, "block": {"blockNumber": 12, "committed": True, "verified": False}},
    )
    rpc_stub.on(
        "account_info",
        {
            "address": ADDR_A,
            "id": 7,
            "committed": {"nonce": 5, "pubKeyHash": "sync:" + "AB" * 20, "balances": {"ETH": "1000"}},
            "verified": {"nonce": 4},
        },
    )
    async with _operator() as op:
        receipt = await op.get_status("sync-tx:00")
        account = await op.get_account_state(ADDR_A)
    assert receipt.state is TxState.COMMITTED
    assert receipt.block_number == 12
    assert account.account_id == 7
    assert account.nonce == 5
    assert account.verified_nonce == 4
    assert account.pub_key_hash == "sync:" + "ab" * 20
    assert account.balances == {"ETH": 1000}


@pytest.mark.asyncio
async def test_unknown_account_and_unset_key(rpc_stub):
    rpc_stub.on_seq("account_info", None, {"id": 3, "committed": {"nonce": 0, "pubKeyHash": "sync:" + "00" * 20}})
    async with _operator() as op:
        missing = await op.get_account_state(ADDR_B)
        fresh = await op.get_account_state(ADDR_B)
    assert missing.account_id is None and missing.nonce == 0
    assert fresh.account_id == 3
    assert fresh.pub_key_hash is None
    assert not fresh.has_signing_key


@pytest.mark.asyncio
async def test_estimate_fee(rpc_stub):
    rpc_stub.on(
        "get_tx_fee",
        {"feeType": "Withdraw", "gasTxAmount": "10", "gasPriceWei": "100", "gasFee": "900", "zkpFee": "100", "totalFee": "1000"},
    )
    async with _operator() as op:
        est = await op.estimate_fee(TxType.WITHDRAW, ADDR_A, "ETH", fast=True)
    assert est.total_fee == 1000
    assert est.token == "ETH"
    assert rpc_stub.params_of("get_tx_fee") == [["FastWithdraw", ADDR_A, "ETH"]]


@pytest.mark.asyncio
async def test_estimate_fee_malformed(rpc_stub):
    rpc_stub.on("get_tx_fee", "1000")
    async with _operator() as op:
        with pytest.raises(Rejected) as ei:
            await op.estimate_fee(TxType.TRANSFER, ADDR_A, 0)
    assert ei.value.code == JsonRpcCode.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_tokens_accepts_map_or_list(rpc_stub):
    rpc_stub.on_seq(
        "tokens",
        {"ETH": {"id": 0, "symbol": "ETH", "decimals": 18}, "USDC": {"id": 2, "symbol": "USDC", "decimals": 6}},
        [{"id": 0, "symbol": "ETH", "decimals": 18}],
    )
    async with _operator() as op:
        first = await op.tokens()
        second = await op.tokens()
    assert sorted(first) == [0, 2]
    assert first[2].format(1_500_000) == "1.5"
    assert list(second) == [0]


@pytest.mark.asyncio
async def test_priority_op_status(rpc_stub):
    rpc_stub.on("ethop_info", {"executed": True, "block": {"blockNumber": 3, "committed": True, "verified": True}})
    async with _operator() as op:
        r = await op.get_priority_op_status(42)
    assert (r.serial_id, r.committed, r.verified, r.block_number) == (42, True, True, 3)
    assert rpc_stub.params_of("ethop_info") == [[42]]


@pytest.mark.asyncio
async def test_health(rpc_stub):
    rpc_stub.on("tokens", {})
    async with _operator() as op:
        ok = await op.check_health()
    assert ok.healthy

    def handler(params):
        raise RpcFault(-32603, "internal error")

    rpc_stub.on_call("tokens", handler)
    async with _operator() as op:
        bad = await op.check_health()
    assert not bad.healthy
    assert "internal error" in bad.detail


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, result",
    [
        ("tx_info", {"status": "included"}),
        ("account_info", {"id": "seven", "committed": {"nonce": 1}}),
        ("ethop_info", {"block": {"blockNumber": "n/a"}}),
        ("tokens", [{"symbol": "ETH"}]),
    ],
)
async def test_unreadable_results_are_rejected(rpc_stub, method, result):
    rpc_stub.on(method, result)
    async with _operator() as op:
        calls = {
            "tx_info": lambda: op.get_status("sync-tx:00"),
            "account_info": lambda: op.get_account_state(ADDR_A),
            "ethop_info": lambda: op.get_priority_op_status(1),
            "tokens": op.tokens,
        }
        with pytest.raises(Rejected) as ei:
            await calls[method]()
    assert ei.value.code == JsonRpcCode.MALFORMED_RESPONSE
    assert ei.value.method == method
    assert ei.value.reason is RejectReason.UNKNOWN
