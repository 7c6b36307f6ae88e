import re
from dataclasses import replace

from hypothesis import given
from hypothesis import strategies as st

from conftest import ADDR_A, ADDR_B
from zkrollup_sdk.tx.build import build, build_order
from zkrollup_sdk.tx.encode import (ORDER_TAG, encode, encode_order, tag_byte,
                                    to_wire, tx_hash)
from zkrollup_sdk.tx.sign import DualSigner
from zkrollup_sdk.types.core import (ChangePubKeyAuth, L1Signature, Signature,
                                     SignatureBundle, TxType)

MAX_U32 = 2**32 - 1


def _transfer(**kw):
    fields = dict(account_id=7, account=ADDR_A, to=ADDR_B, token=0, amount=10**18, fee=10**15, nonce=5)
    fields.update(kw)
    return build(TxType.TRANSFER, **fields)


def test_transfer_layout():
    b = encode(_transfer())
    assert len(b) == 77
    assert b[0] == 0xFA and b[1] == 0x01
    assert b[2:6] == (7).to_bytes(4, "big")
    assert b[6:26] == bytes.fromhex("11" * 20)
    assert b[26:46] == bytes.fromhex("22" * 20)
    assert b[46:50] == b"\x00\x00\x00\x00"
    assert b[50:55] == bytes.fromhex("4a817c8008")
    assert b[55:57] == (32012).to_bytes(2, "big")
    assert b[57:61] == (5).to_bytes(4, "big")
    assert b[61:69] == (0).to_bytes(8, "big")
    assert b[69:77] == MAX_U32.to_bytes(8, "big")


def test_tag_bytes():
    assert tag_byte(TxType.WITHDRAW) == 0xFC
    assert tag_byte(TxType.TRANSFER) == 0xFA
    assert tag_byte(TxType.CHANGE_PUB_KEY) == 0xF8
    assert tag_byte(TxType.FORCED_EXIT) == 0xF7
    assert tag_byte(TxType.MINT_NFT) == 0xF6
    assert tag_byte(TxType.WITHDRAW_NFT) == 0xF5
    assert tag_byte(TxType.SWAP) == 0xF4


def test_variant_layout_lengths():
    withdraw = build(
        TxType.WITHDRAW, account_id=7, account=ADDR_A, to=ADDR_B, token=0,
        amount=123456789012345678901, fee=10**15, nonce=1,
    )
    wb = encode(withdraw)
    assert len(wb) == 92
    # withdraw amounts are not packed
    assert wb[50:66] == (123456789012345678901).to_bytes(16, "big")

    cpk = build(
        TxType.CHANGE_PUB_KEY, account_id=7, account=ADDR_A, new_pk_hash="sync:" + "ab" * 20,
        fee_token=0, fee=0, nonce=0,
    )
    cb = encode(cpk)
    assert cb[0] == 0xF8 and len(cb) == 2 + 4 + 20 + 20 + 4 + 2 + 4 + 16
    assert cb[26:46] == bytes.fromhex("ab" * 20)

    fe = build(TxType.FORCED_EXIT, account_id=7, account=ADDR_A, target=ADDR_B, token=0, fee=0, nonce=0)
    assert len(encode(fe)) == 2 + 4 + 20 + 4 + 2 + 4 + 16

    mint = build(
        TxType.MINT_NFT, account_id=7, account=ADDR_A, content_hash=b"\x01" * 32,
        recipient=ADDR_B, fee_token=0, fee=0, nonce=0,
    )
    assert len(encode(mint)) == 2 + 4 + 20 + 32 + 20 + 4 + 2 + 4

    wnft = build(
        TxType.WITHDRAW_NFT, account_id=7, account=ADDR_A, to=ADDR_B, token=70000, fee_token=0, fee=0, nonce=0,
    )
    assert len(encode(wnft)) == 2 + 4 + 20 + 20 + 4 + 4 + 2 + 4 + 16


def test_encoding_is_deterministic_and_hash_format():
    a, b = _transfer(), _transfer()
    assert a == b
    assert encode(a) == encode(b)
    h = tx_hash(a)
    assert re.fullmatch(r"sync-tx:[0-9a-f]{64}", h)
    assert tx_hash(_transfer(nonce=6)) != h


def test_order_encoding(rollup_key):
    order = build_order(
        account_id=7, recipient=ADDR_A, nonce=3, token_sell=0, token_buy=1, ratio=(1, 2), amount=10**18,
    )
    ob = encode_order(order)
    assert ob[:2] == ORDER_TAG + b"\x01"
    assert len(ob) == 2 + 4 + 20 + 4 + 4 + 4 + 15 + 15 + 5 + 16
    # the signature is not part of the signed bytes
    signed = DualSigner().sign_order(order, rollup_key)
    assert encode_order(signed) == ob


def test_transfer_wire_format(rollup_key):
    tx = _transfer()
    bundle = SignatureBundle(rollup=rollup_key.sign(encode(tx)))
    wire = to_wire(tx, bundle)
    assert wire["type"] == "Transfer"
    assert wire["accountId"] == 7
    assert wire["from"] == ADDR_A and wire["to"] == ADDR_B
    assert wire["amount"] == "1000000000000000000"
    assert wire["fee"] == "1000000000000000"
    assert wire["nonce"] == 5
    assert "feeToken" not in wire
    assert wire["signature"]["pubKey"] == rollup_key.public_key.hex()


def test_change_pub_key_auth_data(rollup_key):
    cpk = build(
        TxType.CHANGE_PUB_KEY, account_id=7, account=ADDR_A, new_pk_hash=rollup_key.pub_key_hash,
        fee_token=0, fee=0, nonce=0,
    )
    rollup = rollup_key.sign(encode(cpk))
    l1 = L1Signature(signature=b"\x01" * 65, message="m", signer=ADDR_A)

    wire = to_wire(cpk, SignatureBundle(rollup=rollup, l1=l1))
    assert wire["ethAuthData"]["type"] == "ECDSA"
    assert wire["ethAuthData"]["ethSignature"] == "0x" + "01" * 65

    onchain = replace(cpk, auth_type=ChangePubKeyAuth.ONCHAIN)
    wire = to_wire(onchain, SignatureBundle(rollup=Signature(b"", b"")))
    assert wire["ethAuthData"] == {"type": "Onchain"}


@given(
    account_id=st.integers(min_value=0, max_value=MAX_U32),
    nonce=st.integers(min_value=0, max_value=MAX_U32),
    token=st.integers(min_value=0, max_value=65535),
)
def test_transfer_fields_land_in_fixed_offsets(account_id, nonce, token):
    b = encode(_transfer(account_id=account_id, nonce=nonce, token=token))
    assert len(b) == 77
    assert int.from_bytes(b[2:6], "big") == account_id
    assert int.from_bytes(b[46:50], "big") == token
    assert int.from_bytes(b[57:61], "big") == nonce
