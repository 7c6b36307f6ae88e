import re

import pytest

from zkrollup_sdk.errors import SigningError
from zkrollup_sdk.wallet.eth import (LocalL1Signer, derive_rollup_signer,
                                     recover_signer)
from zkrollup_sdk.wallet.signer import (create_signer_from_private_key,
                                        create_signer_from_seed, pub_key_hash,
                                        verify)


def _seed(n: int = 32) -> bytes:
    # Deterministic test seed: 0x00, 0x01, ..., 0x1f
    return bytes(range(n))


def test_signer_from_seed_is_deterministic():
    s1 = create_signer_from_seed(_seed())
    s2 = create_signer_from_seed(_seed())
    assert s1.public_key == s2.public_key
    assert len(s1.public_key) == 32
    assert re.fullmatch(r"sync:[0-9a-f]{40}", s1.pub_key_hash)
    assert s1.pub_key_hash == pub_key_hash(s1.public_key)
    assert s1.info().alg_name == "ed25519"


def test_domain_changes_key():
    a = create_signer_from_seed(_seed(), domain=b"\x00\x00\x00\x01")
    b = create_signer_from_seed(_seed(), domain=b"\x00\x00\x00\x02")
    assert a.public_key != b.public_key


def test_sign_and_verify_roundtrip():
    s = create_signer_from_seed(_seed())
    msg = b"rollup test message"
    sig = s.sign(msg)
    assert sig.pub_key == s.public_key
    assert len(sig.signature) == 64
    assert verify(sig.pub_key, msg, sig.signature)
    assert s.verify(msg, sig.signature)
    # Ed25519 is deterministic
    assert s.sign(msg).signature == sig.signature


def test_verify_rejects_tampering():
    s = create_signer_from_seed(_seed())
    msg = b"rollup test message"
    sig = s.sign(msg).signature
    flipped = bytes([sig[0] ^ 0x01]) + sig[1:]
    assert verify(s.public_key, msg, flipped) is False
    assert verify(s.public_key, b"tampered", sig) is False
    other = create_signer_from_seed(b"someone else")
    assert verify(other.public_key, msg, sig) is False
    # malformed key material verifies False instead of raising
    assert verify(b"\x01\x02", msg, sig) is False


def test_bad_key_material():
    with pytest.raises(SigningError):
        create_signer_from_seed(b"")
    with pytest.raises(SigningError):
        create_signer_from_private_key(b"\x01" * 31)
    with pytest.raises(SigningError):
        create_signer_from_seed(_seed()).sign("not bytes")


def test_l1_sign_and_recover(l1_signer):
    sig = l1_signer.sign_message("hello rollup")
    assert len(sig) == 65
    assert recover_signer("hello rollup", sig) == l1_signer.address
    assert recover_signer("other text", sig) != l1_signer.address


def test_invalid_l1_key():
    with pytest.raises(SigningError):
        LocalL1Signer("0x1234")


def test_derive_rollup_signer(l1_signer):
    a = derive_rollup_signer(l1_signer, chain_id=9)
    b = derive_rollup_signer(l1_signer, chain_id=9)
    c = derive_rollup_signer(l1_signer, chain_id=1)
    assert a.public_key == b.public_key
    assert a.public_key != c.public_key
