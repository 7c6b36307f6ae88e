import pytest
from hypothesis import given
from hypothesis import strategies as st

from zkrollup_sdk.amounts import (closest_greater_or_eq_packable_fee,
                                  closest_packable_amount,
                                  closest_packable_fee, is_packable_amount,
                                  is_packable_fee, max_packable_amount,
                                  max_packable_fee, pack_amount, pack_fee,
                                  unpack_amount, unpack_fee)
from zkrollup_sdk.errors import ValidationError


def test_round_amounts_are_exact():
    p = closest_packable_amount(10**18)
    assert not p.lossy
    assert (p.mantissa, p.exponent) == (10**10, 8)
    assert pack_amount(10**18) == bytes.fromhex("4a817c8008")
    assert unpack_amount(bytes.fromhex("4a817c8008")) == 10**18


def test_amount_rounds_down():
    p = closest_packable_amount(123456789012345678901)
    assert p.lossy
    assert p.value == 123456789010000000000
    assert p.value <= p.requested


def test_fee_rounding_directions():
    assert closest_packable_fee(1_000_001).value == 1_000_000
    assert closest_greater_or_eq_packable_fee(1_000_001).value == 1_001_000
    assert closest_packable_fee(2049).value == 2040
    assert closest_greater_or_eq_packable_fee(2049).value == 2050
    # exact values are left alone either way
    assert closest_greater_or_eq_packable_fee(2047).value == 2047


def test_pack_fee_layout():
    # mantissa 1000, exponent 12 -> (1000 << 5) | 12
    assert pack_fee(10**15) == (32012).to_bytes(2, "big")
    assert unpack_fee(pack_fee(10**15)) == 10**15


def test_not_packable_raises():
    assert not is_packable_fee(1_000_001)
    with pytest.raises(ValidationError) as ei:
        pack_fee(1_000_001)
    assert ei.value.field == "fee"
    with pytest.raises(ValidationError):
        pack_amount(123456789012345678901)


def test_negative_and_out_of_range():
    with pytest.raises(ValidationError):
        closest_packable_amount(-1)
    with pytest.raises(ValidationError):
        closest_packable_amount(10**50)
    assert not is_packable_amount(-5)
    assert is_packable_amount(max_packable_amount())
    assert is_packable_fee(max_packable_fee())


def test_unpack_wrong_width():
    with pytest.raises(ValueError):
        unpack_amount(b"\x00\x01")


@given(st.integers(min_value=0, max_value=max_packable_amount()))
def test_amount_round_down_is_packable_and_not_above(value):
    p = closest_packable_amount(value)
    assert p.value <= value
    assert is_packable_amount(p.value)
    assert unpack_amount(pack_amount(p.value)) == p.value


@given(st.integers(min_value=0, max_value=max_packable_fee()))
def test_fee_round_up_is_packable_and_not_below(value):
    p = closest_greater_or_eq_packable_fee(value)
    assert p.value >= value
    assert is_packable_fee(p.value)
    assert closest_packable_fee(value).value <= value
