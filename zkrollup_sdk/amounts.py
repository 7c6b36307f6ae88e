"""
Packed (mantissa/exponent) amount encoding.

Rollup transactions carry amounts and fees in a lossy floating-point form:

    value = mantissa * 10 ** exponent

| kind   | mantissa bits | exponent bits | bytes |
|--------|---------------|---------------|-------|
| amount | 35            | 5             | 5     |
| fee    | 11            | 5             | 2     |

Bits are laid out as `mantissa << EXPONENT_BITS | exponent`, big-endian.

Amounts round **down** to the closest representable value (never send more
than requested); fees round **up** (never offer less than quoted).
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError

__all__ = [
    "AMOUNT_MANTISSA_BITS",
    "FEE_MANTISSA_BITS",
    "EXPONENT_BITS",
    "PackedValue",
    "closest_packable_amount",
    "closest_packable_fee",
    "closest_greater_or_eq_packable_fee",
    "is_packable_amount",
    "is_packable_fee",
    "pack_amount",
    "pack_fee",
    "unpack_amount",
    "unpack_fee",
    "max_packable_amount",
    "max_packable_fee",
]

AMOUNT_MANTISSA_BITS = 35
FEE_MANTISSA_BITS = 11
EXPONENT_BITS = 5
_MAX_EXPONENT = (1 << EXPONENT_BITS) - 1


@dataclass(frozen=True)
class PackedValue:
    """Result of rounding a value into packed form."""

    requested: int
    value: int
    mantissa: int
    exponent: int

    @property
    def lossy(self) -> bool:
        return self.value != self.requested


def _round_down(value: int, mantissa_bits: int, field: str) -> PackedValue:
    value = int(value)
    if value < 0:
        raise ValidationError(f"{field} must be non-negative", field=field)
    limit = 1 << mantissa_bits
    exponent = 0
    mantissa = value
    while mantissa >= limit:
        mantissa //= 10
        exponent += 1
    if exponent > _MAX_EXPONENT:
        raise ValidationError(f"{field} {value} exceeds the packable range", field=field)
    return PackedValue(value, mantissa * 10**exponent, mantissa, exponent)


def _round_up(value: int, mantissa_bits: int, field: str) -> PackedValue:
    value = int(value)
    if value < 0:
        raise ValidationError(f"{field} must be non-negative", field=field)
    limit = 1 << mantissa_bits
    exponent = 0
    while True:
        scale = 10**exponent
        mantissa = -(-value // scale)
        if mantissa < limit:
            break
        exponent += 1
    if exponent > _MAX_EXPONENT:
        raise ValidationError(f"{field} {value} exceeds the packable range", field=field)
    return PackedValue(value, mantissa * 10**exponent, mantissa, exponent)


def _pack(p: PackedValue, mantissa_bits: int) -> bytes:
    width = (mantissa_bits + EXPONENT_BITS) // 8
    return ((p.mantissa << EXPONENT_BITS) | p.exponent).to_bytes(width, "big")


def _unpack(data: bytes, mantissa_bits: int) -> int:
    width = (mantissa_bits + EXPONENT_BITS) // 8
    if len(data) != width:
        raise ValueError(f"packed value must be {width} bytes, got {len(data)}")
    raw = int.from_bytes(data, "big")
    exponent = raw & _MAX_EXPONENT
    mantissa = raw >> EXPONENT_BITS
    return mantissa * 10**exponent


def closest_packable_amount(amount: int) -> PackedValue:
    """Largest packable amount <= `amount`."""
    return _round_down(amount, AMOUNT_MANTISSA_BITS, "amount")


def closest_packable_fee(fee: int) -> PackedValue:
    """Largest packable fee <= `fee`."""
    return _round_down(fee, FEE_MANTISSA_BITS, "fee")


def closest_greater_or_eq_packable_fee(fee: int) -> PackedValue:
    """Smallest packable fee >= `fee`."""
    return _round_up(fee, FEE_MANTISSA_BITS, "fee")


def is_packable_amount(amount: int) -> bool:
    try:
        return not closest_packable_amount(amount).lossy
    except ValidationError:
        return False


def is_packable_fee(fee: int) -> bool:
    try:
        return not closest_packable_fee(fee).lossy
    except ValidationError:
        return False


def pack_amount(amount: int) -> bytes:
    """5-byte packed amount; raises ValidationError unless exactly packable."""
    p = closest_packable_amount(amount)
    if p.lossy:
        raise ValidationError(f"amount {amount} is not packable", field="amount")
    return _pack(p, AMOUNT_MANTISSA_BITS)


def pack_fee(fee: int) -> bytes:
    """2-byte packed fee; raises ValidationError unless exactly packable."""
    p = closest_packable_fee(fee)
    if p.lossy:
        raise ValidationError(f"fee {fee} is not packable", field="fee")
    return _pack(p, FEE_MANTISSA_BITS)


def unpack_amount(data: bytes) -> int:
    return _unpack(data, AMOUNT_MANTISSA_BITS)


def unpack_fee(data: bytes) -> int:
    return _unpack(data, FEE_MANTISSA_BITS)


def max_packable_amount() -> int:
    return ((1 << AMOUNT_MANTISSA_BITS) - 1) * 10**_MAX_EXPONENT


def max_packable_fee() -> int:
    return ((1 << FEE_MANTISSA_BITS) - 1) * 10**_MAX_EXPONENT
