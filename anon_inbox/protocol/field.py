"""
Prime-field arithmetic for protocol scalars.

All hashing, commitments and nullifiers live in the BN254 scalar field.
Arithmetic is closed under the modulus; Python integers never overflow, but
every result is reduced so values stay canonical.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .config import FIELD_ELEMENT_BYTES, FIELD_HEX_DIGITS, FIELD_MODULUS

IntLike = Union[int, "FieldElement"]


def _as_int(value: IntLike) -> int:
    if isinstance(value, FieldElement):
        return value.value
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int or FieldElement, got {type(value).__name__}")
    return value


@dataclass(frozen=True, order=True)
class FieldElement:
    """
    Canonical element of the protocol field.

    Attributes:
        value: Integer in [0, FIELD_MODULUS)

    Example:
        >>> a = FieldElement(FIELD_MODULUS - 1)
        >>> (a + 2).value
        1
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"field value must be int, got {type(self.value).__name__}")
        if not 0 <= self.value < FIELD_MODULUS:
            raise ValueError("field value out of range; use FieldElement.reduce()")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def reduce(cls, value: int) -> "FieldElement":
        """Wrap an arbitrary integer into the field."""
        return cls(_as_int(value) % FIELD_MODULUS)

    @classmethod
    def zero(cls) -> "FieldElement":
        return cls(0)

    @classmethod
    def from_hex(cls, text: str) -> "FieldElement":
        if not isinstance(text, str):
            raise TypeError("hex value must be str")
        body = text[2:] if text[:2].lower() == "0x" else text
        if not body:
            raise ValueError("empty hex value")
        return cls(int(body, 16))

    @classmethod
    def from_decimal(cls, text: str) -> "FieldElement":
        if not isinstance(text, str):
            raise TypeError("decimal value must be str")
        if not text.isdigit():
            raise ValueError(f"not a decimal field value: {text!r}")
        return cls(int(text))

    @classmethod
    def from_bytes(cls, data: bytes) -> "FieldElement":
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("data must be bytes")
        if len(data) != FIELD_ELEMENT_BYTES:
            raise ValueError(f"field encoding must be {FIELD_ELEMENT_BYTES} bytes")
        return cls(int.from_bytes(data, "big"))

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(FIELD_ELEMENT_BYTES, "big")

    def to_hex(self) -> str:
        return "0x" + format(self.value, f"0{FIELD_HEX_DIGITS}x")

    def to_decimal(self) -> str:
        return str(self.value)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, other: IntLike) -> "FieldElement":
        return FieldElement((self.value + _as_int(other)) % FIELD_MODULUS)

    __radd__ = __add__

    def __sub__(self, other: IntLike) -> "FieldElement":
        return FieldElement((self.value - _as_int(other)) % FIELD_MODULUS)

    def __rsub__(self, other: IntLike) -> "FieldElement":
        return FieldElement((_as_int(other) - self.value) % FIELD_MODULUS)

    def __mul__(self, other: IntLike) -> "FieldElement":
        return FieldElement((self.value * _as_int(other)) % FIELD_MODULUS)

    __rmul__ = __mul__

    def __neg__(self) -> "FieldElement":
        return FieldElement((-self.value) % FIELD_MODULUS)

    def __pow__(self, exponent: int) -> "FieldElement":
        if not isinstance(exponent, int) or exponent < 0:
            raise ValueError("exponent must be a non-negative int")
        return FieldElement(pow(self.value, exponent, FIELD_MODULUS))

    def __int__(self) -> int:
        return self.value

    def __bool__(self) -> bool:
        return self.value != 0

    def __str__(self) -> str:
        return self.to_decimal()


def to_field(value: IntLike) -> FieldElement:
    """Coerce an int or FieldElement, reducing ints into the field."""
    if isinstance(value, FieldElement):
        return value
    return FieldElement.reduce(value)
