"""
bitmatch/bitbuffer.py
=====================

Bit-addressed views over byte buffers.

Offsets and lengths are in bits; bit 0 is the most significant bit of the
first byte.  Reading never copies more than the bytes a field spans.

* ``get_int`` / ``set_int``  – integers of 1..64 bits (any width works) with
  sign and byte order
* ``get_bytes``              – whole bytes starting at any bit offset
* ``sub``                    – a ``Bitstring`` view of a bit range
* ``Bitstring``              – immutable ``(data, offset, length)`` view
* ``BitWriter``              – builds bitstrings field by field

Byte order of integers: big endian reads the field most significant bit
first.  Little endian cuts the field into 8-bit chunks in stream order (the
last chunk may be shorter) and gives chunk *i* the weight ``2 ** (8 * i)``.
For widths that are a multiple of 8 this is ordinary little-endian byte
order.
"""

from __future__ import annotations

import sys
from typing import Iterator, List, Tuple, Union

__all__ = [
    "BytesLike",
    "Bitstring",
    "BitWriter",
    "get_int",
    "set_int",
    "get_bytes",
    "sub",
    "normalize_endian",
]

BytesLike = Union[bytes, bytearray, memoryview]


def normalize_endian(endian: object) -> str:
    """Map ``"big"``/``"little"``/``"native"`` (or an ``Endian`` member) to
    ``"big"`` or ``"little"``."""
    value = getattr(endian, "value", endian)
    if value == "native":
        return sys.byteorder
    if value in ("big", "little"):
        return value
    raise ValueError(f"unknown byte order: {endian!r}")


def _check_range(data: BytesLike, bit_offset: int, bit_length: int) -> None:
    if bit_offset < 0 or bit_length < 0 or bit_offset + bit_length > len(data) * 8:
        raise IndexError(
            f"bit range [{bit_offset}, {bit_offset + bit_length}) "
            f"outside a {len(data) * 8}-bit buffer"
        )


def _read_bits(data: BytesLike, bit_offset: int, bit_width: int) -> int:
    """The bits as an unsigned integer, first bit most significant."""
    if bit_width == 0:
        return 0
    start = bit_offset >> 3
    end = (bit_offset + bit_width + 7) >> 3
    chunk = int.from_bytes(data[start:end], "big")
    shift = end * 8 - (bit_offset + bit_width)
    return (chunk >> shift) & ((1 << bit_width) - 1)


def _chunk_sizes(bit_width: int) -> List[int]:
    full, rest = divmod(bit_width, 8)
    return [8] * full + ([rest] if rest else [])


def _stream_to_little(raw: int, bit_width: int) -> int:
    value = 0
    position = bit_width
    weight = 0
    for size in _chunk_sizes(bit_width):
        position -= size
        value |= ((raw >> position) & ((1 << size) - 1)) << weight
        weight += size
    return value


def _little_to_stream(value: int, bit_width: int) -> int:
    raw = 0
    weight = 0
    for size in _chunk_sizes(bit_width):
        raw = (raw << size) | ((value >> weight) & ((1 << size) - 1))
        weight += size
    return raw


def _encode_int(value: int, bit_width: int, signed: bool, endian: object) -> int:
    """Stream bits (as an unsigned integer) that encode *value*."""
    if bit_width <= 0:
        raise ValueError(f"integer width must be positive, got {bit_width}")
    if signed:
        low, high = -(1 << (bit_width - 1)), (1 << (bit_width - 1)) - 1
    else:
        low, high = 0, (1 << bit_width) - 1
    if not low <= value <= high:
        raise ValueError(
            f"{value} does not fit in {bit_width} {'signed' if signed else 'unsigned'} bits"
        )
    raw = value & ((1 << bit_width) - 1)
    if normalize_endian(endian) == "little" and bit_width > 8:
        raw = _little_to_stream(raw, bit_width)
    return raw


def get_int(
    data: BytesLike,
    bit_offset: int,
    bit_width: int,
    signed: bool = False,
    endian: object = "big",
) -> int:
    """Read an integer of *bit_width* bits starting at *bit_offset*."""
    _check_range(data, bit_offset, bit_width)
    value = _read_bits(data, bit_offset, bit_width)
    if normalize_endian(endian) == "little" and bit_width > 8:
        value = _stream_to_little(value, bit_width)
    if signed and bit_width and value >> (bit_width - 1):
        value -= 1 << bit_width
    return value


def set_int(
    buffer: bytearray,
    bit_offset: int,
    bit_width: int,
    value: int,
    signed: bool = False,
    endian: object = "big",
) -> None:
    """Write *value* into *buffer* so that ``get_int`` reads it back."""
    _check_range(buffer, bit_offset, bit_width)
    raw = _encode_int(value, bit_width, signed, endian)
    start = bit_offset >> 3
    end = (bit_offset + bit_width + 7) >> 3
    shift = end * 8 - (bit_offset + bit_width)
    mask = ((1 << bit_width) - 1) << shift
    current = int.from_bytes(buffer[start:end], "big")
    current = (current & ~mask) | (raw << shift)
    buffer[start:end] = current.to_bytes(end - start, "big")


def get_bytes(data: BytesLike, bit_offset: int, byte_length: int) -> bytes:
    """Read *byte_length* whole bytes starting at any bit offset."""
    _check_range(data, bit_offset, byte_length * 8)
    if bit_offset & 7 == 0:
        start = bit_offset >> 3
        return bytes(data[start:start + byte_length])
    return _read_bits(data, bit_offset, byte_length * 8).to_bytes(byte_length, "big")


def sub(data: BytesLike, bit_offset: int, bit_length: int) -> "Bitstring":
    """A view of *bit_length* bits of *data* starting at *bit_offset*."""
    return Bitstring(data, bit_offset, bit_length)


class Bitstring:
    """Immutable view of ``length`` bits of ``data`` starting at ``offset``.

    Equality compares the viewed bits, not the underlying buffers, so
    ``Bitstring(b"\\xff", 4, 4) == Bitstring.from_bits("1111")``.
    """

    __slots__ = ("data", "offset", "length")

    def __init__(self, data: BytesLike, offset: int = 0, length: int = -1) -> None:
        data = bytes(data)
        if length == -1:
            length = len(data) * 8 - offset
        _check_range(data, offset, length)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "offset", offset)
        object.__setattr__(self, "length", length)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("Bitstring is immutable")

    # ── constructors ────────────────────────────────────────────────────

    @classmethod
    def from_bytes(cls, data: BytesLike) -> "Bitstring":
        return cls(data, 0, len(data) * 8)

    @classmethod
    def from_bits(cls, text: str) -> "Bitstring":
        """Build from ``"0"``/``"1"`` text; spaces and ``_`` are ignored."""
        return BitWriter().append_bits(text).build()

    @classmethod
    def empty(cls) -> "Bitstring":
        return cls(b"", 0, 0)

    # ── access ──────────────────────────────────────────────────────────

    @property
    def cursor(self) -> Tuple[bytes, int, int]:
        return self.data, self.offset, self.length

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> Iterator[int]:
        for i in range(self.length):
            yield _read_bits(self.data, self.offset + i, 1)

    def _relative(self, bit_offset: int, bit_length: int) -> int:
        if bit_offset < 0 or bit_length < 0 or bit_offset + bit_length > self.length:
            raise IndexError(
                f"bit range [{bit_offset}, {bit_offset + bit_length}) "
                f"outside a {self.length}-bit bitstring"
            )
        return self.offset + bit_offset

    def get_int(
        self,
        bit_offset: int,
        bit_width: int,
        signed: bool = False,
        endian: object = "big",
    ) -> int:
        start = self._relative(bit_offset, bit_width)
        return get_int(self.data, start, bit_width, signed, endian)

    def get_bytes(self, bit_offset: int, byte_length: int) -> bytes:
        start = self._relative(bit_offset, byte_length * 8)
        return get_bytes(self.data, start, byte_length)

    def sub(self, bit_offset: int, bit_length: int) -> "Bitstring":
        start = self._relative(bit_offset, bit_length)
        return Bitstring(self.data, start, bit_length)

    def bits(self) -> str:
        if self.length == 0:
            return ""
        return format(_read_bits(self.data, self.offset, self.length), f"0{self.length}b")

    def to_bytes(self) -> bytes:
        """The bits, padded with zero bits to a whole number of bytes."""
        nbytes = (self.length + 7) // 8
        raw = _read_bits(self.data, self.offset, self.length)
        return (raw << (nbytes * 8 - self.length)).to_bytes(nbytes, "big")

    # ── protocol ────────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitstring):
            return NotImplemented
        return self.length == other.length and (
            _read_bits(self.data, self.offset, self.length)
            == _read_bits(other.data, other.offset, other.length)
        )

    def __hash__(self) -> int:
        return hash((self.length, _read_bits(self.data, self.offset, self.length)))

    def __add__(self, other: "Bitstring") -> "Bitstring":
        if not isinstance(other, Bitstring):
            return NotImplemented
        return BitWriter().append_bitstring(self).append_bitstring(other).build()

    def __repr__(self) -> str:
        bits = self.bits()
        if len(bits) > 64:
            bits = bits[:64] + "..."
        return f"Bitstring({bits!r}, length={self.length})"


class BitWriter:
    """Accumulates fields and builds a :class:`Bitstring`.

    Usage::

        bs = (BitWriter()
              .append_int(0x47, 8)
              .append_int(-2, 12, signed=True, endian="little")
              .append_bytes(b"GIF")
              .build())
    """

    def __init__(self) -> None:
        self._value = 0
        self._length = 0

    def __len__(self) -> int:
        return self._length

    def _push(self, raw: int, width: int) -> "BitWriter":
        self._value = (self._value << width) | raw
        self._length += width
        return self

    def append_int(
        self,
        value: int,
        bit_width: int,
        signed: bool = False,
        endian: object = "big",
    ) -> "BitWriter":
        return self._push(_encode_int(value, bit_width, signed, endian), bit_width)

    def append_bytes(self, data: BytesLike) -> "BitWriter":
        data = bytes(data)
        return self._push(int.from_bytes(data, "big"), len(data) * 8)

    def append_bits(self, text: str) -> "BitWriter":
        digits = "".join(text.split()).replace("_", "")
        if digits.strip("01"):
            raise ValueError(f"not a bit string: {text!r}")
        if not digits:
            return self
        return self._push(int(digits, 2), len(digits))

    def append_bitstring(self, bits: Bitstring) -> "BitWriter":
        return self._push(_read_bits(bits.data, bits.offset, bits.length), bits.length)

    def skip(self, bit_width: int) -> "BitWriter":
        """Append *bit_width* zero bits."""
        return self._push(0, bit_width)

    def build(self) -> Bitstring:
        nbytes = (self._length + 7) // 8
        data = (self._value << (nbytes * 8 - self._length)).to_bytes(nbytes, "big")
        return Bitstring(data, 0, self._length)
