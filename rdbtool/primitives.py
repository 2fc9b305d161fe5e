"""Length, string and number encodings of the RDB format."""

from __future__ import annotations

import io
import math
import struct
from typing import BinaryIO, Union

from .cursor import RDBError

_LEN_6BIT = 0
_LEN_14BIT = 1
_LEN_32OR64BIT = 2
_LEN_32BIT = 0x80
_LEN_64BIT = 0x81

_ENCODE_INT8 = 0
_ENCODE_INT16 = 1
_ENCODE_INT32 = 2
_ENCODE_LZF = 3

_MAX_UINT6 = (1 << 6) - 1
_MAX_UINT14 = (1 << 14) - 1
_MAX_UINT32 = (1 << 32) - 1
_MAX_UINT64 = (1 << 64) - 1
_LEN_14BIT_MASK = 0x40

_ENCODE_INT8_PREFIX = 0xC0 | _ENCODE_INT8
_ENCODE_INT16_PREFIX = 0xC0 | _ENCODE_INT16
_ENCODE_INT32_PREFIX = 0xC0 | _ENCODE_INT32

_DIGITS = frozenset(b"0123456789")

BytesLike = Union[bytes, bytearray, memoryview]


class StreamReader:
    """Reads RDB primitives from a binary stream and counts the bytes consumed."""

    def __init__(self, source: Union[BinaryIO, BytesLike]) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self._input = source
        self.read_count = 0

    def read_byte(self) -> int:
        data = self._input.read(1)
        if not data:
            raise EOFError("unexpected end of input")
        self.read_count += 1
        return data[0]

    def read_full(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        if size < 0:
            raise RDBError(f"invalid read size: {size}")
        chunks = []
        missing = size
        while missing:
            chunk = self._input.read(missing)
            if not chunk:
                break
            chunks.append(chunk)
            missing -= len(chunk)
        if missing:
            raise EOFError(f"unexpected end of input: wanted {size} bytes")
        self.read_count += size
        return b"".join(chunks)

    def read_length(self) -> tuple[int, bool]:
        """Read a length encoding; returns the value and whether it is a special encoding."""
        first = self.read_byte()
        kind = first >> 6
        if kind == _LEN_6BIT:
            return first & 0x3F, False
        if kind == _LEN_14BIT:
            return ((first & 0x3F) << 8) | self.read_byte(), False
        if kind == _LEN_32OR64BIT:
            if first == _LEN_32BIT:
                return int.from_bytes(self.read_full(4), "big"), False
            if first == _LEN_64BIT:
                return int.from_bytes(self.read_full(8), "big"), False
            raise RDBError(f"illegal length encoding: {first:x}")
        return first & 0x3F, True

    def read_string(self) -> bytes:
        length, special = self.read_length()
        if not special:
            return self.read_full(length)
        if length == _ENCODE_INT8:
            return str(struct.unpack("<b", self.read_full(1))[0]).encode()
        if length == _ENCODE_INT16:
            return str(self.read_int16()).encode()
        if length == _ENCODE_INT32:
            return str(self.read_int32()).encode()
        if length == _ENCODE_LZF:
            raise RDBError("LZF-compressed strings are not supported")
        raise RDBError("unknown string encode type")

    def read_int16(self) -> int:
        return struct.unpack("<h", self.read_full(2))[0]

    def read_int32(self) -> int:
        return struct.unpack("<i", self.read_full(4))[0]

    def read_float(self) -> float:
        """Read a little-endian binary double."""
        return struct.unpack("<d", self.read_full(8))[0]

    def read_float32(self) -> float:
        return struct.unpack("<f", self.read_full(4))[0]

    def read_literal_float(self) -> float:
        """Read a float stored as a length-prefixed decimal string."""
        first = self.read_byte()
        if first == 0xFF:
            return -math.inf
        if first == 0xFE:
            return math.inf
        if first == 0xFD:
            return math.nan
        raw = self.read_full(first)
        try:
            return float(raw.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise RDBError(f"invalid float literal: {raw!r}") from None


def _as_bytes(value: Union[str, BytesLike]) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


def _parse_canonical_int(text: Union[str, BytesLike], limit: int) -> int | None:
    data = _as_bytes(text)
    if not data or (data[0] == ord("0") and len(data) > 1):
        return None
    if not all(byte in _DIGITS for byte in data):
        return None
    value = int(data)
    return value if value <= limit else None


def is_encodable_int32(text: Union[str, BytesLike]) -> int | None:
    """Return the integer if ``text`` is a canonical non-negative int32, else None."""
    return _parse_canonical_int(text, (1 << 31) - 1)


def is_encodable_int64(text: Union[str, BytesLike]) -> int | None:
    """Return the integer if ``text`` is a canonical non-negative int64, else None."""
    return _parse_canonical_int(text, (1 << 63) - 1)


def encode_length(value: int) -> bytes:
    if value < 0 or value > _MAX_UINT64:
        raise ValueError(f"length out of range: {value}")
    if value <= _MAX_UINT6:
        return bytes([value])
    if value <= _MAX_UINT14:
        return bytes([(value >> 8) | _LEN_14BIT_MASK, value & 0xFF])
    if value <= _MAX_UINT32:
        return bytes([_LEN_32BIT]) + value.to_bytes(4, "big")
    return bytes([_LEN_64BIT]) + value.to_bytes(8, "big")


def encode_int_string(text: Union[str, BytesLike]) -> bytes | None:
    """Encode ``text`` as an integer string, or return None if it cannot be."""
    value = is_encodable_int32(text)
    if value is None:
        return None
    if value <= 0x7F:
        return struct.pack("<Bb", _ENCODE_INT8_PREFIX, value)
    if value <= 0x7FFF:
        return struct.pack("<Bh", _ENCODE_INT16_PREFIX, value)
    return struct.pack("<Bi", _ENCODE_INT32_PREFIX, value)


def encode_raw_string(value: Union[str, BytesLike]) -> bytes:
    """Encode ``value`` as a length-prefixed string without integer encoding."""
    data = _as_bytes(value)
    return encode_length(len(data)) + data


def encode_string(value: Union[str, BytesLike]) -> bytes:
    """Encode ``value`` as an integer string when possible, else as a raw string."""
    encoded = encode_int_string(value)
    return encoded if encoded is not None else encode_raw_string(value)


def encode_float64(value: float) -> bytes:
    return struct.pack("<d", value)