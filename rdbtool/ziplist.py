"""Ziplist encoding: the compact list layout used by lists, hashes and sorted sets."""

from __future__ import annotations

import struct
from collections.abc import Iterable
from typing import Union

from .cursor import Cursor, RDBError
from .primitives import BytesLike, StreamReader, is_encodable_int64

_ZIP_STR_06B = 0
_ZIP_STR_14B = 1
_ZIP_STR_32B = 2

_ZIP_INT_04B = 0x0F
_ZIP_INT_08B = 0xFE
_ZIP_INT_16B = 0xC0
_ZIP_INT_24B = 0xF0
_ZIP_INT_32B = 0xD0
_ZIP_INT_64B = 0xE0

_ZIP_BIG_PREV_LEN = 0xFE
_ZIP_END = 0xFF
_HEADER_SIZE = 10

_INT_WIDTHS = {
    _ZIP_INT_08B: 1,
    _ZIP_INT_16B: 2,
    _ZIP_INT_24B: 3,
    _ZIP_INT_32B: 4,
    _ZIP_INT_64B: 8,
}

_MAX_UINT6 = (1 << 6) - 1
_MAX_UINT14 = (1 << 14) - 1
_MAX_UINT32 = (1 << 32) - 1
_MAX_INT8 = (1 << 7) - 1
_MAX_INT24 = (1 << 23) - 1
_MAX_INT32 = (1 << 31) - 1


def read_ziplist_length(cursor: Cursor) -> int:
    """Read the ziplist header and return its entry count."""
    header = cursor.read_bytes(_HEADER_SIZE)
    return struct.unpack_from("<H", header, 8)[0]


def read_ziplist_entry(cursor: Cursor) -> bytes:
    """Read one entry; integers are returned as their decimal text."""
    prev_len = cursor.read_byte()
    if prev_len == _ZIP_BIG_PREV_LEN:
        cursor.skip(4)
    header = cursor.read_byte()
    kind = header >> 6
    if kind == _ZIP_STR_06B:
        return cursor.read_bytes(header & 0x3F)
    if kind == _ZIP_STR_14B:
        length = ((header & 0x3F) << 8) | cursor.read_byte()
        return cursor.read_bytes(length)
    if kind == _ZIP_STR_32B:
        length = int.from_bytes(cursor.read_bytes(4), "big")
        return cursor.read_bytes(length)
    width = _INT_WIDTHS.get(header)
    if width is not None:
        value = int.from_bytes(cursor.read_bytes(width), "little", signed=True)
        return str(value).encode()
    if header >> 4 == _ZIP_INT_04B:
        return str((header & 0x0F) - 1).encode()
    raise RDBError("unknown entry header")


def decode_ziplist(buf: BytesLike) -> list[bytes]:
    """Decode every entry of a ziplist buffer."""
    cursor = Cursor(buf)
    size = read_ziplist_length(cursor)
    return [read_ziplist_entry(cursor) for _ in range(size)]


def read_ziplist(reader: StreamReader) -> list[bytes]:
    """Read a ziplist stored as an RDB string and decode it."""
    return decode_ziplist(reader.read_string())


def encode_ziplist_entry(prev_len: int, value: Union[str, BytesLike]) -> bytes:
    """Encode one entry given the byte length of the entry before it."""
    out = bytearray()
    if prev_len < _ZIP_BIG_PREV_LEN:
        out.append(prev_len)
    else:
        out.append(_ZIP_BIG_PREV_LEN)
        out += struct.pack("<I", prev_len)

    int_value = is_encodable_int64(value)
    if int_value is not None:
        if int_value <= 12:
            out.append(_ZIP_INT_24B | (int_value + 1))
        elif int_value <= _MAX_INT8:
            out += bytes([_ZIP_INT_08B, int_value])
        elif int_value <= _MAX_INT24:
            out.append(_ZIP_INT_24B)
            out += int_value.to_bytes(3, "little", signed=True)
        elif int_value <= _MAX_INT32:
            out.append(_ZIP_INT_32B)
            out += int_value.to_bytes(4, "little", signed=True)
        else:
            out.append(_ZIP_INT_64B)
            out += int_value.to_bytes(8, "little", signed=True)
        return bytes(out)

    data = value.encode() if isinstance(value, str) else bytes(value)
    length = len(data)
    if length <= _MAX_UINT6:
        out.append(length)
    elif length <= _MAX_UINT14:
        out += bytes([(length >> 8) | 0x40, length & 0xFF])
    elif length <= _MAX_UINT32:
        out.append(0x80)
        out += length.to_bytes(4, "big")
    else:
        raise ValueError("too large string")
    out += data
    return bytes(out)


def encode_ziplist(values: Iterable[Union[str, BytesLike]]) -> bytes:
    """Build a complete ziplist buffer holding ``values``."""
    entries: list[bytes] = []
    prev_len = 0
    for value in values:
        entry = encode_ziplist_entry(prev_len, value)
        entries.append(entry)
        prev_len = len(entry)
    body = b"".join(entries)
    zl_bytes = _HEADER_SIZE + len(body) + 1
    zl_tail = _HEADER_SIZE + len(body) - (len(entries[-1]) if entries else 0)
    header = struct.pack("<IIH", zl_bytes, zl_tail, len(entries) & 0xFFFF)
    return header + body + bytes([_ZIP_END])