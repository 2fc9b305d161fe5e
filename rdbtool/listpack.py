"""Listpack encoding: the successor of ziplist used by Redis 7 containers."""

from __future__ import annotations

import struct
from typing import Union

from .cursor import Cursor, RDBError
from .primitives import BytesLike

_INT_WIDTHS = {1: 2, 2: 3, 3: 4, 4: 8}

ListpackValue = Union[bytes, int]


def back_len(element_len: int) -> int:
    """Number of bytes taken by the back-length field of an element."""
    if element_len <= 127:
        return 1
    if element_len < (1 << 14) - 1:
        return 2
    if element_len < (1 << 21) - 1:
        return 3
    if element_len < (1 << 28) - 1:
        return 4
    return 5


def read_listpack_length(cursor: Cursor) -> int:
    """Read the listpack header and return its entry count."""
    header = cursor.read_bytes(6)
    return struct.unpack_from("<H", header, 4)[0]


def read_listpack_entry(cursor: Cursor) -> tuple[ListpackValue, int]:
    """Read one entry.

    Returns the value (bytes for strings, int for integers) and the entry's
    full size: encoding, content and back-length.
    """
    header = cursor.read_byte()
    value: ListpackValue
    if header >> 7 == 0:
        value, content_len = header, 1
    elif header >> 6 == 2:
        length = header & 0x3F
        value, content_len = cursor.read_bytes(length), 1 + length
    elif header >> 5 == 6:
        number = ((header & 0x1F) << 8) | cursor.read_byte()
        if number >= 1 << 12:
            number -= 1 << 13
        value, content_len = number, 2
    elif header >> 4 == 14:
        length = ((header & 0x0F) << 8) | cursor.read_byte()
        value, content_len = cursor.read_bytes(length), 2 + length
    else:
        subtype = header & 0x0F
        if subtype == 0:
            length = int.from_bytes(cursor.read_bytes(4), "little")
            value, content_len = cursor.read_bytes(length), 5 + length
        elif subtype in _INT_WIDTHS:
            width = _INT_WIDTHS[subtype]
            value = int.from_bytes(cursor.read_bytes(width), "little", signed=True)
            content_len = 1 + width
        elif subtype == 15:
            raise RDBError("unexpected end")
        else:
            raise RDBError("unknown entry header")
    backlen = back_len(content_len)
    cursor.skip(backlen)
    return value, content_len + backlen


def read_entry_as_bytes(cursor: Cursor) -> bytes:
    """Read one entry, formatting integers as decimal text."""
    try:
        value, _ = read_listpack_entry(cursor)
    except RDBError as exc:
        raise RDBError(f"read from failed: {exc}") from exc
    return value if isinstance(value, bytes) else str(value).encode()


def read_entry_as_int(cursor: Cursor) -> int:
    """Read one entry that must hold an integer."""
    try:
        value, _ = read_listpack_entry(cursor)
    except RDBError as exc:
        raise RDBError(f"read from failed: {exc}") from exc
    if isinstance(value, bytes):
        raise RDBError(f"{value.decode(errors='replace')} is not a integer")
    return value


def decode_listpack(buf: BytesLike) -> tuple[list[bytes], list[int]]:
    """Decode a listpack buffer into its entries and each entry's size."""
    cursor = Cursor(buf)
    size = read_listpack_length(cursor)
    entries: list[bytes] = []
    sizes: list[int] = []
    for _ in range(size):
        value, entry_size = read_listpack_entry(cursor)
        entries.append(value if isinstance(value, bytes) else str(value).encode())
        sizes.append(entry_size)
    return entries, sizes