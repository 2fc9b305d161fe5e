import struct

import pytest

from rdbtool.cursor import Cursor, RDBError
from rdbtool.listpack import (
    back_len,
    decode_listpack,
    read_entry_as_bytes,
    read_entry_as_int,
    read_listpack_entry,
    read_listpack_length,
)


def _backlen_bytes(content_len):
    if content_len <= 127:
        count = 1
    elif content_len < 16383:
        count = 2
    else:
        count = 3
    return b"\x00" * count


def _int_entry(value):
    if 0 <= value <= 127:
        content = bytes([value])
    elif -4096 <= value <= 4095:
        raw = value & 0x1FFF
        content = bytes([0xC0 | (raw >> 8), raw & 0xFF])
    elif -(1 << 15) <= value < (1 << 15):
        content = b"\xf1" + value.to_bytes(2, "little", signed=True)
    elif -(1 << 23) <= value < (1 << 23):
        content = b"\xf2" + value.to_bytes(3, "little", signed=True)
    elif -(1 << 31) <= value < (1 << 31):
        content = b"\xf3" + value.to_bytes(4, "little", signed=True)
    else:
        content = b"\xf4" + value.to_bytes(8, "little", signed=True)
    return content + _backlen_bytes(len(content))


def _str_entry(data):
    length = len(data)
    if length <= 63:
        content = bytes([0x80 | length]) + data
    elif length < 4096:
        content = bytes([0xE0 | (length >> 8), length & 0xFF]) + data
    else:
        content = b"\xf0" + length.to_bytes(4, "little") + data
    return content + _backlen_bytes(len(content))


def _listpack(entries):
    body = b"".join(entries)
    return struct.pack("<IH", 6 + len(body) + 1, len(entries)) + body + b"\xff"


INTS = [
    0, 5, 127, 128, -1, 4095, -4096, 4096, -32768, 32767,
    8388607, -8388608, 2**31 - 1, -(2**31), 2**63 - 1, -(2**63),
]
STRINGS = [b"", b"a", b"x" * 63, b"y" * 64, b"z" * 4095, b"w" * 4096, b"q" * 20000]


def test_back_len_thresholds():
    assert back_len(1) == 1
    assert back_len(127) == 1
    assert back_len(128) == 2
    assert back_len(16382) == 2
    assert back_len(16383) == 3
    assert back_len((1 << 21) - 2) == 3
    assert back_len((1 << 21) - 1) == 4
    assert back_len((1 << 28) - 1) == 5


def test_read_listpack_length():
    cursor = Cursor(_listpack([_int_entry(1), _int_entry(2), _str_entry(b"c")]))
    assert read_listpack_length(cursor) == 3
    assert cursor.pos == 6


def test_integer_entries_round_trip():
    for value in INTS:
        entry = _int_entry(value)
        cursor = Cursor(entry)
        decoded, size = read_listpack_entry(cursor)
        assert decoded == value
        assert size == len(entry)
        assert cursor.pos == len(entry)


def test_string_entries_round_trip():
    for data in STRINGS:
        entry = _str_entry(data)
        cursor = Cursor(entry)
        decoded, size = read_listpack_entry(cursor)
        assert decoded == data
        assert size == len(entry)
        assert cursor.pos == len(entry)


def test_decode_listpack_entries_and_sizes():
    encoded = [_int_entry(v) for v in INTS] + [_str_entry(s) for s in STRINGS]
    entries, sizes = decode_listpack(_listpack(encoded))
    assert entries == [str(v).encode() for v in INTS] + STRINGS
    assert sizes == [len(e) for e in encoded]


def test_read_entry_as_bytes_formats_integers():
    cursor = Cursor(_int_entry(-4096) + _str_entry(b"field"))
    assert read_entry_as_bytes(cursor) == str(-4096).encode()
    assert read_entry_as_bytes(cursor) == b"field"


def test_read_entry_as_int():
    cursor = Cursor(_int_entry(2**31 - 1))
    assert read_entry_as_int(cursor) == 2**31 - 1


def test_read_entry_as_int_rejects_strings():
    with pytest.raises(RDBError, match="not a integer"):
        read_entry_as_int(Cursor(_str_entry(b"abc")))


def test_end_marker_raises():
    with pytest.raises(RDBError, match="unexpected end"):
        read_listpack_entry(Cursor(b"\xff"))


def test_unknown_header_raises():
    with pytest.raises(RDBError, match="unknown entry header"):
        read_listpack_entry(Cursor(b"\xf5\x00"))


def test_truncated_entry_raises():
    with pytest.raises(RDBError):
        read_entry_as_bytes(Cursor(b"\x85ab"))