import math
import struct

import pytest

from rdbtool.containers import (
    read_hash,
    read_intset,
    read_list,
    read_listpack_hash,
    read_listpack_set,
    read_listpack_zset,
    read_quicklist,
    read_quicklist2,
    read_set,
    read_ziplist_hash,
    read_ziplist_zset,
    read_zipmap_hash,
    read_zset,
)
from rdbtool.cursor import RDBError
from rdbtool.objects import (
    QUICKLIST_NODE_CONTAINER_PACKED,
    QUICKLIST_NODE_CONTAINER_PLAIN,
    ZSetEntry,
)
from rdbtool.primitives import (
    StreamReader,
    encode_float64,
    encode_length,
    encode_raw_string,
    encode_string,
)
from rdbtool.ziplist import encode_ziplist


def _listpack(items):
    body = bytearray()
    for item in items:
        if isinstance(item, int):
            body += bytes([item, 1])
        else:
            body += bytes([0x80 | len(item)]) + item + bytes([1 + len(item)])
    body.append(0xFF)
    return struct.pack("<IH", 6 + len(body), len(items)) + bytes(body)


def _reader(*parts):
    return StreamReader(b"".join(parts))


def test_read_list():
    reader = _reader(encode_length(3), encode_string("a"), encode_string("12"), encode_string("x"))
    assert read_list(reader) == [b"a", b"12", b"x"]


def test_read_set():
    reader = _reader(encode_length(2), encode_string("m1"), encode_string("300"))
    assert read_set(reader) == [b"m1", b"300"]


def test_read_hash():
    reader = _reader(
        encode_length(2),
        encode_string("f1"), encode_string("v1"),
        encode_string("f2"), encode_string("42"),
    )
    assert read_hash(reader) == {"f1": b"v1", "f2": b"42"}


def test_read_quicklist_concatenates_pages():
    page1 = ["a", "b"]
    page2 = ["1", "longer value"]
    reader = _reader(
        encode_length(2),
        encode_raw_string(encode_ziplist(page1)),
        encode_raw_string(encode_ziplist(page2)),
    )
    entries, detail = read_quicklist(reader)
    assert entries == [b"a", b"b", b"1", b"longer value"]
    assert detail.ziplist_struct == [[b"a", b"b"], [b"1", b"longer value"]]


def test_read_quicklist2_plain_and_packed_nodes():
    packed = _listpack([5, b"ab"])
    reader = _reader(
        encode_length(2),
        encode_length(QUICKLIST_NODE_CONTAINER_PLAIN), encode_raw_string(b"plain"),
        encode_length(QUICKLIST_NODE_CONTAINER_PACKED), encode_raw_string(packed),
    )
    entries, detail = read_quicklist2(reader)
    assert entries == [b"plain", b"5", b"ab"]
    assert detail.node_encodings == [QUICKLIST_NODE_CONTAINER_PLAIN, QUICKLIST_NODE_CONTAINER_PACKED]
    assert len(detail.listpack_entry_size) == 1
    assert sum(detail.listpack_entry_size[0]) == len(packed) - 7


def test_read_quicklist2_unknown_node_type():
    reader = _reader(encode_length(1), encode_length(9), encode_raw_string(b"x"))
    with pytest.raises(RDBError):
        read_quicklist2(reader)


@pytest.mark.parametrize(
    "width, fmt, values",
    [
        (2, "<hhh", (-5, 0, 300)),
        (4, "<iii", (-2147483647, 7, 2147483647)),
        (8, "<qqq", (-9222147483647, 1, 9222147483647)),
    ],
)
def test_read_intset(width, fmt, values):
    buf = struct.pack("<II", width, len(values)) + struct.pack(fmt, *values)
    members, detail = read_intset(_reader(encode_raw_string(buf)))
    assert members == [str(v).encode() for v in values]
    assert detail.raw_string_size == len(buf)


def test_read_intset_rejects_unknown_width():
    buf = struct.pack("<II", 3, 1) + b"\x00\x00\x00"
    with pytest.raises(RDBError):
        read_intset(_reader(encode_raw_string(buf)))


def test_read_listpack_set():
    lp = _listpack([b"alpha", 100, b"z"])
    members, detail = read_listpack_set(_reader(encode_raw_string(lp)))
    assert members == [b"alpha", b"100", b"z"]
    assert detail.raw_string_size == len(lp)


def test_read_ziplist_hash():
    zl = encode_ziplist(["f1", "v1", "f2", "10"])
    mapping, detail = read_ziplist_hash(_reader(encode_raw_string(zl)))
    assert mapping == {"f1": b"v1", "f2": b"10"}
    assert detail.raw_string_size == len(zl)


def test_read_listpack_hash():
    lp = _listpack([b"name", b"value", b"count", 7])
    mapping, detail = read_listpack_hash(_reader(encode_raw_string(lp)))
    assert mapping == {"name": b"value", "count": b"7"}
    assert detail.raw_string_size == len(lp)


def _zipmap(count_byte):
    return (
        bytes([count_byte])
        + b"\x03foo" + b"\x03\x00bar"
        + b"\x01k" + b"\x02\x01vv\x00"
        + b"\xff"
    )


@pytest.mark.parametrize("count_byte", [2, 255])
def test_read_zipmap_hash(count_byte):
    reader = _reader(encode_raw_string(_zipmap(count_byte)))
    assert read_zipmap_hash(reader) == {"foo": b"bar", "k": b"vv"}


def test_read_zipmap_illegal_length():
    buf = b"\x01\xfe"
    with pytest.raises(RDBError):
        read_zipmap_hash(_reader(encode_raw_string(buf)))


def test_read_zset_binary_scores():
    reader = _reader(
        encode_length(2),
        encode_string("m"), encode_float64(1.5),
        encode_string("n"), encode_float64(-3.25),
    )
    assert read_zset(reader, True) == [ZSetEntry("m", 1.5), ZSetEntry("n", -3.25)]


def test_read_zset_literal_scores():
    reader = _reader(
        encode_length(4),
        encode_string("a"), bytes([3]), b"2.5",
        encode_string("b"), b"\xfe",
        encode_string("c"), b"\xff",
        encode_string("d"), b"\xfd",
    )
    entries = read_zset(reader, False)
    assert [e.member for e in entries] == ["a", "b", "c", "d"]
    assert entries[0].score == 2.5
    assert entries[1].score == math.inf
    assert entries[2].score == -math.inf
    assert math.isnan(entries[3].score)


def test_read_ziplist_zset():
    zl = encode_ziplist(["a", "1.5", "b", "2"])
    entries, detail = read_ziplist_zset(_reader(encode_raw_string(zl)))
    assert entries == [ZSetEntry("a", 1.5), ZSetEntry("b", 2.0)]
    assert detail.raw_string_size == len(zl)


def test_read_ziplist_zset_bad_score():
    zl = encode_ziplist(["a", "not-a-number"])
    with pytest.raises(RDBError):
        read_ziplist_zset(_reader(encode_raw_string(zl)))


def test_read_listpack_zset():
    lp = _listpack([b"x", 3, b"y", b"0.5"])
    entries, detail = read_listpack_zset(_reader(encode_raw_string(lp)))
    assert entries == [ZSetEntry("x", 3.0), ZSetEntry("y", 0.5)]
    assert detail.raw_string_size == len(lp)


def test_truncated_list_raises():
    reader = _reader(encode_length(2), encode_string("only"))
    with pytest.raises(EOFError):
        read_list(reader)