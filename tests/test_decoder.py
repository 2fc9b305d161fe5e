import io
import struct
from datetime import datetime, timedelta, timezone

import pytest

from rdbtool.cursor import RDBError
from rdbtool.decoder import Decoder
from rdbtool.module import ModuleOpcode, make_module_id
from rdbtool.objects import (
    INTSET_ENCODING,
    LISTPACK_ENCODING,
    ZIPLIST_ENCODING,
    AuxObject,
    DBSizeObject,
    HashObject,
    IntsetDetail,
    ListObject,
    ModuleTypeObject,
    ObjectType,
    SetObject,
    StreamObject,
    StringObject,
    ZSetEntry,
    ZSetObject,
)
from rdbtool.primitives import encode_float64, encode_length, encode_raw_string, encode_string
from rdbtool.ziplist import encode_ziplist

HEADER = b"REDIS0011"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _rdb(*parts):
    return HEADER + b"".join(parts) + b"\xff" + bytes(8)


def _select(db):
    return b"\xfe" + encode_length(db)


def _string(key, value):
    return b"\x00" + encode_string(key) + encode_string(value)


def _listpack(items):
    body = bytearray()
    for item in items:
        if isinstance(item, int):
            body += bytes([item, 1])
        else:
            body += bytes([0x80 | len(item)]) + item + bytes([1 + len(item)])
    body.append(0xFF)
    return struct.pack("<IH", 6 + len(body), len(items)) + bytes(body)


def test_strings_are_read_in_order():
    data = _rdb(_select(0), _string("a", "alpha"), _string("n", "12"))
    records = list(Decoder(data))
    assert [(r.key, r.value) for r in records] == [("a", b"alpha"), ("n", b"12")]
    assert all(isinstance(r, StringObject) and r.type == ObjectType.STRING for r in records)


def test_special_opcodes_only_when_enabled():
    data = _rdb(
        b"\xfa" + encode_string("redis-ver") + encode_string("6.0.6"),
        _select(3),
        b"\xfb" + encode_length(7) + encode_length(1),
        _string("k", "v"),
    )
    plain = list(Decoder(data))
    assert len(plain) == 1 and plain[0].db == 3

    records = list(Decoder(data).with_special_opcode())
    aux, size, obj = records
    assert isinstance(aux, AuxObject)
    assert (aux.key, aux.value) == ("redis-ver", "6.0.6")
    assert isinstance(size, DBSizeObject)
    assert (size.db, size.key_count, size.ttl_count) == (3, 7, 1)
    assert obj.key == "k"


def test_expiration_in_milliseconds_applies_to_next_key_only():
    ms = 1700000000123
    data = _rdb(_select(0), b"\xfc" + struct.pack("<Q", ms), _string("a", "x"), _string("b", "y"))
    first, second = list(Decoder(data))
    assert (first.expiration - EPOCH) // timedelta(milliseconds=1) == ms
    assert second.expiration is None


def test_expiration_in_seconds():
    seconds = 1700000000
    data = _rdb(_select(0), b"\xfd" + struct.pack("<I", seconds), _string("a", "x"))
    (record,) = list(Decoder(data))
    assert record.expiration == datetime.fromtimestamp(seconds, timezone.utc)


def test_parse_stops_when_callback_returns_false():
    data = _rdb(_select(0), _string("a", "1"), _string("b", "2"), _string("c", "3"))
    received = []

    def callback(record):
        received.append(record)
        return len(received) < 2

    decoder = Decoder(io.BytesIO(data))
    decoder.parse(callback)
    assert [(r.key, r.value) for r in received] == [("a", b"1"), ("b", b"2")]
    assert all(isinstance(r, StringObject) for r in received)
    assert decoder.read_count < len(data)


def test_read_count_covers_whole_file():
    data = _rdb(_select(0), _string("a", "value"))
    decoder = Decoder(io.BytesIO(data))
    decoder.parse(lambda record: True)
    assert decoder.read_count == len(data)


def test_ziplist_list_and_intset():
    intset = struct.pack("<II", 2, 2) + struct.pack("<hh", 1, 2)
    data = _rdb(
        _select(0),
        b"\x0a" + encode_string("mylist") + encode_raw_string(encode_ziplist(["a", "1", "300"])),
        b"\x0b" + encode_string("myset") + encode_raw_string(intset),
    )
    lst, st = list(Decoder(data))
    assert isinstance(lst, ListObject)
    assert lst.values == [b"a", b"1", b"300"]
    assert lst.encoding == ZIPLIST_ENCODING
    assert isinstance(st, SetObject)
    assert st.members == [b"1", b"2"]
    assert st.encoding == INTSET_ENCODING
    assert st.extra == IntsetDetail(raw_string_size=len(intset))


def test_listpack_hash_and_zset2():
    data = _rdb(
        _select(0),
        b"\x10" + encode_string("h") + encode_raw_string(_listpack([b"f", 7])),
        b"\x05" + encode_string("z") + encode_length(1) + encode_string("m") + encode_float64(2.5),
    )
    hsh, zset = list(Decoder(data))
    assert isinstance(hsh, HashObject)
    assert hsh.hash == {"f": b"7"}
    assert hsh.encoding == LISTPACK_ENCODING
    assert isinstance(zset, ZSetObject)
    assert zset.entries == [ZSetEntry("m", 2.5)]


def test_empty_stream():
    body = encode_length(0) + encode_length(0) + encode_length(0) + encode_length(0) + encode_length(0)
    data = _rdb(_select(0), b"\x0f" + encode_string("s") + body)
    (record,) = list(Decoder(data))
    assert isinstance(record, StreamObject)
    assert record.key == "s"
    assert record.type == ObjectType.STREAM
    assert record.entries == [] and record.groups == []


def _module_file():
    module_id = make_module_id("test-type", 42)
    record = (
        b"\x07" + encode_string("testkey") + encode_length(module_id)
        + encode_length(ModuleOpcode.STRING) + encode_string("testdata123")
        + encode_length(ModuleOpcode.UINT) + encode_length(123)
        + encode_length(ModuleOpcode.EOF)
    )
    return _rdb(_select(0), record)


def test_module_type_with_parser():
    def handler(h, enc_version):
        assert enc_version == 42
        assert h.read_opcode() is ModuleOpcode.STRING
        text = h.read_string()
        assert h.read_opcode() is ModuleOpcode.UINT
        number = h.read_uint()
        assert h.read_opcode() is ModuleOpcode.EOF
        return (text, number)

    decoder = Decoder(_module_file()).with_special_type("test-type", handler)
    (record,) = list(decoder)
    assert isinstance(record, ModuleTypeObject)
    assert record.key == "testkey"
    assert record.type == "test-type"
    assert record.value == (b"testdata123", 123)


def test_module_type_skipped_without_parser():
    (record,) = list(Decoder(_module_file()))
    assert record.type == "test-type"
    assert record.value is None


@pytest.mark.parametrize(
    "data, message",
    [
        (b"", "empty file"),
        (b"REDI", "io error"),
        (b"NOTRDB011" + b"\xff", "not a RDB file"),
        (b"REDISabcd" + b"\xff", "not valid version"),
        (b"REDIS0013" + b"\xff", "cannot parse version"),
    ],
)
def test_header_errors(data, message):
    with pytest.raises(RDBError, match=message):
        list(Decoder(data))


def test_unknown_type_flag():
    data = _rdb(_select(0), b"\x06" + encode_string("k"))
    with pytest.raises(RDBError, match="unknown type flag"):
        list(Decoder(data))


def test_truncated_file_raises():
    data = _rdb(_select(0), _string("key", "some value"))
    with pytest.raises(RDBError):
        list(Decoder(data[:16]))