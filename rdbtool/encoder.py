"""Writing RDB files."""

from __future__ import annotations

import enum
import math
import struct
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import BinaryIO, Optional, Union

from .cursor import RDBError
from .objects import ZSetEntry
from .primitives import (
    BytesLike,
    encode_float64,
    encode_length,
    encode_raw_string,
    encode_string,
    is_encodable_int64,
)
from .ziplist import encode_ziplist

_RDB_HEADER = b"REDIS0011"

_OP_AUX = 250
_OP_RESIZE_DB = 251
_OP_EXPIRE_TIME_MS = 252
_OP_SELECT_DB = 254
_OP_EOF = 255

_TYPE_STRING = 0
_TYPE_SET = 2
_TYPE_HASH = 4
_TYPE_ZSET2 = 5
_TYPE_LIST_ZIPLIST = 10
_TYPE_SET_INTSET = 11
_TYPE_ZSET_ZIPLIST = 12
_TYPE_HASH_ZIPLIST = 13
_TYPE_LIST_QUICKLIST = 14

_DEFAULT_ZIPLIST_MAX_VALUE = 64
_DEFAULT_ZIPLIST_MAX_ENTRIES = 512
_QUICKLIST_PAGE_SIZE = 4 * 1024

_MAX_INT16 = (1 << 15) - 1
_MAX_INT32 = (1 << 31) - 1
_MAX_UINT64 = (1 << 64) - 1

_CRC64_POLY = 0x95AC9329AC4BC9B5  # Jones polynomial, reflected

Value = Union[str, BytesLike]


def _make_crc_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ _CRC64_POLY if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _make_crc_table()


def _crc64_update(crc: int, data: bytes) -> int:
    table = _CRC_TABLE
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc


def _as_bytes(value: Value) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


def _format_score(score: float) -> str:
    """Shortest decimal form of ``score`` without an exponent."""
    if math.isnan(score):
        return "NaN"
    if math.isinf(score):
        return "+Inf" if score > 0 else "-Inf"
    return format(Decimal(repr(score)).normalize(), "f")


class EncoderState(str, enum.Enum):
    """Position of an encoder within the file layout."""

    START = "Start"
    WRITTEN_HEADER = "WrittenHeader"
    WRITTEN_DB_HEADER = "WrittenDBHeader"
    WRITTEN_AUX = "WrittenAux"
    WRITTEN_TTL = "WrittenTTL"
    WRITTEN_OBJECT = "WrittenObject"
    WRITTEN_END = "WritingEnd"

    def __str__(self) -> str:
        return self.value


_TRANSITIONS: dict[EncoderState, frozenset[EncoderState]] = {
    EncoderState.START: frozenset({EncoderState.WRITTEN_HEADER}),
    EncoderState.WRITTEN_HEADER: frozenset(
        {EncoderState.WRITTEN_AUX, EncoderState.WRITTEN_DB_HEADER, EncoderState.WRITTEN_END}
    ),
    EncoderState.WRITTEN_AUX: frozenset(
        {EncoderState.WRITTEN_AUX, EncoderState.WRITTEN_DB_HEADER, EncoderState.WRITTEN_END}
    ),
    # an empty database is not allowed
    EncoderState.WRITTEN_DB_HEADER: frozenset(
        {EncoderState.WRITTEN_TTL, EncoderState.WRITTEN_OBJECT}
    ),
    EncoderState.WRITTEN_TTL: frozenset({EncoderState.WRITTEN_OBJECT}),
    EncoderState.WRITTEN_OBJECT: frozenset(
        {
            EncoderState.WRITTEN_TTL,
            EncoderState.WRITTEN_OBJECT,
            EncoderState.WRITTEN_DB_HEADER,
            EncoderState.WRITTEN_END,
        }
    ),
    EncoderState.WRITTEN_END: frozenset(),
}


@dataclass
class _ZiplistLimits:
    max_value: int = _DEFAULT_ZIPLIST_MAX_VALUE
    max_entries: int = _DEFAULT_ZIPLIST_MAX_ENTRIES

    @classmethod
    def of(cls, max_value: int, max_entries: int) -> _ZiplistLimits:
        return cls(
            max_value=max_value or _DEFAULT_ZIPLIST_MAX_VALUE,
            max_entries=max_entries or _DEFAULT_ZIPLIST_MAX_ENTRIES,
        )


class Encoder:
    """Writes an RDB file section by section: header, aux fields, databases, end."""

    def __init__(self, writer: BinaryIO) -> None:
        self._writer = writer
        self._crc = 0
        self._state = EncoderState.START
        self._written_dbs: set[int] = set()
        self._list_limits = _ZiplistLimits()
        self._hash_limits = _ZiplistLimits()
        self._zset_limits = _ZiplistLimits()

    @property
    def state(self) -> EncoderState:
        return self._state

    def set_list_ziplist_opt(self, max_value: int, max_entries: int) -> Encoder:
        """Set list-max-ziplist-value and list-max-ziplist-entries; 0 keeps the default."""
        self._list_limits = _ZiplistLimits.of(max_value, max_entries)
        return self

    def set_hash_ziplist_opt(self, max_value: int, max_entries: int) -> Encoder:
        """Set hash-max-ziplist-value and hash-max-ziplist-entries; 0 keeps the default."""
        self._hash_limits = _ZiplistLimits.of(max_value, max_entries)
        return self

    def set_zset_ziplist_opt(self, max_value: int, max_entries: int) -> Encoder:
        """Set zset-max-ziplist-value and zset-max-ziplist-entries; 0 keeps the default."""
        self._zset_limits = _ZiplistLimits.of(max_value, max_entries)
        return self

    def _write(self, data: bytes) -> None:
        self._writer.write(data)
        self._crc = _crc64_update(self._crc, data)

    def _check(self, target: EncoderState, what: str) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RDBError(f"cannot write {what} at state: {self._state}")

    def write_header(self) -> None:
        self._check(EncoderState.WRITTEN_HEADER, "header")
        self._write(_RDB_HEADER)
        self._state = EncoderState.WRITTEN_HEADER

    def write_aux(self, key: Value, value: Value) -> None:
        """Write an auxiliary field."""
        self._check(EncoderState.WRITTEN_AUX, "aux")
        self._write(bytes([_OP_AUX]) + encode_string(key) + encode_string(value))
        self._state = EncoderState.WRITTEN_AUX

    def write_db_header(self, db_index: int, key_count: int, ttl_count: int) -> None:
        """Select a database and write its resize hint."""
        self._check(EncoderState.WRITTEN_DB_HEADER, "db header")
        if db_index in self._written_dbs:
            raise RDBError(f"db {db_index} existed")
        self._written_dbs.add(db_index)
        self._write(
            bytes([_OP_SELECT_DB])
            + encode_length(db_index)
            + bytes([_OP_RESIZE_DB])
            + encode_length(key_count)
            + encode_length(ttl_count)
        )
        self._state = EncoderState.WRITTEN_DB_HEADER

    def write_end(self) -> None:
        """Write the EOF opcode, the checksum and a trailing newline."""
        self._check(EncoderState.WRITTEN_END, "end")
        self._write(bytes([_OP_EOF]))
        self._writer.write(self._crc.to_bytes(8, "little"))
        self._writer.write(b"\n")
        self._state = EncoderState.WRITTEN_END

    def _begin_object(self, ttl: Optional[int]) -> None:
        self._check(EncoderState.WRITTEN_OBJECT, "object")
        if ttl is None:
            return
        self._check(EncoderState.WRITTEN_TTL, "ttl")
        if not 0 <= ttl <= _MAX_UINT64:
            raise ValueError(f"expiration out of range: {ttl}")
        self._write(bytes([_OP_EXPIRE_TIME_MS]) + ttl.to_bytes(8, "little"))
        self._state = EncoderState.WRITTEN_TTL

    def _finish_object(self, body: bytes) -> None:
        self._write(body)
        self._state = EncoderState.WRITTEN_OBJECT

    def write_string_object(self, key: Value, value: Value, ttl: Optional[int] = None) -> None:
        """Write a string; ``ttl`` is an expiration timestamp in milliseconds."""
        self._begin_object(ttl)
        self._finish_object(bytes([_TYPE_STRING]) + encode_string(key) + encode_string(value))

    def write_list_object(
        self, key: Value, values: Iterable[Value], ttl: Optional[int] = None
    ) -> None:
        """Write a list as a ziplist when small enough, else as a quicklist."""
        self._begin_object(ttl)
        items = [_as_bytes(value) for value in values]
        limits = self._list_limits
        if len(items) <= limits.max_entries and all(
            len(item) <= limits.max_value for item in items
        ):
            body = (
                bytes([_TYPE_LIST_ZIPLIST])
                + encode_string(key)
                + encode_raw_string(encode_ziplist(items))
            )
        else:
            body = self._quicklist_body(key, items)
        self._finish_object(body)

    @staticmethod
    def _quicklist_body(key: Value, items: list[bytes]) -> bytes:
        pages: list[list[bytes]] = []
        page: list[bytes] = []
        page_size = 0
        for item in items:
            page.append(item)
            page_size += len(item)
            if page_size >= _QUICKLIST_PAGE_SIZE:
                pages.append(page)
                page, page_size = [], 0
        if page:
            pages.append(page)
        parts = [bytes([_TYPE_LIST_QUICKLIST]), encode_string(key), encode_length(len(pages))]
        parts.extend(encode_raw_string(encode_ziplist(p)) for p in pages)
        return b"".join(parts)

    def write_hash_object(
        self, key: Value, mapping: Mapping[Value, Value], ttl: Optional[int] = None
    ) -> None:
        """Write a hash as a ziplist when small enough, else in plain encoding."""
        self._begin_object(ttl)
        pairs = [(_as_bytes(name), _as_bytes(value)) for name, value in mapping.items()]
        limits = self._hash_limits
        if len(pairs) <= limits.max_entries and all(
            len(value) <= limits.max_value for _, value in pairs
        ):
            flat = [item for pair in pairs for item in pair]
            body = (
                bytes([_TYPE_HASH_ZIPLIST])
                + encode_string(key)
                + encode_raw_string(encode_ziplist(flat))
            )
        else:
            parts = [bytes([_TYPE_HASH]), encode_string(key), encode_length(len(pairs))]
            for name, value in pairs:
                parts.append(encode_string(name))
                parts.append(encode_string(value))
            body = b"".join(parts)
        self._finish_object(body)

    def write_set_object(
        self, key: Value, members: Iterable[Value], ttl: Optional[int] = None
    ) -> None:
        """Write a set as an intset when every member is an integer, else in plain encoding."""
        self._begin_object(ttl)
        items = [_as_bytes(member) for member in members]
        numbers = [is_encodable_int64(item) for item in items]
        if all(number is not None for number in numbers):
            ints = sorted(n for n in numbers if n is not None)
            largest = max(ints, default=0)
            if largest <= _MAX_INT16:
                int_size, code = 2, "h"
            elif largest <= _MAX_INT32:
                int_size, code = 4, "i"
            else:
                int_size, code = 8, "q"
            intset = struct.pack("<II", int_size, len(ints)) + struct.pack(
                f"<{len(ints)}{code}", *ints
            )
            body = bytes([_TYPE_SET_INTSET]) + encode_string(key) + encode_raw_string(intset)
        else:
            parts = [bytes([_TYPE_SET]), encode_string(key), encode_length(len(items))]
            parts.extend(encode_string(item) for item in items)
            body = b"".join(parts)
        self._finish_object(body)

    def write_zset_object(
        self, key: Value, entries: Iterable[ZSetEntry], ttl: Optional[int] = None
    ) -> None:
        """Write a sorted set as a ziplist when small enough, else with binary scores."""
        self._begin_object(ttl)
        items = list(entries)
        limits = self._zset_limits
        if len(items) <= limits.max_entries and all(
            len(_as_bytes(entry.member)) <= limits.max_value for entry in items
        ):
            flat: list[Value] = []
            for entry in items:
                flat.append(entry.member)
                flat.append(_format_score(entry.score))
            body = (
                bytes([_TYPE_ZSET_ZIPLIST])
                + encode_string(key)
                + encode_raw_string(encode_ziplist(flat))
            )
        else:
            parts = [bytes([_TYPE_ZSET2]), encode_string(key), encode_length(len(items))]
            for entry in items:
                parts.append(encode_string(entry.member))
                parts.append(encode_float64(entry.score))
            body = b"".join(parts)
        self._finish_object(body)