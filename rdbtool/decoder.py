"""Streaming reader for whole RDB files."""

from __future__ import annotations

import logging
import re
import struct
from collections.abc import Callable, Iterator
from contextlib import closing
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO, Optional, Union

from .containers import (
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
from .cursor import RDBError
from .module import (
    ModuleTypeHandleFunc,
    ModuleTypeHandler,
    module_enc_version,
    module_type_name,
    skip_module_data,
)
from .objects import (
    HASH_ENCODING,
    INTSET_ENCODING,
    LIST_ENCODING,
    LISTPACK_ENCODING,
    QUICKLIST2_ENCODING,
    QUICKLIST_ENCODING,
    SET_ENCODING,
    STRING_ENCODING,
    ZIPLIST_ENCODING,
    ZIPMAP_ENCODING,
    ZSET2_ENCODING,
    ZSET_ENCODING,
    AuxObject,
    DBSizeObject,
    HashObject,
    ListObject,
    ModuleTypeObject,
    RedisObject,
    SetObject,
    StringObject,
    ZSetObject,
)
from .primitives import BytesLike, StreamReader
from .stream import read_stream
from .ziplist import read_ziplist

_log = logging.getLogger(__name__)

_MAGIC = b"REDIS"
_MIN_VERSION = 1
_MAX_VERSION = 12
_VERSION_RE = re.compile(rb"[+-]?[0-9]+")

_OP_MODULE_AUX = 247
_OP_IDLE = 248
_OP_FREQ = 249
_OP_AUX = 250
_OP_RESIZE_DB = 251
_OP_EXPIRE_TIME_MS = 252
_OP_EXPIRE_TIME = 253
_OP_SELECT_DB = 254
_OP_EOF = 255

_TYPE_STRING = 0
_TYPE_LIST = 1
_TYPE_SET = 2
_TYPE_ZSET = 3
_TYPE_HASH = 4
_TYPE_ZSET2 = 5
_TYPE_MODULE2 = 7
_TYPE_HASH_ZIPMAP = 9
_TYPE_LIST_ZIPLIST = 10
_TYPE_SET_INTSET = 11
_TYPE_ZSET_ZIPLIST = 12
_TYPE_HASH_ZIPLIST = 13
_TYPE_LIST_QUICKLIST = 14
_TYPE_STREAM_LISTPACKS = 15
_TYPE_HASH_LISTPACK = 16
_TYPE_ZSET_LISTPACK = 17
_TYPE_LIST_QUICKLIST2 = 18
_TYPE_STREAM_LISTPACKS2 = 19
_TYPE_SET_LISTPACK = 20
_TYPE_STREAM_LISTPACKS3 = 21

_STREAM_VERSIONS = {
    _TYPE_STREAM_LISTPACKS: 1,
    _TYPE_STREAM_LISTPACKS2: 2,
    _TYPE_STREAM_LISTPACKS3: 3,
}

_ENCODINGS = {
    _TYPE_STRING: STRING_ENCODING,
    _TYPE_LIST: LIST_ENCODING,
    _TYPE_SET: SET_ENCODING,
    _TYPE_ZSET: ZSET_ENCODING,
    _TYPE_HASH: HASH_ENCODING,
    _TYPE_ZSET2: ZSET2_ENCODING,
    _TYPE_HASH_ZIPMAP: ZIPMAP_ENCODING,
    _TYPE_LIST_ZIPLIST: ZIPLIST_ENCODING,
    _TYPE_SET_INTSET: INTSET_ENCODING,
    _TYPE_ZSET_ZIPLIST: ZIPLIST_ENCODING,
    _TYPE_HASH_ZIPLIST: ZIPLIST_ENCODING,
    _TYPE_LIST_QUICKLIST: QUICKLIST_ENCODING,
    _TYPE_STREAM_LISTPACKS: LISTPACK_ENCODING,
    _TYPE_STREAM_LISTPACKS2: LISTPACK_ENCODING,
    _TYPE_HASH_LISTPACK: LISTPACK_ENCODING,
    _TYPE_ZSET_LISTPACK: LISTPACK_ENCODING,
    _TYPE_LIST_QUICKLIST2: QUICKLIST2_ENCODING,
    _TYPE_SET_LISTPACK: LISTPACK_ENCODING,
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


class Decoder:
    """Reads the records of an RDB file one by one."""

    def __init__(self, source: Union[BinaryIO, BytesLike]) -> None:
        self._reader = StreamReader(source)
        self._with_special_opcode = False
        self._special_types: dict[str, ModuleTypeHandleFunc] = {}

    @property
    def read_count(self) -> int:
        """Number of bytes consumed so far."""
        return self._reader.read_count

    def with_special_opcode(self) -> Decoder:
        """Also produce aux fields and database size hints as records."""
        self._with_special_opcode = True
        return self

    def with_special_type(self, module_type: str, handler: ModuleTypeHandleFunc) -> Decoder:
        """Register a parser for values of the named module type."""
        self._special_types[module_type] = handler
        return self

    def parse(self, callback: Callable[[RedisObject], bool]) -> None:
        """Pass each record to ``callback``; stop when it returns a false value."""
        with closing(iter(self)) as records:
            for record in records:
                if not callback(record):
                    break

    def __iter__(self) -> Iterator[RedisObject]:
        try:
            self._check_header()
            yield from self._records()
        except (EOFError, IndexError, struct.error, OverflowError) as exc:
            raise RDBError(f"malformed rdb data: {exc}") from exc

    def _check_header(self) -> None:
        try:
            first = self._reader.read_byte()
        except EOFError:
            raise RDBError("empty file") from None
        try:
            header = bytes([first]) + self._reader.read_full(8)
        except EOFError as exc:
            raise RDBError(f"io error: {exc}") from None
        if header[:5] != _MAGIC:
            raise RDBError("file is not a RDB file")
        raw_version = header[5:]
        if not _VERSION_RE.fullmatch(raw_version):
            raise RDBError(f"{_text(raw_version)} is not valid version number")
        version = int(raw_version)
        if not _MIN_VERSION <= version <= _MAX_VERSION:
            raise RDBError(f"cannot parse version: {version}")

    def _records(self) -> Iterator[RedisObject]:
        reader = self._reader
        db_index = 0
        expire_ms = 0
        while True:
            flag = reader.read_byte()
            if flag == _OP_EOF:
                break
            if flag == _OP_SELECT_DB:
                db_index = reader.read_length()[0]
            elif flag == _OP_EXPIRE_TIME:
                expire_ms = int.from_bytes(reader.read_full(4), "little") * 1000
            elif flag == _OP_EXPIRE_TIME_MS:
                expire_ms = int.from_bytes(reader.read_full(8), "little", signed=True)
            elif flag == _OP_RESIZE_DB:
                key_count, _ = reader.read_length()
                try:
                    ttl_count, _ = reader.read_length()
                except EOFError as exc:
                    raise RDBError(f"Parse Aux value failed: {exc}") from exc
                if self._with_special_opcode:
                    yield DBSizeObject(db=db_index, key_count=key_count, ttl_count=ttl_count)
            elif flag == _OP_AUX:
                key = reader.read_string()
                try:
                    value = reader.read_string()
                except EOFError as exc:
                    raise RDBError(f"Parse Aux value failed: {exc}") from exc
                if self._with_special_opcode:
                    yield AuxObject(key=_text(key), value=_text(value))
            elif flag == _OP_FREQ:
                reader.read_byte()
            elif flag == _OP_IDLE:
                reader.read_length()
            elif flag == _OP_MODULE_AUX:
                self._read_module_value()
            else:
                key = _text(reader.read_string())
                expiration: Optional[datetime] = None
                if expire_ms > 0:
                    expiration = _EPOCH + timedelta(milliseconds=expire_ms)
                    expire_ms = 0
                yield self._read_object(flag, key, db_index, expiration)
        try:
            reader.read_full(8)  # trailing checksum
        except EOFError:
            pass

    def _read_module_value(self) -> tuple[str, Any]:
        module_id, _ = self._reader.read_length()
        name = module_type_name(module_id)
        handler = self._special_types.get(name)
        if handler is None:
            _log.warning("unknown module type: %s, will skip", name)
            handler = skip_module_data
        value = handler(ModuleTypeHandler(self._reader), module_enc_version(module_id))
        return name, value

    def _read_object(
        self, flag: int, key: str, db: int, expiration: Optional[datetime]
    ) -> RedisObject:
        reader = self._reader
        common: dict[str, Any] = {
            "key": key,
            "db": db,
            "expiration": expiration,
            "encoding": _ENCODINGS.get(flag, ""),
        }
        if flag == _TYPE_STRING:
            return StringObject(value=reader.read_string(), **common)
        if flag == _TYPE_LIST:
            return ListObject(values=read_list(reader), **common)
        if flag == _TYPE_LIST_ZIPLIST:
            return ListObject(values=read_ziplist(reader), **common)
        if flag == _TYPE_LIST_QUICKLIST:
            values, extra = read_quicklist(reader)
            return ListObject(values=values, extra=extra, **common)
        if flag == _TYPE_LIST_QUICKLIST2:
            values, extra = read_quicklist2(reader)
            return ListObject(values=values, extra=extra, **common)
        if flag == _TYPE_SET:
            return SetObject(members=read_set(reader), **common)
        if flag == _TYPE_SET_INTSET:
            members, extra = read_intset(reader)
            return SetObject(members=members, extra=extra, **common)
        if flag == _TYPE_SET_LISTPACK:
            members, extra = read_listpack_set(reader)
            return SetObject(members=members, extra=extra, **common)
        if flag == _TYPE_HASH:
            return HashObject(hash=read_hash(reader), **common)
        if flag == _TYPE_HASH_ZIPMAP:
            return HashObject(hash=read_zipmap_hash(reader), **common)
        if flag == _TYPE_HASH_ZIPLIST:
            mapping, extra = read_ziplist_hash(reader)
            return HashObject(hash=mapping, extra=extra, **common)
        if flag == _TYPE_HASH_LISTPACK:
            mapping, extra = read_listpack_hash(reader)
            return HashObject(hash=mapping, extra=extra, **common)
        if flag in (_TYPE_ZSET, _TYPE_ZSET2):
            return ZSetObject(entries=read_zset(reader, flag == _TYPE_ZSET2), **common)
        if flag == _TYPE_ZSET_ZIPLIST:
            entries, extra = read_ziplist_zset(reader)
            return ZSetObject(entries=entries, extra=extra, **common)
        if flag == _TYPE_ZSET_LISTPACK:
            entries, extra = read_listpack_zset(reader)
            return ZSetObject(entries=entries, extra=extra, **common)
        if flag in _STREAM_VERSIONS:
            stream = read_stream(reader, _STREAM_VERSIONS[flag])
            stream.key = key
            stream.db = db
            stream.expiration = expiration
            stream.encoding = common["encoding"]
            return stream
        if flag == _TYPE_MODULE2:
            name, value = self._read_module_value()
            return ModuleTypeObject(module_type=name, value=value, **common)
        raise RDBError(f"unknown type flag: {flag:b}")