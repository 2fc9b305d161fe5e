"""Reading list, set, hash and sorted set values in their various encodings."""

from __future__ import annotations

from .cursor import Cursor, RDBError
from .listpack import decode_listpack, read_entry_as_bytes, read_listpack_length
from .objects import (
    QUICKLIST_NODE_CONTAINER_PACKED,
    QUICKLIST_NODE_CONTAINER_PLAIN,
    IntsetDetail,
    ListpackDetail,
    Quicklist2Detail,
    QuicklistDetail,
    ZiplistDetail,
    ZSetEntry,
)
from .primitives import StreamReader
from .ziplist import read_ziplist, read_ziplist_entry, read_ziplist_length

_ZIPMAP_BIG_LEN = 253
_ZIPMAP_ILLEGAL_LEN = 254
_ZIPMAP_END = 255


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def _parse_score(raw: bytes) -> float:
    try:
        return float(raw.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise RDBError(f"invalid score: {raw!r}") from None


def read_list(reader: StreamReader) -> list[bytes]:
    """Read a plainly encoded list."""
    size, _ = reader.read_length()
    return [reader.read_string() for _ in range(size)]


def read_quicklist(reader: StreamReader) -> tuple[list[bytes], QuicklistDetail]:
    """Read a quicklist made of ziplist pages."""
    size, _ = reader.read_length()
    entries: list[bytes] = []
    detail = QuicklistDetail()
    for _ in range(size):
        page = read_ziplist(reader)
        entries.extend(page)
        detail.ziplist_struct.append(page)
    return entries, detail


def read_quicklist2(reader: StreamReader) -> tuple[list[bytes], Quicklist2Detail]:
    """Read a quicklist whose nodes are plain strings or listpacks."""
    size, _ = reader.read_length()
    entries: list[bytes] = []
    detail = Quicklist2Detail()
    for _ in range(size):
        container, _ = reader.read_length()
        if container == QUICKLIST_NODE_CONTAINER_PLAIN:
            entries.append(reader.read_string())
            detail.node_encodings.append(QUICKLIST_NODE_CONTAINER_PLAIN)
        elif container == QUICKLIST_NODE_CONTAINER_PACKED:
            page, sizes = decode_listpack(reader.read_string())
            entries.extend(page)
            detail.node_encodings.append(QUICKLIST_NODE_CONTAINER_PACKED)
            detail.listpack_entry_size.append(sizes)
        else:
            raise RDBError("unknown quicklist node type")
    return entries, detail


def read_set(reader: StreamReader) -> list[bytes]:
    """Read a plainly encoded set."""
    size, _ = reader.read_length()
    return [reader.read_string() for _ in range(size)]


def read_intset(reader: StreamReader) -> tuple[list[bytes], IntsetDetail]:
    """Read an intset; members are returned as decimal text."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    int_size = int.from_bytes(cursor.read_bytes(4), "little")
    if int_size not in (2, 4, 8):
        raise RDBError(f"unknown intset encoding: {int_size}")
    cardinality = int.from_bytes(cursor.read_bytes(4), "little")
    members = [
        str(int.from_bytes(cursor.read_bytes(int_size), "little", signed=True)).encode()
        for _ in range(cardinality)
    ]
    return members, IntsetDetail(raw_string_size=len(buf))


def read_listpack_set(reader: StreamReader) -> tuple[list[bytes], ListpackDetail]:
    """Read a set stored as a listpack."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    size = read_listpack_length(cursor)
    members = [read_entry_as_bytes(cursor) for _ in range(size)]
    return members, ListpackDetail(raw_string_size=len(buf))


def read_hash(reader: StreamReader) -> dict[str, bytes]:
    """Read a plainly encoded hash."""
    size, _ = reader.read_length()
    mapping: dict[str, bytes] = {}
    for _ in range(size):
        name = _text(reader.read_string())
        mapping[name] = reader.read_string()
    return mapping


def _zipmap_entry_len(cursor: Cursor, read_free: bool) -> tuple[int | None, int]:
    first = cursor.read_byte()
    if first == _ZIPMAP_BIG_LEN:
        raw = cursor.read_bytes(5)
        return int.from_bytes(raw[:4], "big"), raw[4]
    if first == _ZIPMAP_ILLEGAL_LEN:
        raise RDBError("illegal zip map item length")
    if first == _ZIPMAP_END:
        return None, 0
    free = cursor.read_byte() if read_free else 0
    return first, free


def _zipmap_entry(cursor: Cursor, read_free: bool) -> bytes:
    length, free = _zipmap_entry_len(cursor, read_free)
    if length is None:
        return b""
    value = cursor.read_bytes(length)
    cursor.skip(free)
    return value


def _count_zipmap_entries(cursor: Cursor) -> int:
    count = 0
    while True:
        length, free = _zipmap_entry_len(cursor, count % 2 != 0)
        if length is None:
            return count
        cursor.skip(length + free)
        count += 1


def read_zipmap_hash(reader: StreamReader) -> dict[str, bytes]:
    """Read a hash stored as a zipmap."""
    cursor = Cursor(reader.read_string())
    length = cursor.read_byte()
    if length > 254:
        start = cursor.pos
        length = _count_zipmap_entries(cursor) // 2
        cursor.pos = start
    mapping: dict[str, bytes] = {}
    for _ in range(length):
        name = _text(_zipmap_entry(cursor, False))
        mapping[name] = _zipmap_entry(cursor, True)
    return mapping


def read_ziplist_hash(reader: StreamReader) -> tuple[dict[str, bytes], ZiplistDetail]:
    """Read a hash stored as a ziplist of alternating fields and values."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    size = read_ziplist_length(cursor)
    mapping: dict[str, bytes] = {}
    for _ in range(0, size, 2):
        name = _text(read_ziplist_entry(cursor))
        mapping[name] = read_ziplist_entry(cursor)
    return mapping, ZiplistDetail(raw_string_size=len(buf))


def read_listpack_hash(reader: StreamReader) -> tuple[dict[str, bytes], ListpackDetail]:
    """Read a hash stored as a listpack of alternating fields and values."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    size = read_listpack_length(cursor)
    mapping: dict[str, bytes] = {}
    for _ in range(0, size, 2):
        name = _text(read_entry_as_bytes(cursor))
        mapping[name] = read_entry_as_bytes(cursor)
    return mapping, ListpackDetail(raw_string_size=len(buf))


def read_zset(reader: StreamReader, binary_scores: bool) -> list[ZSetEntry]:
    """Read a sorted set; scores are binary doubles or decimal literals."""
    length, _ = reader.read_length()
    entries = []
    for _ in range(length):
        member = _text(reader.read_string())
        score = reader.read_float() if binary_scores else reader.read_literal_float()
        entries.append(ZSetEntry(member=member, score=score))
    return entries


def read_ziplist_zset(reader: StreamReader) -> tuple[list[ZSetEntry], ZiplistDetail]:
    """Read a sorted set stored as a ziplist of alternating members and scores."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    size = read_ziplist_length(cursor)
    entries = []
    for _ in range(0, size, 2):
        member = _text(read_ziplist_entry(cursor))
        score = _parse_score(read_ziplist_entry(cursor))
        entries.append(ZSetEntry(member=member, score=score))
    return entries, ZiplistDetail(raw_string_size=len(buf))


def read_listpack_zset(reader: StreamReader) -> tuple[list[ZSetEntry], ListpackDetail]:
    """Read a sorted set stored as a listpack of alternating members and scores."""
    buf = reader.read_string()
    cursor = Cursor(buf)
    size = read_listpack_length(cursor)
    entries = []
    for _ in range(0, size, 2):
        member = _text(read_entry_as_bytes(cursor))
        score = _parse_score(read_entry_as_bytes(cursor))
        entries.append(ZSetEntry(member=member, score=score))
    return entries, ListpackDetail(raw_string_size=len(buf))