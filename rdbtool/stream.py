"""Reading the stream data type from an RDB file."""

from __future__ import annotations

from .cursor import Cursor, RDBError
from .listpack import read_entry_as_bytes, read_entry_as_int
from .objects import (
    StreamConsumer,
    StreamEntry,
    StreamGroup,
    StreamId,
    StreamMessage,
    StreamNAck,
    StreamObject,
)
from .primitives import StreamReader

STREAM_ITEM_FLAG_NONE = 0
STREAM_ITEM_FLAG_DELETED = 1 << 0
STREAM_ITEM_FLAG_SAME_FIELDS = 1 << 1

_MASK64 = (1 << 64) - 1


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def _lp_int(cursor: Cursor, what: str) -> int:
    try:
        return read_entry_as_int(cursor)
    except RDBError as exc:
        raise RDBError(f"{what} failed: {exc}") from exc


def _lp_bytes(cursor: Cursor, what: str) -> bytes:
    try:
        return read_entry_as_bytes(cursor)
    except RDBError as exc:
        raise RDBError(f"{what} failed: {exc}") from exc


def _read_raw_id(reader: StreamReader) -> StreamId:
    raw = reader.read_full(16)
    return StreamId(int.from_bytes(raw[:8], "big"), int.from_bytes(raw[8:], "big"))


def _read_u64_le(reader: StreamReader) -> int:
    return int.from_bytes(reader.read_full(8), "little")


def read_stream_id(reader: StreamReader) -> StreamId:
    """Read a stream id stored as two length encodings."""
    ms, _ = reader.read_length()
    seq, _ = reader.read_length()
    return StreamId(ms, seq)


def read_stream_entries(reader: StreamReader) -> list[StreamEntry]:
    """Read the listpack nodes of a stream."""
    count, _ = reader.read_length()
    entries = []
    for _ in range(count):
        header = Cursor(reader.read_string())
        ms = int.from_bytes(header.read_bytes(8), "big")
        seq = int.from_bytes(header.read_bytes(8), "big")
        first_id = StreamId(ms, seq)
        cursor = Cursor(reader.read_string())
        cursor.skip(6)  # total bytes and element count of the listpack
        entries.append(read_stream_entry_content(cursor, first_id))
    return entries


def read_stream_entry_content(cursor: Cursor, first_id: StreamId) -> StreamEntry:
    """Read the messages of one stream listpack node."""
    count = _lp_int(cursor, "read stream entry count")
    deleted = _lp_int(cursor, "read stream entry deleted count")
    master_field_num = _lp_int(cursor, "read stream field number")
    if master_field_num < 0:
        raise RDBError(f"invalid stream field number: {master_field_num}")
    master_fields = [
        _text(_lp_bytes(cursor, "read field name of stream entry"))
        for _ in range(master_field_num)
    ]
    _lp_bytes(cursor, "read fields end flag")

    msgs = []
    for _ in range(count + deleted):
        flag = _lp_int(cursor, "read stream item flag")
        ms = _lp_int(cursor, "read stream item id ms")
        seq = _lp_int(cursor, "read stream item id seq")
        msg_id = StreamId((ms + first_id.ms) & _MASK64, (seq + first_id.sequence) & _MASK64)
        same_fields = bool(flag & STREAM_ITEM_FLAG_SAME_FIELDS)
        field_num = master_field_num
        if not same_fields:
            field_num = _lp_int(cursor, "read stream item field number")
        fields: dict[str, str] = {}
        for index in range(field_num):
            if same_fields:
                name = master_fields[index]
            else:
                name = _text(_lp_bytes(cursor, "read stream item field name"))
            fields[name] = _text(_lp_bytes(cursor, "read stream item field value"))
        _lp_bytes(cursor, "read fields end flag")
        msgs.append(
            StreamMessage(
                id=msg_id,
                fields=fields,
                deleted=bool(flag & STREAM_ITEM_FLAG_DELETED),
            )
        )
    return StreamEntry(first_msg_id=first_id, fields=master_fields, msgs=msgs)


def read_stream_groups(reader: StreamReader, version: int) -> list[StreamGroup]:
    """Read the consumer groups of a stream."""
    group_count, _ = reader.read_length()
    groups = []
    for _ in range(group_count):
        name = _text(reader.read_string())
        last_id = read_stream_id(reader)
        entries_read = reader.read_length()[0] if version >= 2 else 0

        pending_count, _ = reader.read_length()
        pending = []
        for _ in range(pending_count):
            nack_id = _read_raw_id(reader)
            delivery_time = _read_u64_le(reader)
            delivery_count, _ = reader.read_length()
            pending.append(
                StreamNAck(id=nack_id, delivery_time=delivery_time, delivery_count=delivery_count)
            )

        consumer_count, _ = reader.read_length()
        consumers = []
        for _ in range(consumer_count):
            consumer_name = _text(reader.read_string())
            seen_time = _read_u64_le(reader)
            active_time = _read_u64_le(reader) if version >= 3 else seen_time
            consumer_pending_count, _ = reader.read_length()
            consumer_pending = [_read_raw_id(reader) for _ in range(consumer_pending_count)]
            consumers.append(
                StreamConsumer(
                    name=consumer_name,
                    seen_time=seen_time,
                    active_time=active_time,
                    pending=consumer_pending,
                )
            )
        groups.append(
            StreamGroup(
                name=name,
                last_id=last_id,
                pending=pending,
                consumers=consumers,
                entries_read=entries_read,
            )
        )
    return groups


def read_stream(reader: StreamReader, version: int) -> StreamObject:
    """Read a stream value of the given listpacks layout version (1 to 3)."""
    entries = read_stream_entries(reader)
    length, _ = reader.read_length()
    last_id = read_stream_id(reader)
    stream = StreamObject(entries=entries, length=length, last_id=last_id, version=version)
    if version >= 2:
        stream.first_id = read_stream_id(reader)
        stream.max_deleted_id = read_stream_id(reader)
        stream.added_entries_count = reader.read_length()[0]
    stream.groups = read_stream_groups(reader, version)
    return stream