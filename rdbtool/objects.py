"""Objects produced while reading an RDB file."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Optional

STRING_ENCODING = "string"
LIST_ENCODING = "list"
SET_ENCODING = "set"
ZSET_ENCODING = "zset"
ZSET2_ENCODING = "zset2"
HASH_ENCODING = "hash"
ZIPMAP_ENCODING = "zipmap"
ZIPLIST_ENCODING = "ziplist"
INTSET_ENCODING = "intset"
QUICKLIST_ENCODING = "quicklist"
QUICKLIST2_ENCODING = "quicklist2"
LISTPACK_ENCODING = "listpack"

QUICKLIST_NODE_CONTAINER_PLAIN = 1
QUICKLIST_NODE_CONTAINER_PACKED = 2


class ObjectType(str, enum.Enum):
    """Kind of a record read from an RDB file."""

    STRING = "string"
    LIST = "list"
    SET = "set"
    HASH = "hash"
    ZSET = "zset"
    STREAM = "stream"
    AUX = "aux"
    DB_SIZE = "dbsize"

    def __str__(self) -> str:
        return self.value


@dataclass(kw_only=True)
class RedisObject:
    """Fields shared by every record: key, database, expiry and size."""

    key: str = ""
    db: int = 0
    expiration: Optional[datetime] = None
    size: int = 0
    encoding: str = ""
    extra: Any = None

    _object_type: ClassVar[str] = ""

    @property
    def type(self) -> str:
        """The record's type name."""
        return self._object_type

    @property
    def element_count(self) -> int:
        """Number of elements held by the record."""
        return 0


@dataclass(kw_only=True)
class StringObject(RedisObject):
    value: bytes = b""

    _object_type: ClassVar[str] = ObjectType.STRING

    @property
    def element_count(self) -> int:
        return 1


@dataclass(kw_only=True)
class ListObject(RedisObject):
    values: list[bytes] = field(default_factory=list)

    _object_type: ClassVar[str] = ObjectType.LIST

    @property
    def element_count(self) -> int:
        return len(self.values)


@dataclass(kw_only=True)
class SetObject(RedisObject):
    members: list[bytes] = field(default_factory=list)

    _object_type: ClassVar[str] = ObjectType.SET

    @property
    def element_count(self) -> int:
        return len(self.members)


@dataclass(kw_only=True)
class HashObject(RedisObject):
    hash: dict[str, bytes] = field(default_factory=dict)

    _object_type: ClassVar[str] = ObjectType.HASH

    @property
    def element_count(self) -> int:
        return len(self.hash)


@dataclass
class ZSetEntry:
    member: str
    score: float


@dataclass(kw_only=True)
class ZSetObject(RedisObject):
    entries: list[ZSetEntry] = field(default_factory=list)

    _object_type: ClassVar[str] = ObjectType.ZSET

    @property
    def element_count(self) -> int:
        return len(self.entries)


@dataclass(kw_only=True)
class ModuleTypeObject(RedisObject):
    """A value of a module data type; its type is the module type name."""

    module_type: str = ""
    value: Any = None

    @property
    def type(self) -> str:
        return self.module_type


@dataclass(kw_only=True)
class AuxObject(RedisObject):
    """An auxiliary header field of the file."""

    value: str = ""

    _object_type: ClassVar[str] = ObjectType.AUX


@dataclass(kw_only=True)
class DBSizeObject(RedisObject):
    """Resize hint of a database: number of keys and of keys with a TTL."""

    key_count: int = 0
    ttl_count: int = 0

    _object_type: ClassVar[str] = ObjectType.DB_SIZE


@dataclass
class ZiplistDetail:
    raw_string_size: int = 0


@dataclass
class ListpackDetail:
    raw_string_size: int = 0


@dataclass
class IntsetDetail:
    raw_string_size: int = 0


@dataclass
class QuicklistDetail:
    """Entries of each ziplist page of a quicklist."""

    ziplist_struct: list[list[bytes]] = field(default_factory=list)


@dataclass
class Quicklist2Detail:
    """Container kind of each quicklist node and entry sizes of each listpack node."""

    node_encodings: list[int] = field(default_factory=list)
    listpack_entry_size: list[list[int]] = field(default_factory=list)


@dataclass(frozen=True, order=True)
class StreamId:
    ms: int
    sequence: int

    def __str__(self) -> str:
        return f"{self.ms}-{self.sequence}"


@dataclass
class StreamMessage:
    id: StreamId
    fields: dict[str, str] = field(default_factory=dict)
    deleted: bool = False


@dataclass
class StreamEntry:
    """A listpack node of a stream: master field names and its messages."""

    first_msg_id: StreamId
    fields: list[str] = field(default_factory=list)
    msgs: list[StreamMessage] = field(default_factory=list)


@dataclass
class StreamNAck:
    """A pending, not yet acknowledged, message of a consumer group."""

    id: StreamId
    delivery_time: int = 0
    delivery_count: int = 0


@dataclass
class StreamConsumer:
    name: str
    seen_time: int = 0
    active_time: int = 0
    pending: list[StreamId] = field(default_factory=list)


@dataclass
class StreamGroup:
    name: str
    last_id: StreamId
    pending: list[StreamNAck] = field(default_factory=list)
    consumers: list[StreamConsumer] = field(default_factory=list)
    entries_read: int = 0


@dataclass(kw_only=True)
class StreamObject(RedisObject):
    entries: list[StreamEntry] = field(default_factory=list)
    length: int = 0
    last_id: Optional[StreamId] = None
    first_id: Optional[StreamId] = None
    max_deleted_id: Optional[StreamId] = None
    added_entries_count: int = 0
    groups: list[StreamGroup] = field(default_factory=list)
    version: int = 1

    _object_type: ClassVar[str] = ObjectType.STREAM

    @property
    def element_count(self) -> int:
        return self.length