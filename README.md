# rdbtool

`rdbtool` is a pure-Python library that reads and writes Redis RDB snapshot
files. It has no dependencies outside the standard library.

## Installation

```
pip install rdbtool
```

To run the test suite:

```
pip install "rdbtool[test]"
pytest
```

## Reading an RDB file

`rdbtool.decoder.Decoder` takes a binary file object or a `bytes` value. It
checks the `REDIS` header and accepts versions 1 to 12. You can iterate over the
decoder, or give `parse` a callback that returns a true value to go on and a
false value to stop.

```python
from rdbtool.decoder import Decoder
from rdbtool.objects import HashObject, StringObject

with open("dump.rdb", "rb") as fh:
    for obj in Decoder(fh):
        if isinstance(obj, StringObject):
            print(obj.key, obj.value)
        elif isinstance(obj, HashObject):
            print(obj.key, obj.hash)
```

Each record is a dataclass from `rdbtool.objects`: `StringObject`,
`ListObject`, `SetObject`, `HashObject`, `ZSetObject`, `StreamObject` or
`ModuleTypeObject`. Every record has `key`, `db`, `expiration` (a UTC
`datetime` or `None`), `encoding`, `type` and `element_count`. For compact
encodings, `extra` holds details such as `ZiplistDetail`, `ListpackDetail`,
`IntsetDetail`, `QuicklistDetail` or `Quicklist2Detail`.

The decoder handles these value encodings: plain, 8/16/32-bit integer strings,
lists, ziplists, quicklists (ziplist and listpack nodes), sets, intsets,
listpack sets, hashes, zipmaps, ziplist and listpack hashes, sorted sets (with
decimal or binary scores), ziplist and listpack sorted sets, streams (layout
versions 1 to 3, with consumer groups) and module types.

Call `with_special_opcode()` to get `AuxObject` (auxiliary header fields) and
`DBSizeObject` (key and TTL counts of a database) records as well as keys:

```python
decoder = Decoder(fh).with_special_opcode()
decoder.parse(lambda obj: print(obj) or True)
```

`Decoder.read_count` reports how many bytes have been consumed so far.
Malformed input raises `rdbtool.cursor.RDBError`.

### Module types

The decoder skips values stored by Redis modules, and logs a warning, unless
you register a handler for the module's nine-character type name. The handler
is given a `rdbtool.module.ModuleTypeHandler` and the encoding version. Its
return value becomes the `value` of the `ModuleTypeObject`:

```python
from rdbtool.module import ModuleOpcode

def read_my_type(handler, enc_version):
    if handler.read_opcode() is not ModuleOpcode.STRING:
        raise ValueError("expected a string")
    data = handler.read_string()
    handler.read_opcode()  # ModuleOpcode.EOF
    return data

decoder = Decoder(fh).with_special_type("test-type", read_my_type)
```

`make_module_id`, `module_type_name` and `module_enc_version` pack and unpack
module type ids.

## Writing an RDB file

`rdbtool.encoder.Encoder` writes to any binary file object. It checks that
records come in a valid order: header, aux fields, then database headers each
followed by at least one object, then the end marker. Writing out of order
raises `RDBError`, and so does writing the same database index twice. The file
is written with version `0011` in its header and ends with a CRC-64 checksum.

```python
from rdbtool.encoder import Encoder
from rdbtool.objects import ZSetEntry

with open("out.rdb", "wb") as fh:
    enc = Encoder(fh)
    enc.write_header()
    enc.write_aux("redis-ver", "7.0.0")
    enc.write_db_header(0, key_count=5, ttl_count=1)
    enc.write_string_object("greeting", b"hello", ttl=1_900_000_000_000)
    enc.write_list_object("queue", [b"a", b"b", b"c"])
    enc.write_hash_object("user", {"name": b"alice"})
    enc.write_set_object("ids", [b"1", b"2", b"3"])
    enc.write_zset_object("scores", [ZSetEntry("alice", 1.5)])
    enc.write_end()
```

`ttl` is an expiration timestamp in milliseconds since the epoch.

Lists, hashes and sorted sets are written as ziplists when they are small
enough. Otherwise lists are written as quicklists, hashes in plain encoding and
sorted sets with binary scores. You can set the limits with
`set_list_ziplist_opt`, `set_hash_ziplist_opt` and `set_zset_ziplist_opt`
(`max_value` in bytes, `max_entries`). A value of 0 keeps the default of 64
bytes and 512 entries. A set whose members are all canonical non-negative
integers is written as an intset.

## Byte sizes

```python
from rdbtool.bytefmt import format_size, parse_size

format_size(123 * 1024)   # "123K"
parse_size("1.5M")        # 1572864
```

`parse_size` treats SI and binary prefixes alike (K = KB = KiB = 1024). It
raises `ValueError` for zero, negative or unitless input.

## What it does not do

- It cannot read LZF-compressed strings. Reading one raises `RDBError`, and the
  encoder never compresses.
- The encoder writes strings, lists, hashes, sets and sorted sets only. It does
  not write streams, module values or listpack encodings.
- There is no command-line tool. Conversion to JSON or AOF, memory reports and
  big-key analysis are left to code you write on top of `Decoder`.