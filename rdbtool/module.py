"""Redis module data types: type ids and the opcode-tagged value stream."""

from __future__ import annotations

import enum
from typing import Any, Callable

from .cursor import RDBError
from .primitives import StreamReader

MODULE_TYPE_NAME_CHARSET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"

_NAME_LENGTH = 9


class ModuleOpcode(enum.IntEnum):
    EOF = 0
    SINT = 1
    UINT = 2
    FLOAT = 3
    DOUBLE = 4
    STRING = 5


class ModuleTypeHandler:
    """Reading interface handed to module type parsers."""

    def __init__(self, reader: StreamReader) -> None:
        self._reader = reader

    def read_byte(self) -> int:
        return self._reader.read_byte()

    def read_full(self, size: int) -> bytes:
        return self._reader.read_full(size)

    def read_opcode(self) -> ModuleOpcode:
        code, _ = self._reader.read_length()
        if code > ModuleOpcode.STRING:
            raise RDBError("unknown opcode")
        return ModuleOpcode(code)

    def read_uint(self) -> int:
        return self._reader.read_length()[0]

    def read_sint(self) -> int:
        value = self._reader.read_length()[0]
        return value - (1 << 64) if value >= 1 << 63 else value

    def read_float32(self) -> float:
        return self._reader.read_float32()

    def read_double(self) -> float:
        return self._reader.read_float()

    def read_string(self) -> bytes:
        return self._reader.read_string()

    def read_length(self) -> tuple[int, bool]:
        return self._reader.read_length()


ModuleTypeHandleFunc = Callable[[ModuleTypeHandler, int], Any]


def module_type_name(module_id: int) -> str:
    """Decode the nine-character type name packed into a module id."""
    packed = module_id >> 10
    chars = []
    for _ in range(_NAME_LENGTH):
        chars.append(MODULE_TYPE_NAME_CHARSET[packed & 63])
        packed >>= 6
    return "".join(reversed(chars))


def module_enc_version(module_id: int) -> int:
    """Return the encoding version held in the low ten bits of a module id."""
    return module_id & 1023


def make_module_id(module_type: str, enc_version: int) -> int:
    """Pack a nine-character type name and an encoding version into a module id."""
    if len(module_type) != _NAME_LENGTH:
        raise ValueError(f"module type name must have {_NAME_LENGTH} characters")
    if not 0 <= enc_version <= 1023:
        raise ValueError(f"encoding version out of range: {enc_version}")
    packed = 0
    for char in module_type:
        code = MODULE_TYPE_NAME_CHARSET.find(char)
        if code < 0:
            raise ValueError(f"unsupported char {char!r}")
        packed = (packed << 6) | code
    return (packed << 10) | enc_version


def skip_module_data(handler: ModuleTypeHandler, enc_version: int) -> None:
    """Consume opcode-tagged module values up to the EOF opcode."""
    readers = {
        ModuleOpcode.SINT: handler.read_sint,
        ModuleOpcode.UINT: handler.read_uint,
        ModuleOpcode.FLOAT: handler.read_float32,
        ModuleOpcode.DOUBLE: handler.read_double,
        ModuleOpcode.STRING: handler.read_string,
    }
    opcode = handler.read_opcode()
    while opcode is not ModuleOpcode.EOF:
        readers[opcode]()
        opcode = handler.read_opcode()
    return None