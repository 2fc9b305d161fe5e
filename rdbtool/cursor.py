"""Bounds-checked reading from an in-memory byte buffer."""

from __future__ import annotations

import random
import string

_LETTERS = string.ascii_lowercase + string.ascii_uppercase + string.digits


class RDBError(Exception):
    """Raised when RDB data is malformed or cannot be handled."""


class Cursor:
    """A read position over a bytes buffer."""

    __slots__ = ("buf", "pos")

    def __init__(self, buf: bytes, pos: int = 0) -> None:
        self.buf = bytes(buf)
        self.pos = pos

    @property
    def remaining(self) -> int:
        """Number of bytes left after the current position."""
        return max(len(self.buf) - self.pos, 0)

    def read_byte(self) -> int:
        """Return the next byte and advance past it."""
        if self.pos >= len(self.buf):
            raise RDBError("cursor out of range")
        value = self.buf[self.pos]
        self.pos += 1
        return value

    def read_bytes(self, size: int) -> bytes:
        """Return the next ``size`` bytes and advance past them."""
        if size < 0 or self.pos + size > len(self.buf):
            raise RDBError("cursor out of range")
        end = self.pos + size
        value = self.buf[self.pos:end]
        self.pos = end
        return value

    def skip(self, count: int) -> None:
        """Advance the position without reading."""
        self.pos += count


def rand_string(n: int) -> str:
    """Return a random alphanumeric string of length ``n``."""
    return "".join(random.choices(_LETTERS, k=n))