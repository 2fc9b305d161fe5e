"""Read and write Redis RDB snapshot files."""

__version__ = "0.1.0"

__all__ = [
    "bytefmt",
    "containers",
    "cursor",
    "decoder",
    "encoder",
    "listpack",
    "module",
    "objects",
    "primitives",
    "stream",
    "ziplist",
]