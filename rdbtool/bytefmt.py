"""Human-readable byte sizes using binary (1024-based) units."""

from __future__ import annotations

_KILO = 1 << 10
_MEGA = 1 << 20
_GIGA = 1 << 30
_TERA = 1 << 40
_PETA = 1 << 50
_EXA = 1 << 60

_INVALID_QUANTITY = (
    "byte quantity must be a positive integer with a unit of measurement "
    "like M, MB, MiB, G, GiB, or GB"
)

_FORMAT_UNITS = (
    (_EXA, "E"),
    (_PETA, "P"),
    (_TERA, "T"),
    (_GIGA, "G"),
    (_MEGA, "M"),
    (_KILO, "K"),
    (1, "B"),
)

_PARSE_UNITS = {
    "E": _EXA, "EB": _EXA, "EIB": _EXA,
    "P": _PETA, "PB": _PETA, "PIB": _PETA,
    "T": _TERA, "TB": _TERA, "TIB": _TERA,
    "G": _GIGA, "GB": _GIGA, "GIB": _GIGA,
    "M": _MEGA, "MB": _MEGA, "MIB": _MEGA,
    "K": _KILO, "KB": _KILO, "KIB": _KILO,
    "B": 1,
}


def format_size(size: int) -> str:
    """Format a byte count such as 10M or 12.5K, choosing the largest unit that fits."""
    if size < 0:
        raise ValueError("size must not be negative")
    if size == 0:
        return "0"
    for threshold, unit in _FORMAT_UNITS:
        if size >= threshold:
            text = f"{float(size) / threshold:.1f}"
            if text.endswith(".0"):
                text = text[:-2]
            return text + unit
    raise AssertionError("unreachable")


def parse_size(text: str) -> int:
    """Parse a size like "12K" or "1.5GiB" into bytes; SI and binary prefixes both mean 1024."""
    normalized = text.strip().upper()
    index = next((i for i, ch in enumerate(normalized) if ch.isalpha()), None)
    if index is None:
        raise ValueError(_INVALID_QUANTITY)
    number_text, unit = normalized[:index], normalized[index:]
    if number_text != number_text.strip() or "_" in number_text:
        raise ValueError(_INVALID_QUANTITY)
    try:
        quantity = float(number_text)
    except ValueError:
        raise ValueError(_INVALID_QUANTITY) from None
    if not quantity > 0:
        raise ValueError(_INVALID_QUANTITY)
    multiplier = _PARSE_UNITS.get(unit)
    if multiplier is None:
        raise ValueError(_INVALID_QUANTITY)
    return int(quantity * multiplier)