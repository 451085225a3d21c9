from __future__ import annotations

from typing import Callable

Key = int
KeyFormatter = Callable[[int], str]

_CHR_BITS = 8
_INDEX_BITS = 64 - _CHR_BITS
_INDEX_MASK = (1 << _INDEX_BITS) - 1


def symbol(c: str, index: int) -> Key:
    """
    Pack a one-character label and an index into a single integer key, e.g.
    `symbol("l", 3)` for landmark 3.
    """
    if len(c) != 1 or not c.isascii():
        raise ValueError("symbol character must be a single ASCII character")
    index = int(index)
    if index < 0 or index > _INDEX_MASK:
        raise ValueError("symbol index out of range")
    return (ord(c) << _INDEX_BITS) | index


def symbol_chr(key: Key) -> str:
    return chr((int(key) >> _INDEX_BITS) & 0xFF)


def symbol_index(key: Key) -> int:
    return int(key) & _INDEX_MASK


def default_key_formatter(key: Key) -> str:
    c = (int(key) >> _INDEX_BITS) & 0xFF
    if 0 < c < 128 and chr(c).isalpha():
        return f"{chr(c)}{symbol_index(key)}"
    return str(int(key))
