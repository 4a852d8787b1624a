# ggufscope/model_formats/gguf/gguf_values.py
"""
Decoding and skipping of single typed GGUF metadata values.

Every function takes a :class:`ChunkLoader` and the offset of the value and
returns the decoded value (if any) together with the offset just past it.
"""

from __future__ import annotations

from typing import Callable, Dict, Union

from loguru import logger

from ggufscope.io.chunk_loader import ChunkLoader
from ggufscope.model_formats.gguf.gguf import (
    GGUFOverflowError,
    GGUFStructureError,
    GGUFValueType,
)

# Largest length/count handled without risk of silent truncation (2**53 - 1).
MAX_SAFE_LENGTH = 9_007_199_254_740_991

FIXED_SIZES: Dict[GGUFValueType, int] = {
    GGUFValueType.UINT8: 1,
    GGUFValueType.INT8: 1,
    GGUFValueType.BOOL: 1,
    GGUFValueType.UINT16: 2,
    GGUFValueType.INT16: 2,
    GGUFValueType.UINT32: 4,
    GGUFValueType.INT32: 4,
    GGUFValueType.FLOAT32: 4,
    GGUFValueType.UINT64: 8,
    GGUFValueType.INT64: 8,
    GGUFValueType.FLOAT64: 8,
}

_READERS: Dict[GGUFValueType, Callable[[ChunkLoader, int], Union[int, float]]] = {
    GGUFValueType.UINT8: ChunkLoader.u8,
    GGUFValueType.INT8: ChunkLoader.i8,
    GGUFValueType.BOOL: ChunkLoader.u8,
    GGUFValueType.UINT16: ChunkLoader.u16,
    GGUFValueType.INT16: ChunkLoader.i16,
    GGUFValueType.UINT32: ChunkLoader.u32,
    GGUFValueType.INT32: ChunkLoader.i32,
    GGUFValueType.FLOAT32: ChunkLoader.f32,
    GGUFValueType.UINT64: ChunkLoader.u64,
    GGUFValueType.INT64: ChunkLoader.i64,
    GGUFValueType.FLOAT64: ChunkLoader.f64,
}

ARRAY_HEADER_SIZE = 12  # u32 element kind + u64 count


def value_type(tag: int) -> GGUFValueType:
    """Validate a raw kind tag; unknown tags are a structural error."""
    try:
        return GGUFValueType(tag)
    except ValueError:
        raise GGUFStructureError(f"Unknown metadata value type {tag}") from None


def check_length(n: int, what: str) -> int:
    if n > MAX_SAFE_LENGTH:
        raise GGUFOverflowError(f"{what} {n} exceeds the safe integer range")
    return n


def read_string(cur: ChunkLoader, off: int) -> tuple[str, int]:
    """Read a u64 length-prefixed UTF-8 string (length counts bytes)."""
    cur.ensure_available(off, 8)
    ln = check_length(cur.u64(off), "String length")
    off += 8
    cur.ensure_available(off, ln)
    s = bytes(cur.read_bytes(off, ln)).decode("utf-8", "replace")
    return s, off + ln


def read_scalar(cur: ChunkLoader, off: int, kind: int) -> tuple[Union[int, float, bool, str], int]:
    """Decode one scalar of ``kind`` at ``off``."""
    kind = value_type(kind)
    if kind is GGUFValueType.STRING:
        return read_string(cur, off)
    if kind is GGUFValueType.ARRAY:
        raise GGUFStructureError("Array is not a scalar value type")
    size = FIXED_SIZES[kind]
    cur.ensure_available(off, size)
    value = _READERS[kind](cur, off)
    if kind is GGUFValueType.BOOL:
        value = value != 0
    return value, off + size


def skip_scalar(cur: ChunkLoader, off: int, kind: int) -> int:
    """Advance past one value of ``kind`` without decoding it."""
    kind = value_type(kind)
    if kind is GGUFValueType.ARRAY:
        return skip_array(cur, off)
    if kind is GGUFValueType.STRING:
        cur.ensure_available(off, 8)
        ln = check_length(cur.u64(off), "String length")
        cur.ensure_available(off + 8, ln)
        return off + 8 + ln
    size = FIXED_SIZES[kind]
    cur.ensure_available(off, size)
    return off + size


def skip_array(cur: ChunkLoader, off: int) -> int:
    """Advance past an array value (header + elements), recursing into nested arrays."""
    cur.ensure_available(off, ARRAY_HEADER_SIZE)
    elem = value_type(cur.u32(off))
    count = check_length(cur.u64(off + 4), "Array length")
    off += ARRAY_HEADER_SIZE

    if elem in FIXED_SIZES:
        # Fixed-width runs are skipped in one step.
        total = check_length(count * FIXED_SIZES[elem], "Array byte size")
        cur.ensure_available(off, total)
        return off + total

    for _ in range(count):
        off = skip_scalar(cur, off, elem)
    logger.debug("Skipped {kind} array of {n} elements", kind=elem.name, n=count)
    return off
