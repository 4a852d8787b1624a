"""
Growable in-memory window over a byte source.

The window always starts at source offset 0. When a caller needs bytes beyond
the resident buffer, the buffer is re-read from the start of the source up to
a larger size instead of stitching fragments together. Header sections are
small compared to tensor payloads, so the repeated transfer stays cheap.
"""

from __future__ import annotations

import struct

from loguru import logger

from ggufscope.io.file_reader import ByteSource
from ggufscope.model_formats.gguf.gguf import GGUFBoundsError

# Most GGUF headers fit in well under 5 MiB, so this avoids nearly all re-reads.
INITIAL_CHUNK_SIZE = 5 * 1024 * 1024
GROWTH_MARGIN = 1024 * 1024

_U8 = struct.Struct("<B")
_I8 = struct.Struct("<b")
_U16 = struct.Struct("<H")
_I16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_F64 = struct.Struct("<d")


class ChunkLoader:
    """Byte cursor with typed little-endian reads over a lazily grown buffer.

    Callers must call :meth:`ensure_available` before reading; reads outside the
    resident buffer raise :class:`GGUFBoundsError`.
    """

    def __init__(self, source: ByteSource, *, initial_size: int = INITIAL_CHUNK_SIZE):
        self.source = source
        self.reads = 0
        self._buf = b""
        self._view = memoryview(self._buf)
        self._load(min(initial_size, source.size))

    @property
    def source_size(self) -> int:
        return self.source.size

    @property
    def resident(self) -> int:
        """Number of bytes currently held in memory."""
        return len(self._buf)

    def _load(self, size: int) -> None:
        data = self.source.read(0, size)
        if len(data) < size:
            raise GGUFBoundsError(f"Short read from source: wanted {size} bytes, got {len(data)}")
        self.reads += 1
        self._buf = data
        self._view = memoryview(data)

    def ensure_available(self, offset: int, min_bytes: int) -> None:
        """Make bytes ``[0, offset + min_bytes)`` resident, growing the buffer if needed."""
        needed = offset + min_bytes
        current = len(self._buf)
        if needed <= current:
            return
        if needed > self.source.size:
            raise GGUFBoundsError(
                f"Need {needed} bytes but source is only {self.source.size} bytes long"
            )
        new_size = min(max(current * 2, needed + GROWTH_MARGIN), self.source.size)
        logger.debug(
            "Growing buffer {old} -> {new} bytes (requested [{off}, {end}))",
            old=current,
            new=new_size,
            off=offset,
            end=needed,
        )
        self._load(new_size)

    def _check(self, offset: int, length: int) -> None:
        if offset < 0 or offset + length > len(self._buf):
            raise GGUFBoundsError(
                f"Read of {length} bytes at offset {offset} is outside the resident "
                f"buffer ({len(self._buf)} bytes)"
            )

    def _unpack(self, st: struct.Struct, offset: int):
        self._check(offset, st.size)
        return st.unpack_from(self._buf, offset)[0]

    def u8(self, offset: int) -> int:
        return self._unpack(_U8, offset)

    def i8(self, offset: int) -> int:
        return self._unpack(_I8, offset)

    def u16(self, offset: int) -> int:
        return self._unpack(_U16, offset)

    def i16(self, offset: int) -> int:
        return self._unpack(_I16, offset)

    def u32(self, offset: int) -> int:
        return self._unpack(_U32, offset)

    def i32(self, offset: int) -> int:
        return self._unpack(_I32, offset)

    def f32(self, offset: int) -> float:
        return self._unpack(_F32, offset)

    def u64(self, offset: int) -> int:
        return self._unpack(_U64, offset)

    def i64(self, offset: int) -> int:
        return self._unpack(_I64, offset)

    def f64(self, offset: int) -> float:
        return self._unpack(_F64, offset)

    def read_bytes(self, offset: int, length: int) -> memoryview:
        """Read-only view of ``length`` resident bytes at ``offset``."""
        self._check(offset, length)
        return self._view[offset : offset + length]
