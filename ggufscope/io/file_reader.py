"""
Byte sources for the chunk loader: a lazily read local file and an in-memory buffer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import BinaryIO, Optional, Protocol, Union


class ByteSource(Protocol):
    """Random-access, read-only byte source with a known total size."""

    size: int

    def read(self, start: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``start`` (fewer only at EOF)."""
        ...


@dataclass
class LocalFileSource:
    """Local file source read on demand.

    Attributes:
        path: Path to the local file.
    """

    path: str

    def open(self) -> "OpenedFile":
        """Open the file read-only; use as a context manager."""
        return OpenedFile(self.path)


class OpenedFile:
    """Context manager that wraps a binary file handle and serves slices of it."""

    __slots__ = ("_fh", "size", "path")

    def __init__(self, path: str):
        self.path = path
        self._fh: Optional[BinaryIO] = None
        self.size: int = 0

    def __enter__(self) -> "OpenedFile":
        self._fh = open(self.path, "rb")
        self.size = os.fstat(self._fh.fileno()).st_size
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def read(self, start: int, length: int) -> bytes:
        if self._fh is None:
            raise RuntimeError("OpenedFile is not entered")
        self._fh.seek(start)
        return self._fh.read(length)


class BytesSource:
    """In-memory source, mostly for tests and for callers that already hold the header bytes."""

    __slots__ = ("_data", "size")

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._data = bytes(data)
        self.size = len(self._data)

    def __enter__(self) -> "BytesSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def read(self, start: int, length: int) -> bytes:
        return self._data[start : start + length]
