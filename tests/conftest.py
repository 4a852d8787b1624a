"""Shared helpers: synthesize GGUF headers in memory with ``struct``."""

from __future__ import annotations

import struct
from typing import Any, List, Sequence

import pytest

from ggufscope.io.file_reader import BytesSource
from ggufscope.model_formats.gguf.gguf import GGUFValueType as VT

GGUF_MAGIC = 0x46554747

SCALAR_FORMATS = {
    VT.UINT8: "<B",
    VT.INT8: "<b",
    VT.UINT16: "<H",
    VT.INT16: "<h",
    VT.UINT32: "<I",
    VT.INT32: "<i",
    VT.FLOAT32: "<f",
    VT.BOOL: "<B",
    VT.UINT64: "<Q",
    VT.INT64: "<q",
    VT.FLOAT64: "<d",
}


def encode_string(s: str) -> bytes:
    raw = s.encode("utf-8")
    return struct.pack("<Q", len(raw)) + raw


def encode_value(kind: int, value: Any) -> bytes:
    """Encode a value payload (without the kind tag).

    Arrays are given as ``(element_kind, items)``; nested arrays nest the same way.
    """
    if kind == VT.STRING:
        return encode_string(value)
    if kind == VT.ARRAY:
        elem_kind, items = value
        out = struct.pack("<IQ", elem_kind, len(items))
        for item in items:
            out += encode_value(elem_kind, item)
        return out
    return struct.pack(SCALAR_FORMATS[VT(kind)], value)


class GGUFBuilder:
    """Tiny writer for GGUF headers (no tensor data section)."""

    def __init__(self, *, version: int = 3, magic: int = GGUF_MAGIC):
        self.version = version
        self.magic = magic
        self.kv: List[bytes] = []
        self.tensors: List[bytes] = []

    def add_kv(self, key: str, kind: int, value: Any) -> "GGUFBuilder":
        self.kv.append(encode_string(key) + struct.pack("<I", kind) + encode_value(kind, value))
        return self

    def add_raw_kv(self, key: str, kind_tag: int, payload: bytes = b"") -> "GGUFBuilder":
        self.kv.append(encode_string(key) + struct.pack("<I", kind_tag) + payload)
        return self

    def add_array(self, key: str, elem_kind: int, items: Sequence[Any]) -> "GGUFBuilder":
        return self.add_kv(key, VT.ARRAY, (elem_kind, list(items)))

    def add_tensor(
        self, name: str, ggml_type: int, dims: Sequence[int] = (), offset: int = 0
    ) -> "GGUFBuilder":
        out = encode_string(name) + struct.pack("<I", len(dims))
        for d in dims:
            out += struct.pack("<Q", d)
        out += struct.pack("<IQ", ggml_type, offset)
        self.tensors.append(out)
        return self

    def header(self) -> bytes:
        return struct.pack("<IiQQ", self.magic, self.version, len(self.tensors), len(self.kv))

    def build(self) -> bytes:
        return self.header() + b"".join(self.kv) + b"".join(self.tensors)

    def source(self) -> BytesSource:
        return BytesSource(self.build())


def llama_tensors(builder: GGUFBuilder, blocks: int = 2) -> GGUFBuilder:
    builder.add_tensor("token_embd.weight", 12, (4096, 32000))
    for i in range(blocks):
        builder.add_tensor(f"blk.{i}.attn_q.weight", 12, (4096, 4096))
        builder.add_tensor(f"blk.{i}.ffn_up.weight", 14, (4096, 11008))
        builder.add_tensor(f"blk.{i}.attn_norm.weight", 0, (4096,))
    builder.add_tensor("output_norm.weight", 0, (4096,))
    return builder


@pytest.fixture
def builder() -> GGUFBuilder:
    return GGUFBuilder()


