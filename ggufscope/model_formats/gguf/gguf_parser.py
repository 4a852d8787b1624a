# ggufscope/model_formats/gguf/gguf_parser.py
"""
GGUF v3 header parser: magic/version check, scalar key/values, tensor directory.

The parse is written as a generator that pauses after every metadata and tensor
entry. :func:`parse_gguf` drives it synchronously and calls an optional
``yield_point`` once per ``yield_interval`` seconds so an interactive host can
stay responsive; :func:`aparse_gguf` drives it from asyncio. Neither affects
the result.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Generator, List, Optional

from loguru import logger

from ggufscope.io.chunk_loader import ChunkLoader
from ggufscope.io.file_reader import ByteSource, LocalFileSource
from ggufscope.model_formats.gguf.gguf import (
    GGUFFormatError,
    GGUFMetadata,
    GGUFTensorInfo,
    GGUFValueType,
    MetadataValue,
)
from ggufscope.model_formats.gguf.gguf_quantization import to_ggml_type
from ggufscope.model_formats.gguf.gguf_rules import kind_mismatches
from ggufscope.model_formats.gguf.gguf_values import (
    check_length,
    read_scalar,
    read_string,
    skip_array,
    value_type,
)
from ggufscope.observability import Timer

GGUF_MAGIC = 0x46554747  # b"GGUF" read as little-endian u32
SUPPORTED_VERSION = 3
HEADER_SIZE = 24  # magic + version + tensor count + kv count

# Covers the fixed-size fields of any ordinary record; long strings and
# arrays request more once their length is known.
LOOKAHEAD = 1024
YIELD_INTERVAL = 0.1  # seconds

_Steps = Generator[None, None, GGUFMetadata]


def _lookahead(cur: ChunkLoader, off: int) -> int:
    return max(0, min(LOOKAHEAD, cur.source_size - off))


def _read_header(cur: ChunkLoader) -> tuple[int, int, int]:
    if cur.source_size < 4:
        raise GGUFFormatError("File too small for GGUF header")
    cur.ensure_available(0, 4)
    magic = cur.u32(0)
    if magic != GGUF_MAGIC:
        raise GGUFFormatError(f"Invalid magic 0x{magic:08x}; not a GGUF file")

    cur.ensure_available(4, 4)
    version = cur.i32(4)
    if version != SUPPORTED_VERSION:
        raise GGUFFormatError(
            f"Unsupported GGUF version {version}; only v{SUPPORTED_VERSION} is supported"
        )

    cur.ensure_available(8, 16)
    n_tensors = check_length(cur.u64(8), "Tensor count")
    n_kv = check_length(cur.u64(16), "Metadata count")
    return version, n_tensors, n_kv


def _read_tensor_info(cur: ChunkLoader, off: int) -> tuple[GGUFTensorInfo, int]:
    name, off = read_string(cur, off)
    cur.ensure_available(off, 4)
    n_dims = cur.u32(off)
    off += 4
    # dims + element type + data offset
    cur.ensure_available(off, n_dims * 8 + 12)
    dims = tuple(cur.u64(off + 8 * i) for i in range(n_dims))
    off += 8 * n_dims
    ggml_type = to_ggml_type(cur.u32(off))
    off += 4
    rel_off = cur.u64(off)
    off += 8
    return GGUFTensorInfo(name=name, ggml_type=ggml_type, dims=dims, offset=rel_off), off


def _parse_steps(cur: ChunkLoader) -> _Steps:
    version, n_tensors, n_kv = _read_header(cur)
    logger.debug("GGUF v{v}: {kv} metadata entries, {nt} tensors", v=version, kv=n_kv, nt=n_tensors)
    off = HEADER_SIZE

    values: Dict[str, MetadataValue] = {}
    skipped_arrays = 0
    for _ in range(n_kv):
        cur.ensure_available(off, _lookahead(cur, off))
        key, off = read_string(cur, off)
        cur.ensure_available(off, 4)
        kind = value_type(cur.u32(off))
        off += 4
        if kind is GGUFValueType.ARRAY:
            off = skip_array(cur, off)
            skipped_arrays += 1
        else:
            value, off = read_scalar(cur, off, kind)
            if key in values:
                logger.warning("Duplicate metadata key {key}; keeping the last value", key=key)
            values[key] = MetadataValue(kind=kind, value=value)
        yield

    tensors: List[GGUFTensorInfo] = []
    for _ in range(n_tensors):
        cur.ensure_available(off, _lookahead(cur, off))
        ti, off = _read_tensor_info(cur, off)
        tensors.append(ti)
        yield

    logger.debug(
        "Kept {n} scalar keys, skipped {a} arrays; tensor table ends at {off}",
        n=len(values),
        a=skipped_arrays,
        off=off,
    )
    return GGUFMetadata(
        version=version,
        kv_count=n_kv,
        tensor_count=n_tensors,
        values=values,
        tensors=tuple(tensors),
        tensor_info_end_offset=off,
        source_size=cur.source_size,
    )


def _finish(model: GGUFMetadata, cur: ChunkLoader, t: Timer) -> GGUFMetadata:
    for problem in kind_mismatches(model):
        logger.debug("Unexpected key kind: {p}", p=problem)
    logger.debug(
        "Parsed GGUF header in {ms:.2f}ms with {reads} source reads ({resident} bytes resident)",
        ms=t.duration_ms,
        reads=cur.reads,
        resident=cur.resident,
    )
    return model


def parse_gguf(
    source: ByteSource,
    *,
    yield_point: Optional[Callable[[], None]] = None,
    yield_interval: float = YIELD_INTERVAL,
) -> GGUFMetadata:
    """Parse the GGUF header and tensor directory from ``source``.

    Args:
        source: Opened byte source (see :mod:`ggufscope.io.file_reader`).
        yield_point: Called between entries whenever ``yield_interval`` seconds
            passed since the previous call. Defaults to doing nothing.
        yield_interval: Minimum wall-clock seconds between ``yield_point`` calls.

    Raises:
        GGUFParseError: (or a subclass) when the file is not a readable GGUF v3
            header. No partial result is ever returned.
    """
    with Timer("parse") as t:
        cur = ChunkLoader(source)
        steps = _parse_steps(cur)
        last = time.monotonic()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                model = stop.value
                break
            if yield_point is not None and time.monotonic() - last >= yield_interval:
                yield_point()
                last = time.monotonic()
    return _finish(model, cur, t)


async def aparse_gguf(source: ByteSource, *, yield_interval: float = YIELD_INTERVAL) -> GGUFMetadata:
    """Asyncio flavour of :func:`parse_gguf` that hands control back to the event loop."""
    with Timer("parse") as t:
        cur = ChunkLoader(source)
        steps = _parse_steps(cur)
        last = time.monotonic()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                model = stop.value
                break
            if time.monotonic() - last >= yield_interval:
                await asyncio.sleep(0)
                last = time.monotonic()
    return _finish(model, cur, t)


def load_gguf(path: str, **kwargs) -> GGUFMetadata:
    """Open ``path`` and parse its GGUF header. Keyword arguments go to :func:`parse_gguf`."""
    with LocalFileSource(path).open() as fh:
        return parse_gguf(fh, **kwargs)
