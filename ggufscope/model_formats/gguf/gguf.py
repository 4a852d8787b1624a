# ggufscope/model_formats/gguf/gguf.py
"""
GGUF shared structures and exceptions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple, Union

from ggufscope.model_formats.gguf.gguf_quantization import GGMLType


class GGUFValueType(IntEnum):
    """Metadata value kinds (the u32 tag in front of every value)."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12


_BLOCK_NUMBER = re.compile(r"-?[0-9]+")
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

SCALAR_TYPES = tuple(t for t in GGUFValueType if t is not GGUFValueType.ARRAY)
INTEGER_TYPES = (
    GGUFValueType.UINT8,
    GGUFValueType.INT8,
    GGUFValueType.UINT16,
    GGUFValueType.INT16,
    GGUFValueType.UINT32,
    GGUFValueType.INT32,
    GGUFValueType.UINT64,
    GGUFValueType.INT64,
)


class GGUFError(Exception):
    """Base class for everything this package raises about a GGUF file."""


class GGUFParseError(GGUFError):
    """Raised when a GGUF file is malformed."""


class GGUFFormatError(GGUFParseError):
    """Bad magic or unsupported version: not a file this reader understands."""


class GGUFStructureError(GGUFParseError):
    """Unknown value-kind tag in the metadata table."""


class GGUFBoundsError(GGUFParseError):
    """A read reached past the resident buffer or the end of the source."""


class GGUFOverflowError(GGUFParseError):
    """A declared length or count is too large to handle safely."""


class GGUFConfigError(GGUFError):
    """Model dimensions needed for an estimate cannot be resolved."""


class MetadataTypeError(GGUFError, TypeError):
    """A key was looked up as a kind other than the one it was declared with."""


@dataclass(frozen=True)
class MetadataValue:
    """A scalar metadata value tagged with its declared kind."""

    kind: GGUFValueType
    value: Union[int, float, bool, str]


@dataclass(frozen=True)
class GGUFTensorInfo:
    name: str
    ggml_type: Union[GGMLType, int]  # plain int when the tag is not a known type
    dims: Tuple[int, ...]
    offset: int  # relative to data section

    @property
    def n_dims(self) -> int:
        return len(self.dims)

    @property
    def n_elements(self) -> int:
        """Total number of elements in the tensor (1 for a rank-0 scalar)."""
        p = 1
        for d in self.dims:
            p *= d
        return p

    @property
    def type_name(self) -> str:
        if isinstance(self.ggml_type, GGMLType):
            return self.ggml_type.name
        return f"UNKNOWN({int(self.ggml_type)})"

    @property
    def block_number(self) -> int:
        """Layer index from names like ``blk.12.attn_norm.weight``; -1 otherwise."""
        if not self.name.startswith("blk."):
            return -1
        parts = self.name.split(".")
        if not _BLOCK_NUMBER.fullmatch(parts[1]):
            return -1
        n = int(parts[1])
        return n if INT32_MIN <= n <= INT32_MAX else -1


@dataclass(frozen=True)
class GGUFMetadata:
    """Parsed GGUF header: scalar key/values plus the tensor directory.

    Array-valued keys are skipped by the parser and never appear here.
    """

    version: int
    kv_count: int
    tensor_count: int
    values: Mapping[str, MetadataValue]
    tensors: Tuple[GGUFTensorInfo, ...]
    tensor_info_end_offset: int
    source_size: int
    _by_kind: Dict[GGUFValueType, Mapping[str, Any]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        values = MappingProxyType(dict(self.values))
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "tensors", tuple(self.tensors))
        by_kind: Dict[GGUFValueType, Dict[str, Any]] = {t: {} for t in SCALAR_TYPES}
        for key, mv in values.items():
            by_kind[mv.kind][key] = mv.value
        object.__setattr__(
            self, "_by_kind", {t: MappingProxyType(d) for t, d in by_kind.items()}
        )

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __len__(self) -> int:
        return len(self.values)

    @property
    def value_types(self) -> Mapping[str, GGUFValueType]:
        return MappingProxyType({k: v.kind for k, v in self.values.items()})

    def values_of(self, kind: GGUFValueType) -> Mapping[str, Any]:
        """Read-only mapping of every key declared with ``kind``."""
        if kind is GGUFValueType.ARRAY:
            return MappingProxyType({})
        return self._by_kind[GGUFValueType(kind)]

    def get(self, key: str, kind: GGUFValueType) -> Any:
        """Value of ``key`` as ``kind``; KeyError if absent, MetadataTypeError on mismatch."""
        mv = self.values[key]
        if mv.kind != kind:
            raise MetadataTypeError(
                f"Key {key!r} is {mv.kind.name}, not {GGUFValueType(kind).name}"
            )
        return mv.value

    def get_or(self, key: str, kind: GGUFValueType, default: Any = None) -> Any:
        if key not in self.values:
            return default
        return self.get(key, kind)

    def get_int(self, key: str, default: Any = None) -> Any:
        """Integer value of ``key`` whatever integer width it was stored with."""
        mv = self.values.get(key)
        if mv is None:
            return default
        if mv.kind not in INTEGER_TYPES:
            raise MetadataTypeError(f"Key {key!r} is {mv.kind.name}, not an integer")
        return mv.value

    @property
    def architecture(self) -> str | None:
        return self.get_or("general.architecture", GGUFValueType.STRING)

    # Per-kind views, one per scalar kind.
    @property
    def uint8_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.UINT8]

    @property
    def int8_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.INT8]

    @property
    def uint16_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.UINT16]

    @property
    def int16_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.INT16]

    @property
    def uint32_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.UINT32]

    @property
    def int32_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.INT32]

    @property
    def float32_values(self) -> Mapping[str, float]:
        return self._by_kind[GGUFValueType.FLOAT32]

    @property
    def bool_values(self) -> Mapping[str, bool]:
        return self._by_kind[GGUFValueType.BOOL]

    @property
    def string_values(self) -> Mapping[str, str]:
        return self._by_kind[GGUFValueType.STRING]

    @property
    def uint64_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.UINT64]

    @property
    def int64_values(self) -> Mapping[str, int]:
        return self._by_kind[GGUFValueType.INT64]

    @property
    def float64_values(self) -> Mapping[str, float]:
        return self._by_kind[GGUFValueType.FLOAT64]
