# ggufscope/model_formats/gguf/gguf_quantization.py
"""
GGUF tensor element types (GGML) and their dequantization-cost ranking.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Dict, Union


class GGMLType(IntEnum):
    """GGML tensor types, including quantization."""

    F32 = 0
    F16 = 1
    Q4_0 = 2
    Q4_1 = 3
    # Removed from ggml; tags are reserved
    Q4_2 = 4
    Q4_3 = 5
    Q5_0 = 6
    Q5_1 = 7
    Q8_0 = 8
    Q8_1 = 9
    Q2_K = 10
    Q3_K = 11
    Q4_K = 12
    Q5_K = 13
    Q6_K = 14
    Q8_K = 15
    IQ2_XXS = 16
    IQ2_XS = 17
    IQ3_XXS = 18
    IQ1_S = 19
    IQ4_NL = 20
    IQ3_S = 21
    IQ2_S = 22
    IQ4_XS = 23
    I8 = 24
    I16 = 25
    I32 = 26
    I64 = 27
    F64 = 28
    IQ1_M = 29


UNKNOWN_RANK = 99

# Lower rank = more expensive to dequantize on CPU = more benefit from the GPU.
OFFLOAD_RANK: Dict[GGMLType, int] = {
    GGMLType.IQ1_S: 0,
    GGMLType.IQ1_M: 0,
    GGMLType.IQ2_XXS: 1,
    GGMLType.IQ2_XS: 1,
    GGMLType.IQ2_S: 1,
    GGMLType.Q2_K: 1,
    GGMLType.IQ3_XXS: 2,
    GGMLType.IQ3_S: 2,
    GGMLType.Q3_K: 2,
    GGMLType.Q4_0: 3,
    GGMLType.Q4_1: 3,
    GGMLType.Q4_K: 3,
    GGMLType.IQ4_NL: 3,
    GGMLType.IQ4_XS: 3,
    GGMLType.Q5_0: 4,
    GGMLType.Q5_1: 4,
    GGMLType.Q5_K: 4,
    GGMLType.Q6_K: 5,
    GGMLType.Q8_0: 6,
    GGMLType.Q8_1: 6,
    GGMLType.Q8_K: 6,
    GGMLType.I8: 6,
    # High precision: little gain from GPU dequantization kernels
    GGMLType.I16: 7,
    GGMLType.F16: 8,
    GGMLType.I32: 9,
    GGMLType.F32: 10,
    GGMLType.I64: 11,
    GGMLType.F64: 12,
}


def to_ggml_type(tag: int) -> Union[GGMLType, int]:
    """Map a raw tag to :class:`GGMLType`, keeping unknown tags as plain ints."""
    try:
        return GGMLType(tag)
    except ValueError:
        return int(tag)


def quantization_rank(ggml_type: Union[GGMLType, int]) -> int:
    """Dequantization-cost rank of an element type; unknown types rank last."""
    try:
        return OFFLOAD_RANK.get(GGMLType(ggml_type), UNKNOWN_RANK)
    except ValueError:
        return UNKNOWN_RANK
