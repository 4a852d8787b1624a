# ggufscope/analysis/offload.py
"""
GPU-offload ordering of the tensor directory.

Tensors are sorted from most to least worth placing in limited VRAM:

1. Foundational tensors (embeddings, output head, final norm).
2. Shared per-block tensors, attention before feed-forward/norms. The MoE
   router ``ffn_gate_inp`` stays here.
3. Expert tensors (MoE models only), each of which serves a fraction of tokens.

Inside a group, cheaper-to-store but costlier-to-dequantize types come first,
then lower block numbers, then the name.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

from loguru import logger

from ggufscope.model_formats.gguf.gguf import GGUFMetadata, GGUFTensorInfo
from ggufscope.model_formats.gguf.gguf_quantization import quantization_rank
from ggufscope.model_formats.gguf.gguf_rules import ARCHITECTURE_KEY, EXPERT_COUNT, arch_key

BLOCK_PREFIX = "blk."

GROUP_FOUNDATIONAL = 1
GROUP_SHARED = 2
GROUP_EXPERT = 3

SUB_ATTENTION = 0
SUB_OTHER = 1

OffloadKey = Tuple[int, int, int, int, str]


def is_moe_model(metadata: GGUFMetadata) -> bool:
    """True when ``{arch}.expert_count`` is a u32 greater than zero."""
    arch = metadata.string_values.get(ARCHITECTURE_KEY)
    if not arch:
        return False
    expert_count = metadata.uint32_values.get(arch_key(EXPERT_COUNT, arch), 0)
    return expert_count > 0


def offload_group(tensor: GGUFTensorInfo, is_moe: bool) -> Tuple[int, int]:
    """(major group, sub group) of a tensor; lower sorts first."""
    name = tensor.name
    if not name.startswith(BLOCK_PREFIX):
        return GROUP_FOUNDATIONAL, 0
    if is_moe and "_exp" in name and "ffn_gate_inp" not in name:
        return GROUP_EXPERT, 0
    if ".attn_" in name:
        return GROUP_SHARED, SUB_ATTENTION
    return GROUP_SHARED, SUB_OTHER


def offload_key(tensor: GGUFTensorInfo, is_moe: bool) -> OffloadKey:
    major, sub = offload_group(tensor, is_moe)
    return (major, sub, quantization_rank(tensor.ggml_type), tensor.block_number, tensor.name)


def order_for_offload(tensors: Iterable[GGUFTensorInfo], is_moe: bool) -> List[GGUFTensorInfo]:
    """Return a new list of ``tensors`` in offload-priority order."""
    return sorted(tensors, key=lambda t: offload_key(t, is_moe))


def tensors_for_offload(metadata: GGUFMetadata) -> List[GGUFTensorInfo]:
    """Offload order for a parsed file, detecting MoE from its metadata."""
    is_moe = is_moe_model(metadata)
    logger.debug(
        "Ordering {n} tensors for offload (MoE={moe})", n=len(metadata.tensors), moe=is_moe
    )
    return order_for_offload(metadata.tensors, is_moe)
