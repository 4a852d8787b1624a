"""
Well-known GGUF metadata keys and the kinds they are expected to carry.

Per-architecture keys are written with an ``{arch}`` placeholder that is filled
from ``general.architecture``.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from ggufscope.model_formats.gguf.gguf import GGUFMetadata, GGUFValueType

ARCHITECTURE_KEY = "general.architecture"

BLOCK_COUNT = "{arch}.block_count"
EMBEDDING_LENGTH = "{arch}.embedding_length"
HEAD_COUNT = "{arch}.attention.head_count"
HEAD_COUNT_KV = "{arch}.attention.head_count_kv"
KEY_LENGTH = "{arch}.attention.key_length"
VALUE_LENGTH = "{arch}.attention.value_length"
HEAD_DIM = "{arch}.head_dim"
EXPERT_COUNT = "{arch}.expert_count"

KNOWN_KEYS: Dict[str, GGUFValueType] = {
    # General
    ARCHITECTURE_KEY: GGUFValueType.STRING,
    "general.alignment": GGUFValueType.UINT32,
    "general.quantization_version": GGUFValueType.UINT32,
    "general.file_type": GGUFValueType.UINT32,
    "general.name": GGUFValueType.STRING,
    # Architecture family
    "{arch}.context_length": GGUFValueType.UINT32,
    EMBEDDING_LENGTH: GGUFValueType.UINT32,
    BLOCK_COUNT: GGUFValueType.UINT32,
    "{arch}.feed_forward_length": GGUFValueType.UINT32,
    HEAD_COUNT: GGUFValueType.UINT32,
    HEAD_COUNT_KV: GGUFValueType.UINT32,
    KEY_LENGTH: GGUFValueType.UINT32,
    VALUE_LENGTH: GGUFValueType.UINT32,
    "{arch}.rope.dimension_count": GGUFValueType.UINT32,
    "{arch}.attention.layer_norm_rms_epsilon": GGUFValueType.FLOAT32,
    EXPERT_COUNT: GGUFValueType.UINT32,
    "{arch}.expert_used_count": GGUFValueType.UINT32,
    # Tokenizer
    "tokenizer.ggml.model": GGUFValueType.STRING,
    "tokenizer.ggml.bos_token_id": GGUFValueType.UINT32,
    "tokenizer.ggml.eos_token_id": GGUFValueType.UINT32,
    "tokenizer.chat_template": GGUFValueType.STRING,
}


def arch_key(template: str, arch: str) -> str:
    return template.format(arch=arch)


def expected_kind(key: str, arch: Optional[str]) -> Optional[GGUFValueType]:
    """Kind a well-known key should have, or None if the key is not registered."""
    if key in KNOWN_KEYS:
        return KNOWN_KEYS[key]
    if arch and key.startswith(arch + "."):
        return KNOWN_KEYS.get("{arch}" + key[len(arch) :])
    return None


def kind_mismatches(metadata: GGUFMetadata) -> List[str]:
    """Describe well-known keys stored with an unexpected kind.

    Converters are not always consistent (e.g. counts written as u64), so this is
    informational only and never fails a parse.
    """
    arch = metadata.string_values.get(ARCHITECTURE_KEY)
    out: List[str] = []
    for key, mv in metadata.values.items():
        want = expected_kind(key, arch)
        if want is not None and want != mv.kind:
            out.append(f"{key}: expected {want.name}, found {mv.kind.name}")
    return out
