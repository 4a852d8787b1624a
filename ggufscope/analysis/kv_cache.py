# ggufscope/analysis/kv_cache.py
"""
Per-token KV-cache size estimates.

Both entry points assume 16-bit keys and values:

    KB per token = block_count * kv_heads * per_head_kv_size * 2 / 1024

where ``per_head_kv_size`` is the key length plus the value length of a single
KV head.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Optional, Union

from loguru import logger

from ggufscope.model_formats.gguf.gguf import GGUFConfigError, GGUFMetadata, MetadataTypeError
from ggufscope.model_formats.gguf.gguf_rules import (
    ARCHITECTURE_KEY,
    BLOCK_COUNT,
    EMBEDDING_LENGTH,
    HEAD_COUNT,
    HEAD_COUNT_KV,
    HEAD_DIM,
    KEY_LENGTH,
    VALUE_LENGTH,
    arch_key,
)

DEFAULT_ARCHITECTURE = "llama"
DEFAULT_BLOCK_COUNT = 64
DEFAULT_HEAD_COUNT = 40
DEFAULT_HEAD_COUNT_KV = 8
BYTES_PER_VALUE = 2  # f16


def _kb_per_token(blocks: int, kv_heads: int, kv_size: int) -> int:
    return blocks * kv_heads * kv_size * BYTES_PER_VALUE // 1024


def kv_cache_kb_per_token(metadata: GGUFMetadata) -> int:
    """Estimate KV-cache kilobytes per generated token from GGUF metadata.

    The per-head size is taken from the first of these that resolves:
    ``key_length + value_length``, ``2 * head_dim``, ``2 * embedding_length / head_count``.

    Raises:
        GGUFConfigError: none of the above is available.
    """
    arch = metadata.string_values.get(ARCHITECTURE_KEY) or DEFAULT_ARCHITECTURE

    def get(template: str, default: Optional[int] = None) -> Optional[int]:
        key = arch_key(template, arch)
        try:
            return metadata.get_int(key, default)
        except MetadataTypeError as e:
            # Non-integer kinds count as missing
            logger.debug("Ignoring {key}: {error}", key=key, error=e)
            return default

    blocks = get(BLOCK_COUNT, DEFAULT_BLOCK_COUNT)
    heads = get(HEAD_COUNT, DEFAULT_HEAD_COUNT)
    kv_heads = get(HEAD_COUNT_KV, DEFAULT_HEAD_COUNT_KV)

    kv_size = get(KEY_LENGTH, 0) + get(VALUE_LENGTH, 0)
    source = "key_length + value_length"
    if kv_size == 0:
        kv_size = 2 * get(HEAD_DIM, 0)
        source = "2 * head_dim"
    if kv_size == 0:
        embedding = get(EMBEDDING_LENGTH, 0)
        if embedding > 0 and heads > 0:
            kv_size = 2 * embedding // heads
            source = "2 * embedding_length / head_count"
    if kv_size == 0:
        raise GGUFConfigError(
            f"Cannot determine KV head size for architecture {arch!r}: no key/value length, "
            "head_dim or embedding_length in metadata"
        )

    logger.debug(
        "KV cache for {arch}: blocks={b} kv_heads={kv} kv_size={s} ({src})",
        arch=arch,
        b=blocks,
        kv=kv_heads,
        s=kv_size,
        src=source,
    )
    return _kb_per_token(blocks, kv_heads, kv_size)


def _number(cfg: Mapping[str, Any], key: str) -> Optional[Union[int, float]]:
    value = cfg.get(key)
    # bool is an int subclass but never a dimension
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # json.loads accepts NaN and Infinity
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _per_head_kv_size(cfg: Mapping[str, Any]) -> int:
    nope = _number(cfg, "qk_nope_head_dim")
    rope = _number(cfg, "qk_rope_head_dim")
    if nope is not None and rope is not None:
        return int(nope + 2 * rope)

    head_dim = _number(cfg, "head_dim")
    if head_dim is not None:
        return int(2 * head_dim)

    # Multi-head latent attention: compressed KV + decoupled rope key + value head
    lora = _number(cfg, "kv_lora_rank")
    v_head = _number(cfg, "v_head_dim")
    if lora is not None and rope is not None and v_head is not None:
        return int(lora + rope + v_head)

    d_kv = _number(cfg, "d_kv")
    if d_kv is not None:
        return int(2 * d_kv)

    hidden = _number(cfg, "hidden_size")
    heads = _number(cfg, "num_attention_heads")
    if hidden is not None and heads:
        return int(2 * hidden / heads)

    raise GGUFConfigError("Config does not contain enough information to determine KV head size")


_REQUIRED = ("num_hidden_layers", "num_key_value_heads", "num_attention_heads")


def kv_cache_kb_per_token_from_config(config: Union[str, Mapping[str, Any]]) -> int:
    """Estimate KV-cache kilobytes per token from a Hugging Face style ``config.json``.

    Args:
        config: JSON text or an already-decoded mapping. When the top level lacks
            the layer/head counts but has a ``text_config`` object (multimodal
            models), that object is used.

    Raises:
        GGUFConfigError: empty/invalid JSON, missing required counts, or no way to
            determine the per-head KV size.
    """
    if isinstance(config, str):
        if not config.strip():
            raise GGUFConfigError("Input JSON cannot be empty")
        try:
            config = json.loads(config)
        except json.JSONDecodeError as e:
            raise GGUFConfigError(f"Invalid JSON config: {e}") from e
    if not isinstance(config, Mapping):
        raise GGUFConfigError("Config must be a JSON object")

    cfg: Mapping[str, Any] = config
    text_cfg = config.get("text_config")
    if isinstance(text_cfg, Mapping) and any(_number(config, k) is None for k in _REQUIRED):
        cfg = text_cfg

    counts = [_number(cfg, k) for k in _REQUIRED]
    if any(c is None for c in counts):
        raise GGUFConfigError(
            "Config must contain numeric keys: num_hidden_layers, num_key_value_heads, "
            "num_attention_heads"
        )
    layers, kv_heads, _heads = (int(c) for c in counts)
    return _kb_per_token(layers, kv_heads, _per_head_kv_size(cfg))
