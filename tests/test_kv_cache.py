"""Tests for per-token KV-cache estimates."""

from __future__ import annotations

import json

import pytest

from conftest import GGUFBuilder
from ggufscope.analysis.kv_cache import (
    kv_cache_kb_per_token,
    kv_cache_kb_per_token_from_config,
)
from ggufscope.model_formats.gguf.gguf import GGUFConfigError
from ggufscope.model_formats.gguf.gguf import GGUFValueType as VT
from ggufscope.model_formats.gguf.gguf_parser import parse_gguf


def _metadata(arch="llama", **u32):
    b = GGUFBuilder()
    if arch is not None:
        b.add_kv("general.architecture", VT.STRING, arch)
    for key, value in u32.items():
        b.add_kv(key.replace("__", "."), VT.UINT32, value)
    return parse_gguf(b.source())


def test_llama_from_embedding_length() -> None:
    md = _metadata(
        llama__block_count=32,
        llama__attention__head_count=32,
        llama__attention__head_count_kv=8,
        llama__embedding_length=4096,
    )
    # 32 * 8 * (2 * 4096 / 32) * 2 / 1024
    assert kv_cache_kb_per_token(md) == 128


def test_explicit_key_and_value_length_win() -> None:
    md = _metadata(
        arch="gemma3",
        gemma3__block_count=10,
        gemma3__attention__head_count_kv=4,
        gemma3__attention__key_length=256,
        gemma3__attention__value_length=128,
        gemma3__head_dim=999,
        gemma3__embedding_length=4096,
    )
    assert kv_cache_kb_per_token(md) == 10 * 4 * 384 * 2 // 1024


def test_head_dim_fallback() -> None:
    md = _metadata(
        arch="qwen3",
        qwen3__block_count=36,
        qwen3__attention__head_count_kv=8,
        qwen3__head_dim=128,
        qwen3__embedding_length=4096,
    )
    assert kv_cache_kb_per_token(md) == 36 * 8 * 256 * 2 // 1024


def test_defaults_apply_when_architecture_and_counts_missing() -> None:
    # llama, 64 blocks, 40 heads, 8 kv heads
    md = _metadata(arch=None, llama__embedding_length=5120)
    assert kv_cache_kb_per_token(md) == 64 * 8 * (2 * 5120 // 40) * 2 // 1024


def test_counts_stored_as_other_integer_widths_are_accepted() -> None:
    b = GGUFBuilder()
    b.add_kv("general.architecture", VT.STRING, "llama")
    b.add_kv("llama.block_count", VT.UINT64, 32)
    b.add_kv("llama.attention.head_count", VT.INT32, 32)
    b.add_kv("llama.attention.head_count_kv", VT.UINT32, 8)
    b.add_kv("llama.embedding_length", VT.UINT32, 4096)
    assert kv_cache_kb_per_token(parse_gguf(b.source())) == 128


def test_insufficient_metadata_raises() -> None:
    md = _metadata(llama__block_count=32)
    with pytest.raises(GGUFConfigError):
        kv_cache_kb_per_token(md)


LLAMA_CONFIG = {
    "num_hidden_layers": 32,
    "num_key_value_heads": 8,
    "num_attention_heads": 32,
    "hidden_size": 4096,
}


def test_config_hidden_size_fallback() -> None:
    assert kv_cache_kb_per_token_from_config(json.dumps(LLAMA_CONFIG)) == 128
    assert kv_cache_kb_per_token_from_config(LLAMA_CONFIG) == 128


def test_config_head_dim_beats_hidden_size() -> None:
    cfg = dict(LLAMA_CONFIG, head_dim=64)
    assert kv_cache_kb_per_token_from_config(cfg) == 32 * 8 * 128 * 2 // 1024


def test_config_nope_rope_variant() -> None:
    cfg = {
        "num_hidden_layers": 61,
        "num_key_value_heads": 128,
        "num_attention_heads": 128,
        "qk_nope_head_dim": 128,
        "qk_rope_head_dim": 64,
        "kv_lora_rank": 512,
        "v_head_dim": 128,
        "head_dim": 1,
    }
    assert kv_cache_kb_per_token_from_config(cfg) == 61 * 128 * 256 * 2 // 1024


def test_config_latent_attention_variant() -> None:
    cfg = {
        "num_hidden_layers": 27,
        "num_key_value_heads": 16,
        "num_attention_heads": 16,
        "kv_lora_rank": 512,
        "qk_rope_head_dim": 64,
        "v_head_dim": 128,
        "hidden_size": 2048,
    }
    assert kv_cache_kb_per_token_from_config(cfg) == 27 * 16 * 704 * 2 // 1024


def test_config_d_kv_variant() -> None:
    cfg = {"num_hidden_layers": 24, "num_key_value_heads": 16, "num_attention_heads": 16, "d_kv": 64}
    assert kv_cache_kb_per_token_from_config(cfg) == 24 * 16 * 128 * 2 // 1024


def test_config_uses_text_config_for_multimodal_models() -> None:
    cfg = {"architectures": ["LlavaForConditionalGeneration"], "text_config": LLAMA_CONFIG}
    assert kv_cache_kb_per_token_from_config(cfg) == 128


@pytest.mark.parametrize(
    "config",
    [
        "",
        "   ",
        "{not json",
        "[1, 2]",
        json.dumps({"num_hidden_layers": 32, "num_attention_heads": 32}),
        json.dumps({"num_hidden_layers": 32, "num_key_value_heads": 8, "num_attention_heads": 32}),
        json.dumps(dict(LLAMA_CONFIG, num_hidden_layers="32")),
        '{"num_hidden_layers": NaN, "num_key_value_heads": 8, "num_attention_heads": 32, "hidden_size": 4096}',
        '{"num_hidden_layers": 32, "num_key_value_heads": 8, "num_attention_heads": 32, "hidden_size": Infinity}',
    ],
)
def test_config_errors(config: str) -> None:
    with pytest.raises(GGUFConfigError):
        kv_cache_kb_per_token_from_config(config)


def test_non_integer_count_falls_back_to_default() -> None:
    b = GGUFBuilder()
    b.add_kv("general.architecture", VT.STRING, "llama")
    b.add_kv("llama.block_count", VT.FLOAT32, 32.0)
    b.add_kv("llama.attention.head_count", VT.STRING, "32")
    b.add_kv("llama.attention.head_count_kv", VT.UINT32, 8)
    b.add_kv("llama.embedding_length", VT.UINT32, 5120)
    # block_count -> 64, head_count -> 40
    assert kv_cache_kb_per_token(parse_gguf(b.source())) == 64 * 8 * (2 * 5120 // 40) * 2 // 1024
