"""End-to-end tests for the command line and the per-file pipeline."""

from __future__ import annotations

import json

import pytest

from conftest import GGUFBuilder, llama_tensors
from ggufscope import cli
from ggufscope.analysis.analyzer import GGUFAnalyzer
from ggufscope.model_formats.gguf.gguf import GGUFValueType as VT


def _write_llama(path) -> None:
    b = GGUFBuilder()
    b.add_kv("general.architecture", VT.STRING, "llama")
    b.add_kv("llama.block_count", VT.UINT32, 32)
    b.add_kv("llama.attention.head_count", VT.UINT32, 32)
    b.add_kv("llama.attention.head_count_kv", VT.UINT32, 8)
    b.add_kv("llama.embedding_length", VT.UINT32, 4096)
    b.add_array("tokenizer.ggml.tokens", VT.STRING, ["<s>", "</s>"])
    path.write_bytes(llama_tensors(b).build())


def test_analyzer_produces_all_outputs(tmp_path) -> None:
    p = tmp_path / "llama.gguf"
    _write_llama(p)
    rep = GGUFAnalyzer(str(p)).run()
    assert rep.ok
    assert rep.metadata is not None
    assert rep.kv_cache_kb_per_token == 128
    assert rep.offload_order[0].name == "token_embd.weight"
    assert not rep.is_moe
    assert rep.stages_run == ["offload", "kv_cache"]


def test_analyzer_records_parse_failure_without_partial_model(tmp_path) -> None:
    p = tmp_path / "broken.gguf"
    p.write_bytes(GGUFBuilder(version=2).build())
    rep = GGUFAnalyzer(str(p)).run()
    assert not rep.ok
    assert rep.metadata is None
    assert rep.offload_order == []
    assert "GGUFFormatError" in rep.findings[0].details


def test_analyzer_keeps_model_when_only_kv_estimate_fails(tmp_path) -> None:
    p = tmp_path / "bare.gguf"
    p.write_bytes(llama_tensors(GGUFBuilder()).build())
    rep = GGUFAnalyzer(str(p)).run()
    assert rep.metadata is not None
    assert rep.kv_cache_kb_per_token is None
    assert not rep.ok


def test_dump_command_with_json_out(tmp_path, capsys) -> None:
    p = tmp_path / "llama.gguf"
    _write_llama(p)
    out = tmp_path / "report.json"
    assert cli.main(["dump", str(p), "--json-out", str(out)]) == 0

    printed = capsys.readouterr().out
    assert "token_embd.weight" in printed
    assert "128 KB" in printed
    assert "131,072,000" in printed

    data = json.loads(out.read_text(encoding="utf-8"))
    assert len(data) == 1
    assert data[0]["ok"] is True
    assert data[0]["kv_cache_kb_per_token"] == 128
    assert data[0]["metadata"]["values"]["llama.block_count"] == {"kind": "UINT32", "value": 32}
    assert "tokenizer.ggml.tokens" not in data[0]["metadata"]["values"]
    assert data[0]["offload_order"][0]["ggml_type"] == "Q4_K"


def test_dump_continues_after_a_bad_file(tmp_path, capsys) -> None:
    bad = tmp_path / "bad.gguf"
    bad.write_bytes(b"NOPE" + b"\x00" * 20)
    good = tmp_path / "good.gguf"
    _write_llama(good)
    assert cli.main(["dump", str(bad), str(good), "--no-tensors"]) == 1
    printed = capsys.readouterr().out
    assert "bad.gguf" in printed
    assert "good.gguf" in printed


def test_dump_continues_past_unreadable_paths(tmp_path, capsys) -> None:
    folder = tmp_path / "not_a_file.gguf"
    folder.mkdir()
    good = tmp_path / "good.gguf"
    _write_llama(good)
    out = tmp_path / "report.json"
    assert cli.main(["dump", str(folder), str(good), "--json-out", str(out)]) == 1

    data = json.loads(out.read_text(encoding="utf-8"))
    assert [d["ok"] for d in data] == [False, True]
    assert data[0]["metadata"] is None
    assert data[1]["kv_cache_kb_per_token"] == 128


def test_analyzer_records_os_error(tmp_path) -> None:
    rep = GGUFAnalyzer(str(tmp_path)).run()
    assert not rep.ok
    assert rep.metadata is None
    assert rep.findings[0].name == "parse"


def test_dump_missing_file(tmp_path) -> None:
    assert cli.main(["dump", str(tmp_path / "missing.gguf")]) == 1


def test_kv_cache_command(tmp_path, capsys) -> None:
    cfg = tmp_path / "config.json"
    cfg.write_text(
        json.dumps(
            {
                "num_hidden_layers": 32,
                "num_key_value_heads": 8,
                "num_attention_heads": 32,
                "hidden_size": 4096,
            }
        ),
        encoding="utf-8",
    )
    assert cli.main(["kv-cache", str(cfg)]) == 0
    assert "128 KB" in capsys.readouterr().out


def test_kv_cache_command_reports_bad_config(tmp_path) -> None:
    cfg = tmp_path / "config.json"
    cfg.write_text("{}", encoding="utf-8")
    assert cli.main(["kv-cache", str(cfg)]) == 1


def test_kv_cache_command_rejects_non_utf8_config(tmp_path) -> None:
    cfg = tmp_path / "config.json"
    cfg.write_bytes(b"\xff\xfe{\x00}")
    assert cli.main(["kv-cache", str(cfg)]) == 2


def test_version_command(capsys) -> None:
    assert cli.main(["version"]) == 0
    assert "ggufscope version" in capsys.readouterr().out


def test_no_command_prints_help() -> None:
    assert cli.main([]) == 1


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch):
    # Keep rich from wrapping long tensor names in captured output.
    from ggufscope.reporting import console as console_reporter

    monkeypatch.setattr(console_reporter.console, "width", 200, raising=False)
    monkeypatch.setattr(cli.console, "width", 200, raising=False)
