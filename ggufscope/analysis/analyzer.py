# ggufscope/analysis/analyzer.py
"""
Per-file pipeline: parse the GGUF header, then derive the offload order and the
KV-cache estimate from the finished metadata.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from loguru import logger

from ggufscope.analysis.base import InspectionReport
from ggufscope.analysis.kv_cache import kv_cache_kb_per_token
from ggufscope.analysis.offload import is_moe_model, order_for_offload
from ggufscope.io.file_reader import LocalFileSource
from ggufscope.model_formats.gguf.gguf import GGUFError
from ggufscope.model_formats.gguf.gguf_parser import parse_gguf
from ggufscope.observability import Timer

AVAILABLE_STAGES: List[str] = ["offload", "kv_cache"]


class GGUFAnalyzer:
    """Runs the parse and the derived-metadata stages for a single file."""

    def __init__(self, path: str, *, yield_point: Optional[Callable[[], None]] = None):
        self.path = path
        self.src = LocalFileSource(path)
        self.yield_point = yield_point

    def get_format_name(self) -> str:
        return "gguf"

    def run(self, stages: Optional[Sequence[str]] = None) -> InspectionReport:
        """
        Parse the file and run the requested stages.

        Parse errors are recorded on the report (``ok`` becomes False and
        ``metadata`` stays None); they are not raised, so a caller can move on
        to the next file of a batch.

        Args:
            stages: Subset of :data:`AVAILABLE_STAGES`; defaults to all of them.
        """
        stages = list(stages) if stages is not None else list(AVAILABLE_STAGES)
        report = InspectionReport(file_path=self.path, file_size=0, format=self.get_format_name())
        try:
            with self.src.open() as fh:
                report.file_size = fh.size
                with Timer("parse") as t_parse:
                    metadata = parse_gguf(fh, yield_point=self.yield_point)
                report.parse_ms = t_parse.duration_ms
        except (GGUFError, OSError) as e:
            logger.error("Failed to parse {path}: {error}", path=self.path, error=e)
            report.add("parse", False, f"{type(e).__name__}: {e}")
            return report

        report.metadata = metadata
        report.add(
            "parse",
            True,
            f"GGUF v{metadata.version}",
            kv_count=metadata.kv_count,
            tensor_count=metadata.tensor_count,
        )

        if "offload" in stages:
            report.is_moe = is_moe_model(metadata)
            report.offload_order = order_for_offload(metadata.tensors, report.is_moe)
            report.stages_run.append("offload")

        if "kv_cache" in stages:
            try:
                report.kv_cache_kb_per_token = kv_cache_kb_per_token(metadata)
                report.add("kv_cache", True, f"{report.kv_cache_kb_per_token} KB/token")
            except GGUFError as e:
                logger.warning("No KV-cache estimate for {path}: {error}", path=self.path, error=e)
                report.add("kv_cache", False, str(e))
            report.stages_run.append("kv_cache")

        logger.debug("Analysis of {path} finished", path=self.path)
        return report
