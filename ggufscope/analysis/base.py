# ggufscope/analysis/base.py
"""
Inspection report model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ggufscope.model_formats.gguf.gguf import GGUFMetadata, GGUFTensorInfo


@dataclass
class Finding:
    """Single stage result."""

    name: str
    ok: bool
    details: str = ""
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InspectionReport:
    """Everything derived from one file: parsed header, offload order, KV estimate."""

    file_path: str
    file_size: int
    format: str  # "gguf"
    metadata: Optional[GGUFMetadata] = None
    offload_order: List[GGUFTensorInfo] = field(default_factory=list)
    is_moe: bool = False
    kv_cache_kb_per_token: Optional[int] = None
    parse_ms: float = 0.0
    findings: List[Finding] = field(default_factory=list)
    stages_run: List[str] = field(default_factory=list)

    def add(self, name: str, ok: bool, details: str = "", **context: Any) -> None:
        self.findings.append(Finding(name=name, ok=ok, details=details, context=context))

    @property
    def ok(self) -> bool:
        return all(f.ok for f in self.findings) if self.findings else True

    @property
    def parsed(self) -> bool:
        return self.metadata is not None
