# ggufscope/reporting/json_reporter.py
"""
JSON reporting utilities.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from ggufscope.analysis.base import InspectionReport
from ggufscope.observability import to_dict


def to_json_dict(report: InspectionReport) -> Dict[str, Any]:
    """Convert an InspectionReport to a JSON-serializable dict."""
    d = to_dict(report)
    d["ok"] = report.ok
    return d


def write_json(reports: List[InspectionReport], path: str) -> None:
    """Write reports to a file as pretty JSON (a list, one entry per file)."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump([to_json_dict(r) for r in reports], f, indent=2)
