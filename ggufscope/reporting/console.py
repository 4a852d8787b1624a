# ggufscope/reporting/console.py
"""
Console reporting functions for inspection results.
"""
from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from ggufscope.analysis.base import InspectionReport
from ggufscope.analysis.offload import offload_group
from ggufscope.model_formats.gguf.gguf import SCALAR_TYPES, GGUFMetadata
from ggufscope.model_formats.gguf.gguf_quantization import quantization_rank

console = Console()

GROUP_LABELS = {1: "foundational", 2: "shared", 3: "expert"}


def _render_summary(rep: InspectionReport) -> None:
    """Render a high-level summary table."""
    t = Table(title="GGUF Summary", box=box.SIMPLE_HEAVY)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Path", rep.file_path)
    t.add_row("Size (bytes)", str(rep.file_size))
    t.add_row("Format", rep.format)
    md = rep.metadata
    if md is not None:
        t.add_row("Version", f"v{md.version}")
        t.add_row("Metadata entries", f"{md.kv_count} ({len(md)} scalar)")
        t.add_row("Tensors", str(md.tensor_count))
        t.add_row("Architecture", md.architecture or "N/A")
        t.add_row("Parse time", f"{rep.parse_ms:.2f} ms")
    if "offload" in rep.stages_run:
        t.add_row("Mixture of experts", "yes" if rep.is_moe else "no")
    if rep.kv_cache_kb_per_token is not None:
        t.add_row("KV cache per token", f"{rep.kv_cache_kb_per_token} KB")
    console.print(t)


def _render_metadata_table(md: GGUFMetadata) -> None:
    """One row per scalar key, grouped by declared kind."""
    table = Table(title="Metadata", box=box.ROUNDED, title_style="bold magenta")
    table.add_column("Kind", style="yellow")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for kind in SCALAR_TYPES:
        for key, value in md.values_of(kind).items():
            value_str = str(value)
            # Truncate long strings (chat templates) to keep the table clean
            if len(value_str) > 70:
                value_str = value_str[:67] + "..."
            table.add_row(kind.name, key, value_str)
    console.print(table)


def _render_offload_table(rep: InspectionReport) -> None:
    table = Table(
        title="Tensors in GPU-offload priority order", box=box.ROUNDED, title_style="bold magenta"
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Tensor Name", style="cyan", no_wrap=True)
    table.add_column("Group", style="white")
    table.add_column("GGML Type", style="yellow")
    table.add_column("Rank", justify="right")
    table.add_column("Dimensions", style="green")
    table.add_column("Elements", justify="right")
    for index, ti in enumerate(rep.offload_order, start=1):
        major, _ = offload_group(ti, rep.is_moe)
        table.add_row(
            str(index),
            ti.name,
            GROUP_LABELS[major],
            ti.type_name,
            str(quantization_rank(ti.ggml_type)),
            "[" + ", ".join(str(d) for d in ti.dims) + "]",
            f"{ti.n_elements:,}",
        )
    console.print(table)


def render_error(rep: InspectionReport) -> None:
    for f in rep.findings:
        if not f.ok:
            console.print(f"[bold red]{rep.file_path}[/bold red]: {f.name}: {f.details}")


def render_report(rep: InspectionReport, *, show_tensors: bool = True) -> None:
    """Renders the console report for one file."""
    _render_summary(rep)
    if rep.metadata is not None:
        _render_metadata_table(rep.metadata)
    if show_tensors and rep.offload_order:
        _render_offload_table(rep)
    render_error(rep)
