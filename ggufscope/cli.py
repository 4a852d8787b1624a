# ggufscope/cli.py
"""
cli.py

Rich console CLI:
- dump:     parse one or more .gguf files and print metadata, tensors in
            GPU-offload order and the per-token KV-cache estimate.
- kv-cache: estimate the per-token KV cache from a Hugging Face config.json.
- version:  show the package version.
"""
from __future__ import annotations

import argparse
import os
from typing import List, Optional

from loguru import logger
from rich.console import Console
from rich.panel import Panel

from ggufscope import __version__
from ggufscope.analysis.analyzer import AVAILABLE_STAGES, GGUFAnalyzer
from ggufscope.analysis.base import InspectionReport
from ggufscope.analysis.kv_cache import kv_cache_kb_per_token_from_config
from ggufscope.logging import configure_logging
from ggufscope.model_formats.gguf.gguf import GGUFConfigError
from ggufscope.reporting import console as console_reporter
from ggufscope.reporting.json_reporter import write_json

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ggufscope",
        description="GGUF metadata inspection: offload order and KV-cache estimates.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    sub = p.add_subparsers(dest="cmd", title="Available Commands", metavar="<command>")

    sp_dump = sub.add_parser("dump", help="Dump metadata of one or more .gguf files")
    sp_dump.add_argument("paths", nargs="+", metavar="path", help="Path(s) to .gguf files")
    sp_dump.add_argument("--debug", action="store_true", help="Enable debug logging")
    sp_dump.add_argument(
        "--json-out", type=str, default=None, help="Write JSON report to this path"
    )
    sp_dump.add_argument(
        "--no-tensors", action="store_true", help="Do not print the tensor offload table"
    )
    sp_dump.add_argument(
        "--stage",
        nargs="+",
        choices=AVAILABLE_STAGES,
        metavar="STAGE",
        help=(
            f"Run only specific derived stages. Defaults to all stages if not provided.\n"
            f"Available stages: {', '.join(AVAILABLE_STAGES)}."
        ),
    )

    sp_kv = sub.add_parser("kv-cache", help="Estimate KV cache per token from a config.json")
    sp_kv.add_argument("config", help="Path to a Hugging Face style config.json")
    sp_kv.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub.add_parser("version", help="Show the version of ggufscope")

    return p


def _dump(args: argparse.Namespace) -> int:
    reports: List[InspectionReport] = []
    failed = 0
    for path in args.paths:
        if not os.path.exists(path):
            console.print(f"[red]File not found:[/red] {path}")
            failed += 1
            continue

        rep = GGUFAnalyzer(path).run(stages=args.stage)
        reports.append(rep)
        console.print(
            Panel(
                f"[bold]{path}:[/bold] {'[green]OK[/green]' if rep.ok else '[red]FAILED[/red]'}",
                style="bold cyan",
            )
        )
        console_reporter.render_report(rep, show_tensors=not args.no_tensors)
        if not rep.parsed:
            failed += 1

    if args.json_out:
        write_json(reports, args.json_out)
        console.print(f"[dim]Wrote JSON report → {args.json_out}[/dim]")

    return 1 if failed else 0


def _kv_cache(args: argparse.Namespace) -> int:
    try:
        with open(args.config, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Cannot read config:[/red] {args.config}: {e}")
        return 2
    try:
        kb = kv_cache_kb_per_token_from_config(text)
    except GGUFConfigError as e:
        logger.error("KV-cache estimate failed for {path}: {error}", path=args.config, error=e)
        console.print(f"[red]{args.config}:[/red] {e}")
        return 1
    console.print(f"KV cache usage per token: {kb} KB")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "version":
        console.print(f"ggufscope version {__version__}")
        return 0

    if args.cmd == "dump":
        configure_logging(debug=args.debug)
        return _dump(args)

    if args.cmd == "kv-cache":
        configure_logging(debug=args.debug)
        return _kv_cache(args)

    parser.print_help()
    return 1
