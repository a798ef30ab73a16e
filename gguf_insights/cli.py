# gguf_insights/cli.py
"""
cli.py

Rich console CLI:
- inspect: parse a local or remote .gguf file, print metadata and
           CPU/GPU memory estimates.
- version: show the package version.
"""
from __future__ import annotations

import argparse
import os
from typing import Dict, List, Optional, Tuple

from loguru import logger
from rich.console import Console
from rich.panel import Panel

from gguf_insights import __version__
from gguf_insights.config import ReaderSettings
from gguf_insights.formats.gguf.errors import GGUFError
from gguf_insights.formats.gguf.parser import read_metadata
from gguf_insights.insights.insights import GGUFInsights, ResourceRequirements
from gguf_insights.io.sources import is_url
from gguf_insights.logging import configure_logging
from gguf_insights.reporting import gguf_reporter
from gguf_insights.reporting.json_reporter import to_json_dict, write_json

console = Console()


def _parse_header(value: str) -> Tuple[str, str]:
    name, sep, content = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected 'Name: value', got {value!r}")
    return name.strip(), content.strip()


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gguf-insights",
        description="GGUF metadata inspection and CPU/GPU memory estimation.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    sub = p.add_subparsers(dest="cmd", title="Available Commands", metavar="<command>")

    sp = sub.add_parser("inspect", help="Inspect a local or remote .gguf file")
    sp.add_argument("path", help="Path or http(s) URL of a .gguf file")
    sp.add_argument("--debug", action="store_true", help="Enable debug logging")
    sp.add_argument("--json-out", type=str, default=None, help="Write JSON report to this path")
    sp.add_argument("--tensors", action="store_true", help="List every tensor with its size")
    sp.add_argument(
        "--gpu-layers",
        type=int,
        default=None,
        help="Layers offloaded to the GPU. Defaults to all layers.",
    )
    sp.add_argument(
        "--context-size",
        type=int,
        default=None,
        help="Context size for the context estimate.\nDefaults to the model's context_length.",
    )
    sp.add_argument("--batch-size", type=int, default=512, help="Batch size (default: 512)")
    sp.add_argument("--sequences", type=int, default=1, help="Parallel sequences (default: 1)")
    sp.add_argument("--embedding", action="store_true", help="Estimate an embedding context")
    sp.add_argument(
        "--no-graph-overhead",
        action="store_true",
        help="Leave the compute-graph heuristic out of the context estimate",
    )
    sp.add_argument(
        "--retries", type=int, default=3, help="Retries for remote range requests (default: 3)"
    )
    sp.add_argument(
        "--header",
        type=_parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Extra HTTP header for remote files; may be repeated",
    )

    sub.add_parser("version", help="Show the version of gguf-insights")

    return p


def _run_inspect(args: argparse.Namespace) -> int:
    configure_logging(debug=args.debug)
    path = args.path
    if not is_url(path, raise_on_invalid=False) and not os.path.exists(path):
        console.print(f"[red]File not found:[/red] {path}")
        return 2

    headers: Dict[str, str] = dict(args.header)
    settings = ReaderSettings(retries=args.retries, headers=headers)
    try:
        info = read_metadata(path, settings=settings)
    except GGUFError as e:
        logger.debug("Parse of {path} failed", path=path)
        console.print(
            Panel(f"[bold]Result:[/bold] [red]FAILED[/red] ({type(e).__name__}: {e})", style="bold red")
        )
        return 1

    insights = GGUFInsights.from_file_info(info)
    estimates: List[Tuple[str, ResourceRequirements]] = []
    model_req: Optional[ResourceRequirements] = None
    context_req: Optional[ResourceRequirements] = None
    gpu_layers = insights.total_layers if args.gpu_layers is None else args.gpu_layers
    context_size = args.context_size or info.architecture_metadata.context_length or 4096
    try:
        model_req = insights.estimate_model_resource_requirements(gpu_layers=gpu_layers)
        estimates.append((f"Model weights ({gpu_layers} GPU layers)", model_req))
    except GGUFError as e:
        console.print(f"[red]Cannot size model weights:[/red] {e}")
    context_req = insights.estimate_context_resource_requirements(
        context_size=context_size,
        batch_size=args.batch_size,
        model_gpu_layers=gpu_layers,
        sequences=args.sequences,
        is_embedding_context=args.embedding,
        include_graph_overhead=not args.no_graph_overhead,
    )
    estimates.append((f"Context ({context_size} tokens)", context_req))
    if model_req is not None:
        estimates.append(
            (
                "Total",
                ResourceRequirements(
                    cpu_ram=model_req.cpu_ram + context_req.cpu_ram,
                    gpu_vram=model_req.gpu_vram + context_req.gpu_vram,
                ),
            )
        )

    console.print(Panel("[bold]Result:[/bold] [green]OK[/green]", style="bold cyan"))
    gguf_reporter.render_report(path, insights, show_tensors=args.tensors, estimates=estimates)

    if args.json_out:
        report = to_json_dict(
            info,
            model=model_req,
            context=context_req,
            extra={
                "source": path,
                "total_layers": insights.total_layers,
                "parameters": {
                    "gpu_layers": gpu_layers,
                    "context_size": context_size,
                    "batch_size": args.batch_size,
                    "sequences": args.sequences,
                    "embedding": args.embedding,
                },
            },
        )
        write_json(report, args.json_out)
        console.print(f"[dim]Wrote JSON report → {args.json_out}[/dim]")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "version":
        console.print(f"gguf-insights version {__version__}")
        return 0

    if args.cmd == "inspect":
        return _run_inspect(args)

    parser.print_help()
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
