# gguf_insights/reporting/gguf_reporter.py
"""
GGUF-specific console reporting functions.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from rich import box
from rich.console import Console
from rich.table import Table

from gguf_insights.formats.gguf.errors import UnknownQuantizationTypeError
from gguf_insights.formats.gguf.model import GGUFFileInfo
from gguf_insights.formats.gguf.quantization import ggml_type_name
from gguf_insights.insights.insights import GGUFInsights, ResourceRequirements

console = Console()


def format_bytes(n: float) -> str:
    """1536 -> '1.50 KiB'."""
    value = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(value) < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GiB"  # pragma: no cover


def _opt(v) -> str:
    return "-" if v is None else str(v)


def _render_summary(source: str, info: GGUFFileInfo, insights: GGUFInsights) -> None:
    """Render a high-level summary table."""
    t = Table(title="GGUF Summary", box=box.SIMPLE_HEAVY)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    g = info.metadata.general
    t.add_row("Source", source)
    t.add_row("Version", f"v{info.version}")
    t.add_row("Name", _opt(g.name))
    t.add_row("Architecture", _opt(g.architecture))
    t.add_row("KV entries", str(info.kv_count))
    t.add_row("Tensors", str(len(info.tensor_info)))
    t.add_row("Alignment", str(info.alignment))
    t.add_row("Data offset", str(info.data_offset))
    t.add_row("Total layers", str(insights.total_layers))
    try:
        t.add_row("Model size", format_bytes(insights.model_size))
    except UnknownQuantizationTypeError as e:
        t.add_row("Model size", f"[red]{e}[/red]")
    console.print(t)


def _render_architecture(info: GGUFFileInfo) -> None:
    arch = info.architecture_metadata
    t = Table(title="Architecture Metadata", box=box.ROUNDED, title_style="bold magenta")
    t.add_column("Key", style="cyan")
    t.add_column("Value")
    rows: List[Tuple[str, object]] = [
        ("kind", arch.kind.value),
        ("context_length", arch.context_length),
        ("embedding_length", arch.embedding_length),
        ("block_count", arch.block_count),
        ("feed_forward_length", arch.feed_forward_length),
        ("vocab_size", arch.vocab_size),
        ("attention.head_count", arch.attention.head_count),
        ("attention.head_count_kv", arch.attention.head_count_kv),
        ("attention.key_length", arch.attention.key_length),
        ("attention.value_length", arch.attention.value_length),
        ("rope.dimension_count", arch.rope.dimension_count),
        ("ssm.conv_kernel", arch.ssm.conv_kernel),
        ("ssm.inner_size", arch.ssm.inner_size),
        ("ssm.state_size", arch.ssm.state_size),
    ]
    for key, value in rows:
        if value is not None:
            t.add_row(key, str(value))
    for key in sorted(arch.extra):
        t.add_row(f"[dim]{key}[/dim]", "[dim](opaque)[/dim]")
    tokens = info.metadata.tokenizer.tokens
    if tokens is not None:
        t.add_row("tokenizer.tokens", str(len(tokens)))
    console.print(t)


def _render_tensor_table(insights: GGUFInsights) -> None:
    table = Table(title="Tensors", box=box.ROUNDED, show_lines=False, title_style="bold magenta")
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Tensor Name", style="cyan", no_wrap=True)
    table.add_column("GGML Type", justify="left", style="yellow")
    table.add_column("Dimensions", justify="left", style="green")
    table.add_column("Elements", justify="right")
    table.add_column("Layer", justify="right")
    table.add_column("Size", justify="right", style="white")

    for index, ti in enumerate(insights.file_info.tensor_info, start=1):
        try:
            size = format_bytes(insights.tensor_size(ti))
        except UnknownQuantizationTypeError:
            size = "[red]unknown type[/red]"
        table.add_row(
            str(index),
            ti.name,
            ggml_type_name(ti.ggml_type),
            str(list(ti.dimensions)),
            f"{ti.n_elements:,}",
            _opt(ti.layer_number),
            size,
        )
    console.print(table)


def render_estimates(rows: Iterable[Tuple[str, ResourceRequirements]]) -> None:
    table = Table(title="Resource Estimates", box=box.ROUNDED, title_style="bold green")
    table.add_column("Component", style="bold")
    table.add_column("CPU RAM", justify="right")
    table.add_column("GPU VRAM", justify="right")
    table.add_column("Total", justify="right")
    for label, req in rows:
        table.add_row(
            label, format_bytes(req.cpu_ram), format_bytes(req.gpu_vram), format_bytes(req.total)
        )
    console.print(table)


def render_report(
    source: str,
    insights: GGUFInsights,
    *,
    show_tensors: bool = False,
    estimates: Optional[List[Tuple[str, ResourceRequirements]]] = None,
) -> None:
    """Renders the full console report for a parsed GGUF file."""
    info = insights.file_info
    _render_summary(source, info, insights)
    _render_architecture(info)
    if show_tensors:
        _render_tensor_table(insights)
    if estimates:
        render_estimates(estimates)
