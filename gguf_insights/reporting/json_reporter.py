# gguf_insights/reporting/json_reporter.py
"""
JSON reporting utilities.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, Optional

from gguf_insights.formats.gguf.model import GGUFFileInfo
from gguf_insights.insights.insights import ResourceRequirements
from gguf_insights.observability import to_dict

# Long arrays are cut to keep reports readable.
MAX_TOKENIZER_ITEMS = 10
MAX_TENSORS = 4

_TOKENIZER_ARRAYS = ("tokens", "scores", "token_type", "merges")


def _shorten(items, limit: int):
    return None if items is None else tuple(items[:limit])


def simplify_file_info(info: GGUFFileInfo) -> GGUFFileInfo:
    """Copy of ``info`` with tokenizer arrays and the tensor list shortened.

    The raw KV table is dropped; its content is already represented by the
    normalized sections.
    """
    tokenizer = dataclasses.replace(
        info.metadata.tokenizer,
        **{
            name: _shorten(getattr(info.metadata.tokenizer, name), MAX_TOKENIZER_ITEMS)
            for name in _TOKENIZER_ARRAYS
        },
    )
    metadata = dataclasses.replace(info.metadata, tokenizer=tokenizer, raw={})
    return dataclasses.replace(
        info, metadata=metadata, tensor_info=tuple(info.tensor_info[:MAX_TENSORS])
    )


def to_json_dict(
    info: GGUFFileInfo,
    *,
    model: Optional[ResourceRequirements] = None,
    context: Optional[ResourceRequirements] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Convert a parse result (and optional estimates) to a JSON-serializable dict."""
    out: Dict[str, Any] = {"file_info": to_dict(simplify_file_info(info))}
    estimates: Dict[str, Any] = {}
    if model is not None:
        estimates["model"] = to_dict(model)
    if context is not None:
        estimates["context"] = to_dict(context)
    if estimates:
        out["estimates"] = estimates
    if extra:
        out.update(extra)
    return out


def write_json(report: Dict[str, Any], path: str) -> None:
    """Write report to a file as pretty JSON."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)
