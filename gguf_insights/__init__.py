# gguf_insights/__init__.py
"""
gguf_insights
=============

Pure-Python GGUF metadata parser and resource estimator. Reads the header,
key-value table and tensor descriptors of a local or remote GGUF file without
touching tensor payloads, then projects model and context memory footprints
for CPU/GPU offload configurations.
"""
from __future__ import annotations

from importlib.metadata import version as _pkg_version

from loguru import logger

from gguf_insights.formats.gguf.errors import (
    GGUFError,
    GGUFFormatError,
    GGUFIOError,
    UnknownQuantizationTypeError,
    UnsupportedVersionError,
)
from gguf_insights.formats.gguf.model import GGUFFileInfo, GGUFTensorInfo
from gguf_insights.formats.gguf.parser import parse_metadata, parse_metadata_from, read_metadata
from gguf_insights.insights.insights import GGUFInsights, ResourceRequirements

__all__ = [
    "__version__",
    "GGUFError",
    "GGUFFileInfo",
    "GGUFFormatError",
    "GGUFIOError",
    "GGUFInsights",
    "GGUFTensorInfo",
    "ResourceRequirements",
    "UnknownQuantizationTypeError",
    "UnsupportedVersionError",
    "parse_metadata",
    "parse_metadata_from",
    "read_metadata",
]

# Library code only emits; see gguf_insights.logging.configure_logging
logger.disable(__name__)

try:
    # Read version dynamically from installed package metadata
    __version__: str = _pkg_version("gguf-insights")
except Exception:  # pragma: no cover - fallback for development environments
    __version__ = "0.0.0-dev"
