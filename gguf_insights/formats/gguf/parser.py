# gguf_insights/formats/gguf/parser.py
"""
Public GGUF metadata entry points: decode + normalize.
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional

from loguru import logger

from gguf_insights.config import ReaderSettings
from gguf_insights.formats.gguf.decoder import decode_gguf
from gguf_insights.formats.gguf.model import GGUFFileInfo
from gguf_insights.formats.gguf.normalizer import normalize
from gguf_insights.io.byte_source import ByteSource
from gguf_insights.io.sources import open_source
from gguf_insights.observability import Timer


async def parse_metadata(
    source: ByteSource, *, settings: Optional[ReaderSettings] = None
) -> GGUFFileInfo:
    """Parse GGUF metadata from a byte source.

    The source is opened for the duration of the call and closed afterwards,
    whether parsing succeeds, fails or is cancelled.

    Raises:
        GGUFFormatError: malformed header or tables.
        UnsupportedVersionError: unknown GGUF version.
        GGUFIOError: short read or transport failure.
    """
    with Timer("parse_metadata") as t:
        async with source:
            raw = await decode_gguf(source, settings)
        info = normalize(raw)

    logger.debug(
        "Parsed {src}: GGUF v{version}, arch={arch}, {n_kv} KV, {n_tensors} tensors in {ms:.2f}ms",
        src=source.description,
        version=info.version,
        arch=info.metadata.general.architecture,
        n_kv=info.kv_count,
        n_tensors=len(info.tensor_info),
        ms=t.duration_ms,
    )
    return info


async def parse_metadata_from(
    path_or_url: str | os.PathLike[str], *, settings: Optional[ReaderSettings] = None
) -> GGUFFileInfo:
    """Parse GGUF metadata from a local path or an http(s) URL."""
    return await parse_metadata(open_source(path_or_url, settings=settings), settings=settings)


def read_metadata(
    path_or_url: str | os.PathLike[str], *, settings: Optional[ReaderSettings] = None
) -> GGUFFileInfo:
    """Synchronous wrapper around :func:`parse_metadata_from`."""
    return asyncio.run(parse_metadata_from(path_or_url, settings=settings))
