# gguf_insights/io/sources.py
"""
Pick a byte source for a path or URL.
"""
from __future__ import annotations

import os
from typing import Optional
from urllib.parse import urlparse

from gguf_insights.config import ReaderSettings
from gguf_insights.io.byte_source import ByteSource
from gguf_insights.io.file_reader import LocalFileSource
from gguf_insights.io.remote_reader import RemoteFileSource


def is_url(text: str, *, raise_on_invalid: bool = True) -> bool:
    """True for well-formed http(s) URLs.

    Strings with an http(s) scheme but no host are rejected with ValueError,
    or reported as non-URLs when ``raise_on_invalid`` is False.
    """
    if not (text.startswith("http://") or text.startswith("https://")):
        return False
    try:
        parsed = urlparse(text)
        if not parsed.netloc or not parsed.hostname:
            raise ValueError("missing host")
    except ValueError as e:
        if raise_on_invalid:
            raise ValueError(f"Invalid URL: {text}") from e
        return False
    return True


def open_source(
    path_or_url: str | os.PathLike[str], *, settings: Optional[ReaderSettings] = None
) -> ByteSource:
    """Return an unopened byte source for a local path or a remote URL."""
    if isinstance(path_or_url, str) and is_url(path_or_url):
        return RemoteFileSource(path_or_url, settings=settings)
    return LocalFileSource(path_or_url)
