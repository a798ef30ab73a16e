# gguf_insights/formats/gguf/errors.py
"""
GGUF exception hierarchy.

Decode failures are never recovered inside the library; they propagate to the
caller so that no partially populated file info can escape.
"""

from __future__ import annotations


class GGUFError(Exception):
    """Base class for every error raised by gguf_insights."""


class GGUFFormatError(GGUFError):
    """Raised when a GGUF file is malformed (bad magic, bad tables, bad lengths)."""


class UnsupportedVersionError(GGUFError):
    """Raised when the header carries a version this parser does not understand."""

    def __init__(self, version: int, message: str | None = None):
        self.version = version
        super().__init__(message or f"Unsupported GGUF version {version}")


class GGUFIOError(GGUFError, OSError):
    """Raised on short reads, end of stream, or exhausted transport retries."""


class UnknownQuantizationTypeError(GGUFError):
    """Raised when a tensor's ggml type has no known type/block size."""

    def __init__(self, ggml_type: int):
        self.ggml_type = ggml_type
        super().__init__(f"Unknown ggml type {ggml_type}: no type or block size available")
