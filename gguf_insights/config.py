# gguf_insights/config.py
"""
Reader configuration shared by the byte sources and the decoder.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

KiB = 1024
MiB = 1024 * KiB


@dataclass(frozen=True)
class ReaderSettings:
    """Tunables for reading GGUF headers from local or remote sources.

    Attributes:
        chunk_size: Read-ahead size of the decoder's buffered cursor.
        max_dims: Maximum tensor rank accepted in descriptors (GGML_MAX_DIMS).
        max_name_length: Upper bound on key and tensor-name lengths.
        max_string_length: Upper bound on string values.
        max_array_length: Upper bound on array element counts.
        max_tensor_count: Upper bound on the header tensor count.
        max_kv_count: Upper bound on the header key-value count.
        http_timeout: Per-request timeout (seconds) for remote sources.
        retries: Retries on transient transport failures.
        retry_backoff: Base delay (seconds); doubles on every retry.
        headers: Extra HTTP headers sent with every remote request.
    """

    chunk_size: int = 256 * KiB
    max_dims: int = 4
    max_name_length: int = 16 * MiB
    max_string_length: int = 1024 * MiB
    max_array_length: int = 1 << 28
    max_tensor_count: int = 1 << 24
    max_kv_count: int = 1 << 24
    http_timeout: float = 30.0
    retries: int = 3
    retry_backoff: float = 0.5
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
