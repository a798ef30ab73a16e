"""
Pytest configuration and shared fixtures.

Provides a byte-exact GGUF writer for synthetic files so the parser and the
estimates can be tested without real model downloads.
"""

import struct
from typing import Any, List, Optional, Sequence, Tuple

import pytest

from gguf_insights.formats.gguf.values import SCALAR_FORMATS, GGUFValueType


class GGUFBuilder:
    """Serializes a GGUF header (KV table + tensor descriptors), little-endian."""

    def __init__(self, version: int = 3):
        self.version = version
        self.kv: List[Tuple[str, GGUFValueType, Any, Optional[GGUFValueType]]] = []
        self.tensors: List[Tuple[str, Sequence[int], int, int]] = []

    @property
    def _size_fmt(self) -> str:
        return "<I" if self.version == 1 else "<Q"

    def add(self, key: str, kind: GGUFValueType, value: Any) -> "GGUFBuilder":
        self.kv.append((key, kind, value, None))
        return self

    def add_array(self, key: str, element_kind: GGUFValueType, values: Sequence[Any]) -> "GGUFBuilder":
        self.kv.append((key, GGUFValueType.ARRAY, list(values), element_kind))
        return self

    def add_tensor(
        self, name: str, dims: Sequence[int], ggml_type: int = 0, offset: int = 0
    ) -> "GGUFBuilder":
        self.tensors.append((name, list(dims), ggml_type, offset))
        return self

    def _size(self, n: int) -> bytes:
        return struct.pack(self._size_fmt, n)

    def _string(self, s: str) -> bytes:
        raw = s.encode("utf-8")
        return self._size(len(raw)) + raw

    def _scalar(self, kind: GGUFValueType, value: Any) -> bytes:
        if kind == GGUFValueType.STRING:
            return self._string(value)
        fmt, _ = SCALAR_FORMATS[kind]
        return struct.pack(fmt, int(value) if kind == GGUFValueType.BOOL else value)

    def build(self, magic: bytes = b"GGUF") -> bytes:
        out = bytearray(magic)
        out += struct.pack("<I", self.version)
        out += self._size(len(self.tensors))
        out += self._size(len(self.kv))
        for key, kind, value, element_kind in self.kv:
            out += self._string(key)
            out += struct.pack("<I", kind)
            if kind == GGUFValueType.ARRAY:
                out += struct.pack("<I", element_kind)
                out += self._size(len(value))
                for item in value:
                    out += self._scalar(element_kind, item)
            else:
                out += self._scalar(kind, value)
        for name, dims, ggml_type, offset in self.tensors:
            out += self._string(name)
            out += struct.pack("<I", len(dims))
            for d in dims:
                out += self._size(d)
            out += struct.pack("<I", ggml_type)
            out += struct.pack("<Q", offset)
        return bytes(out)


@pytest.fixture
def gguf_builder():
    """Factory for GGUFBuilder instances."""
    return GGUFBuilder


@pytest.fixture
def llama_builder():
    """A small llama-style model: 3 blocks, F32 weights, 8-token vocabulary."""
    b = GGUFBuilder()
    b.add("general.architecture", GGUFValueType.STRING, "llama")
    b.add("general.name", GGUFValueType.STRING, "tiny-llama")
    b.add("llama.context_length", GGUFValueType.UINT32, 2048)
    b.add("llama.embedding_length", GGUFValueType.UINT32, 64)
    b.add("llama.block_count", GGUFValueType.UINT32, 3)
    b.add("llama.feed_forward_length", GGUFValueType.UINT32, 128)
    b.add("llama.attention.head_count", GGUFValueType.UINT32, 8)
    b.add("llama.attention.head_count_kv", GGUFValueType.UINT32, 2)
    b.add("tokenizer.ggml.model", GGUFValueType.STRING, "llama")
    b.add_array("tokenizer.ggml.tokens", GGUFValueType.STRING, [f"t{i}" for i in range(8)])
    b.add_array("tokenizer.ggml.scores", GGUFValueType.FLOAT32, [0.0] * 8)
    b.add_array("tokenizer.ggml.token_type", GGUFValueType.INT32, [1] * 8)
    b.add_tensor("token_embd.weight", [64, 8])
    for layer in range(3):
        b.add_tensor(f"blk.{layer}.attn_q.weight", [64, 64])
        b.add_tensor(f"blk.{layer}.ffn_up.weight", [64, 128])
    b.add_tensor("output.weight", [64, 8])
    return b
