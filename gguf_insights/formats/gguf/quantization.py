# gguf_insights/formats/gguf/quantization.py
"""
GGML tensor types and their (block size, type size) layout.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Dict, Mapping, Optional, Protocol, Tuple


class GGMLType(IntEnum):
    """GGML tensor types, including quantization."""

    F32 = 0
    F16 = 1
    Q4_0 = 2
    Q4_1 = 3
    # Deprecated
    # Q4_2 = 4
    # Q4_3 = 5
    Q5_0 = 6
    Q5_1 = 7
    Q8_0 = 8
    Q8_1 = 9
    Q2_K = 10
    Q3_K = 11
    Q4_K = 12
    Q5_K = 13
    Q6_K = 14
    Q8_K = 15
    IQ2_XXS = 16
    IQ2_XS = 17
    IQ3_XXS = 18
    IQ1_S = 19
    IQ4_NL = 20
    IQ3_S = 21
    IQ2_S = 22
    IQ4_XS = 23
    I8 = 24
    I16 = 25
    I32 = 26
    I64 = 27
    F64 = 28
    IQ1_M = 29
    BF16 = 30


# (elements per block, bytes per block)
GGML_QUANT_SIZES: Dict[GGMLType, Tuple[int, int]] = {
    GGMLType.F32: (1, 4),
    GGMLType.F16: (1, 2),
    GGMLType.Q4_0: (32, 18),
    GGMLType.Q4_1: (32, 20),
    GGMLType.Q5_0: (32, 22),
    GGMLType.Q5_1: (32, 24),
    GGMLType.Q8_0: (32, 34),
    GGMLType.Q8_1: (32, 36),
    GGMLType.Q2_K: (256, 84),
    GGMLType.Q3_K: (256, 110),
    GGMLType.Q4_K: (256, 144),
    GGMLType.Q5_K: (256, 176),
    GGMLType.Q6_K: (256, 210),
    GGMLType.Q8_K: (256, 292),
    GGMLType.IQ2_XXS: (256, 66),
    GGMLType.IQ2_XS: (256, 74),
    GGMLType.IQ3_XXS: (256, 98),
    GGMLType.IQ1_S: (256, 50),
    GGMLType.IQ4_NL: (32, 18),
    GGMLType.IQ3_S: (256, 110),
    GGMLType.IQ2_S: (256, 82),
    GGMLType.IQ4_XS: (256, 136),
    GGMLType.I8: (1, 1),
    GGMLType.I16: (1, 2),
    GGMLType.I32: (1, 4),
    GGMLType.I64: (1, 8),
    GGMLType.F64: (1, 8),
    GGMLType.IQ1_M: (256, 56),
    GGMLType.BF16: (1, 2),
}


def ggml_type_name(ggml_type: int) -> str:
    """Human-readable name for a ggml type id, tolerating unknown ids."""
    try:
        return GGMLType(ggml_type).name
    except ValueError:
        return f"UNKNOWN({ggml_type})"


class TypeSizeTable(Protocol):
    """Lookup of per-type layout, normally supplied by the tensor runtime."""

    def get_type_size(self, ggml_type: int) -> Optional[int]: ...

    def get_block_size(self, ggml_type: int) -> Optional[int]: ...


class GGMLTypeSizeTable:
    """TypeSizeTable backed by a static ``{type: (block_size, type_size)}`` mapping."""

    def __init__(self, sizes: Optional[Mapping[int, Tuple[int, int]]] = None):
        self._sizes: Dict[int, Tuple[int, int]] = {
            int(k): v for k, v in (GGML_QUANT_SIZES if sizes is None else sizes).items()
        }

    def get_type_size(self, ggml_type: int) -> Optional[int]:
        entry = self._sizes.get(int(ggml_type))
        return entry[1] if entry is not None else None

    def get_block_size(self, ggml_type: int) -> Optional[int]:
        entry = self._sizes.get(int(ggml_type))
        return entry[0] if entry is not None else None
