# gguf_insights/formats/gguf/values.py
"""
GGUF metadata value types and the tagged value variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Tuple, Union


class GGUFValueType(IntEnum):
    """Type tags used in the GGUF key-value table."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12


# struct format and byte width per fixed-size scalar type
SCALAR_FORMATS = {
    GGUFValueType.UINT8: ("<B", 1),
    GGUFValueType.INT8: ("<b", 1),
    GGUFValueType.UINT16: ("<H", 2),
    GGUFValueType.INT16: ("<h", 2),
    GGUFValueType.UINT32: ("<I", 4),
    GGUFValueType.INT32: ("<i", 4),
    GGUFValueType.FLOAT32: ("<f", 4),
    GGUFValueType.BOOL: ("<B", 1),
    GGUFValueType.UINT64: ("<Q", 8),
    GGUFValueType.INT64: ("<q", 8),
    GGUFValueType.FLOAT64: ("<d", 8),
}

INTEGER_TYPES = frozenset(
    {
        GGUFValueType.UINT8,
        GGUFValueType.INT8,
        GGUFValueType.UINT16,
        GGUFValueType.INT16,
        GGUFValueType.UINT32,
        GGUFValueType.INT32,
        GGUFValueType.UINT64,
        GGUFValueType.INT64,
    }
)
FLOAT_TYPES = frozenset({GGUFValueType.FLOAT32, GGUFValueType.FLOAT64})

ScalarPayload = Union[int, float, bool, str]


@dataclass(frozen=True)
class MetadataScalar:
    kind: GGUFValueType
    value: ScalarPayload

    @property
    def is_integer(self) -> bool:
        return self.kind in INTEGER_TYPES

    @property
    def is_float(self) -> bool:
        return self.kind in FLOAT_TYPES

    def to_python(self) -> ScalarPayload:
        return self.value


@dataclass(frozen=True)
class MetadataArray:
    """Homogeneous array; every item is a payload of ``element_kind``."""

    element_kind: GGUFValueType
    items: Tuple[ScalarPayload, ...]

    def __len__(self) -> int:
        return len(self.items)

    def to_python(self) -> list[Any]:
        return list(self.items)


MetadataValue = Union[MetadataScalar, MetadataArray]
