# gguf_insights/formats/gguf/model.py
"""
GGUF shared structures: raw decoder output and the normalized file info.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from gguf_insights.formats.gguf.values import MetadataValue

_LAYER_TENSOR_RE = re.compile(r"^blk\.(\d+)")


@dataclass(frozen=True)
class GGUFTensorInfo:
    name: str
    dimensions: Tuple[int, ...]
    ggml_type: int
    offset: int  # relative to data section

    @property
    def n_elements(self) -> int:
        """Total number of elements in the tensor."""
        p = 1
        for d in self.dimensions:
            p *= d
        return p

    @property
    def layer_number(self) -> Optional[int]:
        """Block index encoded as ``blk.<N>.*``, or None for layer-less tensors."""
        m = _LAYER_TENSOR_RE.match(self.name)
        return int(m.group(1)) if m else None


@dataclass(frozen=True)
class RawGGUF:
    """Decoder output before normalization."""

    version: int
    kv: Mapping[str, MetadataValue]
    tensors: Tuple[GGUFTensorInfo, ...]
    alignment: int
    header_size: int  # end of the tensor descriptor table
    data_offset: int  # absolute offset of data section


class ArchitectureKind(str, Enum):
    TRANSFORMER = "transformer"
    STATE_SPACE = "state_space"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GeneralMetadata:
    architecture: Optional[str] = None
    name: Optional[str] = None
    alignment: Optional[int] = None
    file_type: Optional[int] = None
    quantization_version: Optional[int] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TokenizerMetadata:
    model: Optional[str] = None
    tokens: Optional[Tuple[str, ...]] = None
    scores: Optional[Tuple[float, ...]] = None
    token_type: Optional[Tuple[int, ...]] = None
    merges: Optional[Tuple[str, ...]] = None
    bos_token_id: Optional[int] = None
    eos_token_id: Optional[int] = None
    chat_template: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AttentionMetadata:
    head_count: Optional[int] = None
    head_count_kv: Optional[int] = None
    key_length: Optional[int] = None
    value_length: Optional[int] = None
    layer_norm_epsilon: Optional[float] = None
    layer_norm_rms_epsilon: Optional[float] = None


@dataclass(frozen=True)
class RopeMetadata:
    dimension_count: Optional[int] = None
    freq_base: Optional[float] = None
    scale_linear: Optional[float] = None


@dataclass(frozen=True)
class SSMMetadata:
    conv_kernel: Optional[int] = None
    inner_size: Optional[int] = None
    state_size: Optional[int] = None
    time_step_rank: Optional[int] = None


@dataclass(frozen=True)
class ArchitectureMetadata:
    name: Optional[str] = None
    kind: ArchitectureKind = ArchitectureKind.UNKNOWN
    context_length: Optional[int] = None
    embedding_length: Optional[int] = None
    block_count: Optional[int] = None
    feed_forward_length: Optional[int] = None
    vocab_size: Optional[int] = None
    attention: AttentionMetadata = field(default_factory=AttentionMetadata)
    rope: RopeMetadata = field(default_factory=RopeMetadata)
    ssm: SSMMetadata = field(default_factory=SSMMetadata)
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_state_space(self) -> bool:
        return self.kind is ArchitectureKind.STATE_SPACE


@dataclass(frozen=True)
class GGUFMetadata:
    general: GeneralMetadata
    tokenizer: TokenizerMetadata
    architecture: ArchitectureMetadata
    other: Mapping[str, Any] = field(default_factory=dict)
    raw: Mapping[str, MetadataValue] = field(default_factory=dict)


@dataclass(frozen=True)
class GGUFFileInfo:
    version: int
    tensor_info: Tuple[GGUFTensorInfo, ...]
    metadata: GGUFMetadata
    alignment: int = 32
    header_size: int = 0
    data_offset: int = 0

    @property
    def architecture_metadata(self) -> ArchitectureMetadata:
        return self.metadata.architecture

    @property
    def kv_count(self) -> int:
        return len(self.metadata.raw)

    def get(self, key: str, default: Any = None) -> Any:
        """Plain Python value of a raw metadata key."""
        v: Optional[MetadataValue] = self.metadata.raw.get(key)
        return v.to_python() if v is not None else default
