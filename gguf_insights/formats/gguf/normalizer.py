# gguf_insights/formats/gguf/normalizer.py
"""
Projects the flat ``namespace.key`` KV table onto typed, architecture-aware
metadata.

``general.architecture`` selects a schema from ``ARCHITECTURE_SCHEMAS``.
Architectures without a registered schema fall through to a passthrough
schema that still extracts the common fields, so newer model families parse
without changes here. Keys that are unknown, or whose type does not match the
expected field type, are kept as opaque ``MetadataValue``s in ``extra``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Tuple

from loguru import logger

from gguf_insights.formats.gguf.model import (
    ArchitectureKind,
    ArchitectureMetadata,
    AttentionMetadata,
    GeneralMetadata,
    GGUFFileInfo,
    GGUFMetadata,
    RawGGUF,
    RopeMetadata,
    SSMMetadata,
    TokenizerMetadata,
)
from gguf_insights.formats.gguf.values import (
    FLOAT_TYPES,
    INTEGER_TYPES,
    GGUFValueType,
    MetadataArray,
    MetadataScalar,
    MetadataValue,
)

# Field registries: key suffix -> (attribute, expected kind)
GENERAL_FIELDS: Dict[str, Tuple[str, str]] = {
    "architecture": ("architecture", "str"),
    "name": ("name", "str"),
    "alignment": ("alignment", "int"),
    "file_type": ("file_type", "int"),
    "quantization_version": ("quantization_version", "int"),
}

TOKENIZER_FIELDS: Dict[str, Tuple[str, str]] = {
    "ggml.model": ("model", "str"),
    "ggml.tokens": ("tokens", "str_array"),
    "ggml.scores": ("scores", "float_array"),
    "ggml.token_type": ("token_type", "int_array"),
    "ggml.merges": ("merges", "str_array"),
    "ggml.bos_token_id": ("bos_token_id", "int"),
    "ggml.eos_token_id": ("eos_token_id", "int"),
    "chat_template": ("chat_template", "str"),
}

MODEL_FIELDS: Dict[str, Tuple[str, str]] = {
    "context_length": ("context_length", "int"),
    "embedding_length": ("embedding_length", "int"),
    "block_count": ("block_count", "int"),
    "feed_forward_length": ("feed_forward_length", "int"),
    "vocab_size": ("vocab_size", "int"),
}

GROUP_FIELDS: Dict[str, Dict[str, Tuple[str, str]]] = {
    "attention": {
        "head_count": ("head_count", "int"),
        "head_count_kv": ("head_count_kv", "int"),
        "key_length": ("key_length", "int"),
        "value_length": ("value_length", "int"),
        "layer_norm_epsilon": ("layer_norm_epsilon", "float"),
        "layer_norm_rms_epsilon": ("layer_norm_rms_epsilon", "float"),
    },
    "rope": {
        "dimension_count": ("dimension_count", "int"),
        "freq_base": ("freq_base", "float"),
        "scale_linear": ("scale_linear", "float"),
    },
    "ssm": {
        "conv_kernel": ("conv_kernel", "int"),
        "inner_size": ("inner_size", "int"),
        "state_size": ("state_size", "int"),
        "time_step_rank": ("time_step_rank", "int"),
    },
}

GROUP_TYPES = {"attention": AttentionMetadata, "rope": RopeMetadata, "ssm": SSMMetadata}

TRANSFORMER_ARCHITECTURES = (
    "llama",
    "falcon",
    "baichuan",
    "grok",
    "gpt2",
    "gptj",
    "gptneox",
    "mpt",
    "starcoder",
    "refact",
    "bert",
    "nomic-bert",
    "jina-bert-v2",
    "bloom",
    "stablelm",
    "qwen",
    "qwen2",
    "qwen2moe",
    "phi2",
    "phi3",
    "plamo",
    "codeshell",
    "orion",
    "internlm2",
    "minicpm",
    "gemma",
    "starcoder2",
    "xverse",
    "command-r",
    "dbrx",
    "olmo",
)
STATE_SPACE_ARCHITECTURES = ("mamba",)

ArchitectureSchema = Callable[[str, Mapping[str, MetadataValue]], ArchitectureMetadata]

ARCHITECTURE_SCHEMAS: Dict[str, ArchitectureSchema] = {}


def register_architecture(*names: str) -> Callable[[ArchitectureSchema], ArchitectureSchema]:
    """Register a schema for one or more ``general.architecture`` names."""

    def decorator(fn: ArchitectureSchema) -> ArchitectureSchema:
        for name in names:
            ARCHITECTURE_SCHEMAS[name] = fn
        return fn

    return decorator


def _coerce(kind: str, v: MetadataValue) -> Tuple[bool, Any]:
    if kind in ("int", "float", "str"):
        if not isinstance(v, MetadataScalar):
            return False, None
        if kind == "int" and v.is_integer:
            return True, int(v.value)
        if kind == "float" and (v.is_float or v.is_integer):
            return True, float(v.value)
        if kind == "str" and v.kind == GGUFValueType.STRING:
            return True, v.value
        return False, None

    if not isinstance(v, MetadataArray):
        return False, None
    if kind == "str_array" and v.element_kind == GGUFValueType.STRING:
        return True, v.items
    if kind == "int_array" and v.element_kind in INTEGER_TYPES:
        return True, v.items
    if kind == "float_array" and (v.element_kind in FLOAT_TYPES or v.element_kind in INTEGER_TYPES):
        return True, tuple(float(x) for x in v.items)
    return False, None


def _describe(v: MetadataValue) -> str:
    if isinstance(v, MetadataArray):
        return f"array of {v.element_kind.name}"
    return v.kind.name


def _extract(
    fields: Mapping[str, MetadataValue],
    registry: Mapping[str, Tuple[str, str]],
    prefix: str,
    extra: Dict[str, MetadataValue],
) -> Dict[str, Any]:
    """Pull registered fields out of ``fields`` (keys relative to ``prefix``).

    Consumed keys are removed from ``extra``; mismatched ones stay there.
    """
    out: Dict[str, Any] = {}
    for suffix, (attr, kind) in registry.items():
        key = f"{prefix}{suffix}"
        v = fields.get(key)
        if v is None:
            continue
        ok, value = _coerce(kind, v)
        if not ok:
            logger.warning(
                "Metadata key {key} has type {got}, expected {kind}; keeping it as opaque",
                key=key,
                got=_describe(v),
                kind=kind,
            )
            continue
        out[attr] = value
        extra.pop(key, None)
    return out


def _scoped(kv: Mapping[str, MetadataValue], prefix: str) -> Dict[str, MetadataValue]:
    return {k: v for k, v in kv.items() if k.startswith(prefix)}


def _build_architecture(
    name: str,
    kv: Mapping[str, MetadataValue],
    kind: ArchitectureKind,
) -> ArchitectureMetadata:
    prefix = f"{name}."
    extra = _scoped(kv, prefix)
    values = _extract(kv, MODEL_FIELDS, prefix, extra)
    for group in GROUP_FIELDS:
        group_values = _extract(kv, GROUP_FIELDS[group], f"{prefix}{group}.", extra)
        values[group] = GROUP_TYPES[group](**group_values)
    return ArchitectureMetadata(
        name=name,
        kind=kind,
        extra={k[len(prefix) :]: v for k, v in extra.items()},
        **values,
    )


@register_architecture(*TRANSFORMER_ARCHITECTURES)
def transformer_schema(name: str, kv: Mapping[str, MetadataValue]) -> ArchitectureMetadata:
    return _build_architecture(name, kv, ArchitectureKind.TRANSFORMER)


@register_architecture(*STATE_SPACE_ARCHITECTURES)
def state_space_schema(name: str, kv: Mapping[str, MetadataValue]) -> ArchitectureMetadata:
    return _build_architecture(name, kv, ArchitectureKind.STATE_SPACE)


def passthrough_schema(name: str, kv: Mapping[str, MetadataValue]) -> ArchitectureMetadata:
    """Schema for unregistered architectures: best-effort common fields."""
    return _build_architecture(name, kv, ArchitectureKind.UNKNOWN)


def normalize_architecture(name: str, kv: Mapping[str, MetadataValue]) -> ArchitectureMetadata:
    schema = ARCHITECTURE_SCHEMAS.get(name)
    if schema is None:
        logger.debug("No schema registered for architecture {name}; using passthrough", name=name)
        schema = passthrough_schema
    return schema(name, kv)


def normalize(raw: RawGGUF) -> GGUFFileInfo:
    """Build the immutable file info from decoder output."""
    kv = raw.kv

    general_extra = _scoped(kv, "general.")
    general = GeneralMetadata(
        **_extract(kv, GENERAL_FIELDS, "general.", general_extra),
        extra={k[len("general.") :]: v for k, v in general_extra.items()},
    )

    tokenizer_extra = _scoped(kv, "tokenizer.")
    tokenizer = TokenizerMetadata(
        **_extract(kv, TOKENIZER_FIELDS, "tokenizer.", tokenizer_extra),
        extra={k[len("tokenizer.") :]: v for k, v in tokenizer_extra.items()},
    )

    if general.architecture:
        architecture = normalize_architecture(general.architecture, kv)
        arch_prefix = f"{general.architecture}."
    else:
        logger.warning("general.architecture is missing; architecture metadata left empty")
        architecture = ArchitectureMetadata()
        arch_prefix = None

    other = {
        k: v
        for k, v in kv.items()
        if not k.startswith(("general.", "tokenizer."))
        and not (arch_prefix and k.startswith(arch_prefix))
    }

    return GGUFFileInfo(
        version=raw.version,
        tensor_info=raw.tensors,
        metadata=GGUFMetadata(
            general=general,
            tokenizer=tokenizer,
            architecture=architecture,
            other=other,
            raw=dict(kv),
        ),
        alignment=raw.alignment,
        header_size=raw.header_size,
        data_offset=raw.data_offset,
    )
