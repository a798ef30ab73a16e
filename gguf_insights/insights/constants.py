# gguf_insights/insights/constants.py
"""
Numeric constants of the native runtime the estimates model.
"""
from __future__ import annotations

from dataclasses import dataclass

# Empirical graph-overhead factor (bytes per summed tensor dimension at a
# 4096-token context). Calibrated against measured allocations; no
# closed form exists.
GRAPH_OVERHEAD_FACTOR = 77.655
GRAPH_OVERHEAD_REFERENCE_CONTEXT = 4096


@dataclass(frozen=True)
class RuntimeConstants:
    """Struct widths and limits of the llama.cpp/ggml build being modelled.

    Attributes:
        ggml_max_dims: GGML_MAX_DIMS, rank of the ne/nb vectors.
        size_t_size: sizeof(size_t).
        float_size: sizeof(float).
        uint32_size: sizeof(uint32_t).
        llama_pos_size: sizeof(llama_pos).
        llama_seq_id_size: sizeof(llama_seq_id).
        llama_max_rng_state: LLAMA_MAX_RNG_STATE, serialized RNG buffer size.
        ggml_type_f16_size: Bytes per F16 KV-cache element.
        ggml_type_f32_size: Bytes per F32 KV-cache element.
        graph_overhead_factor: See GRAPH_OVERHEAD_FACTOR.
        graph_overhead_reference_context: Context size the factor was measured at.
    """

    ggml_max_dims: int = 4
    size_t_size: int = 8
    float_size: int = 4
    uint32_size: int = 4
    llama_pos_size: int = 4
    llama_seq_id_size: int = 4
    llama_max_rng_state: int = 64 * 1024
    ggml_type_f16_size: int = 2
    ggml_type_f32_size: int = 4
    graph_overhead_factor: float = GRAPH_OVERHEAD_FACTOR
    graph_overhead_reference_context: int = GRAPH_OVERHEAD_REFERENCE_CONTEXT


DEFAULT_RUNTIME_CONSTANTS = RuntimeConstants()
