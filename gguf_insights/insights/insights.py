# gguf_insights/insights/insights.py
"""
Resource estimation over parsed GGUF metadata.

Model weights are sized with the ggml allocator rules in ``tensor_size``;
context memory follows llama.cpp's state and KV-cache layout
(``llama_get_state_size`` and ``llama_kv_cache_init``) plus an empirical
compute-graph term.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from functools import cached_property
from typing import List, Optional, Set, Tuple

from loguru import logger

from gguf_insights.formats.gguf.model import GGUFFileInfo, GGUFTensorInfo
from gguf_insights.formats.gguf.quantization import GGMLTypeSizeTable, TypeSizeTable
from gguf_insights.insights.constants import DEFAULT_RUNTIME_CONSTANTS, RuntimeConstants
from gguf_insights.insights.tensor_size import calculate_tensor_size, calculate_tensors_size

OUTPUT_LAYERS = 1


@dataclass(frozen=True)
class ResourceRequirements:
    """Bytes of system RAM and GPU VRAM."""

    cpu_ram: int
    gpu_vram: int

    @property
    def total(self) -> int:
        return self.cpu_ram + self.gpu_vram


@dataclass(frozen=True)
class TensorSplit:
    cpu: Tuple[GGUFTensorInfo, ...]
    gpu: Tuple[GGUFTensorInfo, ...]


class GGUFInsights:
    """Read-only derived view over exactly one ``GGUFFileInfo``.

    ``total_layers`` and ``model_size`` are computed on first access and
    cached; every other method is a pure function of the bound file info.
    """

    def __init__(
        self,
        file_info: GGUFFileInfo,
        type_sizes: Optional[TypeSizeTable] = None,
        constants: Optional[RuntimeConstants] = None,
    ):
        self.file_info = file_info
        self.type_sizes: TypeSizeTable = type_sizes or GGMLTypeSizeTable()
        self.constants = constants or DEFAULT_RUNTIME_CONSTANTS

    @classmethod
    def from_file_info(
        cls,
        file_info: GGUFFileInfo,
        type_sizes: Optional[TypeSizeTable] = None,
        constants: Optional[RuntimeConstants] = None,
    ) -> "GGUFInsights":
        return cls(file_info, type_sizes=type_sizes, constants=constants)

    @cached_property
    def total_layers(self) -> int:
        return self._file_layers() + OUTPUT_LAYERS

    @cached_property
    def model_size(self) -> int:
        return self._tensors_size(self.file_info.tensor_info)

    def tensor_size(self, tensor: GGUFTensorInfo) -> int:
        return calculate_tensor_size(tensor, self.type_sizes, self.constants.ggml_max_dims)

    def _tensors_size(self, tensors) -> int:
        return calculate_tensors_size(tensors, self.type_sizes, self.constants.ggml_max_dims)

    def _layers_from_tensor_info(self) -> int:
        layers: Set[int] = set()
        for tensor in self.file_info.tensor_info:
            n = tensor.layer_number
            if n is not None:
                layers.add(n)
        return len(layers)

    def _file_layers(self) -> int:
        block_count = self.file_info.architecture_metadata.block_count
        return block_count if block_count is not None else self._layers_from_tensor_info()

    def resource_split(self, gpu_layers: int) -> TensorSplit:
        """Partition tensors into CPU- and GPU-resident buckets.

        Layer-less tensors (embeddings, output) always go to the GPU bucket
        once any layer is offloaded.
        """
        tensors = self.file_info.tensor_info
        if gpu_layers == 0:
            return TensorSplit(cpu=tuple(tensors), gpu=())

        cpu: List[GGUFTensorInfo] = []
        gpu: List[GGUFTensorInfo] = []
        for tensor in tensors:
            n = tensor.layer_number
            if n is None or n < gpu_layers:
                gpu.append(tensor)
            else:
                cpu.append(tensor)
        return TensorSplit(cpu=tuple(cpu), gpu=tuple(gpu))

    def estimate_model_resource_requirements(self, *, gpu_layers: int) -> ResourceRequirements:
        split = self.resource_split(gpu_layers)
        return ResourceRequirements(
            cpu_ram=self._tensors_size(split.cpu),
            gpu_vram=self._tensors_size(split.gpu),
        )

    def estimate_context_resource_requirements(
        self,
        *,
        context_size: int,
        batch_size: int,
        model_gpu_layers: Optional[int],
        sequences: int,
        is_embedding_context: bool = False,
        include_graph_overhead: bool = True,
    ) -> ResourceRequirements:
        """Memory needed to create one inference context, excluding model weights.

        The graph overhead is a rough calibrated estimate, not a derivation of
        the scheduler's actual reservations.
        """
        c = self.constants
        arch = self.file_info.architecture_metadata
        total_layers = self.total_layers
        gpu_layers = max(
            0, min(total_layers if model_gpu_layers is None else model_gpu_layers, total_layers)
        )
        cpu_layers = total_layers - gpu_layers

        vocabulary_size = arch.vocab_size
        if vocabulary_size is None:
            tokens = self.file_info.metadata.tokenizer.tokens
            vocabulary_size = len(tokens) if tokens is not None else 0
        logits_size = vocabulary_size * batch_size
        embed_size = (arch.embedding_length or 0) * batch_size if is_embedding_context else 0

        kv_cell_size = c.llama_pos_size + c.size_t_size + c.llama_seq_id_size
        kv_cells = max(1, sequences) if arch.is_state_space else context_size

        overhead = (
            c.size_t_size  # rng size
            + c.llama_max_rng_state
            + c.size_t_size  # logits size
            + logits_size * c.float_size
            + c.size_t_size  # embedding size
            + embed_size * c.float_size
            + c.size_t_size  # kv buf size
            + c.uint32_size  # kv head
            + c.uint32_size  # kv size
            + c.uint32_size  # kv used
            + kv_cells * kv_cell_size
        )
        graph_overhead = self.estimate_graph_overhead(context_size) if include_graph_overhead else 0.0

        using_gpu = gpu_layers != 0
        cpu_ram = (0 if using_gpu else overhead + graph_overhead) + self.estimate_kv_cache_size(
            context_size, cpu_layers
        )
        gpu_vram = 0.0
        if using_gpu:
            # partial offload keeps the output layer's cache on the GPU too
            kv_layers = gpu_layers + 1 if gpu_layers < total_layers else gpu_layers
            gpu_vram = overhead + graph_overhead + self.estimate_kv_cache_size(context_size, kv_layers)

        logger.debug(
            "Context estimate ctx={ctx} batch={batch} gpu_layers={gpu}/{total}: "
            "overhead={overhead} graph={graph:.0f} cpu={cpu:.0f} gpu={vram:.0f}",
            ctx=context_size,
            batch=batch_size,
            gpu=gpu_layers,
            total=total_layers,
            overhead=overhead,
            graph=graph_overhead,
            cpu=cpu_ram,
            vram=gpu_vram,
        )
        return ResourceRequirements(cpu_ram=math.ceil(cpu_ram), gpu_vram=math.ceil(gpu_vram))

    def estimate_kv_cache_size(self, context_size: int, layers: int) -> int:
        """Bytes of K and V cache tensors for ``layers`` layers at ``context_size``."""
        arch = self.file_info.architecture_metadata
        attn = arch.attention
        ssm = arch.ssm

        n_head = attn.head_count or 0
        n_embd = arch.embedding_length or 0
        default_head_dim = n_embd // n_head if n_head else 0
        n_embd_head_k = attn.key_length if attn.key_length is not None else default_head_dim
        n_embd_head_v = attn.value_length if attn.value_length is not None else default_head_dim
        n_head_kv = attn.head_count_kv if attn.head_count_kv is not None else n_head

        ssm_d_conv = ssm.conv_kernel or 0
        ssm_d_inner = ssm.inner_size or 0
        ssm_d_state = ssm.state_size or 0

        n_embd_k = n_embd_head_k * n_head_kv + (ssm_d_conv - 1 if ssm_d_conv > 0 else 0) * ssm_d_inner
        n_embd_v = n_embd_head_v * n_head_kv + ssm_d_state * ssm_d_inner

        # type_k / type_v of the context: F32 for state-space models, F16 otherwise
        element_size = (
            self.constants.ggml_type_f32_size
            if arch.is_state_space
            else self.constants.ggml_type_f16_size
        )
        return layers * n_embd_k * context_size * element_size + (
            layers * n_embd_v * context_size * element_size
        )

    def estimate_graph_overhead(self, context_size: int) -> float:
        """Heuristic compute-graph reservation, linear in context size."""
        tensors = self.file_info.tensor_info
        if tensors:
            total_dimensions = sum(sum(t.dimensions) for t in tensors)
        else:
            arch = self.file_info.architecture_metadata
            total_dimensions = self.total_layers * (
                ((arch.embedding_length or 0) + (arch.feed_forward_length or 0)) / 2
            )
        c = self.constants
        return (
            total_dimensions
            * c.graph_overhead_factor
            * (context_size / c.graph_overhead_reference_context)
        )
