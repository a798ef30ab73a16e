# gguf_insights/insights/tensor_size.py
"""
Tensor byte sizes as computed by ggml's allocator (``ggml_new_tensor_impl``
strides and ``ggml_nbytes``). Results must match the native values exactly.
"""
from __future__ import annotations

from typing import Iterable, List, Tuple

from gguf_insights.formats.gguf.errors import UnknownQuantizationTypeError
from gguf_insights.formats.gguf.model import GGUFTensorInfo
from gguf_insights.formats.gguf.quantization import TypeSizeTable


def tensor_ne_nb(
    dimensions: Tuple[int, ...], *, type_size: int, block_size: int, max_dims: int
) -> Tuple[List[int], List[int]]:
    """Element counts (ne) and byte strides (nb), padded to ``max_dims``."""
    ne = (list(dimensions) + [1] * max(0, max_dims - len(dimensions)))[:max_dims]

    nb = [0] * max_dims
    nb[0] = type_size
    if max_dims > 1:
        nb[1] = (type_size * ne[0]) // block_size
    for i in range(2, max_dims):
        nb[i] = nb[i - 1] * ne[i - 1]
    return ne, nb


def calculate_tensor_size(tensor: GGUFTensorInfo, types: TypeSizeTable, max_dims: int = 4) -> int:
    type_size = types.get_type_size(tensor.ggml_type)
    block_size = types.get_block_size(tensor.ggml_type)
    if type_size is None or block_size is None:
        raise UnknownQuantizationTypeError(tensor.ggml_type)

    ne, nb = tensor_ne_nb(
        tensor.dimensions, type_size=type_size, block_size=block_size, max_dims=max_dims
    )

    if block_size == 1:
        total = type_size
        for i in range(max_dims):
            total += (ne[i] - 1) * nb[i]
        return total

    total = (ne[0] * nb[0]) // block_size
    for i in range(1, max_dims):
        total += (ne[i] - 1) * nb[i]
    return total


def calculate_tensors_size(
    tensors: Iterable[GGUFTensorInfo], types: TypeSizeTable, max_dims: int = 4
) -> int:
    return sum(calculate_tensor_size(t, types, max_dims) for t in tensors)
