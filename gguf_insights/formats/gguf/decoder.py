# gguf_insights/formats/gguf/decoder.py
"""
Version-aware GGUF header decoding (v1/v2/v3, little-endian).

The decoder consumes a byte source strictly forward: magic and version, the
key-value table, then the tensor descriptor table. Version 1 encodes counts,
lengths and dimensions as uint32; versions 2 and 3 use uint64.
"""

from __future__ import annotations

import struct
from typing import Dict, List, Optional

from loguru import logger

from gguf_insights.config import ReaderSettings
from gguf_insights.formats.gguf.errors import GGUFFormatError, GGUFIOError, UnsupportedVersionError
from gguf_insights.formats.gguf.model import GGUFTensorInfo, RawGGUF
from gguf_insights.formats.gguf.values import (
    SCALAR_FORMATS,
    GGUFValueType,
    MetadataArray,
    MetadataScalar,
    MetadataValue,
)
from gguf_insights.io.byte_source import ByteSource

GGUF_MAGIC = b"GGUF"
DEFAULT_ALIGNMENT = 32
KEY_GENERAL_ALIGNMENT = "general.alignment"

# version -> byte width of counts and lengths
SUPPORTED_VERSIONS: Dict[int, int] = {1: 4, 2: 8, 3: 8}
_UINT_FORMATS = {4: "<I", 8: "<Q"}


def _align_up(x: int, a: int) -> int:
    return (x + (a - 1)) & ~(a - 1)


class _Cursor:
    """Forward-only buffered reader over a ByteSource."""

    def __init__(self, source: ByteSource, chunk_size: int):
        self._source = source
        self._chunk_size = chunk_size
        self._buf = b""
        self._buf_start = 0
        self.pos = 0

    @property
    def remaining(self) -> Optional[int]:
        size = self._source.size
        return None if size is None else size - self.pos

    async def read(self, n: int) -> bytes:
        if n == 0:
            return b""
        if self.pos + n > self._buf_start + len(self._buf):
            await self._fill(n)
        start = self.pos - self._buf_start
        self.pos += n
        return self._buf[start : start + n]

    async def _fill(self, n: int) -> None:
        tail = self._buf[self.pos - self._buf_start :]
        fetch_from = self.pos + len(tail)
        need = n - len(tail)
        size = self._source.size
        if size is None:
            want = need
        else:
            want = min(max(need, self._chunk_size), size - fetch_from)
            if want < need:
                raise GGUFIOError(
                    f"Unexpected end of data at offset {fetch_from}: "
                    f"need {need} bytes, {max(0, size - fetch_from)} available"
                )
        data = await self._source.read_range(fetch_from, want)
        if len(data) != want:
            raise GGUFIOError(f"Short read at offset {fetch_from}: wanted {want}, got {len(data)}")
        self._buf = tail + data
        self._buf_start = self.pos

    async def unpack(self, fmt: str, size: int) -> int | float:
        return struct.unpack(fmt, await self.read(size))[0]


class _GGUFReader:
    """Decodes the GGUF tables of one version from a cursor."""

    def __init__(self, cur: _Cursor, version: int, settings: ReaderSettings):
        self.cur = cur
        self.version = version
        self.settings = settings
        self.width = SUPPORTED_VERSIONS[version]

    async def u32(self) -> int:
        return int(await self.cur.unpack("<I", 4))

    async def u64(self) -> int:
        return int(await self.cur.unpack("<Q", 8))

    async def size_value(self) -> int:
        """Count/length in the version's integer width."""
        return int(await self.cur.unpack(_UINT_FORMATS[self.width], self.width))

    def check_length(self, n: int, limit: int, what: str, unit: int = 1) -> None:
        if n > limit:
            raise GGUFFormatError(f"{what} {n} exceeds limit {limit} at offset {self.cur.pos}")
        remaining = self.cur.remaining
        if remaining is not None and n * unit > remaining:
            raise GGUFFormatError(
                f"{what} {n} needs at least {n * unit} bytes but only {remaining} remain "
                f"at offset {self.cur.pos}"
            )

    async def string(self, limit: int, what: str = "String length") -> str:
        ln = await self.size_value()
        self.check_length(ln, limit, what)
        raw = await self.cur.read(ln)
        try:
            return raw.decode("utf-8", "strict")
        except UnicodeDecodeError as e:
            raise GGUFFormatError(f"Invalid UTF-8 string at offset {self.cur.pos - ln}") from e

    async def value_type(self) -> GGUFValueType:
        tag = await self.u32()
        try:
            return GGUFValueType(tag)
        except ValueError:
            raise GGUFFormatError(
                f"Unknown GGUF value type {tag} at offset {self.cur.pos - 4}"
            ) from None

    async def scalar(self, kind: GGUFValueType) -> int | float | bool | str:
        if kind == GGUFValueType.STRING:
            return await self.string(self.settings.max_string_length)
        fmt, size = SCALAR_FORMATS[kind]
        v = await self.cur.unpack(fmt, size)
        if kind == GGUFValueType.BOOL:
            if v not in (0, 1):
                raise GGUFFormatError(f"Invalid bool byte {v} at offset {self.cur.pos - 1}")
            return bool(v)
        return v

    async def array(self) -> MetadataArray:
        elem = await self.value_type()
        if elem == GGUFValueType.ARRAY:
            raise GGUFFormatError(f"Nested arrays are not supported (offset {self.cur.pos - 4})")
        count = await self.size_value()
        unit = self.width if elem == GGUFValueType.STRING else SCALAR_FORMATS[elem][1]
        self.check_length(count, self.settings.max_array_length, "Array length", unit)

        if elem == GGUFValueType.STRING:
            items = [await self.string(self.settings.max_string_length) for _ in range(count)]
            return MetadataArray(element_kind=elem, items=tuple(items))

        fmt, size = SCALAR_FORMATS[elem]
        raw = await self.cur.read(size * count)
        values = struct.unpack(f"<{count}{fmt[1:]}", raw)
        if elem == GGUFValueType.BOOL:
            if any(v not in (0, 1) for v in values):
                raise GGUFFormatError("Invalid bool byte in array")
            values = tuple(bool(v) for v in values)
        return MetadataArray(element_kind=elem, items=tuple(values))

    async def kv(self) -> tuple[str, MetadataValue]:
        key = await self.string(self.settings.max_name_length, "Key length")
        kind = await self.value_type()
        if kind == GGUFValueType.ARRAY:
            return key, await self.array()
        return key, MetadataScalar(kind=kind, value=await self.scalar(kind))

    async def tensor_info(self) -> GGUFTensorInfo:
        name = await self.string(self.settings.max_name_length, "Tensor name length")
        n_dims = await self.u32()
        if not 1 <= n_dims <= self.settings.max_dims:
            raise GGUFFormatError(
                f"Tensor {name!r} has {n_dims} dimensions (expected 1..{self.settings.max_dims})"
            )
        dims = tuple([await self.size_value() for _ in range(n_dims)])
        if any(d < 1 for d in dims):
            raise GGUFFormatError(f"Tensor {name!r} has a zero dimension: {dims}")
        ggml_type = await self.u32()
        offset = await self.u64()
        return GGUFTensorInfo(name=name, dimensions=dims, ggml_type=ggml_type, offset=offset)


def _resolve_alignment(kv: Dict[str, MetadataValue]) -> int:
    v = kv.get(KEY_GENERAL_ALIGNMENT)
    if v is None:
        return DEFAULT_ALIGNMENT
    if not isinstance(v, MetadataScalar) or not v.is_integer:
        raise GGUFFormatError(f"{KEY_GENERAL_ALIGNMENT} must be an integer")
    alignment = int(v.value)
    if alignment <= 0 or alignment & (alignment - 1):
        raise GGUFFormatError(f"{KEY_GENERAL_ALIGNMENT}={alignment} is not a power of two")
    return alignment


async def _read_header(cur: _Cursor, source: ByteSource) -> int:
    if source.size is not None and source.size < len(GGUF_MAGIC):
        raise GGUFFormatError("File too small for GGUF header")
    try:
        magic = await cur.read(len(GGUF_MAGIC))
    except GGUFIOError as e:
        # unknown-size sources only reveal a short file on the first read
        raise GGUFFormatError("File too small for GGUF header") from e
    if magic != GGUF_MAGIC:
        raise GGUFFormatError(f"Invalid magic {magic!r}; not GGUF")

    version = int(await cur.unpack("<I", 4))
    if version not in SUPPORTED_VERSIONS:
        swapped = int.from_bytes(version.to_bytes(4, "little"), "big")
        if swapped in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError(
                version, f"Big-endian GGUF v{swapped} files are not supported"
            )
        raise UnsupportedVersionError(version)
    return version


async def decode_gguf(source: ByteSource, settings: Optional[ReaderSettings] = None) -> RawGGUF:
    """Decode header, KV table and tensor descriptors from an opened byte source."""
    settings = settings or ReaderSettings()
    cur = _Cursor(source, settings.chunk_size)

    version = await _read_header(cur, source)
    r = _GGUFReader(cur, version, settings)

    n_tensors = await r.size_value()
    n_kv = await r.size_value()
    # smallest possible entries: empty key + tag + 1-byte value; 1-dim descriptor
    w = r.width
    r.check_length(n_kv, settings.max_kv_count, "KV count", w + 4 + 1)
    r.check_length(n_tensors, settings.max_tensor_count, "Tensor count", w + 4 + w + 4 + 8)
    logger.debug(
        "GGUF v{version}: {n_kv} KV entries, {n_tensors} tensors",
        version=version,
        n_kv=n_kv,
        n_tensors=n_tensors,
    )

    kv: Dict[str, MetadataValue] = {}
    for _ in range(n_kv):
        key, value = await r.kv()
        if key in kv:
            raise GGUFFormatError(f"Duplicate metadata key {key!r}")
        kv[key] = value

    alignment = _resolve_alignment(kv)

    tensors: List[GGUFTensorInfo] = []
    for _ in range(n_tensors):
        tensors.append(await r.tensor_info())

    header_size = cur.pos
    return RawGGUF(
        version=version,
        kv=kv,
        tensors=tuple(tensors),
        alignment=alignment,
        header_size=header_size,
        data_offset=_align_up(header_size, alignment),
    )
