import asyncio
import struct

import pytest

from gguf_insights.config import ReaderSettings
from gguf_insights.formats.gguf.decoder import decode_gguf
from gguf_insights.formats.gguf.errors import (
    GGUFFormatError,
    GGUFIOError,
    UnsupportedVersionError,
)
from gguf_insights.formats.gguf.parser import parse_metadata
from gguf_insights.formats.gguf.values import GGUFValueType, MetadataArray, MetadataScalar
from gguf_insights.io.byte_source import BufferSource, ByteSource


def _decode(buf: bytes, settings: ReaderSettings = None):
    async def run():
        async with BufferSource(buf) as src:
            return await decode_gguf(src, settings)

    return asyncio.run(run())


def _parse(buf: bytes, settings: ReaderSettings = None):
    return asyncio.run(parse_metadata(BufferSource(buf), settings=settings))


def test_scalar_values_round_trip(gguf_builder):
    b = gguf_builder()
    b.add("u8", GGUFValueType.UINT8, 255)
    b.add("i8", GGUFValueType.INT8, -128)
    b.add("u16", GGUFValueType.UINT16, 65535)
    b.add("i16", GGUFValueType.INT16, -32768)
    b.add("u32", GGUFValueType.UINT32, 2**32 - 1)
    b.add("i32", GGUFValueType.INT32, -(2**31))
    b.add("u64", GGUFValueType.UINT64, 2**64 - 1)
    b.add("i64", GGUFValueType.INT64, -(2**63))
    b.add("unsafe", GGUFValueType.UINT64, 2**53 + 1)
    b.add("f32", GGUFValueType.FLOAT32, 0.5)
    b.add("f64", GGUFValueType.FLOAT64, 1e-300)
    b.add("flag", GGUFValueType.BOOL, True)
    b.add("text", GGUFValueType.STRING, "héllo ✓")

    raw = _decode(b.build())

    expected = {
        "u8": (GGUFValueType.UINT8, 255),
        "i8": (GGUFValueType.INT8, -128),
        "u16": (GGUFValueType.UINT16, 65535),
        "i16": (GGUFValueType.INT16, -32768),
        "u32": (GGUFValueType.UINT32, 2**32 - 1),
        "i32": (GGUFValueType.INT32, -(2**31)),
        "u64": (GGUFValueType.UINT64, 2**64 - 1),
        "i64": (GGUFValueType.INT64, -(2**63)),
        "unsafe": (GGUFValueType.UINT64, 9007199254740993),
        "f32": (GGUFValueType.FLOAT32, 0.5),
        "f64": (GGUFValueType.FLOAT64, 1e-300),
        "flag": (GGUFValueType.BOOL, True),
        "text": (GGUFValueType.STRING, "héllo ✓"),
    }
    assert list(raw.kv) == list(expected)
    for key, (kind, value) in expected.items():
        assert raw.kv[key] == MetadataScalar(kind=kind, value=value), key


def test_arrays_round_trip(gguf_builder):
    b = gguf_builder()
    b.add_array("tokens", GGUFValueType.STRING, ["<s>", "</s>", "▁a", ""])
    b.add_array("ids", GGUFValueType.UINT64, [0, 2**63, 2**64 - 1])
    b.add_array("flags", GGUFValueType.BOOL, [True, False, True])
    b.add_array("scores", GGUFValueType.FLOAT32, [0.25, -1.5])
    b.add_array("empty", GGUFValueType.INT32, [])

    kv = _decode(b.build()).kv

    assert kv["tokens"] == MetadataArray(GGUFValueType.STRING, ("<s>", "</s>", "▁a", ""))
    assert kv["ids"].items == (0, 2**63, 2**64 - 1)
    assert kv["flags"].items == (True, False, True)
    assert kv["scores"].items == (0.25, -1.5)
    assert kv["empty"] == MetadataArray(GGUFValueType.INT32, ())
    assert len(kv["tokens"]) == 4


def test_tensor_descriptors_round_trip(gguf_builder):
    b = gguf_builder()
    b.add_tensor("token_embd.weight", [4096, 32000], ggml_type=12, offset=0)
    b.add_tensor("blk.0.attn_norm.weight", [4096], ggml_type=0, offset=2**40)
    b.add_tensor("blk.0.x", [2, 3, 4, 5], ggml_type=1, offset=2**64 - 32)

    raw = _decode(b.build())

    assert [(t.name, t.dimensions, t.ggml_type, t.offset) for t in raw.tensors] == [
        ("token_embd.weight", (4096, 32000), 12, 0),
        ("blk.0.attn_norm.weight", (4096,), 0, 2**40),
        ("blk.0.x", (2, 3, 4, 5), 1, 2**64 - 32),
    ]


def test_version_1_uses_32_bit_widths(gguf_builder):
    b = gguf_builder(version=1)
    b.add("general.architecture", GGUFValueType.STRING, "llama")
    b.add_array("arr", GGUFValueType.UINT16, [1, 2, 3])
    b.add_tensor("blk.0.w", [16, 4], ggml_type=0, offset=64)
    buf = b.build()

    raw = _decode(buf)

    assert raw.version == 1
    assert raw.kv["general.architecture"].value == "llama"
    assert raw.kv["arr"].items == (1, 2, 3)
    assert raw.tensors[0].dimensions == (16, 4)
    assert raw.header_size == len(buf)


@pytest.mark.parametrize("chunk_size", [1, 7, 64, 1 << 20])
def test_read_ahead_chunking_does_not_change_result(llama_builder, chunk_size):
    buf = llama_builder.build()
    expected = _decode(buf)
    assert _decode(buf, ReaderSettings(chunk_size=chunk_size)) == expected


def test_data_offset_is_aligned(gguf_builder):
    b = gguf_builder()
    b.add("general.alignment", GGUFValueType.UINT32, 64)
    b.add_tensor("w", [3])
    buf = b.build()

    raw = _decode(buf)

    assert raw.alignment == 64
    assert raw.header_size == len(buf)
    assert raw.data_offset % 64 == 0
    assert 0 <= raw.data_offset - len(buf) < 64


def test_default_alignment(gguf_builder):
    raw = _decode(gguf_builder().add_tensor("w", [3]).build())
    assert raw.alignment == 32
    assert raw.data_offset % 32 == 0


def test_alignment_must_be_power_of_two(gguf_builder):
    b = gguf_builder().add("general.alignment", GGUFValueType.UINT32, 24)
    with pytest.raises(GGUFFormatError, match="power of two"):
        _decode(b.build())


@pytest.mark.parametrize("magic", [b"GGML", b"FUGG", b"\x00\x00\x00\x00"])
def test_bad_magic_is_format_error(gguf_builder, magic):
    with pytest.raises(GGUFFormatError, match="magic"):
        _parse(gguf_builder().build(magic=magic))


@pytest.mark.parametrize("buf", [b"", b"G", b"GGU"])
def test_tiny_buffer_is_format_error_not_io_error(buf):
    with pytest.raises(GGUFFormatError):
        _parse(buf)


def test_unsupported_version(gguf_builder):
    with pytest.raises(UnsupportedVersionError) as ei:
        _parse(gguf_builder(version=99).build())
    assert ei.value.version == 99


def test_big_endian_file_is_reported():
    buf = b"GGUF" + struct.pack(">I", 3) + b"\x00" * 16
    with pytest.raises(UnsupportedVersionError, match="Big-endian"):
        _parse(buf)


def test_truncated_file_is_io_error(llama_builder):
    buf = llama_builder.build()
    with pytest.raises(GGUFIOError):
        _parse(buf[:-4])


def test_length_past_end_is_format_error():
    # v3, 0 tensors, 1 kv, key length far past the end of the buffer
    buf = b"GGUF" + struct.pack("<IQQ", 3, 0, 1) + struct.pack("<Q", 10_000)
    buf += b"abc" + b"\x00" * 20
    with pytest.raises(GGUFFormatError, match="Key length 10000 needs"):
        _parse(buf)


def test_array_length_over_limit_is_format_error(gguf_builder):
    b = gguf_builder().add_array("a", GGUFValueType.UINT8, [1, 2, 3, 4])
    with pytest.raises(GGUFFormatError, match="exceeds limit"):
        _parse(b.build(), ReaderSettings(max_array_length=3))


def test_tensor_count_past_end_is_format_error():
    buf = b"GGUF" + struct.pack("<IQQ", 3, 1_000_000, 0)
    with pytest.raises(GGUFFormatError, match="Tensor count"):
        _parse(buf)


def test_nested_array_is_format_error():
    key = b"nested"
    buf = (
        b"GGUF"
        + struct.pack("<IQQ", 3, 0, 1)
        + struct.pack("<Q", len(key))
        + key
        + struct.pack("<II", GGUFValueType.ARRAY, GGUFValueType.ARRAY)
        + struct.pack("<Q", 0)
    )
    with pytest.raises(GGUFFormatError, match="Nested"):
        _parse(buf)


def test_unknown_value_type_is_format_error():
    key = b"k"
    buf = (
        b"GGUF"
        + struct.pack("<IQQ", 3, 0, 1)
        + struct.pack("<Q", len(key))
        + key
        + struct.pack("<I", 42)
        + b"\x00" * 8
    )
    with pytest.raises(GGUFFormatError, match="Unknown GGUF value type 42"):
        _parse(buf)


def test_invalid_bool_byte_is_format_error(gguf_builder):
    b = gguf_builder().add("flag", GGUFValueType.UINT8, 2)
    buf = bytearray(b.build())
    # retag the UINT8 value as BOOL: tag sits right before the final byte
    buf[-5:-1] = struct.pack("<I", GGUFValueType.BOOL)
    with pytest.raises(GGUFFormatError, match="bool"):
        _parse(bytes(buf))


def test_duplicate_key_is_format_error(gguf_builder):
    b = gguf_builder()
    b.add("general.name", GGUFValueType.STRING, "a")
    b.add("general.name", GGUFValueType.STRING, "b")
    with pytest.raises(GGUFFormatError, match="Duplicate"):
        _parse(b.build())


def test_invalid_utf8_is_format_error():
    key = b"\xff\xfe"
    buf = b"GGUF" + struct.pack("<IQQ", 3, 0, 1) + struct.pack("<Q", len(key)) + key
    buf += struct.pack("<I", GGUFValueType.UINT8) + b"\x01"
    with pytest.raises(GGUFFormatError, match="UTF-8"):
        _parse(buf)


@pytest.mark.parametrize("dims", [[], [1, 1, 1, 1, 1]])
def test_bad_dimension_count_is_format_error(gguf_builder, dims):
    with pytest.raises(GGUFFormatError, match="dimensions"):
        # padding keeps the descriptor-count bound satisfied
        _parse(gguf_builder().add_tensor("w", dims).build() + b"\x00" * 64)


def test_zero_dimension_is_format_error(gguf_builder):
    with pytest.raises(GGUFFormatError, match="zero dimension"):
        _parse(gguf_builder().add_tensor("w", [4, 0]).build())


class _FailingSource(ByteSource):
    """Serves the first ``limit`` bytes, then raises; records open/close."""

    def __init__(self, data: bytes, limit: int):
        self._inner = BufferSource(data)
        self.size = len(data)
        self.limit = limit
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def read_range(self, offset, length):
        if offset + length > self.limit:
            raise GGUFIOError("connection dropped")
        return await self._inner.read_range(offset, length)


def test_source_failure_propagates_and_closes_source(llama_builder):
    buf = llama_builder.build()
    src = _FailingSource(buf, limit=len(buf) // 2)
    with pytest.raises(GGUFIOError, match="connection dropped"):
        asyncio.run(parse_metadata(src, settings=ReaderSettings(chunk_size=16)))
    assert src.opened and src.closed


def test_concurrent_parses_are_independent(llama_builder, gguf_builder):
    a = llama_builder.build()
    b = gguf_builder().add("general.architecture", GGUFValueType.STRING, "mamba").build()

    async def run():
        return await asyncio.gather(
            parse_metadata(BufferSource(a)), parse_metadata(BufferSource(b))
        )

    info_a, info_b = asyncio.run(run())
    assert info_a.metadata.general.architecture == "llama"
    assert info_b.metadata.general.architecture == "mamba"
    assert len(info_a.tensor_info) == 8
    assert info_b.tensor_info == ()


class _UnknownSizeSource(BufferSource):
    """Buffer that hides its length, like a server that gives no Content-Length."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self._length = self.size
        self.size = None

    async def read_range(self, offset, length):
        if offset + length > self._length:
            raise GGUFIOError("short read")
        return bytes(self._view[offset : offset + length])


@pytest.mark.parametrize("buf", [b"", b"GG", b"XYZ"])
def test_tiny_buffer_of_unknown_size_is_format_error(buf):
    with pytest.raises(GGUFFormatError, match="too small"):
        _parse_source(_UnknownSizeSource(buf))


def test_unknown_size_source_parses(llama_builder):
    buf = llama_builder.build()
    info = _parse_source(_UnknownSizeSource(buf))
    assert info.metadata.general.name == "tiny-llama"
    assert info.header_size == len(buf)


def test_unknown_size_source_truncated_after_magic_is_io_error(llama_builder):
    with pytest.raises(GGUFIOError):
        _parse_source(_UnknownSizeSource(llama_builder.build()[:-4]))


def _parse_source(source: ByteSource):
    return asyncio.run(parse_metadata(source))


class _StallingSource(BufferSource):
    """Serves ``fast_reads`` reads, then blocks until cancelled."""

    def __init__(self, data: bytes, fast_reads: int):
        super().__init__(data)
        self.fast_reads = fast_reads
        self.stalled = asyncio.Event()
        self.closes = 0

    async def read_range(self, offset, length):
        if self.fast_reads == 0:
            self.stalled.set()
            await asyncio.sleep(3600)
        self.fast_reads -= 1
        return await super().read_range(offset, length)

    async def close(self):
        self.closes += 1


def test_cancelled_parse_closes_source(llama_builder):
    async def run():
        src = _StallingSource(llama_builder.build(), fast_reads=2)
        task = asyncio.create_task(parse_metadata(src, settings=ReaderSettings(chunk_size=16)))
        await src.stalled.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return src, task

    src, task = asyncio.run(run())
    assert task.cancelled()
    assert src.closes == 1
