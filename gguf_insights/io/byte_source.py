# gguf_insights/io/byte_source.py
"""
Random-range byte source contract and the in-memory implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Union

from gguf_insights.formats.gguf.errors import GGUFIOError


class ByteSource(ABC):
    """Serves arbitrary byte ranges of a local or remote resource.

    ``read_range`` returns exactly ``length`` bytes or raises ``GGUFIOError``.
    Sources are async context managers; the decoder opens a source, reads it
    strictly forward and closes it.
    """

    #: Total length in bytes, None when the backend cannot tell.
    size: Optional[int] = None

    async def open(self) -> None:
        """Acquire underlying resources. Idempotent."""

    async def close(self) -> None:
        """Release underlying resources. Idempotent."""

    @abstractmethod
    async def read_range(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    @property
    def description(self) -> str:
        return type(self).__name__

    def _check_range(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0:
            raise GGUFIOError(f"Invalid range offset={offset} length={length}")
        if self.size is not None and offset + length > self.size:
            raise GGUFIOError(
                f"Read beyond end of {self.description}: "
                f"[{offset}, {offset + length}) exceeds size {self.size}"
            )

    async def __aenter__(self) -> "ByteSource":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class BufferSource(ByteSource):
    """Byte source over an in-memory buffer."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._view = memoryview(data).cast("B")
        self.size = len(self._view)

    async def read_range(self, offset: int, length: int) -> bytes:
        self._check_range(offset, length)
        return bytes(self._view[offset : offset + length])

    @property
    def description(self) -> str:
        return f"buffer ({self.size} bytes)"
