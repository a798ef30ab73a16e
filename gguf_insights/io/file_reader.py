# gguf_insights/io/file_reader.py
"""
Zero-copy local file reader using mmap + memoryview.
"""

from __future__ import annotations

import mmap
import os
from typing import Optional

from loguru import logger

from gguf_insights.formats.gguf.errors import GGUFIOError
from gguf_insights.io.byte_source import ByteSource


class MappedFile:
    """Read-only mapping of one file; usable as a context manager."""

    __slots__ = ("path", "size", "_fd", "_map", "_view")

    def __init__(self, path: str):
        self.path = path
        self.size = 0
        self._fd: Optional[int] = None
        self._map: Optional[mmap.mmap] = None
        self._view: Optional[memoryview] = None

    def map(self) -> "MappedFile":
        fd = os.open(self.path, os.O_RDONLY)
        self._fd = fd
        try:
            self.size = os.fstat(fd).st_size
            # zero-length files cannot be mapped
            if self.size:
                self._map = mmap.mmap(fd, self.size, access=mmap.ACCESS_READ)
                self._view = memoryview(self._map)
            else:
                self._view = memoryview(b"")
        except OSError:
            self.unmap()
            raise
        return self

    def unmap(self) -> None:
        view, self._view = self._view, None
        mapping, self._map = self._map, None
        fd, self._fd = self._fd, None
        if view is not None:
            view.release()
        if mapping is not None:
            mapping.close()
        if fd is not None:
            os.close(fd)

    def __enter__(self) -> "MappedFile":
        return self.map()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmap()

    def slice(self, offset: int, length: int) -> bytes:
        if self._view is None:
            raise RuntimeError(f"{self.path} is not mapped")
        return bytes(self._view[offset : offset + length])


class LocalFileSource(ByteSource):
    """Byte source over a memory-mapped local file.

    Attributes:
        path: Path to the local file.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = os.fspath(path)
        self._file: Optional[MappedFile] = None

    @property
    def description(self) -> str:
        return self.path

    async def open(self) -> None:
        if self._file is not None:
            return
        try:
            self._file = MappedFile(self.path).map()
        except OSError as e:
            raise GGUFIOError(f"Cannot open {self.path}: {e}") from e
        self.size = self._file.size
        logger.debug("Mapped {path} ({size} bytes)", path=self.path, size=self.size)

    async def close(self) -> None:
        if self._file is not None:
            self._file.unmap()
            self._file = None

    async def read_range(self, offset: int, length: int) -> bytes:
        if self._file is None:
            await self.open()
        self._check_range(offset, length)
        return self._file.slice(offset, length)
