# gguf_insights/io/remote_reader.py
"""
HTTP(S) range-request byte source with bounded retries.

Blocking ``requests`` calls run in a worker thread so the decoder's event
loop stays free while bytes are in flight.
"""

from __future__ import annotations

import asyncio
import re
from typing import Callable, Dict, Optional, TypeVar

import requests
from loguru import logger

from gguf_insights.config import ReaderSettings
from gguf_insights.formats.gguf.errors import GGUFIOError
from gguf_insights.io.byte_source import ByteSource

T = TypeVar("T")

TRANSIENT_STATUS = frozenset({408, 425, 429})
_CONTENT_RANGE_RE = re.compile(r"bytes\s+\d+-\d+/(\d+)")


class TransientHTTPError(Exception):
    """Server answered with a status worth retrying."""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"HTTP {status}")


def _is_transient_status(status: int) -> bool:
    return status in TRANSIENT_STATUS or 500 <= status < 600


_TRANSIENT_EXCEPTIONS = (requests.ConnectionError, requests.Timeout, TransientHTTPError)


class RemoteFileSource(ByteSource):
    """Byte source over a URL that honours HTTP ``Range`` requests."""

    def __init__(
        self,
        url: str,
        *,
        settings: Optional[ReaderSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.settings = settings or ReaderSettings()
        self._session = session
        self._owns_session = session is None

    @property
    def description(self) -> str:
        return self.url

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = dict(self.settings.headers)
        if extra:
            headers.update(extra)
        return headers

    async def open(self) -> None:
        if self._session is None:
            self._session = requests.Session()
            self._owns_session = True
        if self.size is None:
            self.size = await self._with_retries("HEAD", self._head)
            logger.debug("Remote {url} size={size}", url=self.url, size=self.size)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    async def read_range(self, offset: int, length: int) -> bytes:
        if self._session is None:
            await self.open()
        self._check_range(offset, length)
        if length == 0:
            return b""
        return await self._with_retries("GET", self._get_range, offset, length)

    async def _with_retries(self, what: str, fn: Callable[..., T], *args) -> T:
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(fn, *args)
            except _TRANSIENT_EXCEPTIONS as e:
                if attempt >= self.settings.retries:
                    raise GGUFIOError(
                        f"{what} {self.url} failed after {attempt + 1} attempts: {e}"
                    ) from e
                delay = self.settings.retry_backoff * (2**attempt)
                logger.warning(
                    "{what} {url} failed ({error}); retry {n}/{total} in {delay:.2f}s",
                    what=what,
                    url=self.url,
                    error=e,
                    n=attempt + 1,
                    total=self.settings.retries,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
            except requests.RequestException as e:
                raise GGUFIOError(f"{what} {self.url} failed: {e}") from e

    def _head(self) -> Optional[int]:
        resp = self._session.head(
            self.url,
            headers=self._headers(),
            timeout=self.settings.http_timeout,
            allow_redirects=True,
        )
        try:
            if _is_transient_status(resp.status_code):
                raise TransientHTTPError(resp.status_code)
            if resp.status_code == 405:
                # HEAD not allowed; size is learned from the first Content-Range
                return None
            if resp.status_code >= 400:
                raise GGUFIOError(f"HEAD {self.url} returned HTTP {resp.status_code}")
            length = resp.headers.get("Content-Length")
            return int(length) if length is not None and length.isdigit() else None
        finally:
            resp.close()

    def _get_range(self, offset: int, length: int) -> bytes:
        end = offset + length
        resp = self._session.get(
            self.url,
            headers=self._headers({"Range": f"bytes={offset}-{end - 1}"}),
            timeout=self.settings.http_timeout,
            stream=True,
        )
        try:
            if _is_transient_status(resp.status_code):
                raise TransientHTTPError(resp.status_code)
            if resp.status_code == 206:
                body = resp.content
                if self.size is None:
                    m = _CONTENT_RANGE_RE.match(resp.headers.get("Content-Range", ""))
                    if m:
                        self.size = int(m.group(1))
            elif resp.status_code == 200:
                # Range ignored by the server: stream the prefix we need
                if self.size is None:
                    length = resp.headers.get("Content-Length", "")
                    if length.isdigit():
                        self.size = int(length)
                buf = bytearray()
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    buf += chunk
                    if len(buf) >= end:
                        break
                body = bytes(buf[offset:end])
            else:
                raise GGUFIOError(f"GET {self.url} returned HTTP {resp.status_code}")
        finally:
            resp.close()

        if len(body) != length:
            raise GGUFIOError(
                f"Short read from {self.url}: wanted {length} bytes at {offset}, got {len(body)}"
            )
        return body
