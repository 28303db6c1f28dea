"""Random-access byte sources for the BGZF reader.

A source exposes its total ``size`` and ``read_at(offset, length)``. Reads
near the end of the source return fewer bytes than requested; reads at or
past the end return ``b""``.
"""

from __future__ import annotations

import logging
import os
from typing import Protocol

import httpx

from ..constants import HTTP_TIMEOUT_SECONDS, REMOTE_FILE_SCHEMES
from .errors import SourceError

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    """Anything the block reader can slice bytes out of."""

    @property
    def size(self) -> int: ...

    def read_at(self, offset: int, length: int) -> bytes: ...

    def close(self) -> None: ...


class BytesSource:
    """In-memory source over an existing buffer."""

    def __init__(self, data: bytes | bytearray | memoryview):
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def read_at(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0:
            return b""
        return bytes(self._data[offset : offset + length])

    def close(self) -> None:
        self._data.release()

    def __enter__(self) -> BytesSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class FileSource:
    """Local file source; keeps one handle open for the lifetime of the source."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = os.fspath(path)
        try:
            self._fh = open(self.path, "rb")  # noqa: SIM115
        except OSError as e:
            raise SourceError(f"Cannot open '{self.path}': {e}") from e
        self._size = os.fstat(self._fh.fileno()).st_size

    @property
    def size(self) -> int:
        return self._size

    def read_at(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0 or offset >= self._size:
            return b""
        try:
            self._fh.seek(offset)
            return self._fh.read(length)
        except OSError as e:
            raise SourceError(f"Read failed at offset {offset} of '{self.path}': {e}") from e

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> FileSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class HttpSource:
    """Remote source read with HTTP range requests.

    The total size comes from a HEAD request's Content-Length. Servers that
    ignore the Range header and answer 200 are tolerated by slicing the full
    body, which is slow but correct.
    """

    def __init__(
        self,
        url: str,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._size: int | None = None

    @property
    def size(self) -> int:
        if self._size is None:
            try:
                resp = self._client.head(self.url)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise SourceError(f"HEAD {self.url} failed: {e}") from e
            content_length = resp.headers.get("content-length")
            if content_length is None:
                raise SourceError(f"Server did not report Content-Length for {self.url}")
            self._size = int(content_length)
            logger.debug("Remote source %s is %d bytes", self.url, self._size)
        return self._size

    def read_at(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0 or offset >= self.size:
            return b""
        last = min(offset + length, self.size) - 1
        try:
            resp = self._client.get(self.url, headers={"Range": f"bytes={offset}-{last}"})
        except httpx.HTTPError as e:
            raise SourceError(f"GET {self.url} bytes {offset}-{last} failed: {e}") from e

        if resp.status_code == 206:
            return resp.content
        if resp.status_code == 200:
            logger.warning("Server ignored Range header for %s", self.url)
            return resp.content[offset : last + 1]
        raise SourceError(
            f"GET {self.url} bytes {offset}-{last} returned HTTP {resp.status_code}"
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_source(location: str, timeout: float = HTTP_TIMEOUT_SECONDS) -> FileSource | HttpSource:
    """Open a local path or an http(s) URL as a byte source."""
    if location.startswith(REMOTE_FILE_SCHEMES):
        return HttpSource(location, timeout=timeout)
    return FileSource(location)
