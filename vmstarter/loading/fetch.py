"""
HTTP Transport

Fetches remote resources with aiohttp:
- Whole downloads streamed in chunks with progress reporting
- Byte-range requests for lazily loaded disk images
- Size discovery through a one-byte range probe

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Callable, Optional

import aiohttp

from vmstarter.exceptions import LoadTransportError
from vmstarter.logger import get_logger


ProgressHook = Callable[[int, Optional[int]], None]

_CONTENT_RANGE = re.compile(r'bytes\s+(\d+)-(\d+)/(\d+|\*)')


class Fetcher(ABC):
    """Transport used by buffers and the loader to reach remote resources."""

    @abstractmethod
    async def fetch(self, url: str, progress: Optional[ProgressHook] = None) -> bytes:
        """Download the whole resource, calling ``progress(loaded, total)`` per chunk."""

    @abstractmethod
    async def fetch_range(self, url: str, start: int, end: int) -> bytes:
        """Download bytes ``start..end`` inclusive."""

    @abstractmethod
    async def content_length(self, url: str) -> int:
        """Return the total size of the resource."""

    async def close(self) -> None:
        """Release transport resources."""


class HttpFetcher(Fetcher):
    """
    aiohttp based fetcher.

    A single ``ClientSession`` is created on first use and reused for all
    requests until ``close()``.

    Example:
        >>> async with HttpFetcher(timeout=30) as fetcher:
        ...     data = await fetcher.fetch("https://example.org/bios.bin")
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        chunk_size: int = 64 * 1024,
        headers: Optional[dict[str, str]] = None
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None
        self._chunk_size = chunk_size
        self._headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('fetch')

    async def __aenter__(self) -> 'HttpFetcher':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            kwargs = {'headers': self._headers}
            if self._timeout is not None:
                kwargs['timeout'] = self._timeout
            self._session = aiohttp.ClientSession(**kwargs)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str, progress: Optional[ProgressHook] = None) -> bytes:
        self._logger.debug("Fetching resource", context={'url': url})
        session = self._get_session()
        try:
            async with session.get(url) as response:
                self._check_status(response, url)
                total = response.content_length
                data = bytearray()
                async for chunk in response.content.iter_chunked(self._chunk_size):
                    data.extend(chunk)
                    if progress is not None:
                        progress(len(data), total)
                return bytes(data)
        except aiohttp.ClientError as e:
            raise LoadTransportError(f"Request failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise LoadTransportError("Request timed out", url=url) from e

    async def fetch_range(self, url: str, start: int, end: int) -> bytes:
        session = self._get_session()
        headers = {'Range': f'bytes={start}-{end}'}
        try:
            async with session.get(url, headers=headers) as response:
                self._check_status(response, url)
                body = await response.read()
        except aiohttp.ClientError as e:
            raise LoadTransportError(f"Range request failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise LoadTransportError("Range request timed out", url=url) from e

        if response.status == 200:
            # Server ignored the Range header
            self._logger.warning(
                "Server does not honour range requests",
                context={'url': url}
            )
            return body[start:end + 1]
        return body

    async def content_length(self, url: str) -> int:
        session = self._get_session()
        try:
            async with session.get(url, headers={'Range': 'bytes=0-0'}) as response:
                self._check_status(response, url)
                content_range = response.headers.get('Content-Range')
                if response.status == 206 and content_range:
                    match = _CONTENT_RANGE.match(content_range)
                    if match and match.group(3) != '*':
                        return int(match.group(3))
                if response.status == 200 and response.content_length is not None:
                    return response.content_length
        except aiohttp.ClientError as e:
            raise LoadTransportError(f"Size probe failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise LoadTransportError("Size probe timed out", url=url) from e

        raise LoadTransportError("Server did not report a resource size", url=url)

    @staticmethod
    def _check_status(response: aiohttp.ClientResponse, url: str) -> None:
        if response.status >= 400:
            raise LoadTransportError(
                f"HTTP {response.status} {response.reason or ''}".strip(),
                url=url,
                status=response.status
            )
