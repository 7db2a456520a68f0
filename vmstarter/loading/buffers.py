"""
Buffer Strategies

Uniform byte access over resources that may not be fully resident yet:

- InMemoryBuffer: bytes already held in memory
- WholeResourceBuffer: a local file or URL read completely before use
- RangeFetchBuffer: a local file or URL fetched block by block on demand

Every strategy exposes ``load()``, which fires ``onload`` exactly once,
and asynchronous ``read(offset, length)`` / ``write(offset, data)``.
Resident strategies additionally offer synchronous access for the machine
core.

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from .fetch import Fetcher, ProgressHook
from .sources import (
    InMemory,
    LocalFile,
    RemoteRef,
    ResourceSource,
    LoadMode,
    LoadRequest,
    LAZY_THRESHOLD,
)
from vmstarter.exceptions import (
    BufferNotLoadedError,
    BufferRangeError,
    ConfigurationError,
    LoadTransportError,
    ReadOnlyBufferError,
)
from vmstarter.logger import get_logger


DEFAULT_BLOCK_SIZE = 256


class BufferStrategy(ABC):
    """
    Base class for all buffer strategies.

    Attributes:
        onload: Called with the buffer once loading has completed
        byte_length: Total size, known after load
    """

    mutable: bool = False

    def __init__(self):
        self.onload: Optional[Callable[['BufferStrategy'], None]] = None
        self.byte_length: Optional[int] = None
        self._loaded = False
        self._onload_fired = False
        self._logger = get_logger('buffer')

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    @abstractmethod
    def resident(self) -> bool:
        """True when the full content can be read synchronously."""

    async def load(self, progress: Optional[ProgressHook] = None) -> None:
        """
        Make the buffer usable and fire ``onload``.

        Calling ``load()`` again after completion does nothing.

        Args:
            progress: Optional ``(loaded, total)`` hook for transfer progress
        """
        if not self._loaded:
            await self._load(progress)
            self._loaded = True
        self._fire_onload()

    def _fire_onload(self) -> None:
        if self._onload_fired:
            return
        self._onload_fired = True
        if self.onload is not None:
            self.onload(self)

    @abstractmethod
    async def _load(self, progress: Optional[ProgressHook]) -> None:
        ...

    async def read(self, offset: int, length: int) -> bytes:
        """Read ``length`` bytes starting at ``offset``."""
        self._check_access(offset, length)
        return await self._read(offset, length)

    async def write(self, offset: int, data: bytes) -> None:
        """Write ``data`` at ``offset``. Only mutable buffers accept writes."""
        if not self.mutable:
            raise ReadOnlyBufferError(self.describe())
        self._check_access(offset, len(data))
        await self._write(offset, data)

    @abstractmethod
    async def _read(self, offset: int, length: int) -> bytes:
        ...

    @abstractmethod
    async def _write(self, offset: int, data: bytes) -> None:
        ...

    def read_all(self) -> bytes:
        """Return the complete content. Only resident buffers can do this."""
        raise ConfigurationError(
            f"{self.describe()} is not resident in memory"
        )

    def _check_access(self, offset: int, length: int) -> None:
        if not self._loaded or self.byte_length is None:
            raise BufferNotLoadedError(self.describe())
        if offset < 0 or length < 0 or offset + length > self.byte_length:
            raise BufferRangeError(offset, length, self.byte_length)

    def describe(self) -> str:
        return self.__class__.__name__

    def __repr__(self) -> str:
        return f"<{self.describe()} length={self.byte_length} loaded={self._loaded}>"


class ResidentBuffer(BufferStrategy):
    """A strategy whose whole content lives in a bytearray once loaded."""

    def __init__(self):
        super().__init__()
        self._data = bytearray()

    @property
    def resident(self) -> bool:
        return self._loaded

    def read_sync(self, offset: int, length: int) -> bytes:
        """Synchronous read for the machine core."""
        self._check_access(offset, length)
        return bytes(self._data[offset:offset + length])

    def write_sync(self, offset: int, data: bytes) -> None:
        """Synchronous write for the machine core."""
        if not self.mutable:
            raise ReadOnlyBufferError(self.describe())
        self._check_access(offset, len(data))
        self._data[offset:offset + len(data)] = data

    async def _read(self, offset: int, length: int) -> bytes:
        return bytes(self._data[offset:offset + length])

    async def _write(self, offset: int, data: bytes) -> None:
        self._data[offset:offset + len(data)] = data

    def read_all(self) -> bytes:
        if not self.resident:
            return super().read_all()
        return bytes(self._data)


class InMemoryBuffer(ResidentBuffer):
    """
    Bytes that are already resident.

    ``load()`` has no suspension point, so ``onload`` fires in the same
    step as the call.
    """

    mutable = True

    def __init__(self, data: bytes | bytearray):
        super().__init__()
        self._data = bytearray(data)
        self.byte_length = len(self._data)

    async def _load(self, progress: Optional[ProgressHook]) -> None:
        return None

    def describe(self) -> str:
        return f"InMemoryBuffer({self.byte_length} bytes)"


class WholeResourceBuffer(ResidentBuffer):
    """
    Reads a local file or remote URL completely before signalling ready.

    Writes are accepted for local files and land in the in-memory copy;
    the file on disk is left untouched.
    """

    def __init__(self, source: ResourceSource, fetcher: Optional[Fetcher] = None):
        super().__init__()
        if isinstance(source, InMemory):
            raise ValueError("In-memory sources use InMemoryBuffer")
        if isinstance(source, RemoteRef) and fetcher is None:
            raise ValueError("A fetcher is required for remote sources")
        self.source = source
        self._fetcher = fetcher
        self.mutable = isinstance(source, LocalFile)

    async def _load(self, progress: Optional[ProgressHook]) -> None:
        if isinstance(self.source, LocalFile):
            data = await _read_local(self.source.path)
        else:
            data = await self._fetcher.fetch(self.source.url, progress)
        self._data = bytearray(data)
        self.byte_length = len(self._data)
        self._logger.debug(
            "Resource loaded into memory",
            context={'source': self.describe(), 'bytes': self.byte_length}
        )

    def describe(self) -> str:
        return f"WholeResourceBuffer({_source_label(self.source)})"


class RangeFetchBuffer(BufferStrategy):
    """
    Fetches byte ranges on demand.

    ``load()`` only determines the total size. Reads fetch the blocks that
    cover the requested range and keep them in a block cache; writes
    (local files only) are applied to that cache and never reach the
    backing file.
    """

    def __init__(
        self,
        source: ResourceSource,
        fetcher: Optional[Fetcher] = None,
        size_hint: Optional[int] = None,
        block_size: int = DEFAULT_BLOCK_SIZE
    ):
        super().__init__()
        if isinstance(source, InMemory):
            raise ValueError("In-memory sources use InMemoryBuffer")
        if isinstance(source, RemoteRef) and fetcher is None:
            raise ValueError("A fetcher is required for remote sources")
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self.source = source
        self.block_size = block_size
        self._fetcher = fetcher
        self._size_hint = size_hint
        self._blocks: dict[int, bytearray] = {}
        self.mutable = isinstance(source, LocalFile)

    @property
    def resident(self) -> bool:
        return False

    @property
    def cached_blocks(self) -> int:
        return len(self._blocks)

    async def _load(self, progress: Optional[ProgressHook]) -> None:
        if self._size_hint is not None:
            self.byte_length = self._size_hint
        elif isinstance(self.source, LocalFile):
            try:
                stat = await asyncio.to_thread(self.source.path.stat)
            except OSError as e:
                raise LoadTransportError(
                    f"Cannot stat file: {e}", url=str(self.source.path)
                ) from e
            self.byte_length = stat.st_size
        else:
            self.byte_length = await self._fetcher.content_length(self.source.url)

    async def _read(self, offset: int, length: int) -> bytes:
        if length == 0:
            return b''
        first, last = self._block_span(offset, length)
        await self._ensure_blocks(first, last)

        joined = bytearray()
        for index in range(first, last + 1):
            joined.extend(self._blocks[index])
        start = offset - first * self.block_size
        return bytes(joined[start:start + length])

    async def _write(self, offset: int, data: bytes) -> None:
        if not data:
            return
        first, last = self._block_span(offset, len(data))
        await self._ensure_blocks(first, last)

        position = offset
        remaining = memoryview(data)
        while remaining:
            index, inner = divmod(position, self.block_size)
            block = self._blocks[index]
            count = min(len(block) - inner, len(remaining))
            block[inner:inner + count] = remaining[:count]
            remaining = remaining[count:]
            position += count

    def _block_span(self, offset: int, length: int) -> tuple[int, int]:
        return offset // self.block_size, (offset + length - 1) // self.block_size

    async def _ensure_blocks(self, first: int, last: int) -> None:
        """Fetch every missing block in ``first..last``, one request per gap."""
        index = first
        while index <= last:
            if index in self._blocks:
                index += 1
                continue
            run_end = index
            while run_end + 1 <= last and run_end + 1 not in self._blocks:
                run_end += 1

            start = index * self.block_size
            end = min((run_end + 1) * self.block_size, self.byte_length) - 1
            data = await self._fetch(start, end)
            if len(data) < end - start + 1:
                raise LoadTransportError(
                    f"Short range read: expected {end - start + 1} bytes, got {len(data)}",
                    url=_source_label(self.source)
                )

            for block_index in range(index, run_end + 1):
                lo = block_index * self.block_size - start
                self._blocks[block_index] = bytearray(data[lo:lo + self.block_size])
            index = run_end + 1

    async def _fetch(self, start: int, end: int) -> bytes:
        if isinstance(self.source, LocalFile):
            return await _read_local(self.source.path, start, end - start + 1)
        return await self._fetcher.fetch_range(self.source.url, start, end)

    def describe(self) -> str:
        return f"RangeFetchBuffer({_source_label(self.source)})"


async def _read_local(path: Path, offset: int = 0, length: Optional[int] = None) -> bytes:
    """Read from a host file in a worker thread."""
    def _read() -> bytes:
        with open(path, 'rb') as f:
            if offset:
                f.seek(offset)
            return f.read() if length is None else f.read(length)

    try:
        return await asyncio.to_thread(_read)
    except OSError as e:
        raise LoadTransportError(f"Cannot read file: {e}", url=str(path)) from e


def _source_label(source: ResourceSource) -> str:
    if isinstance(source, LocalFile):
        return str(source.path)
    if isinstance(source, RemoteRef):
        return source.url
    return "memory"


def _safe_size(request: LoadRequest) -> Optional[int]:
    try:
        return request.known_size
    except OSError:
        return None


def resolve_mode(request: LoadRequest, threshold: int = LAZY_THRESHOLD) -> LoadMode:
    """
    Decide how a request is loaded.

    Eager resources and in-memory sources always resolve to ``WHOLE``; an
    explicit mode is honoured otherwise; ``AUTO`` range-fetches resources
    whose known size is at least ``threshold``.

    Raises:
        ConfigurationError: If an eager resource explicitly asks for ``RANGE``
    """
    if request.eager_required:
        if request.mode is LoadMode.RANGE:
            raise ConfigurationError(
                "Resource must be resident before boot and cannot be range-fetched",
                resource=request.name
            )
        return LoadMode.WHOLE

    if isinstance(request.source, InMemory):
        return LoadMode.WHOLE

    if request.mode is not LoadMode.AUTO:
        return request.mode

    size = _safe_size(request)
    if size is not None and size >= threshold:
        return LoadMode.RANGE
    return LoadMode.WHOLE


def build_strategy(
    request: LoadRequest,
    fetcher: Optional[Fetcher] = None,
    threshold: int = LAZY_THRESHOLD,
    block_size: int = DEFAULT_BLOCK_SIZE
) -> BufferStrategy:
    """Construct the buffer strategy that serves ``request``."""
    mode = resolve_mode(request, threshold)

    if isinstance(request.source, InMemory):
        return InMemoryBuffer(request.source.data)

    if mode is LoadMode.RANGE:
        return RangeFetchBuffer(
            request.source,
            fetcher,
            size_hint=request.size_hint,
            block_size=block_size
        )

    return WholeResourceBuffer(request.source, fetcher)
