"""
File Bridge

Lets the host read and write single files inside the guest filesystem:
- Resolves path strings to filesystem node ids
- Turns the filesystem's data-ready events into single-fire callbacks
- Reports unresolvable paths as ResourceNotFoundError values

Every callback follows the ``(error, result)`` convention and is
delivered on a later turn of the event loop.

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .memfs import GuestFilesystem
from .path_resolver import PathResolver
from vmstarter.exceptions import ResourceNotFoundError
from vmstarter.logger import get_logger


CreateCallback = Callable[[Optional[Exception]], None]
ReadCallback = Callable[[Optional[Exception], Optional[bytes]], None]


@dataclass
class PendingRead:
    """A read waiting for a node's data; fires once and is then discarded."""
    ino: int
    path: str
    callback: ReadCallback
    fired: bool = False

    def fire(self, data: bytes) -> bool:
        if self.fired:
            return False
        self.fired = True
        self.callback(None, data)
        return True


class FileBridge:
    """
    Host-side file access to a guest filesystem.

    Example:
        >>> bridge = FileBridge(filesystem)
        >>> bridge.create_file("/tmp/hello.txt", b"hi", on_created)
        >>> bridge.read_file("/tmp/hello.txt", on_read)
        >>> data = await bridge.read("/tmp/hello.txt")
    """

    def __init__(self, filesystem: Optional[GuestFilesystem] = None):
        self._logger = get_logger('bridge')
        self._filesystem = filesystem
        self._reads: dict[int, PendingRead] = {}
        self._next_read = 0

    @property
    def filesystem(self) -> Optional[GuestFilesystem]:
        return self._filesystem

    @property
    def pending_reads(self) -> int:
        """Number of reads still waiting for data."""
        return len(self._reads)

    def _defer(self, callback: Callable[..., Any], *args: Any) -> None:
        asyncio.get_running_loop().call_soon(callback, *args)

    def create_file(
        self,
        path: str,
        data: bytes,
        callback: Optional[CreateCallback] = None
    ) -> None:
        """
        Create (or overwrite) a file.

        The parent directory must exist and the last segment must name a
        file. Failures reach ``callback`` as a ResourceNotFoundError and
        leave the filesystem untouched.
        """
        fs = self._filesystem
        error: Optional[Exception] = None

        _, filename = PathResolver.split_leaf(path)
        if fs is None:
            error = ResourceNotFoundError(path, "No filesystem attached")
        elif filename in ('', '.', '..'):
            error = ResourceNotFoundError(path)
        else:
            info = fs.search_path(path)
            if info.parent_id is None:
                error = ResourceNotFoundError(path)
            elif info.id is not None and fs.is_directory(info.id):
                error = ResourceNotFoundError(path, "Is a directory")
            else:
                fs.create_binary_file(filename, info.parent_id, bytes(data))
                self._logger.debug("File created", context={'path': path, 'size': len(data)})

        if error is not None:
            self._logger.debug("Create failed", context={'path': path, 'error': error.message})

        if callback is not None:
            self._defer(callback, error)

    def read_file(self, path: str, callback: ReadCallback) -> None:
        """
        Read a whole file.

        ``callback(None, data)`` fires once the node's content is available,
        which may take a fetch when the content is still on the server.
        """
        fs = self._filesystem
        if fs is None:
            self._defer(callback, ResourceNotFoundError(path, "No filesystem attached"), None)
            return

        info = fs.search_path(path)
        if info.id is None:
            self._defer(callback, ResourceNotFoundError(path), None)
            return
        if fs.is_directory(info.id):
            self._defer(callback, ResourceNotFoundError(path, "Is a directory"), None)
            return

        fs.open_inode(info.id)

        read_id = self._next_read
        self._next_read += 1
        pending = PendingRead(ino=info.id, path=path, callback=callback)
        self._reads[read_id] = pending

        fs.add_event(info.id, lambda: self._on_data_ready(read_id))

    def _on_data_ready(self, read_id: int) -> None:
        pending = self._reads.pop(read_id, None)
        if pending is None:
            return
        data = self._filesystem.inode_data(pending.ino)
        self._logger.debug("Read ready", context={'path': pending.path, 'size': len(data)})
        self._defer(pending.fire, data)

    async def write(self, path: str, data: bytes) -> None:
        """Coroutine form of ``create_file``; raises ResourceNotFoundError."""
        future = asyncio.get_running_loop().create_future()

        def done(error: Optional[Exception]) -> None:
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(None)

        self.create_file(path, data, done)
        await future

    async def read(self, path: str) -> bytes:
        """Coroutine form of ``read_file``; raises ResourceNotFoundError."""
        future = asyncio.get_running_loop().create_future()

        def done(error: Optional[Exception], data: Optional[bytes]) -> None:
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(data)

        self.read_file(path, done)
        return await future
