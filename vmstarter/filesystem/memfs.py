"""
Guest Filesystem

The interface the file bridge and the starter use to talk to the guest
filesystem, plus an in-memory implementation:
- Inode table with a root directory
- Path search returning node and parent ids
- Manifest loading, with file contents fetched lazily on first open
- Single-fire data-ready events per node

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .inode import Inode, FileType, InodeStatus
from .path_resolver import PathResolver
from vmstarter.exceptions import ConfigurationError
from vmstarter.loading.fetch import Fetcher
from vmstarter.logger import get_logger


ROOT_INO = 0
MANIFEST_VERSION = 1


@dataclass(frozen=True)
class PathInfo:
    """
    Result of a path search.

    ``id`` is None when the path does not exist; ``parent_id`` is None when
    the parent directory does not exist either.
    """
    id: Optional[int]
    parent_id: Optional[int]
    name: str


class GuestFilesystem(ABC):
    """Operations the starter and the file bridge rely on."""

    @abstractmethod
    def search_path(self, path: str) -> PathInfo:
        ...

    @abstractmethod
    def create_binary_file(self, name: str, parent_id: int, data: bytes) -> int:
        ...

    @abstractmethod
    def open_inode(self, ino: int) -> bool:
        ...

    @abstractmethod
    def add_event(self, ino: int, callback: Callable[[], None]) -> None:
        """Call ``callback`` once the node's data is available (possibly at once)."""

    @abstractmethod
    def is_directory(self, ino: int) -> bool:
        ...

    @abstractmethod
    def inode_data(self, ino: int) -> bytes:
        ...

    @abstractmethod
    def load_manifest(self, text: str) -> None:
        ...


class MemoryFilesystem(GuestFilesystem):
    """
    In-memory guest filesystem.

    Files listed in a manifest start out "on server": their content is
    fetched from ``base_url + path`` the first time they are opened, and
    pending data-ready events fire once it arrives.

    Example:
        >>> fs = MemoryFilesystem("https://example.org/fs/", fetcher)
        >>> fs.load_manifest(manifest_text)
        >>> info = fs.search_path("/etc/hostname")
        >>> fs.open_inode(info.id)
    """

    def __init__(self, base_url: Optional[str] = None, fetcher: Optional[Fetcher] = None):
        self._logger = get_logger('filesystem')
        self._base_url = base_url
        self._fetcher = fetcher
        self._inodes: dict[int, Inode] = {
            ROOT_INO: Inode(ino=ROOT_INO, file_type=FileType.DIRECTORY, name='')
        }
        self._next_ino = ROOT_INO + 1
        self._events: List[tuple[int, Callable[[], None]]] = []
        self._tasks: set[asyncio.Task] = set()

    def _generate_ino(self) -> int:
        ino = self._next_ino
        self._next_ino += 1
        return ino

    def get_inode(self, ino: int) -> Inode:
        return self._inodes[ino]

    def search_path(self, path: str) -> PathInfo:
        components = PathResolver.components(path)
        if not components:
            return PathInfo(id=ROOT_INO, parent_id=None, name='')

        parent_ino = ROOT_INO
        last = len(components) - 1
        for i, name in enumerate(components):
            parent = self._inodes[parent_ino]
            ino = parent.get_entry(name) if parent.is_directory else None
            if ino is None:
                if i < last or not parent.is_directory:
                    return PathInfo(id=None, parent_id=None, name=name)
                return PathInfo(id=None, parent_id=parent_ino, name=name)
            if i == last:
                return PathInfo(id=ino, parent_id=parent_ino, name=name)
            parent_ino = ino

        raise AssertionError("unreachable")

    def path_of(self, ino: int) -> str:
        """Absolute path of a node."""
        parts = []
        node = self._inodes[ino]
        while node.parent is not None:
            parts.append(node.name)
            node = self._inodes[node.parent]
        return '/' + '/'.join(reversed(parts))

    def create_directory(self, name: str, parent_id: int) -> int:
        """Create a directory, or return the existing one of that name."""
        parent = self._inodes[parent_id]
        existing = parent.get_entry(name)
        if existing is not None:
            if not self._inodes[existing].is_directory:
                raise NotADirectoryError(self.path_of(existing))
            return existing

        ino = self._generate_ino()
        self._inodes[ino] = Inode(
            ino=ino,
            file_type=FileType.DIRECTORY,
            name=name,
            parent=parent_id
        )
        parent.add_entry(name, ino)
        return ino

    def makedirs(self, path: str) -> int:
        """Create every missing directory along ``path``."""
        ino = ROOT_INO
        for name in PathResolver.components(path):
            ino = self.create_directory(name, ino)
        return ino

    def create_binary_file(self, name: str, parent_id: int, data: bytes) -> int:
        """Create a file with ``data`` or replace the content of an existing one."""
        parent = self._inodes[parent_id]
        ino = parent.get_entry(name)
        if ino is not None:
            node = self._inodes[ino]
            if node.is_directory:
                raise IsADirectoryError(self.path_of(ino))
        else:
            ino = self._generate_ino()
            node = Inode(ino=ino, file_type=FileType.REGULAR, name=name, parent=parent_id)
            self._inodes[ino] = node
            parent.add_entry(name, ino)

        node.write(data)
        self._logger.debug(
            "Created file",
            context={'path': self.path_of(ino), 'ino': ino, 'size': node.size}
        )
        self._check_events(ino)
        return ino

    def open_inode(self, ino: int) -> bool:
        """Open a node; starts fetching its content if it is still on the server."""
        node = self._inodes.get(ino)
        if node is None:
            return False
        if node.status == InodeStatus.ON_SERVER:
            self._start_fetch(node)
        return True

    def add_event(self, ino: int, callback: Callable[[], None]) -> None:
        node = self._inodes[ino]
        if node.is_loaded:
            callback()
            return
        self._events.append((ino, callback))

    def inode_data(self, ino: int) -> bytes:
        return self._inodes[ino].read()

    def is_directory(self, ino: int) -> bool:
        return self._inodes[ino].is_directory

    def pending_events(self, ino: Optional[int] = None) -> int:
        if ino is None:
            return len(self._events)
        return sum(1 for event_ino, _ in self._events if event_ino == ino)

    def _check_events(self, ino: int) -> None:
        ready = [cb for event_ino, cb in self._events if event_ino == ino]
        if not ready:
            return
        self._events = [event for event in self._events if event[0] != ino]
        for callback in ready:
            callback()

    def _start_fetch(self, node: Inode) -> None:
        if self._fetcher is None or self._base_url is None:
            raise ConfigurationError(
                "Filesystem has no base url or fetcher for lazy content",
                resource=self.path_of(node.ino)
            )
        node.status = InodeStatus.LOADING
        task = asyncio.get_running_loop().create_task(self._fetch_content(node))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch_content(self, node: Inode) -> None:
        path = self.path_of(node.ino)
        url = self._base_url.rstrip('/') + path
        try:
            data = await self._fetcher.fetch(url)
        except Exception as e:
            # Back to on-server so a later open retries; waiting readers stay pending
            node.status = InodeStatus.ON_SERVER
            self._logger.error(
                "Failed to fetch file content",
                context={'path': path, 'error': e}
            )
            return

        node.write(data)
        self._logger.debug("File content loaded", context={'path': path, 'size': node.size})
        self._check_events(node.ino)

    def load_manifest(self, text: str) -> None:
        """
        Populate the tree from a manifest.

        Format::

            {"version": 1,
             "entries": [{"path": "/etc", "type": "dir"},
                         {"path": "/etc/hostname", "type": "file", "size": 5}]}
        """
        try:
            manifest: dict[str, Any] = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid filesystem manifest: {e}", resource='fs9p_json') from e

        version = manifest.get('version', MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            raise ConfigurationError(
                f"Unsupported manifest version {version}",
                resource='fs9p_json'
            )

        files = 0
        for entry in manifest.get('entries', []):
            parent_path, name = PathResolver.split(entry['path'])
            if not name:
                continue
            parent_id = self.makedirs(parent_path)

            if entry.get('type', 'file') == 'dir':
                self.create_directory(name, parent_id)
                continue

            ino = self._generate_ino()
            size = int(entry.get('size', 0))
            self._inodes[ino] = Inode(
                ino=ino,
                file_type=FileType.REGULAR,
                name=name,
                parent=parent_id,
                size=size,
                status=InodeStatus.ON_SERVER if size else InodeStatus.LOADED,
            )
            self._inodes[parent_id].add_entry(name, ino)
            files += 1

        self._logger.info(
            "Filesystem manifest loaded",
            context={'files': files, 'inodes': len(self._inodes)}
        )

    def get_stats(self) -> dict[str, Any]:
        """Get filesystem statistics."""
        return {
            'inodes': len(self._inodes),
            'pending_events': len(self._events),
            'loading': sum(1 for n in self._inodes.values() if n.status == InodeStatus.LOADING),
        }
