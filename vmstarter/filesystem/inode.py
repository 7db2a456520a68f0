"""
Inode Module

Node records of the in-memory guest filesystem.

Author: YSNRFD
Version: 1.0.0
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class FileType(Enum):
    """Types of nodes."""
    REGULAR = 1
    DIRECTORY = 2


class InodeStatus(Enum):
    """Where a file's content currently is."""
    LOADED = 1
    ON_SERVER = 2   # listed in the manifest, content not fetched yet
    LOADING = 3


@dataclass
class Inode:
    """
    Inode - Index Node.

    Stores a node's type, name, parent and, for regular files, its content
    and load status. Directories map names to inode numbers.
    """

    ino: int
    file_type: FileType
    name: str = ''
    parent: Optional[int] = None
    status: InodeStatus = InodeStatus.LOADED
    size: int = 0

    _data: bytearray = field(default_factory=bytearray, repr=False)
    _entries: dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def is_directory(self) -> bool:
        return self.file_type == FileType.DIRECTORY

    @property
    def is_loaded(self) -> bool:
        return self.status == InodeStatus.LOADED

    def read(self) -> bytes:
        """Return the file content."""
        return bytes(self._data)

    def write(self, data: bytes) -> int:
        """Replace the file content and mark it loaded."""
        self._data = bytearray(data)
        self.size = len(self._data)
        self.status = InodeStatus.LOADED
        return self.size

    def add_entry(self, name: str, ino: int) -> None:
        """Add a directory entry."""
        if not self.is_directory:
            raise NotADirectoryError(self.name)
        self._entries[name] = ino

    def get_entry(self, name: str) -> Optional[int]:
        """Look up a directory entry."""
        return self._entries.get(name)
