"""
vmstarter Guest Filesystem

The filesystem collaborator interface, an in-memory implementation and
the host-side file bridge.
"""

from .path_resolver import PathResolver, ParsedPath
from .inode import Inode, FileType, InodeStatus
from .memfs import GuestFilesystem, MemoryFilesystem, PathInfo, ROOT_INO
from .bridge import FileBridge, PendingRead

__all__ = [
    'PathResolver',
    'ParsedPath',
    'Inode',
    'FileType',
    'InodeStatus',
    'GuestFilesystem',
    'MemoryFilesystem',
    'PathInfo',
    'ROOT_INO',
    'FileBridge',
    'PendingRead',
]
