"""
Resource Sources

Where the bytes of a resource come from, and how a resource is requested.

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional, Union


# Resources at or above this size are range-fetched unless the caller says otherwise
LAZY_THRESHOLD = 16 * 1024 * 1024


@dataclass(frozen=True)
class InMemory:
    """Bytes already held by the caller."""
    data: Union[bytes, bytearray]

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class LocalFile:
    """A file on the host filesystem."""
    path: Path

    def __post_init__(self):
        object.__setattr__(self, 'path', Path(self.path))

    @property
    def size(self) -> int:
        return self.path.stat().st_size


@dataclass(frozen=True)
class RemoteRef:
    """A resource reachable over HTTP(S)."""
    url: str
    size_hint: Optional[int] = None

    @property
    def size(self) -> Optional[int]:
        return self.size_hint


ResourceSource = Union[InMemory, LocalFile, RemoteRef]


class LoadMode(Enum):
    """How a resource should be made available."""
    AUTO = auto()
    WHOLE = auto()
    RANGE = auto()

    @classmethod
    def from_async_flag(cls, flag: Optional[bool]) -> 'LoadMode':
        """Map the ``async`` option of an image entry onto a mode."""
        if flag is None:
            return cls.AUTO
        return cls.RANGE if flag else cls.WHOLE


@dataclass(frozen=True)
class LoadRequest:
    """
    One named resource to be loaded before boot.

    Attributes:
        name: Resource slot name (``bios``, ``hda``, ...)
        source: Where the bytes come from
        size_hint: Size known up front, if any
        eager_required: Must be fully resident before the machine starts
        mode: Caller's loading preference
        as_text: Deliver the content decoded as UTF-8
    """
    name: str
    source: ResourceSource
    size_hint: Optional[int] = None
    eager_required: bool = False
    mode: LoadMode = LoadMode.AUTO
    as_text: bool = False

    @property
    def known_size(self) -> Optional[int]:
        if self.size_hint is not None:
            return self.size_hint
        return self.source.size


def source_from_image(image: dict) -> Optional[ResourceSource]:
    """
    Turn an image option mapping into a source.

    Recognised keys are ``buffer`` (bytes), ``path`` (local file) and
    ``url`` with an optional ``size``. Returns None when none is present.
    """
    buffer = image.get('buffer')
    if isinstance(buffer, (bytes, bytearray)):
        return InMemory(buffer)
    if isinstance(buffer, (str, Path)) or image.get('path'):
        return LocalFile(Path(image.get('path') or buffer))
    if image.get('url'):
        return RemoteRef(image['url'], image.get('size'))
    return None
