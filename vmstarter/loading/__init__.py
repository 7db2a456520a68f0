"""
vmstarter Resource Loading

Sources, buffer strategies, HTTP transport and the sequential loader.
"""

from .sources import (
    InMemory,
    LocalFile,
    RemoteRef,
    ResourceSource,
    LoadMode,
    LoadRequest,
    LAZY_THRESHOLD,
    source_from_image,
)
from .fetch import Fetcher, HttpFetcher
from .buffers import (
    BufferStrategy,
    ResidentBuffer,
    InMemoryBuffer,
    WholeResourceBuffer,
    RangeFetchBuffer,
    resolve_mode,
    build_strategy,
)
from .loader import (
    SequentialLoader,
    LoaderState,
    LoadItem,
    DownloadProgress,
    TOPIC_PROGRESS,
    TOPIC_ERROR,
)

__all__ = [
    # Sources
    'InMemory',
    'LocalFile',
    'RemoteRef',
    'ResourceSource',
    'LoadMode',
    'LoadRequest',
    'LAZY_THRESHOLD',
    'source_from_image',
    # Transport
    'Fetcher',
    'HttpFetcher',
    # Buffers
    'BufferStrategy',
    'ResidentBuffer',
    'InMemoryBuffer',
    'WholeResourceBuffer',
    'RangeFetchBuffer',
    'resolve_mode',
    'build_strategy',
    # Loader
    'SequentialLoader',
    'LoaderState',
    'LoadItem',
    'DownloadProgress',
    'TOPIC_PROGRESS',
    'TOPIC_ERROR',
]
