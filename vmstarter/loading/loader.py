"""
Sequential Loader

Resolves an ordered list of named resources one at a time:
- Items backed by a buffer strategy are loaded through ``load()``
- Bare URLs are downloaded with a single fetch
- Transfer progress is published on the event bus
- A single completion callback fires after the last item

Items are never loaded concurrently. If item ``k`` fails, items after
``k`` are never started, a ``download-error`` event is published and
``run()`` raises ``LoadTransportError``.

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional, Sequence, TYPE_CHECKING

from .buffers import BufferStrategy, InMemoryBuffer
from .fetch import Fetcher
from vmstarter.exceptions import LoadTransportError, LoaderStateError, StarterError
from vmstarter.logger import get_logger

if TYPE_CHECKING:
    from vmstarter.core.bus import EventBus


TOPIC_PROGRESS = "download-progress"
TOPIC_ERROR = "download-error"


class LoaderState(Enum):
    """Lifecycle of a loader run."""
    IDLE = auto()
    LOADING = auto()
    COMPLETE = auto()
    FAILED = auto()


@dataclass(frozen=True)
class LoadItem:
    """
    One entry of the load queue.

    Exactly one of ``strategy`` and ``url`` is set.
    """
    name: str
    strategy: Optional[BufferStrategy] = None
    url: Optional[str] = None
    size: Optional[int] = None
    as_text: bool = False

    def __post_init__(self):
        if (self.strategy is None) == (self.url is None):
            raise ValueError(f"Load item {self.name!r} needs either a strategy or a url")


@dataclass(frozen=True)
class DownloadProgress:
    """Payload of ``download-progress`` events."""
    file_index: int
    file_count: int
    loaded: int
    total: Optional[int]

    @property
    def length_computable(self) -> bool:
        return bool(self.total)

    @property
    def percent(self) -> Optional[float]:
        if not self.total:
            return None
        return min(100.0, self.loaded * 100.0 / self.total)


class SequentialLoader:
    """
    Drives a list of load items to completion, strictly in order.

    Example:
        >>> loader = SequentialLoader(items, fetcher=fetcher, bus=bus)
        >>> results = await loader.run()
        >>> results['bios']
        <InMemoryBuffer(65536 bytes) length=65536 loaded=True>
    """

    def __init__(
        self,
        items: Sequence[LoadItem],
        fetcher: Optional[Fetcher] = None,
        bus: Optional['EventBus'] = None,
        on_complete: Optional[Callable[[dict[str, Any]], None]] = None,
        on_error: Optional[Callable[[LoadTransportError], None]] = None
    ):
        names = [item.name for item in items]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate resource names in load queue: {names}")

        self._items = list(items)
        self._fetcher = fetcher
        self._bus = bus
        self._on_complete = on_complete
        self._on_error = on_error
        self._state = LoaderState.IDLE
        self._cursor = 0
        self._results: dict[str, Any] = {}
        self._logger = get_logger('loader')

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def cursor(self) -> int:
        """Index of the item currently loading (``file_count`` once done)."""
        return self._cursor

    @property
    def file_count(self) -> int:
        return len(self._items)

    async def run(self) -> dict[str, Any]:
        """
        Load every item in order.

        Returns:
            Mapping of resource name to its buffer strategy, or to text for
            items requested ``as_text``

        Raises:
            LoaderStateError: If the loader already ran
            LoadTransportError: If any item failed to load
        """
        if self._state is not LoaderState.IDLE:
            raise LoaderStateError(self._state.name)

        self._state = LoaderState.LOADING
        total = len(self._items)
        self._logger.info("Loading resources", context={'count': total})

        for index, item in enumerate(self._items):
            self._cursor = index
            try:
                result = await self._load_item(index, item)
            except Exception as e:
                raise self._fail(index, item, e) from e

            self._results[item.name] = result
            self._logger.debug(
                "Resource ready",
                context={'index': index, 'name': item.name}
            )

        self._cursor = total
        self._state = LoaderState.COMPLETE
        results = dict(self._results)
        self._logger.info("All resources loaded", context={'count': total})

        if self._on_complete is not None:
            self._on_complete(results)
        return results

    async def _load_item(self, index: int, item: LoadItem) -> Any:
        def progress(loaded: int, total: Optional[int]) -> None:
            self._emit_progress(index, loaded, total or item.size)

        if item.strategy is not None:
            await item.strategy.load(progress)
            return item.strategy

        if self._fetcher is None:
            raise LoadTransportError("No fetcher configured", url=item.url)

        data = await self._fetcher.fetch(item.url, progress)
        if item.as_text:
            return data.decode('utf-8')
        return InMemoryBuffer(data)

    def _emit_progress(self, index: int, loaded: int, total: Optional[int]) -> None:
        if self._bus is None:
            return
        self._bus.send(TOPIC_PROGRESS, DownloadProgress(
            file_index=index,
            file_count=len(self._items),
            loaded=loaded,
            total=total,
        ))

    def _fail(self, index: int, item: LoadItem, cause: Exception) -> LoadTransportError:
        self._state = LoaderState.FAILED
        detail = cause.message if isinstance(cause, StarterError) else str(cause)
        error = LoadTransportError(
            f"Failed to load {item.name}: {detail}",
            url=item.url or getattr(cause, 'url', None),
            resource=item.name,
            status=getattr(cause, 'status', None),
            context={'file_index': index}
        )

        self._logger.error(
            "Resource load failed",
            context={'index': index, 'name': item.name, 'error': detail}
        )

        if self._bus is not None:
            self._bus.send(TOPIC_ERROR, {
                'file_index': index,
                'file_count': len(self._items),
                'name': item.name,
                'error': error,
            })
        if self._on_error is not None:
            self._on_error(error)
        return error
