"""
Settings Assembler

Turns caller options and loaded resources into the frozen machine
settings:
- Applies defaults for memory sizes and boot order
- Builds the ordered list of load requests
- Forces boot-critical resources to be loaded whole
- Validates residency of boot-critical resources when freezing

The assembler performs no I/O itself.

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, TYPE_CHECKING

from vmstarter.exceptions import ConfigurationError, UnknownResourceError
from vmstarter.loading import (
    BufferStrategy,
    Fetcher,
    InMemory,
    LoadItem,
    LoadMode,
    LoadRequest,
    LocalFile,
    RemoteRef,
    ResourceSource,
    LAZY_THRESHOLD,
    build_strategy,
    source_from_image,
)
from vmstarter.loading.buffers import DEFAULT_BLOCK_SIZE
from vmstarter.logger import get_logger

if TYPE_CHECKING:
    from vmstarter.filesystem.memfs import GuestFilesystem


DEFAULT_MEMORY_SIZE = 64 * 1024 * 1024
DEFAULT_VGA_MEMORY_SIZE = 8 * 1024 * 1024
DEFAULT_BOOT_ORDER = 0x213

# Must be fully resident before the machine core initializes
EAGER_SLOTS = ('bios', 'vga_bios', 'initial_state')
DISK_SLOTS = ('cdrom', 'hda', 'hdb', 'fda', 'fdb')
MANIFEST_SLOT = 'fs9p_json'

# Load order
IMAGE_SLOTS = ('bios', 'vga_bios', 'cdrom', 'hda', 'hdb', 'fda', 'fdb', 'initial_state')
RESOURCE_SLOTS = IMAGE_SLOTS + (MANIFEST_SLOT,)


@dataclass(frozen=True)
class MachineSettings:
    """
    The configuration handed to the machine core.

    Boot-critical slots hold raw bytes, disk slots hold the buffer strategy
    that serves them, ``fs9p_json`` holds the filesystem manifest text.
    """
    memory_size: int = DEFAULT_MEMORY_SIZE
    vga_memory_size: int = DEFAULT_VGA_MEMORY_SIZE
    boot_order: int = DEFAULT_BOOT_ORDER
    load_devices: bool = True
    enable_ne2k: bool = False
    network_relay_url: Optional[str] = None
    disable_keyboard: bool = False
    disable_mouse: bool = False

    bios: Optional[bytes] = None
    vga_bios: Optional[bytes] = None
    initial_state: Optional[bytes] = None

    cdrom: Optional[BufferStrategy] = None
    hda: Optional[BufferStrategy] = None
    hdb: Optional[BufferStrategy] = None
    fda: Optional[BufferStrategy] = None
    fdb: Optional[BufferStrategy] = None

    fs9p_json: Optional[str] = None
    fs9p: Optional['GuestFilesystem'] = None

    def resources(self) -> dict[str, Any]:
        """The resource slots that are filled."""
        return {
            name: getattr(self, name)
            for name in RESOURCE_SLOTS
            if getattr(self, name) is not None
        }


_SCALAR_FIELDS = tuple(
    f.name for f in fields(MachineSettings)
    if f.name not in RESOURCE_SLOTS and f.name != 'fs9p'
)


class SettingsBuilder:
    """
    Accumulates settings and freezes them once.

    Example:
        >>> builder = SettingsBuilder(memory_size=32 * 1024 * 1024)
        >>> builder.put('bios', bios_buffer).put('hda', disk_buffer)
        >>> settings = builder.finalize()
    """

    def __init__(self, fs9p: Optional['GuestFilesystem'] = None, **scalars: Any):
        unknown = set(scalars) - set(_SCALAR_FIELDS)
        if unknown:
            raise TypeError(f"Unknown settings: {sorted(unknown)}")
        self._scalars = scalars
        self._fs9p = fs9p
        self._resources: dict[str, Any] = {}
        self._frozen: Optional[MachineSettings] = None

    def put(self, name: str, result: Any) -> 'SettingsBuilder':
        """
        Store a loaded resource under its slot.

        Raises:
            UnknownResourceError: If ``name`` is not a resource slot
        """
        if name not in RESOURCE_SLOTS:
            raise UnknownResourceError(name)
        if self._frozen is not None:
            raise ConfigurationError("Settings are already frozen", resource=name)
        self._resources[name] = result
        return self

    def finalize(self) -> MachineSettings:
        """
        Validate and freeze the settings.

        Raises:
            ConfigurationError: If a boot-critical resource is not resident
        """
        if self._frozen is not None:
            raise ConfigurationError("Settings are already frozen")

        values: dict[str, Any] = dict(self._scalars)
        for name, result in self._resources.items():
            if name in EAGER_SLOTS:
                values[name] = _resident_bytes(name, result)
            elif name == MANIFEST_SLOT:
                values[name] = _manifest_text(result)
            else:
                values[name] = result

        self._frozen = MachineSettings(fs9p=self._fs9p, **values)
        return self._frozen


def _resident_bytes(name: str, result: Any) -> bytes:
    if isinstance(result, (bytes, bytearray)):
        return bytes(result)
    if isinstance(result, BufferStrategy) and result.resident:
        return result.read_all()
    raise ConfigurationError(
        "Boot-critical resource is not resident in memory",
        resource=name,
        context={'buffer': repr(result)}
    )


def _manifest_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, (bytes, bytearray)):
        return bytes(result).decode('utf-8')
    return _resident_bytes(MANIFEST_SLOT, result).decode('utf-8')


class SettingsAssembler:
    """
    Builds load requests from options and reassembles the loader results.

    Example:
        >>> assembler = SettingsAssembler(options)
        >>> items = assembler.plan(fetcher)
        >>> results = await SequentialLoader(items, fetcher).run()
        >>> settings = assembler.assemble(results)
    """

    def __init__(
        self,
        options: Mapping[str, Any],
        threshold: int = LAZY_THRESHOLD,
        block_size: int = DEFAULT_BLOCK_SIZE
    ):
        self._options = options
        self._threshold = threshold
        self._block_size = block_size
        self._logger = get_logger('settings')
        self.requests = self.build_requests()

    def scalars(self) -> dict[str, Any]:
        """Scalar settings with defaults applied."""
        options = self._options
        relay = options.get('network_relay_url')
        return {
            'memory_size': options.get('memory_size') or DEFAULT_MEMORY_SIZE,
            'vga_memory_size': options.get('vga_memory_size') or DEFAULT_VGA_MEMORY_SIZE,
            'boot_order': options.get('boot_order') or DEFAULT_BOOT_ORDER,
            'load_devices': True,
            'enable_ne2k': bool(relay),
            'network_relay_url': relay or None,
            'disable_keyboard': bool(options.get('disable_keyboard')),
            'disable_mouse': bool(options.get('disable_mouse')),
        }

    def build_requests(self) -> list[LoadRequest]:
        """Build the ordered load requests described by the options."""
        requests: list[LoadRequest] = []

        for name in IMAGE_SLOTS:
            request = self._image_request(name, self._options.get(name))
            if request is not None:
                requests.append(request)

        fs_options = self._options.get('filesystem')
        if fs_options and fs_options.get('basefs'):
            if not fs_options.get('baseurl'):
                raise ConfigurationError(
                    "Filesystem: baseurl must be specified",
                    resource=MANIFEST_SLOT
                )
            requests.append(LoadRequest(
                name=MANIFEST_SLOT,
                source=_source_for(fs_options['basefs']),
                eager_required=True,
                mode=LoadMode.WHOLE,
                as_text=True,
            ))

        return requests

    def _image_request(self, name: str, image: Any) -> Optional[LoadRequest]:
        if not image:
            return None

        if isinstance(image, Mapping):
            source = source_from_image(image)
            mode = LoadMode.from_async_flag(image.get('async'))
            size_hint = image.get('size')
        elif isinstance(image, (InMemory, LocalFile, RemoteRef)):
            source = image
            mode = LoadMode.AUTO
            size_hint = None
        elif isinstance(image, (bytes, bytearray)):
            source = InMemory(image)
            mode = LoadMode.AUTO
            size_hint = None
        else:
            raise TypeError(f"Unsupported image spec for {name}: {type(image).__name__}")

        if source is None:
            self._logger.debug("Ignored image without source", context={'name': name})
            return None

        eager = name in EAGER_SLOTS
        if eager and mode is not LoadMode.WHOLE:
            if mode is LoadMode.RANGE:
                self._logger.notice(
                    "Async loading ignored for boot-critical resource",
                    context={'name': name}
                )
            mode = LoadMode.WHOLE

        return LoadRequest(
            name=name,
            source=source,
            size_hint=size_hint,
            eager_required=eager,
            mode=mode,
        )

    def plan(self, fetcher: Optional[Fetcher] = None) -> list[LoadItem]:
        """Turn the requests into loader items, choosing a buffer strategy for each."""
        items = []
        for request in self.requests:
            if request.as_text and isinstance(request.source, RemoteRef):
                items.append(LoadItem(
                    name=request.name,
                    url=request.source.url,
                    size=request.size_hint,
                    as_text=True,
                ))
                continue

            strategy = build_strategy(
                request,
                fetcher,
                threshold=self._threshold,
                block_size=self._block_size
            )
            self._logger.debug(
                "Planned resource",
                context={'name': request.name, 'strategy': strategy.describe()}
            )
            items.append(LoadItem(
                name=request.name,
                strategy=strategy,
                size=request.size_hint,
                as_text=request.as_text,
            ))
        return items

    def assemble(
        self,
        results: Mapping[str, Any],
        filesystem: Optional['GuestFilesystem'] = None
    ) -> MachineSettings:
        """Freeze the settings from the loader results."""
        builder = SettingsBuilder(fs9p=filesystem, **self.scalars())
        for name, result in results.items():
            builder.put(name, result)
        return builder.finalize()


def _source_for(value: Any) -> ResourceSource:
    if isinstance(value, str) and '://' in value:
        return RemoteRef(value)
    return LocalFile(value)
