"""
vmstarter Starter

The public entry point for booting a virtual machine:
- Builds the load requests from the caller's options
- Loads every resource in order, reporting progress on the bus
- Freezes the settings and hands them to the machine core once
- Restores a saved state and loads the guest filesystem manifest
- Exposes run/stop, state snapshots and host file access afterwards

Boot Sequence:
    1. Pre-initialization checks
    2. Turn load requests into buffer strategies
    3. Load resources sequentially
    4. Freeze the machine settings
    5. Initialize the machine core
    6. Restore the initial state, if any
    7. Load the filesystem manifest, if any
    8. Complete: ``emulator-ready``, then autostart

Author: YSNRFD
Version: 1.0.0
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Mapping, Optional

from vmstarter.exceptions import BootFailureError, ConfigurationError
from vmstarter.filesystem.bridge import CreateCallback, FileBridge, ReadCallback
from vmstarter.filesystem.memfs import GuestFilesystem, MemoryFilesystem
from vmstarter.loading import Fetcher, HttpFetcher, SequentialLoader
from vmstarter.logger import Logger, LogLevel, get_logger
from .bus import EventBus, TOPIC_FATAL, TOPIC_READY, TOPIC_STARTED, TOPIC_STOPPED
from .config_loader import ConfigLoader, LoaderConfig
from .machine import MachineCore
from .settings import MachineSettings, SettingsAssembler


class BootStage(Enum):
    """Boot process stages."""
    PRE_INIT = auto()
    REQUEST_BUILD = auto()
    RESOURCE_LOAD = auto()
    SETTINGS_FREEZE = auto()
    MACHINE_INIT = auto()
    STATE_RESTORE = auto()
    FILESYSTEM_INIT = auto()
    COMPLETE = auto()
    FAILED = auto()


@dataclass
class BootResult:
    """Result of the boot process."""
    success: bool
    stage: BootStage
    message: str
    elapsed_time: float
    error: Optional[Exception] = None


class Starter:
    """
    Boots a machine core from a set of resource options.

    The load requests are built at construction, so an invalid option set
    (a filesystem manifest without a content url, for example) raises
    ConfigurationError right away.

    Example:
        >>> starter = Starter({'bios': {'url': BIOS_URL},
        ...                    'hda': {'path': 'disk.img'},
        ...                    'autostart': True}, machine)
        >>> starter.add_listener('download-progress', show_progress)
        >>> result = await starter.boot()
        >>> if result.success:
        ...     await starter.bridge.write('/root/hello.txt', b'hi')
    """

    def __init__(
        self,
        options: Mapping[str, Any],
        machine: MachineCore,
        *,
        fetcher: Optional[Fetcher] = None,
        bus: Optional[EventBus] = None,
        filesystem: Optional[GuestFilesystem] = None,
        loader_config: Optional[LoaderConfig] = None
    ):
        self._logger = get_logger('starter')
        self._options = dict(options)
        self._machine = machine
        self._bus = bus or EventBus()
        self._loader_config = loader_config or LoaderConfig()

        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or HttpFetcher(timeout=self._loader_config.request_timeout)

        fs_options = self._options.get('filesystem')
        if filesystem is None and fs_options is not None:
            filesystem = MemoryFilesystem(
                base_url=fs_options.get('baseurl'),
                fetcher=self._fetcher
            )
        self._filesystem = filesystem
        self._bridge = FileBridge(filesystem)

        self._assembler = SettingsAssembler(
            self._options,
            threshold=self._loader_config.lazy_threshold,
            block_size=self._loader_config.block_size
        )
        self._loader: Optional[SequentialLoader] = None
        self._settings: Optional[MachineSettings] = None
        self._stage = BootStage.PRE_INIT
        self._failed_stage: Optional[BootStage] = None
        self._boot_started = False
        self._start_time: float = 0

        self._logger.debug(
            "Starter created",
            context={'resources': [r.name for r in self._assembler.requests]}
        )

    @property
    def stage(self) -> BootStage:
        """Get the current boot stage."""
        return self._stage

    @property
    def failed_stage(self) -> Optional[BootStage]:
        """The stage a failed boot stopped at."""
        return self._failed_stage

    @property
    def settings(self) -> Optional[MachineSettings]:
        """The frozen settings, once boot got past SETTINGS_FREEZE."""
        return self._settings

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def bridge(self) -> FileBridge:
        return self._bridge

    @property
    def filesystem(self) -> Optional[GuestFilesystem]:
        return self._filesystem

    @property
    def loader(self) -> Optional[SequentialLoader]:
        return self._loader

    @property
    def machine(self) -> MachineCore:
        return self._machine

    async def boot(self) -> BootResult:
        """
        Execute the boot sequence.

        Returns:
            BootResult indicating success or failure

        Raises:
            BootFailureError: If boot was already started
        """
        if self._boot_started:
            raise BootFailureError("Boot already started", stage=self._stage.name)
        self._boot_started = True
        self._start_time = time.time()

        try:
            # Stage 1: Pre-initialization
            self._stage = BootStage.PRE_INIT
            self._pre_init()

            # Stage 2: Buffer strategies for every request
            self._stage = BootStage.REQUEST_BUILD
            items = self._assembler.plan(self._fetcher)

            # Stage 3: Sequential resource loading
            self._stage = BootStage.RESOURCE_LOAD
            self._loader = SequentialLoader(items, fetcher=self._fetcher, bus=self._bus)
            results = await self._loader.run()

            # Stage 4: Freeze the settings
            self._stage = BootStage.SETTINGS_FREEZE
            self._settings = self._assembler.assemble(results, self._filesystem)

            # Stage 5: Machine core
            self._stage = BootStage.MACHINE_INIT
            self._machine.init(self._settings)

            # Stage 6: Saved state
            self._stage = BootStage.STATE_RESTORE
            if self._settings.initial_state is not None:
                self._machine.restore_state(self._settings.initial_state)
                self._logger.debug(
                    "Initial state restored",
                    context={'size': len(self._settings.initial_state)}
                )

            # Stage 7: Guest filesystem
            self._stage = BootStage.FILESYSTEM_INIT
            self._init_filesystem()

            # Stage 8: Complete
            self._stage = BootStage.COMPLETE
            elapsed = time.time() - self._start_time
            self._logger.info(
                "Boot complete",
                context={'elapsed_ms': f"{elapsed * 1000:.2f}"}
            )
            self._bus.send(TOPIC_READY)

            if self._options.get('autostart'):
                self.run()

            return BootResult(
                success=True,
                stage=self._stage,
                message="Machine booted successfully",
                elapsed_time=elapsed
            )

        except Exception as e:
            self._failed_stage = self._stage
            self._stage = BootStage.FAILED
            elapsed = time.time() - self._start_time

            self._logger.critical(
                f"Boot failed at stage {self._failed_stage.name}: {e}",
                context={'kind': getattr(e, 'kind', None)}
            )
            self._bus.send(TOPIC_FATAL, {
                'stage': self._failed_stage.name,
                'error': e,
            })

            return BootResult(
                success=False,
                stage=self._stage,
                message=f"Boot failed at {self._failed_stage.name}: {e}",
                elapsed_time=elapsed,
                error=e
            )

    def _pre_init(self) -> None:
        """Pre-initialization checks."""
        if not isinstance(self._machine, MachineCore):
            raise BootFailureError(
                f"Not a machine core: {type(self._machine).__name__}",
                stage=BootStage.PRE_INIT.name
            )

        self._logger.info(
            "Starting boot",
            context={
                'resources': len(self._assembler.requests),
                'autostart': bool(self._options.get('autostart')),
            }
        )

    def _init_filesystem(self) -> None:
        text = self._settings.fs9p_json
        if text is None:
            return
        if self._filesystem is None:
            raise ConfigurationError("Manifest loaded without a filesystem", resource='fs9p_json')
        self._filesystem.load_manifest(text)

    def _require_booted(self) -> None:
        if self._stage is not BootStage.COMPLETE:
            raise BootFailureError(
                "Machine is not booted",
                stage=self._stage.name
            )

    def run(self) -> None:
        """Start emulation. No effect if already running."""
        self._require_booted()
        if self._machine.running:
            return
        self._machine.run()
        self._bus.send(TOPIC_STARTED)

    def stop(self) -> None:
        """Stop emulation. No effect if not running."""
        self._require_booted()
        if not self._machine.running:
            return
        self._machine.stop()
        self._bus.send(TOPIC_STOPPED)

    def restart(self) -> None:
        """Force a reboot."""
        self._require_booted()
        self._machine.restart()

    def is_running(self) -> bool:
        return self._machine.running

    def restore_state(self, state: bytes) -> None:
        """Replace the machine state with a snapshot from ``save_state``."""
        self._require_booted()
        self._machine.restore_state(bytes(state))

    def save_state(self, callback: Callable[[Optional[Exception], Optional[bytes]], None]) -> None:
        """
        Snapshot the machine state.

        ``callback(None, state)`` is invoked on a later loop turn, or
        ``callback(error, None)`` when the machine cannot be saved.
        """
        asyncio.get_running_loop().call_soon(self._save_state, callback)

    def _save_state(self, callback: Callable[[Optional[Exception], Optional[bytes]], None]) -> None:
        try:
            self._require_booted()
            state = self._machine.save_state()
        except Exception as e:
            self._logger.error("Saving state failed", context={'error': e})
            callback(e, None)
            return
        callback(None, state)

    def add_listener(self, topic: str, listener: Callable[[Any], None]) -> None:
        self._bus.register(topic, listener, owner=self)

    def remove_listener(self, topic: str, listener: Callable[[Any], None]) -> bool:
        return self._bus.unregister(topic, listener)

    def create_file(self, path: str, data: bytes, callback: Optional[CreateCallback] = None) -> None:
        """Write a file into the guest filesystem; see FileBridge.create_file."""
        self._bridge.create_file(path, data, callback)

    def read_file(self, path: str, callback: ReadCallback) -> None:
        """Read a file from the guest filesystem; see FileBridge.read_file."""
        self._bridge.read_file(path, callback)

    async def close(self) -> None:
        """Stop the machine and release the transport this starter created."""
        if self._stage is BootStage.COMPLETE and self._machine.running:
            self.stop()
        if self._owns_fetcher:
            await self._fetcher.close()
        self._logger.debug("Starter closed")

    async def __aenter__(self) -> 'Starter':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


LEVELS = {
    'DEBUG': LogLevel.DEBUG,
    'INFO': LogLevel.INFO,
    'NOTICE': LogLevel.NOTICE,
    'WARNING': LogLevel.WARNING,
    'ERROR': LogLevel.ERROR,
    'CRITICAL': LogLevel.CRITICAL,
}


async def boot_system(
    config_path: str,
    machine: MachineCore,
    bus: Optional[EventBus] = None
) -> tuple[BootResult, Starter]:
    """
    Convenience function to boot a machine from an options file.

    Args:
        config_path: Path to the JSON options file
        machine: The machine core to hand the settings to
        bus: Optional bus, so listeners can be attached beforehand

    Returns:
        Tuple of (BootResult, Starter)

    Raises:
        BootFailureError: If the options file cannot be read
        ConfigurationError: If the options are invalid
    """
    config = ConfigLoader().load(config_path)

    Logger.initialize(
        level=LEVELS.get(config.logging.level, LogLevel.INFO),
        log_file=config.logging.log_file,
        use_colors=config.logging.use_colors
    )

    starter = Starter(
        config.to_options(),
        machine,
        bus=bus,
        loader_config=config.loader
    )
    result = await starter.boot()
    return result, starter
