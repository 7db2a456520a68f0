#!/usr/bin/env python3
"""
vmstarter - command line entry point

Boots a recording machine from a JSON options file: every resource is
fetched with a progress printout, then the resolved slots are listed.
Useful to check an options file and the servers it points to before
handing it to a real machine core.

Usage:
    python -m vmstarter machine.json [--autostart] [--log-level DEBUG]

Author: YSNRFD
Version: 1.0.0
"""

import argparse
import asyncio
import sys
from typing import Any, List, Optional

from vmstarter.core.bus import EventBus
from vmstarter.core.machine import MachineCore
from vmstarter.core.settings import MachineSettings
from vmstarter.core.starter import LEVELS, boot_system
from vmstarter.exceptions import StarterError
from vmstarter.loading import BufferStrategy, DownloadProgress, TOPIC_PROGRESS
from vmstarter.logger import Logger


class RecordingMachine(MachineCore):
    """A machine core that only remembers what it was given."""

    def __init__(self):
        self.settings: Optional[MachineSettings] = None
        self.restored: List[bytes] = []
        self._running = False

    def init(self, settings: MachineSettings) -> None:
        self.settings = settings

    def restore_state(self, state: bytes) -> None:
        self.restored.append(state)

    def save_state(self) -> bytes:
        return self.restored[-1] if self.restored else b''

    def run(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    @property
    def running(self) -> bool:
        return self._running


def print_progress(progress: DownloadProgress) -> None:
    label = f"[{progress.file_index + 1}/{progress.file_count}]"
    if progress.percent is not None:
        print(f"\r{label} {progress.percent:5.1f}% of {progress.total} bytes", end='', flush=True)
    else:
        print(f"\r{label} {progress.loaded} bytes", end='', flush=True)


def describe_slot(value: Any) -> str:
    if isinstance(value, BufferStrategy):
        return value.describe()
    if isinstance(value, str):
        return f"text ({len(value)} chars)"
    return f"{len(value)} bytes"


async def run(config_path: str, autostart: bool) -> int:
    bus = EventBus()
    bus.register(TOPIC_PROGRESS, print_progress)
    machine = RecordingMachine()

    try:
        result, starter = await boot_system(config_path, machine, bus=bus)
    except StarterError as e:
        print(f"Cannot start: {e}", file=sys.stderr)
        return 1

    try:
        print()
        if not result.success:
            print(f"Boot failed: {result.message}")
            return 1

        if autostart and not starter.is_running():
            starter.run()

        print(f"Boot completed in {result.elapsed_time * 1000:.2f}ms")
        print("=" * 50)
        settings = machine.settings
        print(f"memory:     {settings.memory_size} bytes")
        print(f"vga memory: {settings.vga_memory_size} bytes")
        print(f"boot order: {settings.boot_order:#x}")
        for name, value in settings.resources().items():
            print(f"{name:<14}{describe_slot(value)}")
        print(f"running:    {starter.is_running()}")
        return 0
    finally:
        await starter.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='vmstarter',
        description="Load the boot resources of a virtual machine"
    )
    parser.add_argument('config', help="JSON options file")
    parser.add_argument('--autostart', action='store_true', help="start the machine after boot")
    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=sorted(LEVELS, key=LEVELS.get),
        help="console log level"
    )
    args = parser.parse_args(argv)

    # Takes effect before boot_system, which keeps the first initialization
    Logger.initialize(level=LEVELS[args.log_level])

    return asyncio.run(run(args.config, args.autostart))


if __name__ == '__main__':
    sys.exit(main())
