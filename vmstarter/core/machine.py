"""
Machine Core Interface

The emulator core consumes the frozen settings and executes the guest.
Its implementation lives outside this package.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .settings import MachineSettings


class MachineCore(ABC):
    """What the starter needs from an emulator core."""

    @abstractmethod
    def init(self, settings: 'MachineSettings') -> None:
        """Configure devices and memory from the settings. Called exactly once."""

    @abstractmethod
    def restore_state(self, state: bytes) -> None:
        """Replace the machine state with a saved snapshot."""

    @abstractmethod
    def save_state(self) -> bytes:
        """Serialise the current machine state."""

    @abstractmethod
    def run(self) -> None:
        """Start emulation. No effect if already running."""

    @abstractmethod
    def stop(self) -> None:
        """Stop emulation. No effect if not running."""

    def restart(self) -> None:
        """Force a reboot."""
        self.stop()
        self.run()

    @property
    @abstractmethod
    def running(self) -> bool:
        ...
