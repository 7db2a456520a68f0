"""
vmstarter - Boot resource orchestration for virtual machines

Loads firmware, disk images, saved state and a guest filesystem manifest
from memory, local files or HTTP, hands the frozen settings to a machine
core, and bridges host file access into the guest filesystem.
"""

__version__ = "1.0.0"
__author__ = "YSNRFD"

# Import main components for convenience
from .core.starter import Starter, BootStage, BootResult, boot_system
from .core.machine import MachineCore
from .core.bus import EventBus
from .filesystem.bridge import FileBridge
from .filesystem.memfs import MemoryFilesystem
from .loading.fetch import HttpFetcher

__all__ = [
    'Starter',
    'BootStage',
    'BootResult',
    'boot_system',
    'MachineCore',
    'EventBus',
    'FileBridge',
    'MemoryFilesystem',
    'HttpFetcher',
]
