"""
vmstarter Core Module

Boot orchestration components including:
- Starter
- Settings Assembler
- Event Bus
- Machine Core interface
- Configuration Loader
"""

from .starter import Starter, BootStage, BootResult, boot_system
from .settings import (
    MachineSettings,
    SettingsBuilder,
    SettingsAssembler,
    EAGER_SLOTS,
    IMAGE_SLOTS,
    RESOURCE_SLOTS,
)
from .bus import EventBus, Event, TOPIC_READY, TOPIC_STARTED, TOPIC_STOPPED, TOPIC_FATAL
from .machine import MachineCore
from .config_loader import ConfigLoader, Config, LoaderConfig

__all__ = [
    # Starter
    'Starter',
    'BootStage',
    'BootResult',
    'boot_system',
    # Settings
    'MachineSettings',
    'SettingsBuilder',
    'SettingsAssembler',
    'EAGER_SLOTS',
    'IMAGE_SLOTS',
    'RESOURCE_SLOTS',
    # Bus
    'EventBus',
    'Event',
    'TOPIC_READY',
    'TOPIC_STARTED',
    'TOPIC_STOPPED',
    'TOPIC_FATAL',
    # Machine
    'MachineCore',
    # Config
    'ConfigLoader',
    'Config',
    'LoaderConfig',
]
