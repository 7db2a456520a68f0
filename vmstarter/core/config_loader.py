"""
vmstarter Configuration Loader

Reads a JSON options file for the starter:
- Machine scalars (memory sizes, boot order, autostart, devices)
- Image slots, each a ``{buffer|path|url, async, size}`` mapping
- Guest filesystem manifest and content location
- Loader tuning and logging settings

Missing sections keep their defaults. Relative image paths are resolved
against the directory of the options file.

Author: YSNRFD
Version: 1.0.0
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from vmstarter.exceptions import BootFailureError, ConfigurationError
from vmstarter.loading.buffers import DEFAULT_BLOCK_SIZE
from vmstarter.loading.sources import LAZY_THRESHOLD
from .settings import (
    DEFAULT_MEMORY_SIZE,
    DEFAULT_VGA_MEMORY_SIZE,
    DEFAULT_BOOT_ORDER,
    IMAGE_SLOTS,
)


class ConfigValidationError(ConfigurationError):
    """Raised when the options file holds invalid values."""
    pass


@dataclass
class MachineConfig:
    """Machine scalar settings."""
    memory_size: int = DEFAULT_MEMORY_SIZE
    vga_memory_size: int = DEFAULT_VGA_MEMORY_SIZE
    boot_order: int = DEFAULT_BOOT_ORDER
    autostart: bool = False
    network_relay_url: Optional[str] = None
    disable_keyboard: bool = False
    disable_mouse: bool = False


@dataclass
class FilesystemConfig:
    """Guest filesystem settings."""
    basefs: Optional[str] = None
    baseurl: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.basefs or self.baseurl)


@dataclass
class LoaderConfig:
    """Resource loader tuning."""
    lazy_threshold: int = LAZY_THRESHOLD
    block_size: int = DEFAULT_BLOCK_SIZE
    request_timeout: Optional[float] = None


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    log_file: Optional[str] = None
    use_colors: bool = True


@dataclass
class Config:
    """
    Main configuration container.

    ``images`` maps slot names to their source mapping.
    """
    machine: MachineConfig = field(default_factory=MachineConfig)
    images: dict[str, dict[str, Any]] = field(default_factory=dict)
    filesystem: FilesystemConfig = field(default_factory=FilesystemConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_options(self) -> dict[str, Any]:
        """The options mapping the Starter consumes."""
        machine = self.machine
        options: dict[str, Any] = {
            'memory_size': machine.memory_size,
            'vga_memory_size': machine.vga_memory_size,
            'boot_order': machine.boot_order,
            'autostart': machine.autostart,
            'network_relay_url': machine.network_relay_url,
            'disable_keyboard': machine.disable_keyboard,
            'disable_mouse': machine.disable_mouse,
        }
        for name, image in self.images.items():
            options[name] = dict(image)
        if self.filesystem.enabled:
            options['filesystem'] = {
                'basefs': self.filesystem.basefs,
                'baseurl': self.filesystem.baseurl,
            }
        return options


class ConfigLoader:
    """
    Configuration loader and manager.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load('machine.json')
        >>> starter = Starter(config.to_options(), machine,
        ...                   loader_config=config.loader)
    """

    _instance: Optional['ConfigLoader'] = None
    _lock = threading.Lock()

    def __new__(cls) -> 'ConfigLoader':
        """Singleton pattern for configuration access."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
            return cls._instance

    def load(self, config_path: str) -> Config:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            BootFailureError: If the file cannot be loaded or parsed
            ConfigValidationError: If a section holds invalid values
        """
        path = Path(config_path)

        if not path.exists():
            raise BootFailureError(
                f"Configuration file not found: {config_path}",
                stage="config"
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise BootFailureError(
                f"Invalid JSON in configuration file: {e}",
                stage="config"
            ) from e
        except OSError as e:
            raise BootFailureError(
                f"Cannot read configuration file: {e}",
                stage="config"
            ) from e

        return self.parse(data, base_dir=path.parent)

    def parse(self, data: dict[str, Any], base_dir: Optional[Path] = None) -> Config:
        """Parse configuration data into a Config object."""
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be an object")

        config = Config()

        if 'machine' in data:
            machine_data = data['machine']
            config.machine = MachineConfig(
                memory_size=machine_data.get('memory_size', config.machine.memory_size),
                vga_memory_size=machine_data.get('vga_memory_size', config.machine.vga_memory_size),
                boot_order=_parse_int(
                    machine_data.get('boot_order', config.machine.boot_order),
                    'machine.boot_order'
                ),
                autostart=machine_data.get('autostart', config.machine.autostart),
                network_relay_url=machine_data.get('network_relay_url', config.machine.network_relay_url),
                disable_keyboard=machine_data.get('disable_keyboard', config.machine.disable_keyboard),
                disable_mouse=machine_data.get('disable_mouse', config.machine.disable_mouse),
            )

        if 'images' in data:
            for name, entry in data['images'].items():
                config.images[name] = self._parse_image(name, entry, base_dir)

        if 'filesystem' in data:
            fs_data = data['filesystem']
            basefs = fs_data.get('basefs')
            if basefs and '://' not in basefs and base_dir is not None:
                basefs = str(base_dir / basefs)
            config.filesystem = FilesystemConfig(
                basefs=basefs,
                baseurl=fs_data.get('baseurl'),
            )

        if 'loader' in data:
            loader_data = data['loader']
            config.loader = LoaderConfig(
                lazy_threshold=loader_data.get('lazy_threshold', config.loader.lazy_threshold),
                block_size=loader_data.get('block_size', config.loader.block_size),
                request_timeout=loader_data.get('request_timeout', config.loader.request_timeout),
            )
            if config.loader.block_size <= 0:
                raise ConfigValidationError("loader.block_size must be positive")

        if 'logging' in data:
            log_data = data['logging']
            config.logging = LoggingConfig(
                level=log_data.get('level', config.logging.level).upper(),
                log_file=log_data.get('log_file', config.logging.log_file),
                use_colors=log_data.get('use_colors', config.logging.use_colors),
            )

        return config

    @staticmethod
    def _parse_image(name: str, entry: Any, base_dir: Optional[Path]) -> dict[str, Any]:
        if name not in IMAGE_SLOTS:
            raise ConfigValidationError(f"Unknown image slot: {name}", resource=name)
        if not isinstance(entry, dict):
            raise ConfigValidationError("Image entry must be an object", resource=name)

        image = dict(entry)
        # Files given as "buffer" in JSON are plain paths
        path = image.pop('buffer', None) or image.get('path')
        if path is not None:
            if base_dir is not None and not Path(path).is_absolute():
                path = str(base_dir / path)
            image['path'] = path
        if 'path' not in image and 'url' not in image:
            raise ConfigValidationError("Image entry needs a path or url", resource=name)
        return image


def _parse_int(value: Any, key: str) -> int:
    # Boot order is usually written in hex
    try:
        if isinstance(value, str):
            return int(value, 0)
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"{key} must be an integer, got {value!r}") from e
