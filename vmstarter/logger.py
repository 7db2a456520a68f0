"""
vmstarter Logger Module

Logging for the boot-resource layer:
- Structured logging with contextual information
- Multiple log levels (DEBUG, INFO, NOTICE, WARNING, ERROR, CRITICAL)
- Optional file output
- In-memory boot log buffer for later inspection
- Subsystem-specific loggers

Author: YSNRFD
Version: 1.0.0
"""

import logging
import sys
import threading
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Optional, Any, List


class LogLevel(IntEnum):
    """Log level enumeration with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    NOTICE = 25
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


logging.addLevelName(LogLevel.NOTICE, 'NOTICE')


class LogFormatter(logging.Formatter):
    """
    Log formatter for vmstarter.

    Renders records as::

        [2024-01-01 12:00:00.000] INFO     [loader] Resource loaded {name=hda}
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'NOTICE': '\033[34m',     # Blue
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        """Check if the terminal supports ANSI colors."""
        if not hasattr(sys.stdout, 'isatty'):
            return False
        return sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record."""
        timestamp = datetime.fromtimestamp(record.created).strftime(
            '%Y-%m-%d %H:%M:%S.%f'
        )[:-3]

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level_display = f"{self.COLORS[level]}{level:8s}{self.RESET}"
        else:
            level_display = f"{level:8s}"

        components = [f"[{timestamp}]", level_display]

        if hasattr(record, 'subsystem'):
            components.append(f"[{record.subsystem}]")

        components.append(str(record.getMessage()))

        if getattr(record, 'context', None):
            context_str = " ".join(f"{k}={v}" for k, v in record.context.items())
            components.append(f"{{{context_str}}}")

        message = " ".join(components)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class BootLogHandler(logging.Handler):
    """
    Keeps recent log records in memory.

    Used by the command line entry point and by tests to inspect what
    happened during a boot without scraping console output.
    """

    def __init__(self, max_entries: int = 10000):
        super().__init__()
        self.max_entries = max_entries
        self._log_buffer: List[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        """Store log record in buffer."""
        log_entry = {
            'timestamp': record.created,
            'level': record.levelname,
            'message': record.getMessage(),
            'subsystem': getattr(record, 'subsystem', None),
            'context': getattr(record, 'context', {}),
        }

        with self._lock:
            self._log_buffer.append(log_entry)
            if len(self._log_buffer) > self.max_entries:
                self._log_buffer = self._log_buffer[-self.max_entries:]

    def get_logs(
        self,
        level: Optional[str] = None,
        subsystem: Optional[str] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Retrieve logs with optional filtering."""
        with self._lock:
            logs = self._log_buffer.copy()

        if level:
            logs = [entry for entry in logs if entry['level'] == level]

        if subsystem:
            logs = [entry for entry in logs if entry['subsystem'] == subsystem]

        return logs[-limit:]

    def clear(self) -> None:
        """Clear the log buffer."""
        with self._lock:
            self._log_buffer.clear()


class Logger:
    """
    Subsystem logger.

    One instance exists per subsystem name; all of them write through the
    ``vmstarter`` stdlib logger hierarchy.

    Example:
        >>> log = Logger('loader')
        >>> log.info("Resource loaded", context={'name': 'bios'})
    """

    _instances: dict[str, 'Logger'] = {}
    _lock = threading.Lock()
    _initialized = False
    _boot_handler: Optional[BootLogHandler] = None

    def __new__(cls, subsystem: str = 'starter') -> 'Logger':
        """Get or create a logger for a subsystem."""
        with cls._lock:
            if subsystem not in cls._instances:
                instance = super().__new__(cls)
                instance._subsystem = subsystem
                instance._logger = logging.getLogger(f'vmstarter.{subsystem}')
                cls._instances[subsystem] = instance
            return cls._instances[subsystem]

    @property
    def subsystem(self) -> str:
        return self._subsystem

    @classmethod
    def initialize(
        cls,
        level: int = LogLevel.INFO,
        log_file: Optional[str] = None,
        use_colors: bool = True
    ) -> None:
        """
        Initialize the logging system.

        Only the first call has an effect.

        Args:
            level: Minimum log level to capture
            log_file: Optional file path for log output
            use_colors: Whether to use ANSI colors in console output
        """
        with cls._lock:
            if cls._initialized:
                return

            cls._boot_handler = BootLogHandler()
            cls._boot_handler.setLevel(level)

            root_logger = logging.getLogger('vmstarter')
            root_logger.setLevel(level)

            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(LogFormatter(use_colors=use_colors))
            root_logger.addHandler(console_handler)
            root_logger.addHandler(cls._boot_handler)

            if log_file:
                file_path = Path(log_file)
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_file)
                file_handler.setLevel(level)
                file_handler.setFormatter(LogFormatter(use_colors=False))
                root_logger.addHandler(file_handler)

            cls._initialized = True

    @classmethod
    def get_boot_logs(
        cls,
        level: Optional[str] = None,
        subsystem: Optional[str] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Get logs from the in-memory boot log buffer."""
        if cls._boot_handler is None:
            return []
        return cls._boot_handler.get_logs(level=level, subsystem=subsystem, limit=limit)

    def _log(
        self,
        level: int,
        message: str,
        context: Optional[dict[str, Any]] = None,
        exc_info: Any = None
    ) -> None:
        extra = {
            'subsystem': self._subsystem,
            'context': context or {},
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log a debug message."""
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, message, context)

    def notice(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log a notice message."""
        self._log(LogLevel.NOTICE, message, context)

    def warning(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log a warning message."""
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log an error message."""
        self._log(LogLevel.ERROR, message, context)

    def critical(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        """Log a critical message."""
        self._log(LogLevel.CRITICAL, message, context)

    def exception(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an error together with its stack trace."""
        self._log(LogLevel.ERROR, message, context, exc_info=exc if exc else True)


def get_logger(subsystem: str) -> Logger:
    """
    Get a logger for the specified subsystem.

    Args:
        subsystem: Name of the subsystem (e.g., 'loader', 'bridge')

    Returns:
        Logger instance for the subsystem
    """
    return Logger(subsystem)
