"""
Boot Exceptions

The base of the vmstarter error taxonomy plus the errors raised while
assembling the machine configuration and running the boot sequence.

Author: YSNRFD
Version: 1.0.0
"""

from enum import Enum
from typing import Optional, Any


class ErrorKind(Enum):
    """Kinds of failure a caller may need to tell apart."""
    RESOURCE_NOT_FOUND = "resource_not_found"
    LOAD_TRANSPORT_FAILURE = "load_transport_failure"
    CONFIGURATION_VIOLATION = "configuration_violation"
    INTERNAL = "internal"


class StarterError(Exception):
    """
    Base exception for all vmstarter errors.

    Attributes:
        message: Human-readable error description
        error_code: Numeric error code for programmatic handling
        kind: Taxonomy kind of the error
        context: Additional context about the error

    Example:
        >>> raise StarterError("Something went wrong", error_code=1000)
    """

    kind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or 0
        self.context = context or {}

    def __str__(self) -> str:
        base = f"[Error {self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({context_str})"
        return base

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"kind={self.kind.value})"
        )


class BootFailureError(StarterError):
    """
    Error during the boot sequence.

    Raised for problems outside resource loading itself, such as an
    unreadable options file or a boot attempted twice.

    Example:
        >>> raise BootFailureError("Options file not found", stage="config")
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if stage:
            ctx["stage"] = stage
        super().__init__(message=message, error_code=1001, context=ctx)
        self.stage = stage


class ConfigurationError(StarterError):
    """
    The configuration cannot be completed as requested.

    Fatal: raised before the machine core is initialized, for example when
    firmware would have to be served by a lazily fetching buffer.
    """

    kind = ErrorKind.CONFIGURATION_VIOLATION

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if resource:
            ctx["resource"] = resource
        super().__init__(message=message, error_code=1002, context=ctx)
        self.resource = resource


class UnknownResourceError(StarterError):
    """A resource name outside the known slot set. Always a programming error."""

    def __init__(self, name: str) -> None:
        super().__init__(
            message=f"Unknown resource slot: {name}",
            error_code=1003,
            context={"resource": name}
        )
        self.name = name
