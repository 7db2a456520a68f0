"""
vmstarter Exception Hierarchy

Every error carries an ``ErrorKind`` so callers can branch on the kind of
failure without matching on classes.

Architecture:
    StarterError (Base)
    ├── BootFailureError
    ├── ConfigurationError          kind=CONFIGURATION_VIOLATION
    ├── UnknownResourceError
    ├── LoadTransportError          kind=LOAD_TRANSPORT_FAILURE
    ├── LoaderStateError
    ├── BufferNotLoadedError
    ├── BufferRangeError
    ├── ReadOnlyBufferError
    └── ResourceNotFoundError       kind=RESOURCE_NOT_FOUND
"""

from .boot_exceptions import (
    ErrorKind,
    StarterError,
    BootFailureError,
    ConfigurationError,
    UnknownResourceError,
)

from .load_exceptions import (
    LoadTransportError,
    LoaderStateError,
    BufferNotLoadedError,
    BufferRangeError,
    ReadOnlyBufferError,
)

from .fs_exceptions import (
    ResourceNotFoundError,
)

__all__ = [
    "ErrorKind",
    "StarterError",
    # Boot
    "BootFailureError",
    "ConfigurationError",
    "UnknownResourceError",
    # Loading
    "LoadTransportError",
    "LoaderStateError",
    "BufferNotLoadedError",
    "BufferRangeError",
    "ReadOnlyBufferError",
    # Filesystem
    "ResourceNotFoundError",
]
