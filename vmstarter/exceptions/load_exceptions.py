"""
Load Exceptions

Errors raised by buffer strategies, the HTTP transport and the
sequential loader.

Author: YSNRFD
Version: 1.0.0
"""

from typing import Optional, Any

from .boot_exceptions import StarterError, ErrorKind


class LoadTransportError(StarterError):
    """
    A network or local read failed while loading a resource.

    Example:
        >>> raise LoadTransportError("HTTP 404", url="http://host/bios.bin")
    """

    kind = ErrorKind.LOAD_TRANSPORT_FAILURE

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        resource: Optional[str] = None,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if url:
            ctx["url"] = url
        if resource:
            ctx["resource"] = resource
        if status is not None:
            ctx["status"] = status
        super().__init__(message=message, error_code=2001, context=ctx)
        self.url = url
        self.resource = resource
        self.status = status


class LoaderStateError(StarterError):
    """The loader was driven from a state that does not allow it."""

    def __init__(self, state: str) -> None:
        super().__init__(
            message=f"Loader cannot run from state {state}",
            error_code=2002,
            context={"state": state}
        )
        self.state = state


class BufferNotLoadedError(StarterError):
    """A buffer was accessed before its load completed."""

    def __init__(self, description: str) -> None:
        super().__init__(
            message=f"Buffer not loaded: {description}",
            error_code=2003
        )


class BufferRangeError(StarterError):
    """A read or write fell outside the buffer."""

    def __init__(self, offset: int, length: int, byte_length: int) -> None:
        super().__init__(
            message="Access outside buffer bounds",
            error_code=2004,
            context={"offset": offset, "length": length, "byte_length": byte_length}
        )
        self.offset = offset
        self.length = length
        self.byte_length = byte_length


class ReadOnlyBufferError(StarterError):
    """A write was attempted on a buffer whose backing resource is immutable."""

    def __init__(self, description: str) -> None:
        super().__init__(
            message=f"Buffer is read-only: {description}",
            error_code=2005
        )
