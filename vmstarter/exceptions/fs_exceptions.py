"""
Filesystem Exceptions

Errors surfaced by the file bridge. They are handed to callbacks as
values; only the coroutine helpers raise them.

Author: YSNRFD
Version: 1.0.0
"""

from typing import Optional, Any

from .boot_exceptions import StarterError, ErrorKind


class ResourceNotFoundError(StarterError):
    """
    A path could not be resolved inside the guest filesystem.

    Example:
        >>> ResourceNotFoundError("/missing_dir/x.txt")
    """

    kind = ErrorKind.RESOURCE_NOT_FOUND

    def __init__(
        self,
        path: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if path is not None:
            ctx["path"] = path
        super().__init__(
            message=message or "File not found",
            error_code=3001,
            context=ctx
        )
        self.path = path
