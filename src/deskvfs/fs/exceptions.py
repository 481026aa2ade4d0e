"""Custom exception hierarchy for the deskvfs filesystem layer.

Every error carries a ``kind`` naming its place in the error taxonomy
and an optional ``cause`` preserving the underlying exception or the
back-end's own error message.
"""

from __future__ import annotations

from typing import Any, ClassVar


class VFSError(Exception):
    """Base exception for all deskvfs filesystem errors."""

    kind: ClassVar[str] = "Internal"

    def __init__(self, message: str = "", *, cause: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class InvalidArgumentError(VFSError):
    """Raised when an argument is missing or has the wrong shape."""

    kind = "InvalidArgument"


class InvalidPathError(InvalidArgumentError):
    """Raised when a virtual path is malformed."""

    kind = "InvalidPath"


class NoMountError(VFSError):
    """Raised when no mountpoint matches the given virtual path."""

    kind = "NoMount"


class NotMountedError(VFSError):
    """Raised when the owning mountpoint is not in the MOUNTED state."""

    kind = "NotMounted"


class ReadOnlyError(VFSError):
    """Raised when a write-verb targets a read-only mount."""

    kind = "ReadOnly"


class PathNotFoundError(VFSError):
    """Raised when a file or directory path does not exist."""

    kind = "NotFound"


class ExistsError(VFSError):
    """Raised when a destination exists and overwrite was not requested."""

    kind = "Exists"


class NotEmptyError(VFSError):
    """Raised when a directory cannot be removed because it has children."""

    kind = "NotEmpty"


class PermissionDeniedError(VFSError):
    """Raised when the back-end refuses the caller's identity."""

    kind = "PermissionDenied"


class NetworkError(VFSError):
    """Raised on transport I/O failures."""

    kind = "Network"


class OperationTimeoutError(NetworkError):
    """Raised when a transport operation exceeds its timeout."""


class UnsupportedError(VFSError):
    """Raised when a transport doesn't implement a requested verb."""

    kind = "Unsupported"


class PayloadConversionError(VFSError):
    """Raised when a payload cannot be coerced to the requested form."""

    kind = "PayloadConversion"


class PartialCopyError(VFSError):
    """Raised when a cross-transport directory copy partially failed.

    ``failures`` lists ``(source_path, error)`` for every descendant that
    could not be reproduced. Descendants that were copied stay in place.
    """

    kind = "PartialCopy"

    def __init__(
        self,
        message: str = "",
        *,
        failures: list[tuple[str, VFSError]] | None = None,
        cause: Any = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.failures = list(failures or [])


class InternalError(VFSError):
    """Raised when a transport fails with an unexpected exception."""

    kind = "Internal"
