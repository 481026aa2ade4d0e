"""Transport protocol — runtime-checkable interfaces.

Split into a core protocol and opt-in capability protocols so that
back-ends implement just the verbs they can honour.  Every method takes
FileRefs whose paths are already in the transport's own namespace: the
facade has resolved aliases before delivery.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from deskvfs.ref import FileRef

    from .payload import Blob


@dataclass(frozen=True, slots=True)
class FindQuery:
    """Search criteria for ``find``.

    Attributes:
        query: Case-insensitive substring matched against file names.
        mime: Optional regex matched against the mime of files.
        depth: Maximum directory depth below the search root (None = unlimited).
        limit: Maximum number of results (None = unlimited).
    """

    query: str = ""
    mime: str | None = None
    depth: int | None = None
    limit: int | None = None


@runtime_checkable
class Transport(Protocol):
    """Core interface every back-end must implement."""

    read_only: bool

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Called at mount time.  No-op if not needed."""
        ...

    async def close(self) -> None:
        """Called on unmount / shutdown."""
        ...

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        """List children of *directory*.  Never includes ``..``."""
        ...

    async def read(self, file: FileRef) -> bytes:
        """Return the full payload of *file*."""
        ...

    async def exists(self, ref: FileRef) -> bool:
        """True if *ref* exists.  Back-end failures raise."""
        ...

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        """Back-end attributes of *ref*."""
        ...

    async def url(self, file: FileRef) -> str | None:
        """Absolute fetch URL of *file*, or None."""
        ...

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        """Create or overwrite *file* with *data*."""
        ...

    async def unlink(self, ref: FileRef) -> None:
        """Remove *ref*; directories recursively or ``NotEmpty``."""
        ...

    async def mkdir(self, directory: FileRef) -> None:
        """Create *directory*; ``Exists`` if present."""
        ...

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        """Copy within this transport."""
        ...

    async def move(self, src: FileRef, dst: FileRef) -> None:
        """Move within this transport."""
        ...

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        """Store *blob* inside *directory* and return the new FileRef."""
        ...


@runtime_checkable
class SupportsTrash(Protocol):
    """Opt-in: trash management."""

    async def trash(self, ref: FileRef) -> None: ...

    async def untrash(self, ref: FileRef) -> None: ...

    async def empty_trash(self, ref: FileRef) -> None: ...


@runtime_checkable
class SupportsFreeSpace(Protocol):
    """Opt-in: remaining quota in bytes (-1 when unknown)."""

    async def free_space(self, root: FileRef) -> int: ...


@runtime_checkable
class SupportsFind(Protocol):
    """Opt-in: recursive search below a directory."""

    async def find(self, root: FileRef, query: FindQuery) -> list[FileRef]: ...


@runtime_checkable
class SupportsDownload(Protocol):
    """Opt-in: fetch a file as a named blob."""

    async def download(self, file: FileRef) -> Blob: ...
