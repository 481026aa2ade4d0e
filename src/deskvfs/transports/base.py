"""Shared transport plumbing: defaults, error mapping, HTTP client handling."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    NetworkError,
    NotEmptyError,
    OperationTimeoutError,
    PathNotFoundError,
    PermissionDeniedError,
    ReadOnlyError,
    UnsupportedError,
    VFSError,
)
from deskvfs.fs.payload import MimeMap

if TYPE_CHECKING:
    from deskvfs.fs.payload import Blob
    from deskvfs.ref import FileRef

logger = logging.getLogger(__name__)

# =============================================================================
# Error mapping
# =============================================================================

STATUS_ERRORS: dict[int, type[VFSError]] = {
    400: InvalidArgumentError,
    401: PermissionDeniedError,
    403: PermissionDeniedError,
    404: PathNotFoundError,
    405: UnsupportedError,
    409: ExistsError,
    410: PathNotFoundError,
    412: ExistsError,
    501: UnsupportedError,
}

CODE_ERRORS: dict[str, type[VFSError]] = {
    "ENOENT": PathNotFoundError,
    "EEXIST": ExistsError,
    "EACCES": PermissionDeniedError,
    "EPERM": PermissionDeniedError,
    "EROFS": ReadOnlyError,
    "ENOTEMPTY": NotEmptyError,
    "ENOSYS": UnsupportedError,
    "EINVAL": InvalidArgumentError,
    "ETIMEDOUT": OperationTimeoutError,
    "ECONNRESET": NetworkError,
}


def error_for_status(status: int, message: str = "", *, cause: Any = None) -> VFSError:
    """Map an HTTP status to a VFSError instance."""
    cls = STATUS_ERRORS.get(status)
    if cls is None:
        cls = InternalError if status >= 500 else InvalidArgumentError
    return cls(message or f"HTTP {status}", cause=cause)


def error_for_code(code: str | None, message: str = "", *, cause: Any = None) -> VFSError:
    """Map a server error code (``ENOENT``...) to a VFSError instance."""
    cls = CODE_ERRORS.get((code or "").upper(), InternalError)
    return cls(message or code or "Unknown error", cause=cause)


# =============================================================================
# Base classes
# =============================================================================


class BaseTransport:
    """Transport defaults: no-op lifecycle, every verb unsupported.

    Subclasses override the verbs their back-end implements.  Optional
    capabilities (trash, free space, find, download) are *not* declared
    here so capability checks only see what a subclass really offers.
    """

    read_only: bool = False
    name: str = "base"

    def __init__(self, *, mime_map: MimeMap | None = None) -> None:
        self._mime_map = mime_map or MimeMap()

    def _unsupported(self, verb: str) -> UnsupportedError:
        return UnsupportedError(f"{type(self).__name__} does not support {verb}")

    def guess_mime(self, filename: str) -> str:
        return self._mime_map.guess(filename)

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        raise self._unsupported("scandir")

    async def read(self, file: FileRef) -> bytes:
        raise self._unsupported("read")

    async def exists(self, ref: FileRef) -> bool:
        raise self._unsupported("exists")

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        raise self._unsupported("fileinfo")

    async def url(self, file: FileRef) -> str | None:
        return None

    async def write(self, file: FileRef, data: bytes) -> None:
        raise self._unsupported("write")

    async def unlink(self, ref: FileRef) -> None:
        raise self._unsupported("unlink")

    async def mkdir(self, directory: FileRef) -> None:
        raise self._unsupported("mkdir")

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        raise self._unsupported("copy")

    async def move(self, src: FileRef, dst: FileRef) -> None:
        raise self._unsupported("move")

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        raise self._unsupported("upload")

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class HTTPTransport(BaseTransport):
    """Base for transports talking HTTP through an ``httpx.AsyncClient``.

    The client is created lazily unless one is injected (tests pass a
    client built on ``httpx.MockTransport``).  Injected clients are not
    closed by :meth:`close`.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
        mime_map: MimeMap | None = None,
    ) -> None:
        super().__init__(mime_map=mime_map)
        self._auth = auth
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._headers = dict(headers or {})

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the httpx client on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def _auth_headers(self) -> dict[str, str]:
        """Per-request headers; subclasses add credentials here."""
        return {}

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow: tuple[int, ...] = (),
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures to VFSErrors.

        Statuses listed in *allow* are returned instead of raised.
        """
        merged = {**self._headers, **(await self._auth_headers()), **(headers or {})}
        client = self._get_client()
        logger.debug("%s %s", method, url)
        if self._auth is not None:
            kwargs.setdefault("auth", self._auth)
        try:
            response = await client.request(method, url, headers=merged, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise OperationTimeoutError(f"{method} {url} timed out", cause=e) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}", cause=e) from e

        if response.status_code >= 400 and response.status_code not in allow:
            raise error_for_status(
                response.status_code,
                f"{method} {url} returned {response.status_code}",
                cause=response.text,
            )
        return response

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._base_url!r})"
