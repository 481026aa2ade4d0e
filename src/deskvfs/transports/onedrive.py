"""OneDrive transport over the Microsoft Graph REST API.

Items are addressed by path relative to the drive root
(``/me/drive/root:/a/b:/children``), so no id cache is needed.  Copies
run server-side and report through a monitor URL that is polled until
the job completes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from deskvfs.fs.exceptions import (
    InternalError,
    InvalidArgumentError,
    OperationTimeoutError,
    PathNotFoundError,
    PermissionDeniedError,
)
from deskvfs.fs.paths import dirname, join, strip_scheme
from deskvfs.ref import FileRef, FileType

from .base import HTTPTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

    from deskvfs.fs.payload import Blob, MimeMap

    TokenProvider = Callable[[], Awaitable[str]]

logger = logging.getLogger(__name__)

API_BASE = "https://graph.microsoft.com/v1.0"

CONFLICT = "@microsoft.graph.conflictBehavior"

DOWNLOAD_URL = "@microsoft.graph.downloadUrl"

INFO_KEYS = ("id", "name", "size", "createdDateTime", "lastModifiedDateTime", "webUrl", "eTag")


class OneDriveTransport(HTTPTransport):
    """Transport for a OneDrive account reached with an OAuth access token.

    *access_token* is either a token string or an async callable
    returning a fresh token for each request.
    """

    name = "onedrive"

    def __init__(
        self,
        access_token: str | TokenProvider,
        *,
        client: httpx.AsyncClient | None = None,
        api_base: str = API_BASE,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
        poll_attempts: int = 30,
        mime_map: MimeMap | None = None,
    ) -> None:
        super().__init__(api_base, client=client, timeout=timeout, mime_map=mime_map)
        self._access_token = access_token
        self._poll_interval = poll_interval
        self._poll_attempts = poll_attempts

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> OneDriveTransport:
        token = options.get("access_token")
        if not token:
            raise InvalidArgumentError("OneDrive transport requires an 'access_token' option")
        return cls(
            token,
            api_base=options.get("api_base", API_BASE),
            timeout=float(options.get("timeout", 30.0)),
            poll_interval=float(options.get("poll_interval", 1.0)),
            mime_map=mime_map,
        )

    async def _auth_headers(self) -> dict[str, str]:
        token = self._access_token if isinstance(self._access_token, str) else await self._access_token()
        if not token:
            raise PermissionDeniedError("No OneDrive access token")
        return {"Authorization": f"Bearer {token}"}

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def _item_url(self, path: str, action: str = "") -> str:
        rel = strip_scheme(path)
        if rel == "/":
            return f"{self._base_url}/me/drive/root" + (f"/{action}" if action else "")
        return f"{self._base_url}/me/drive/root:{quote(rel)}" + (f":/{action}" if action else "")

    @staticmethod
    def _parent_reference(path: str) -> dict[str, str]:
        parent = strip_scheme(dirname(path))
        return {"path": "/drive/root:" + ("" if parent == "/" else parent)}

    async def _item(self, path: str) -> dict[str, Any] | None:
        response = await self._request("GET", self._item_url(path), allow=(404,))
        if response.status_code == 404:
            return None
        return response.json()

    async def _require_folder(self, path: str) -> dict[str, Any]:
        item = await self._item(path)
        if item is None:
            raise PathNotFoundError(f"No such directory: {path}")
        if "folder" not in item:
            raise InvalidArgumentError(f"Not a directory: {path}")
        return item

    def _to_ref(self, parent_path: str, item: dict[str, Any]) -> FileRef:
        name = item.get("name", "")
        is_dir = "folder" in item
        mime = None
        if not is_dir:
            mime = (item.get("file") or {}).get("mimeType") or self.guess_mime(name)
        return FileRef(
            path=join(parent_path, name),
            filename=name,
            type=FileType.DIR if is_dir else FileType.FILE,
            mime=mime,
            size=int(item.get("size") or 0),
            id=item.get("id"),
            mtime=item.get("lastModifiedDateTime"),
            ctime=item.get("createdDateTime"),
            extra={k: item[k] for k in ("webUrl", DOWNLOAD_URL) if item.get(k)},
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        await self._require_folder(directory.path)
        listing: list[FileRef] = []
        url: str | None = self._item_url(directory.path, "children")
        while url:
            page = (await self._request("GET", url)).json()
            listing.extend(self._to_ref(directory.path, item) for item in page.get("value", []))
            url = page.get("@odata.nextLink")
        logger.debug("OneDrive %s: %d children", directory.path, len(listing))
        return listing

    async def read(self, file: FileRef) -> bytes:
        response = await self._request("GET", self._item_url(file.path, "content"), follow_redirects=True)
        return response.content

    async def exists(self, ref: FileRef) -> bool:
        return await self._item(ref.path) is not None

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        item = await self._item(ref.path)
        if item is None:
            raise PathNotFoundError(f"No such file or directory: {ref.path}")
        info = {k: item.get(k) for k in INFO_KEYS}
        info["type"] = "dir" if "folder" in item else "file"
        return info

    async def url(self, file: FileRef) -> str | None:
        item = await self._item(file.path)
        if item is None:
            raise PathNotFoundError(f"No such file or directory: {file.path}")
        return item.get(DOWNLOAD_URL) or item.get("webUrl")

    async def free_space(self, root: FileRef) -> int:
        drive = (await self._request("GET", f"{self._base_url}/me/drive")).json()
        remaining = (drive.get("quota") or {}).get("remaining")
        return int(remaining) if remaining is not None else -1

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        if strip_scheme(file.path) == "/":
            raise InvalidArgumentError("Cannot write to the drive root")
        await self._require_folder(dirname(file.path))
        existing = await self._item(file.path)
        if existing is not None and "folder" in existing:
            raise InvalidArgumentError(f"Is a directory: {file.path}")
        mime = file.mime or self.guess_mime(file.filename)
        await self._request(
            "PUT", self._item_url(file.path, "content"), headers={"Content-Type": mime}, content=data
        )

    async def mkdir(self, directory: FileRef) -> None:
        await self._request(
            "POST",
            self._item_url(dirname(directory.path), "children"),
            json={"name": directory.filename, "folder": {}, CONFLICT: "fail"},
        )

    async def unlink(self, ref: FileRef) -> None:
        if strip_scheme(ref.path) == "/":
            raise InvalidArgumentError("Cannot remove the drive root")
        await self._request("DELETE", self._item_url(ref.path))

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        response = await self._request(
            "POST",
            self._item_url(src.path, "copy"),
            params={CONFLICT: "replace"},
            json={"parentReference": self._parent_reference(dst.path), "name": dst.filename},
        )
        monitor = response.headers.get("Location")
        if monitor:
            await self._wait_for_copy(monitor, src.path)

    async def _wait_for_copy(self, monitor: str, path: str) -> None:
        """Poll the copy monitor until the job completes or fails."""
        for _ in range(self._poll_attempts):
            status = (await self._request("GET", monitor)).json()
            state = status.get("status")
            if state == "completed":
                return
            if state == "failed":
                raise InternalError(f"OneDrive copy of {path} failed", cause=status)
            await asyncio.sleep(self._poll_interval)
        raise OperationTimeoutError(f"OneDrive copy of {path} did not finish")

    async def move(self, src: FileRef, dst: FileRef) -> None:
        """Reparent and rename in a single patch."""
        if strip_scheme(src.path) == "/":
            raise InvalidArgumentError("Cannot move the drive root")
        await self._request(
            "PATCH",
            self._item_url(src.path),
            params={CONFLICT: "replace"},
            json={"parentReference": self._parent_reference(dst.path), "name": dst.filename},
        )

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        if not blob.name:
            raise InvalidArgumentError("Uploaded blob has no name")
        path = join(directory.path, blob.name)
        file = FileRef(path=path, type=FileType.FILE, mime=blob.mime, size=blob.size)
        await self.write(file, blob.data)
        return file
