"""Server-backed transport speaking the ``/vfs`` JSON RPC endpoint.

Requests are ``POST <base>/vfs`` with ``{"method": ..., "args": ...}``;
replies are ``{"error": str | null, "code": str | null, "result": ...}``.
File payloads travel as data URLs, uploads as multipart form posts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from deskvfs.fs.cache import MetadataCache
from deskvfs.fs.exceptions import InternalError, InvalidArgumentError
from deskvfs.fs.listing import is_backlink
from deskvfs.fs.payload import Blob, bytes_to_dataurl, dataurl_to_bytes
from deskvfs.fs.paths import join
from deskvfs.ref import FileRef, FileType

from .base import HTTPTransport, error_for_code, error_for_status

if TYPE_CHECKING:
    from deskvfs.fs.payload import MimeMap
    from deskvfs.fs.protocol import FindQuery

logger = logging.getLogger(__name__)

_ERROR_STATUSES = tuple(range(400, 600))


class ServerTransport(HTTPTransport):
    """Transport for the platform's own file server.

    Stateless between calls: files are identified by virtual path.
    ``cache_ttl > 0`` enables a listing and payload cache that is
    invalidated by every mutation made through this transport.
    """

    name = "server"

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        session_token: str | None = None,
        timeout: float = 30.0,
        cache_ttl: float = 0,
        max_upload_size: int = 0,
        rpc_path: str = "/vfs",
        mime_map: MimeMap | None = None,
    ) -> None:
        super().__init__(base_url, client=client, timeout=timeout, mime_map=mime_map)
        self._session_token = session_token
        self._cache = MetadataCache(ttl=cache_ttl) if cache_ttl > 0 else None
        self._max_upload_size = max_upload_size
        self._rpc_path = "/" + rpc_path.strip("/")

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> ServerTransport:
        if not options.get("url"):
            raise InvalidArgumentError("Server transport requires a 'url' option")
        return cls(
            options["url"],
            session_token=options.get("session_token"),
            timeout=float(options.get("timeout", 30.0)),
            cache_ttl=float(options.get("cache_ttl", 0)),
            max_upload_size=int(options.get("max_upload_size", 0)),
            rpc_path=options.get("rpc_path", "/vfs"),
            mime_map=mime_map,
        )

    @property
    def cache(self) -> MetadataCache | None:
        return self._cache

    async def _auth_headers(self) -> dict[str, str]:
        if self._session_token:
            return {"Authorization": f"Bearer {self._session_token}"}
        return {}

    def _endpoint(self, suffix: str = "") -> str:
        return f"{self._base_url}{self._rpc_path}{suffix}"

    def _invalidate(self, *paths: str) -> None:
        if self._cache is not None:
            for path in paths:
                self._cache.invalidate(path)

    # ------------------------------------------------------------------
    # Wire helpers
    # ------------------------------------------------------------------

    def _unwrap(self, response: httpx.Response, what: str) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            raise error_for_code(body.get("code"), f"{what}: {body['error']}", cause=body["error"])
        if response.status_code >= 400:
            raise error_for_status(response.status_code, f"{what} returned {response.status_code}", cause=response.text)
        if not isinstance(body, dict) or "result" not in body:
            raise InternalError(f"{what}: malformed server reply", cause=response.text)
        return body["result"]

    async def _call(self, method: str, args: dict[str, Any]) -> Any:
        response = await self._request(
            "POST",
            self._endpoint(),
            json={"method": method, "args": args},
            allow=_ERROR_STATUSES,
        )
        return self._unwrap(response, f"FS:{method}")

    def _to_ref(self, data: dict[str, Any], parent: str) -> FileRef:
        data = dict(data)
        if not data.get("path"):
            data["path"] = join(parent, data.get("filename", ""))
        return FileRef.from_dict(data)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        if self._cache is not None:
            entry = self._cache.get_listing(directory.path)
            if entry is not None:
                return list(entry.value)
        result = await self._call("scandir", {"path": directory.path})
        listing = [r for r in (self._to_ref(item, directory.path) for item in result or []) if not is_backlink(r)]
        if self._cache is not None:
            self._cache.put_listing(directory.path, listing)
        return listing

    async def read(self, file: FileRef) -> bytes:
        if self._cache is not None:
            entry = self._cache.get_payload(file.path)
            if entry is not None:
                return entry.value
        result = await self._call("read", {"path": file.path})
        if not isinstance(result, str):
            raise InternalError(f"FS:read returned {type(result).__name__} for {file.path}")
        data = dataurl_to_bytes(result)
        if self._cache is not None:
            self._cache.put_payload(file.path, data)
        return data

    async def exists(self, ref: FileRef) -> bool:
        return bool(await self._call("exists", {"path": ref.path}))

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        result = await self._call("fileinfo", {"path": ref.path})
        return dict(result or {})

    async def url(self, file: FileRef) -> str | None:
        params = {"path": file.path}
        if self._session_token:
            params["session"] = self._session_token
        return str(httpx.URL(self._endpoint("/get"), params=params))

    async def download(self, file: FileRef) -> Blob:
        url = await self.url(file)
        assert url is not None
        response = await self._request("GET", url)
        mime = response.headers.get("content-type", "").split(";", 1)[0] or self.guess_mime(file.filename)
        return Blob(data=response.content, mime=mime, name=file.filename)

    async def find(self, root: FileRef, query: FindQuery) -> list[FileRef]:
        args = {
            "path": root.path,
            "query": {"query": query.query, "mime": query.mime, "depth": query.depth, "limit": query.limit},
        }
        result = await self._call("find", args)
        return [self._to_ref(item, root.path) for item in result or []]

    async def free_space(self, root: FileRef) -> int:
        result = await self._call("freeSpace", {"root": root.path})
        return int(result if result is not None else -1)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        mime = file.mime or self.guess_mime(file.filename)
        await self._call("write", {"path": file.path, "mime": mime, "data": str(bytes_to_dataurl(data, mime))})
        self._invalidate(file.path)

    async def unlink(self, ref: FileRef) -> None:
        await self._call("delete", {"path": ref.path})
        self._invalidate(ref.path)

    async def mkdir(self, directory: FileRef) -> None:
        await self._call("mkdir", {"path": directory.path})
        self._invalidate(directory.path)

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        await self._call("copy", {"src": src.path, "dest": dst.path})
        self._invalidate(dst.path)

    async def move(self, src: FileRef, dst: FileRef) -> None:
        await self._call("move", {"src": src.path, "dest": dst.path})
        self._invalidate(src.path, dst.path)

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        if self._max_upload_size > 0 and blob.size > self._max_upload_size:
            raise InvalidArgumentError(
                f"Upload of {blob.size} bytes exceeds the {self._max_upload_size} byte limit"
            )
        name = blob.name or "upload"
        response = await self._request(
            "POST",
            self._endpoint("/upload"),
            data={"path": directory.path, "filename": name, "overwrite": "true"},
            files={"upload": (name, blob.data, blob.mime)},
            allow=_ERROR_STATUSES,
        )
        result = self._unwrap(response, "FS:upload")
        path = join(directory.path, name)
        self._invalidate(path)
        if isinstance(result, dict):
            return self._to_ref(result, directory.path)
        return FileRef(path=path, type=FileType.FILE, mime=blob.mime, size=blob.size)

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def trash(self, ref: FileRef) -> None:
        await self._call("trash", {"path": ref.path})
        self._invalidate(ref.path)

    async def untrash(self, ref: FileRef) -> None:
        await self._call("untrash", {"path": ref.path})
        self._invalidate(ref.path)

    async def empty_trash(self, ref: FileRef) -> None:
        await self._call("emptyTrash", {"path": ref.path})
        if self._cache is not None:
            self._cache.clear()
