"""Google Drive (v2 REST API) transport.

Drive addresses objects by opaque id and relates them through parent
sets.  The transport keeps a flat tree cache of every known object and
resolves virtual paths to ids by walking titles down from the root
folder.  Any successful mutation clears the cache, and an idle timer
clears it as well so changes made elsewhere eventually show up.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    PathNotFoundError,
    PermissionDeniedError,
)
from deskvfs.fs.payload import bytes_to_base64
from deskvfs.fs.paths import format_path, join, parse
from deskvfs.ref import FileRef, FileType

from .base import HTTPTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

    from deskvfs.fs.payload import Blob, MimeMap
    from deskvfs.fs.protocol import FindQuery

    TokenProvider = Callable[[], Awaitable[str]]

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com"

FOLDER_MIME = "application/vnd.google-apps.folder"

TRASH_MIME = "application/vnd.google-apps.trash"

CACHE_CLEAR_TIMEOUT = 7.0

MULTIPART_BOUNDARY = "-------314159265358979323846"

INFO_KEYS = (
    "createdDate",
    "id",
    "lastModifyingUser",
    "lastViewedByMeDate",
    "markedViewedByMeDate",
    "mimeType",
    "modifiedByMeDate",
    "modifiedDate",
    "title",
    "alternateLink",
)


def multipart_body(metadata: dict[str, Any], data: bytes, mime: str) -> tuple[str, bytes]:
    """Build a ``multipart/related`` upload body: JSON metadata, then base64 data.

    Returns ``(content_type, body)``.
    """
    delimiter = f"\r\n--{MULTIPART_BOUNDARY}\r\n"
    close_delimiter = f"\r\n--{MULTIPART_BOUNDARY}--"
    body = (
        delimiter
        + "Content-Type: application/json\r\n\r\n"
        + json.dumps(metadata)
        + delimiter
        + f"Content-Type: {mime}\r\n"
        + "Content-Transfer-Encoding: base64\r\n\r\n"
        + bytes_to_base64(data)
        + close_delimiter
    )
    return f'multipart/related; boundary="{MULTIPART_BOUNDARY}"', body.encode("utf-8")


class GoogleDriveTransport(HTTPTransport):
    """Transport for a Drive account reached with an OAuth access token.

    *access_token* is either a token string or an async callable
    returning a fresh token for each request.
    """

    name = "googledrive"

    def __init__(
        self,
        access_token: str | TokenProvider,
        *,
        client: httpx.AsyncClient | None = None,
        api_base: str = API_BASE,
        timeout: float = 30.0,
        cache_clear_timeout: float = CACHE_CLEAR_TIMEOUT,
        mime_map: MimeMap | None = None,
    ) -> None:
        super().__init__(api_base, client=client, timeout=timeout, mime_map=mime_map)
        self._access_token = access_token
        self._cache_clear_timeout = cache_clear_timeout
        self._root_id: str | None = None
        self._tree_cache: list[dict[str, Any]] | None = None
        self._clear_handle: asyncio.TimerHandle | None = None

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> GoogleDriveTransport:
        token = options.get("access_token")
        if not token:
            raise InvalidArgumentError("Google Drive transport requires an 'access_token' option")
        return cls(
            token,
            api_base=options.get("api_base", API_BASE),
            timeout=float(options.get("timeout", 30.0)),
            cache_clear_timeout=float(options.get("cache_clear_timeout", CACHE_CLEAR_TIMEOUT)),
            mime_map=mime_map,
        )

    @property
    def root_id(self) -> str | None:
        return self._root_id

    @property
    def tree_cache(self) -> list[dict[str, Any]] | None:
        return self._tree_cache

    async def _auth_headers(self) -> dict[str, str]:
        token = self._access_token if isinstance(self._access_token, str) else await self._access_token()
        if not token:
            raise PermissionDeniedError("No Google Drive access token")
        return {"Authorization": f"Bearer {token}"}

    def _api(self, suffix: str) -> str:
        return f"{self._base_url}/drive/v2{suffix}"

    def _upload_api(self, suffix: str) -> str:
        return f"{self._base_url}/upload/drive/v2{suffix}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Resolve the root folder id once."""
        about = (await self._request("GET", self._api("/about"))).json()
        root_id = about.get("rootFolderId")
        if not root_id:
            raise InternalError("Drive about reply has no rootFolderId", cause=about)
        self._root_id = root_id
        logger.info("Google Drive root folder is %s", root_id)

    async def close(self) -> None:
        self.clear_cache()
        self._root_id = None
        await super().close()

    # ------------------------------------------------------------------
    # Tree cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
        self._tree_cache = None

    def _schedule_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._clear_handle = loop.call_later(self._cache_clear_timeout, self._expire_cache)

    def _expire_cache(self) -> None:
        self._clear_handle = None
        self._tree_cache = None
        logger.debug("Drive tree cache expired")

    async def _tree(self) -> list[dict[str, Any]]:
        """Every known object, fetched page by page when the cache is cold."""
        if self._tree_cache is not None:
            self._schedule_clear()
            return self._tree_cache

        items: list[dict[str, Any]] = []
        params: dict[str, Any] = {"maxResults": 1000}
        while True:
            page = (await self._request("GET", self._api("/files"), params=params)).json()
            items.extend(page.get("items", []))
            token = page.get("nextPageToken")
            if not token:
                break
            params = {"maxResults": 1000, "pageToken": token}

        logger.info("Drive tree cache refreshed with %d objects", len(items))
        self._tree_cache = items
        self._schedule_clear()
        return items

    @staticmethod
    def _parents(item: dict[str, Any]) -> list[str]:
        return [p["id"] for p in item.get("parents", []) if "id" in p]

    def _children(self, tree: list[dict[str, Any]], parent_id: str) -> list[dict[str, Any]]:
        return [item for item in tree if parent_id in self._parents(item)]

    async def _resolve(self, path: str, mime: str | None = None) -> dict[str, Any]:
        """Object at *path*: walk titles down from the root folder."""
        if self._root_id is None:
            raise InternalError("Drive transport is not open")
        _, segments = parse(path)
        current: dict[str, Any] = {"id": self._root_id, "title": "", "mimeType": FOLDER_MIME}
        if not segments:
            return current

        tree = await self._tree()
        last = len(segments) - 1
        for i, segment in enumerate(segments):
            candidates = [c for c in self._children(tree, current["id"]) if c.get("title") == segment]
            if i < last:
                candidates = [c for c in candidates if c.get("mimeType") == FOLDER_MIME]
            elif mime is not None:
                typed = [c for c in candidates if c.get("mimeType") == mime]
                candidates = typed or candidates
            if not candidates:
                raise PathNotFoundError(f"No such file or directory: {path}")
            current = candidates[0]
        return current

    async def _resolve_parent(self, path: str) -> dict[str, Any]:
        scheme, segments = parse(path)
        if not segments:
            raise InvalidArgumentError("The Drive root has no parent")
        parent = await self._resolve(format_path(scheme, segments[:-1]), FOLDER_MIME)
        if parent.get("mimeType") != FOLDER_MIME:
            raise InvalidArgumentError(f"Not a directory: {format_path(scheme, segments[:-1])}")
        return parent

    async def _maybe_resolve(self, path: str, mime: str | None = None) -> dict[str, Any] | None:
        try:
            return await self._resolve(path, mime)
        except PathNotFoundError:
            return None

    def _to_ref(self, parent_path: str, item: dict[str, Any]) -> FileRef:
        mime = item.get("mimeType")
        trashed = bool(item.get("labels", {}).get("trashed"))
        if mime == FOLDER_MIME:
            kind = FileType.DIR
        elif mime == TRASH_MIME or trashed:
            kind = FileType.TRASH
        else:
            kind = FileType.FILE
        return FileRef(
            path=join(parent_path, item.get("title", "")),
            filename=item.get("title", ""),
            type=kind,
            mime=None if kind is FileType.DIR else mime,
            size=int(item.get("fileSize") or item.get("quotaBytesUsed") or 0),
            id=item.get("id"),
            mtime=item.get("modifiedDate"),
            ctime=item.get("createdDate"),
            extra={
                k: item[k] for k in ("downloadUrl", "webContentLink", "alternateLink") if item.get(k)
            },
        )

    def _mutated(self) -> None:
        self.clear_cache()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        folder = await self._resolve(directory.path, FOLDER_MIME)
        if folder.get("mimeType") != FOLDER_MIME:
            raise InvalidArgumentError(f"Not a directory: {directory.path}")
        tree = await self._tree()
        return [self._to_ref(directory.path, item) for item in self._children(tree, folder["id"])]

    async def read(self, file: FileRef) -> bytes:
        item = await self._resolve(file.path)
        if item.get("mimeType") == FOLDER_MIME:
            raise InvalidArgumentError(f"Is a directory: {file.path}")
        url = item.get("downloadUrl") or self._api(f"/files/{item['id']}?alt=media")
        response = await self._request("GET", url)
        return response.content

    async def exists(self, ref: FileRef) -> bool:
        return await self._maybe_resolve(ref.path) is not None

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        item = await self._resolve(ref.path)
        if item["id"] == self._root_id:
            return {"id": item["id"], "title": "", "mimeType": FOLDER_MIME}
        info = (await self._request("GET", self._api(f"/files/{item['id']}"))).json()
        return {k: info.get(k) for k in INFO_KEYS}

    async def url(self, file: FileRef) -> str | None:
        item = await self._resolve(file.path)
        if item["id"] == self._root_id:
            return None
        info = (await self._request("GET", self._api(f"/files/{item['id']}"))).json()
        return info.get("webContentLink")

    async def find(self, root: FileRef, query: FindQuery) -> list[FileRef]:
        start = await self._resolve(root.path, FOLDER_MIME)
        tree = await self._tree()
        needle = query.query.lower()
        mime_re = re.compile(query.mime) if query.mime else None

        results: list[FileRef] = []
        queue: list[tuple[str, str, int]] = [(start["id"], root.path, 1)]
        seen = {start["id"]}
        while queue:
            folder_id, folder_path, depth = queue.pop(0)
            for item in self._children(tree, folder_id):
                ref = self._to_ref(folder_path, item)
                if ref.is_dir and item["id"] not in seen and (query.depth is None or depth < query.depth):
                    seen.add(item["id"])
                    queue.append((item["id"], ref.path, depth + 1))
                if needle and needle not in ref.filename.lower():
                    continue
                if mime_re is not None and (ref.is_dir or not mime_re.search(ref.mime or "")):
                    continue
                results.append(ref)
                if query.limit is not None and len(results) >= query.limit:
                    return results
        return results

    async def free_space(self, root: FileRef) -> int:
        about = (await self._request("GET", self._api("/about"))).json()
        try:
            total = int(about["quotaBytesTotal"])
            used = int(about.get("quotaBytesUsed", 0))
        except (KeyError, TypeError, ValueError):
            return -1
        return total - used

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        parent = await self._resolve_parent(file.path)
        existing = await self._maybe_resolve(file.path)
        if existing is not None and existing.get("mimeType") == FOLDER_MIME:
            raise InvalidArgumentError(f"Is a directory: {file.path}")

        mime = file.mime or self.guess_mime(file.filename)
        metadata: dict[str, Any] = {"title": file.filename, "mimeType": mime}
        if existing is None:
            metadata["parents"] = [{"id": parent["id"]}]
            method, url = "POST", self._upload_api("/files")
        else:
            method, url = "PUT", self._upload_api(f"/files/{existing['id']}")

        content_type, body = multipart_body(metadata, data, mime)
        response = await self._request(
            method,
            url,
            params={"uploadType": "multipart"},
            headers={"Content-Type": content_type},
            content=body,
        )
        self._mutated()
        if not response.json().get("id"):
            raise InternalError(f"Drive did not store {file.path}", cause=response.text)

    async def mkdir(self, directory: FileRef) -> None:
        parent = await self._resolve_parent(directory.path)
        if await self._maybe_resolve(directory.path) is not None:
            raise ExistsError(f"Already exists: {directory.path}")
        await self._request(
            "POST",
            self._api("/files"),
            json={"title": directory.filename, "parents": [{"id": parent["id"]}], "mimeType": FOLDER_MIME},
        )
        self._mutated()

    async def unlink(self, ref: FileRef) -> None:
        item = await self._resolve(ref.path)
        if item["id"] == self._root_id:
            raise InvalidArgumentError("Cannot remove the Drive root")
        await self._request("DELETE", self._api(f"/files/{item['id']}"))
        self._mutated()

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        item = await self._resolve(src.path)
        if item.get("mimeType") == FOLDER_MIME:
            raise self._unsupported("copy of folders")
        parent = await self._resolve_parent(dst.path)
        existing = await self._maybe_resolve(dst.path)
        if existing is not None:
            await self._request("DELETE", self._api(f"/files/{existing['id']}"))
            self._mutated()
        await self._request(
            "POST",
            self._api(f"/files/{item['id']}/copy"),
            json={"title": dst.filename, "parents": [{"id": parent["id"]}]},
        )
        self._mutated()

    async def move(self, src: FileRef, dst: FileRef) -> None:
        """Swap the parent and rename in a single patch."""
        item = await self._resolve(src.path)
        if item["id"] == self._root_id:
            raise InvalidArgumentError("Cannot move the Drive root")
        src_parent = await self._resolve_parent(src.path)
        dst_parent = await self._resolve_parent(dst.path)
        existing = await self._maybe_resolve(dst.path)
        if existing is not None and existing["id"] != item["id"]:
            await self._request("DELETE", self._api(f"/files/{existing['id']}"))
            self._mutated()

        params: dict[str, str] = {}
        if src_parent["id"] != dst_parent["id"]:
            params = {"addParents": dst_parent["id"], "removeParents": src_parent["id"]}
        resource: dict[str, Any] = {}
        if item.get("title") != dst.filename:
            resource["title"] = dst.filename
        await self._request("PATCH", self._api(f"/files/{item['id']}"), params=params, json=resource)
        self._mutated()

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        if not blob.name:
            raise InvalidArgumentError("Uploaded blob has no name")
        path = join(directory.path, blob.name)
        file = FileRef(path=path, type=FileType.FILE, mime=blob.mime, size=blob.size)
        await self.write(file, blob.data)
        return file

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def trash(self, ref: FileRef) -> None:
        item = await self._resolve(ref.path)
        await self._request("POST", self._api(f"/files/{item['id']}/trash"))
        self._mutated()

    async def untrash(self, ref: FileRef) -> None:
        item = await self._resolve(ref.path)
        await self._request("POST", self._api(f"/files/{item['id']}/untrash"))
        self._mutated()

    async def empty_trash(self, ref: FileRef) -> None:
        await self._request("DELETE", self._api("/files/trash"))
        self._mutated()
