"""Read-only HTTP transport backed by ``_scandir.json`` manifests.

Every directory on the host carries a ``_scandir.json`` listing its
children as ``{"filename", "type", "mime", "size"}`` objects.  Files are
fetched with plain GETs relative to the transport's base URL.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from deskvfs.fs.cache import MetadataCache
from deskvfs.fs.exceptions import InternalError, InvalidArgumentError, ReadOnlyError
from deskvfs.fs.paths import join, strip_scheme
from deskvfs.ref import FileRef, FileType

from .base import HTTPTransport, error_for_status

if TYPE_CHECKING:
    import httpx

    from deskvfs.fs.payload import Blob, MimeMap

logger = logging.getLogger(__name__)

MANIFEST = "_scandir.json"


class HttpTransport(HTTPTransport):
    """Read-only transport over a static HTTP host.

    Listings and payloads are cached for ``cache_ttl`` seconds.  Every
    write-verb fails with :class:`ReadOnlyError` without touching the
    network.
    """

    read_only = True
    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        cache_ttl: float | None = 60.0,
        mime_map: MimeMap | None = None,
    ) -> None:
        super().__init__(base_url, client=client, timeout=timeout, mime_map=mime_map)
        self._cache = MetadataCache(ttl=cache_ttl)

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> HttpTransport:
        if not options.get("url"):
            raise InvalidArgumentError("HTTP transport requires a 'url' option")
        return cls(
            options["url"],
            timeout=float(options.get("timeout", 30.0)),
            cache_ttl=options.get("cache_ttl", 60.0),
            mime_map=mime_map,
        )

    @property
    def cache(self) -> MetadataCache:
        return self._cache

    def _url_for(self, path: str) -> str:
        return self._base_url + quote(strip_scheme(path))

    def _manifest_url(self, path: str) -> str:
        rel = strip_scheme(path).rstrip("/")
        return self._base_url + quote(f"{rel}/{MANIFEST}")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        entry = self._cache.get_listing(directory.path)
        if entry is not None:
            return list(entry.value)

        response = await self._request("GET", self._manifest_url(directory.path))
        try:
            manifest = response.json()
        except ValueError as e:
            raise InternalError(f"Invalid {MANIFEST} for {directory.path}", cause=e) from e
        if not isinstance(manifest, list):
            raise InternalError(f"{MANIFEST} for {directory.path} is not a list")

        listing = []
        for item in manifest:
            filename = item.get("filename")
            if not filename or filename in (".", ".."):
                continue
            kind = FileType.DIR if item.get("type") == "dir" else FileType.FILE
            listing.append(
                FileRef(
                    path=join(directory.path, filename),
                    filename=filename,
                    type=kind,
                    mime=item.get("mime") or (None if kind is FileType.DIR else self.guess_mime(filename)),
                    size=int(item.get("size") or 0),
                )
            )
        self._cache.put_listing(directory.path, listing)
        return listing

    async def read(self, file: FileRef) -> bytes:
        entry = self._cache.get_payload(file.path)
        if entry is not None:
            return entry.value
        response = await self._request("GET", self._url_for(file.path))
        self._cache.put_payload(file.path, response.content)
        return response.content

    async def exists(self, ref: FileRef) -> bool:
        url = self._manifest_url(ref.path) if ref.is_dir else self._url_for(ref.path)
        response = await self._request("HEAD", url, allow=(404,))
        return response.status_code != 404

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        url = self._url_for(ref.path)
        response = await self._request("HEAD", url, allow=(404,))
        if response.status_code == 404:
            raise error_for_status(404, f"No such file: {ref.path}")
        headers = response.headers
        return {
            "path": ref.path,
            "filename": ref.filename,
            "url": url,
            "mime": headers.get("content-type", "").split(";", 1)[0] or self.guess_mime(ref.filename),
            "size": int(headers.get("content-length", 0) or 0),
            "mtime": headers.get("last-modified"),
            "etag": headers.get("etag"),
        }

    async def url(self, file: FileRef) -> str | None:
        return self._url_for(file.path)

    # ------------------------------------------------------------------
    # Write (always refused)
    # ------------------------------------------------------------------

    def _read_only(self, verb: str, ref: FileRef) -> ReadOnlyError:
        return ReadOnlyError(f"Cannot {verb} {ref.path}: HTTP transport is read-only")

    async def write(self, file: FileRef, data: bytes) -> None:
        raise self._read_only("write", file)

    async def unlink(self, ref: FileRef) -> None:
        raise self._read_only("unlink", ref)

    async def mkdir(self, directory: FileRef) -> None:
        raise self._read_only("mkdir", directory)

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        raise self._read_only("copy", dst)

    async def move(self, src: FileRef, dst: FileRef) -> None:
        raise self._read_only("move", src)

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        raise self._read_only("upload", directory)
