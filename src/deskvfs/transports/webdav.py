"""WebDAV transport (RFC 4918 verbs over httpx)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, unquote, urlsplit

import httpx
from lxml import etree

from deskvfs.fs.exceptions import ExistsError, InternalError, InvalidArgumentError, PathNotFoundError
from deskvfs.fs.paths import join, strip_scheme
from deskvfs.ref import FileRef, FileType

from .base import HTTPTransport

if TYPE_CHECKING:
    from deskvfs.fs.payload import Blob, MimeMap

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:allprop/></d:propfind>'
)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def parse_multistatus(body: bytes | str, ns: str = DAV_NS) -> list[dict[str, Any]]:
    """Parse a ``multistatus`` PROPFIND reply into plain dicts.

    Each dict has ``href`` (decoded path), ``type``, ``mime``, ``size``,
    ``etag`` and ``mtime``.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    try:
        root = etree.fromstring(body, _PARSER)
    except etree.XMLSyntaxError as e:
        raise InternalError("Malformed WebDAV multistatus reply", cause=e) from e

    def tag(name: str) -> str:
        return f"{{{ns}}}{name}"

    entries = []
    for response in root.iter(tag("response")):
        href = response.findtext(tag("href")) or ""
        href = unquote(urlsplit(href).path)
        prop = response.find(f"{tag('propstat')}/{tag('prop')}")
        if prop is None:
            continue
        is_dir = prop.find(f"{tag('resourcetype')}/{tag('collection')}") is not None
        size = prop.findtext(tag("getcontentlength"))
        entries.append(
            {
                "href": href,
                "type": "dir" if is_dir else "file",
                "mime": None if is_dir else (prop.findtext(tag("getcontenttype")) or None),
                "size": int(size) if size and size.isdigit() else 0,
                "etag": prop.findtext(tag("getetag")),
                "mtime": prop.findtext(tag("getlastmodified")),
            }
        )
    return entries


class WebDAVTransport(HTTPTransport):
    """Transport for a WebDAV collection rooted at *base_url*."""

    name = "webdav"

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        username: str | None = None,
        password: str | None = None,
        namespace: str = DAV_NS,
        timeout: float = 30.0,
        mime_map: MimeMap | None = None,
    ) -> None:
        auth = httpx.BasicAuth(username, password or "") if username else None
        super().__init__(base_url, client=client, timeout=timeout, auth=auth, mime_map=mime_map)
        self._namespace = namespace
        self._base_path = unquote(urlsplit(self._base_url).path).rstrip("/")

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> WebDAVTransport:
        host = options.get("url") or options.get("host")
        if not host:
            raise InvalidArgumentError("WebDAV transport requires a 'url' option")
        return cls(
            host,
            username=options.get("username"),
            password=options.get("password"),
            namespace=options.get("ns", DAV_NS),
            timeout=float(options.get("timeout", 30.0)),
            mime_map=mime_map,
        )

    def _url_for(self, ref: FileRef) -> str:
        rel = strip_scheme(ref.path)
        if ref.is_dir and rel != "/":
            rel += "/"
        return self._base_url + quote(rel)

    def _relative(self, href: str) -> str:
        if self._base_path and href.startswith(self._base_path):
            href = href[len(self._base_path) :]
        return href.rstrip("/") or "/"

    async def _propfind(self, ref: FileRef, depth: str) -> list[dict[str, Any]] | None:
        response = await self._request(
            "PROPFIND",
            self._url_for(ref),
            headers={"Depth": depth, "Content-Type": "application/xml"},
            content=PROPFIND_BODY,
            allow=(404,),
        )
        if response.status_code == 404:
            return None
        return parse_multistatus(response.content, self._namespace)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        entries = await self._propfind(directory, "1")
        if entries is None:
            raise PathNotFoundError(f"No such directory: {directory.path}")
        logger.debug("PROPFIND %s: %d entries", directory.path, len(entries))
        own = strip_scheme(directory.path)
        listing = []
        for entry in entries:
            rel = self._relative(entry["href"])
            if rel == own:
                continue
            name = rel.rsplit("/", 1)[-1]
            listing.append(
                FileRef(
                    path=join(directory.path, name),
                    filename=name,
                    type=FileType(entry["type"]),
                    mime=entry["mime"] or (None if entry["type"] == "dir" else self.guess_mime(name)),
                    size=entry["size"],
                    id=entry["etag"],
                    mtime=entry["mtime"],
                )
            )
        return listing

    async def read(self, file: FileRef) -> bytes:
        response = await self._request("GET", self._url_for(file))
        return response.content

    async def exists(self, ref: FileRef) -> bool:
        return await self._propfind(ref, "0") is not None

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        entries = await self._propfind(ref, "0")
        if not entries:
            raise PathNotFoundError(f"No such file or directory: {ref.path}")
        info = dict(entries[0])
        info["path"] = ref.path
        return info

    async def url(self, file: FileRef) -> str | None:
        return self._url_for(file)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        mime = file.mime or self.guess_mime(file.filename)
        await self._request("PUT", self._url_for(file), headers={"Content-Type": mime}, content=data)

    async def unlink(self, ref: FileRef) -> None:
        await self._request("DELETE", self._url_for(ref))

    async def mkdir(self, directory: FileRef) -> None:
        response = await self._request("MKCOL", self._url_for(directory), allow=(405,))
        if response.status_code == 405:
            raise ExistsError(f"Already exists: {directory.path}")

    async def _transfer(self, method: str, src: FileRef, dst: FileRef) -> None:
        await self._request(
            method,
            self._url_for(src),
            headers={"Destination": self._url_for(dst), "Overwrite": "T"},
        )

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        await self._transfer("COPY", src, dst)

    async def move(self, src: FileRef, dst: FileRef) -> None:
        await self._transfer("MOVE", src, dst)

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        if not blob.name:
            raise InvalidArgumentError("Uploaded blob has no name")
        file = FileRef(path=join(directory.path, blob.name), type=FileType.FILE, mime=blob.mime, size=blob.size)
        await self.write(file, blob.data)
        return file
