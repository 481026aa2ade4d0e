"""Tests for the server-backed transport against an in-memory /vfs endpoint."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    PathNotFoundError,
    PermissionDeniedError,
    ReadOnlyError,
)
from deskvfs.fs.payload import Blob, MimeMap, bytes_to_dataurl, dataurl_to_bytes
from deskvfs.fs.paths import basename, dirname, is_within
from deskvfs.fs.protocol import FindQuery, SupportsDownload, SupportsTrash
from deskvfs.ref import FileRef, dir_ref
from deskvfs.transports.server import ServerTransport

if TYPE_CHECKING:
    from collections.abc import Callable

BASE = "https://os.example"


class RPCError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class FakeServer:
    """Minimal file server speaking the ``/vfs`` JSON RPC."""

    def __init__(self) -> None:
        self.files: dict[str, tuple[bytes, str]] = {}
        self.dirs: set[str] = {"home:///"}
        self.trashed: set[str] = set()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/vfs":
            body = json.loads(request.content)
            self.calls.append((body["method"], body["args"]))
            try:
                result = getattr(self, f"rpc_{body['method']}")(**body["args"])
            except RPCError as e:
                return httpx.Response(200, json={"error": str(e), "code": e.code, "result": None})
            return httpx.Response(200, json={"error": None, "code": None, "result": result})
        if path == "/vfs/get":
            data, mime = self.files[request.url.params["path"]]
            return httpx.Response(200, content=data, headers={"content-type": f"{mime}; charset=binary"})
        if path == "/vfs/upload":
            self.calls.append(("upload", {}))
            return httpx.Response(200, json={"error": None, "result": True})
        return httpx.Response(404)

    def _require(self, path: str) -> None:
        if path not in self.files and path not in self.dirs:
            raise RPCError("ENOENT", f"No such file {path}")

    def rpc_scandir(self, path: str) -> list[dict[str, Any]]:
        self._require(path)
        entries: list[dict[str, Any]] = [{"filename": "..", "type": "dir", "path": dirname(path)}]
        for d in sorted(self.dirs):
            if d != path and dirname(d) == path:
                entries.append({"filename": basename(d), "type": "dir", "path": d})
        for f, (data, mime) in sorted(self.files.items()):
            if dirname(f) == path:
                entries.append({"filename": basename(f), "type": "file", "mime": mime, "size": len(data)})
        return entries

    def rpc_read(self, path: str) -> str:
        if path not in self.files:
            raise RPCError("ENOENT", f"No such file {path}")
        data, mime = self.files[path]
        return str(bytes_to_dataurl(data, mime))

    def rpc_exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs

    def rpc_fileinfo(self, path: str) -> dict[str, Any]:
        self._require(path)
        return {"path": path, "size": len(self.files[path][0]) if path in self.files else 0}

    def rpc_write(self, path: str, mime: str, data: str) -> bool:
        self.files[path] = (dataurl_to_bytes(data), mime)
        return True

    def rpc_mkdir(self, path: str) -> bool:
        if path in self.dirs:
            raise RPCError("EEXIST", f"{path} exists")
        self.dirs.add(path)
        return True

    def rpc_delete(self, path: str) -> bool:
        self._require(path)
        self.files = {k: v for k, v in self.files.items() if not is_within(k, path)}
        self.dirs = {d for d in self.dirs if not is_within(d, path)}
        return True

    def rpc_copy(self, src: str, dest: str) -> bool:
        self.files[dest] = self.files[src]
        return True

    def rpc_move(self, src: str, dest: str) -> bool:
        self.files[dest] = self.files.pop(src)
        return True

    def rpc_find(self, path: str, query: dict[str, Any]) -> list[dict[str, Any]]:
        return [{"path": f, "size": len(d)} for f, (d, _) in self.files.items() if query["query"] in f]

    def rpc_freeSpace(self, root: str) -> int:
        return 1024

    def rpc_trash(self, path: str) -> bool:
        self.trashed.add(path)
        return True

    def rpc_untrash(self, path: str) -> bool:
        self.trashed.discard(path)
        return True

    def rpc_emptyTrash(self, path: str) -> bool:
        self.trashed.clear()
        return True


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_transport(server: FakeServer, mock_client: Callable[..., httpx.AsyncClient]) -> Callable[..., ServerTransport]:
    def make(**kwargs: Any) -> ServerTransport:
        return ServerTransport(BASE, client=mock_client(server), **kwargs)

    return make


@pytest.fixture
def transport(make_transport: Callable[..., ServerTransport]) -> ServerTransport:
    return make_transport(session_token="tok")


class TestServerWire:
    async def test_rpc_envelope_and_auth(self, transport: ServerTransport, server: FakeServer):
        await transport.exists(FileRef(path="home:///a"))
        request = server.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/vfs"
        assert request.headers["authorization"] == "Bearer tok"
        assert json.loads(request.content) == {"method": "exists", "args": {"path": "home:///a"}}

    async def test_no_token_no_auth_header(self, make_transport: Callable[..., ServerTransport], server: FakeServer):
        await make_transport().exists(FileRef(path="home:///a"))
        assert "authorization" not in server.requests[0].headers

    async def test_error_code_mapping(self, transport: ServerTransport):
        with pytest.raises(PathNotFoundError) as exc_info:
            await transport.read(FileRef(path="home:///missing"))
        assert "No such file" in str(exc_info.value.cause)

    async def test_exists_error_code(self, transport: ServerTransport):
        await transport.mkdir(dir_ref("home:///d"))
        with pytest.raises(ExistsError):
            await transport.mkdir(dir_ref("home:///d"))

    @pytest.mark.parametrize(
        ("status", "error"),
        [(401, PermissionDeniedError), (404, PathNotFoundError), (500, InternalError)],
    )
    async def test_status_mapping(self, mock_client: Callable[..., httpx.AsyncClient], status: int, error: type):
        transport = ServerTransport(BASE, client=mock_client(lambda r: httpx.Response(status, text="nope")))
        with pytest.raises(error):
            await transport.exists(FileRef(path="home:///a"))

    async def test_body_code_wins_over_status(self, mock_client: Callable[..., httpx.AsyncClient]):
        reply = {"error": "read-only filesystem", "code": "EROFS", "result": None}
        transport = ServerTransport(BASE, client=mock_client(lambda r: httpx.Response(403, json=reply)))
        with pytest.raises(ReadOnlyError):
            await transport.unlink(FileRef(path="home:///a"))

    async def test_malformed_reply(self, mock_client: Callable[..., httpx.AsyncClient]):
        transport = ServerTransport(BASE, client=mock_client(lambda r: httpx.Response(200, json={"ok": 1})))
        with pytest.raises(InternalError):
            await transport.exists(FileRef(path="home:///a"))

    def test_from_options(self):
        transport = ServerTransport.from_options({"url": BASE, "cache_ttl": 5}, MimeMap())
        assert transport.base_url == BASE
        assert transport.cache is not None
        with pytest.raises(InvalidArgumentError):
            ServerTransport.from_options({}, MimeMap())


class TestServerVerbs:
    async def test_write_read(self, transport: ServerTransport, server: FakeServer):
        await transport.write(FileRef(path="home:///a.txt", mime="text/plain"), b"hello")
        assert server.files["home:///a.txt"] == (b"hello", "text/plain")
        assert server.calls[-1][1]["data"].startswith("data:text/plain;base64,")
        assert await transport.read(FileRef(path="home:///a.txt")) == b"hello"

    async def test_scandir_drops_backlink(self, transport: ServerTransport, server: FakeServer):
        server.dirs.add("home:///d")
        server.files["home:///x.bin"] = (b"12", "application/octet-stream")
        listing = await transport.scandir(dir_ref("home:///"))
        assert [(e.filename, e.path) for e in listing] == [("d", "home:///d"), ("x.bin", "home:///x.bin")]
        assert listing[1].size == 2

    async def test_mutations(self, transport: ServerTransport, server: FakeServer):
        server.files["home:///a"] = (b"1", "text/plain")
        await transport.copy(FileRef(path="home:///a"), FileRef(path="home:///b"))
        await transport.move(FileRef(path="home:///b"), FileRef(path="home:///c"))
        await transport.unlink(FileRef(path="home:///a"))
        assert set(server.files) == {"home:///c"}
        assert [c[0] for c in server.calls] == ["copy", "move", "delete"]
        assert server.calls[0][1] == {"src": "home:///a", "dest": "home:///b"}

    async def test_url_carries_session(self, transport: ServerTransport):
        url = httpx.URL(await transport.url(FileRef(path="home:///a b.txt")))
        assert url.path == "/vfs/get"
        assert url.params["path"] == "home:///a b.txt"
        assert url.params["session"] == "tok"

    async def test_download(self, transport: ServerTransport, server: FakeServer):
        server.files["home:///p.png"] = (b"png", "image/png")
        assert isinstance(transport, SupportsDownload)
        blob = await transport.download(FileRef(path="home:///p.png"))
        assert blob == Blob(b"png", "image/png", "p.png")

    async def test_upload_multipart(self, transport: ServerTransport, server: FakeServer):
        ref = await transport.upload(dir_ref("home:///"), Blob(b"imgdata", "image/png", "p.png"))
        request = server.requests[-1]
        assert request.url.path == "/vfs/upload"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'filename="p.png"' in request.content
        assert b"imgdata" in request.content
        assert ref.path == "home:///p.png"
        assert ref.size == 7

    async def test_upload_limit(self, make_transport: Callable[..., ServerTransport], server: FakeServer):
        transport = make_transport(max_upload_size=4)
        with pytest.raises(InvalidArgumentError):
            await transport.upload(dir_ref("home:///"), Blob(b"too large", name="x"))
        assert server.requests == []

    async def test_find_and_free_space(self, transport: ServerTransport, server: FakeServer):
        server.files["home:///notes.txt"] = (b"", "text/plain")
        hits = await transport.find(dir_ref("home:///"), FindQuery("notes", limit=3))
        assert [h.path for h in hits] == ["home:///notes.txt"]
        assert server.calls[-1][1]["query"]["limit"] == 3
        assert await transport.free_space(dir_ref("home:///")) == 1024

    async def test_trash(self, transport: ServerTransport, server: FakeServer):
        assert isinstance(transport, SupportsTrash)
        await transport.trash(FileRef(path="home:///a"))
        assert server.trashed == {"home:///a"}
        await transport.untrash(FileRef(path="home:///a"))
        await transport.trash(FileRef(path="home:///b"))
        await transport.empty_trash(dir_ref("home:///"))
        assert server.trashed == set()
        assert [c[0] for c in server.calls] == ["trash", "untrash", "trash", "emptyTrash"]


class TestServerCache:
    async def test_listing_cached_until_mutation(self, make_transport: Callable[..., ServerTransport], server: FakeServer):
        transport = make_transport(cache_ttl=60)
        await transport.scandir(dir_ref("home:///"))
        await transport.scandir(dir_ref("home:///"))
        assert [c[0] for c in server.calls] == ["scandir"]
        await transport.write(FileRef(path="home:///new"), b"x")
        listing = await transport.scandir(dir_ref("home:///"))
        assert [e.filename for e in listing] == ["new"]

    async def test_payload_cached(self, make_transport: Callable[..., ServerTransport], server: FakeServer):
        transport = make_transport(cache_ttl=60)
        server.files["home:///a"] = (b"1", "text/plain")
        await transport.read(FileRef(path="home:///a"))
        await transport.read(FileRef(path="home:///a"))
        assert [c[0] for c in server.calls] == ["read"]

    async def test_no_cache_by_default(self, transport: ServerTransport, server: FakeServer):
        await transport.scandir(dir_ref("home:///"))
        await transport.scandir(dir_ref("home:///"))
        assert transport.cache is None
        assert len(server.calls) == 2
