"""Tests for the OneDrive transport against an in-memory Graph drive."""

from __future__ import annotations

import itertools
import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    OperationTimeoutError,
    PathNotFoundError,
    PermissionDeniedError,
)
from deskvfs.fs.payload import Blob, MimeMap
from deskvfs.fs.protocol import SupportsFreeSpace, SupportsTrash
from deskvfs.ref import FileRef, FileType, dir_ref
from deskvfs.transports.onedrive import CONFLICT, OneDriveTransport

if TYPE_CHECKING:
    from collections.abc import Callable

API = "https://graph.example/v1.0"
ROOT_PREFIX = "/v1.0/me/drive/root"


class FakeGraph:
    """Path-keyed drive: ``None`` marks a folder, bytes a file."""

    PAGE_SIZE = 2

    def __init__(self) -> None:
        self._ids = (f"item{i}" for i in itertools.count(1))
        self.nodes: dict[str, bytes | None] = {"/": None}
        self.ids: dict[str, str] = {"/": "root"}
        self.requests: list[httpx.Request] = []
        self.copy_states: list[str] = []

    def put(self, path: str, data: bytes | None) -> None:
        self.nodes[path] = data
        self.ids.setdefault(path, next(self._ids))

    @staticmethod
    def _parent(path: str) -> str:
        return path.rsplit("/", 1)[0] or "/"

    def _subtree(self, path: str) -> list[str]:
        return [p for p in self.nodes if p == path or p.startswith(path.rstrip("/") + "/")]

    def _item(self, path: str) -> dict[str, Any]:
        node = self.nodes[path]
        item: dict[str, Any] = {
            "id": self.ids[path],
            "name": path.rsplit("/", 1)[-1],
            "webUrl": f"https://od.example{path}",
        }
        if node is None:
            item["folder"] = {"childCount": len(self._children(path))}
        else:
            item["file"] = {}
            item["size"] = len(node)
            item["@microsoft.graph.downloadUrl"] = f"https://download.example{path}"
        return item

    def _children(self, path: str) -> list[str]:
        return sorted(p for p in self.nodes if p != "/" and self._parent(p) == path)

    @staticmethod
    def _split(path: str) -> tuple[str, str]:
        rest = path[len(ROOT_PREFIX) :]
        if rest.startswith(":"):
            item, _, action = rest[1:].partition(":")
            return item or "/", action.lstrip("/")
        return "/", rest.lstrip("/")

    def _reparent(self, src: str, body: dict[str, Any], keep: bool) -> str:
        parent = body["parentReference"]["path"][len("/drive/root:") :] or "/"
        dst = parent.rstrip("/") + "/" + body["name"]
        if self.nodes.get(parent, b"") is not None:
            raise LookupError(parent)
        for p in self._subtree(dst):
            del self.nodes[p]
        for p in self._subtree(src):
            self.put(dst + p[len(src) :], self.nodes[p])
            if not keep:
                del self.nodes[p]
        return dst

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        url = request.url

        if url.host == "download.example":
            return httpx.Response(200, content=self.nodes[url.path])
        if url.host == "monitor.example":
            state = self.copy_states.pop(0) if self.copy_states else "completed"
            return httpx.Response(202 if state == "inProgress" else 200, json={"status": state})
        if url.path == "/v1.0/me/drive":
            return httpx.Response(200, json={"quota": {"total": 1000, "used": 300, "remaining": 700}})

        path, action = self._split(url.path)
        if action == "" and method == "GET":
            if path not in self.nodes:
                return httpx.Response(404, json={"error": {"code": "itemNotFound"}})
            return httpx.Response(200, json=self._item(path))
        if action == "children" and method == "GET":
            children = self._children(path)
            start = int(url.params.get("$skiptoken", "0"))
            reply: dict[str, Any] = {"value": [self._item(p) for p in children[start : start + self.PAGE_SIZE]]}
            if start + self.PAGE_SIZE < len(children):
                reply["@odata.nextLink"] = f"{API}/me/drive/root:{path}:/children?$skiptoken={start + self.PAGE_SIZE}"
            return httpx.Response(200, json=reply)
        if action == "children" and method == "POST":
            if self.nodes.get(path, b"") is not None:
                return httpx.Response(404)
            body = json.loads(request.content)
            child = path.rstrip("/") + "/" + body["name"]
            if child in self.nodes:
                return httpx.Response(409, json={"error": {"code": "nameAlreadyExists"}})
            self.put(child, None)
            return httpx.Response(201, json=self._item(child))
        if action == "content" and method == "GET":
            if not self.nodes.get(path):
                return httpx.Response(404)
            return httpx.Response(302, headers={"Location": f"https://download.example{path}"})
        if action == "content" and method == "PUT":
            self.put(path, request.content)
            return httpx.Response(201, json=self._item(path))
        if path not in self.nodes:
            return httpx.Response(404)
        if method == "DELETE":
            for p in self._subtree(path):
                del self.nodes[p]
            return httpx.Response(204)
        if action == "copy" and method == "POST":
            self._reparent(path, json.loads(request.content), keep=True)
            return httpx.Response(202, headers={"Location": "https://monitor.example/job/1"})
        if method == "PATCH":
            dst = self._reparent(path, json.loads(request.content), keep=False)
            return httpx.Response(200, json=self._item(dst))
        return httpx.Response(400)


@pytest.fixture
def graph() -> FakeGraph:
    server = FakeGraph()
    server.put("/docs", None)
    server.put("/docs/a.txt", b"alpha")
    server.put("/docs/b.txt", b"beta")
    server.put("/docs/c d.txt", b"gamma")
    server.put("/empty", None)
    return server


@pytest.fixture
def onedrive(graph: FakeGraph, mock_client: Callable[..., httpx.AsyncClient]) -> OneDriveTransport:
    return OneDriveTransport("secret", client=mock_client(graph), api_base=API, poll_interval=0)


def _f(path: str) -> FileRef:
    return FileRef(path=path)


class TestOneDriveProtocol:
    def test_capabilities(self):
        transport = OneDriveTransport("t")
        assert isinstance(transport, SupportsFreeSpace)
        assert not isinstance(transport, SupportsTrash)

    def test_from_options(self):
        transport = OneDriveTransport.from_options({"access_token": "t", "api_base": API}, MimeMap())
        assert transport.base_url == API
        with pytest.raises(InvalidArgumentError):
            OneDriveTransport.from_options({}, MimeMap())

    async def test_token_provider(self, graph: FakeGraph, mock_client: Callable[..., httpx.AsyncClient]):
        async def token() -> str:
            return "fresh"

        transport = OneDriveTransport(token, client=mock_client(graph), api_base=API)
        await transport.exists(_f("od:///docs"))
        assert graph.requests[0].headers["authorization"] == "Bearer fresh"

    async def test_missing_token(self, graph: FakeGraph, mock_client: Callable[..., httpx.AsyncClient]):
        transport = OneDriveTransport("", client=mock_client(graph), api_base=API)
        with pytest.raises(PermissionDeniedError):
            await transport.exists(_f("od:///docs"))


class TestOneDriveRead:
    async def test_scandir_follows_next_link(self, onedrive: OneDriveTransport, graph: FakeGraph):
        listing = await onedrive.scandir(dir_ref("od:///docs"))
        assert [e.filename for e in listing] == ["a.txt", "b.txt", "c d.txt"]
        assert listing[0].path == "od:///docs/a.txt"
        assert listing[0].mime == "text/plain"
        assert listing[0].size == 5
        pages = [r for r in graph.requests if r.url.path.endswith(":/children")]
        assert len(pages) == 2

    async def test_scandir_root(self, onedrive: OneDriveTransport, graph: FakeGraph):
        listing = await onedrive.scandir(dir_ref("od:///"))
        assert [(e.filename, e.type) for e in listing] == [("docs", FileType.DIR), ("empty", FileType.DIR)]
        assert graph.requests[-1].url.path == "/v1.0/me/drive/root/children"

    async def test_scandir_missing_or_file(self, onedrive: OneDriveTransport):
        with pytest.raises(PathNotFoundError):
            await onedrive.scandir(dir_ref("od:///nope"))
        with pytest.raises(InvalidArgumentError):
            await onedrive.scandir(dir_ref("od:///docs/a.txt"))

    async def test_read_follows_redirect(self, onedrive: OneDriveTransport, graph: FakeGraph):
        assert await onedrive.read(_f("od:///docs/c d.txt")) == b"gamma"
        assert graph.requests[0].url.raw_path == b"/v1.0/me/drive/root:/docs/c%20d.txt:/content"
        assert graph.requests[-1].url.host == "download.example"

    async def test_read_missing(self, onedrive: OneDriveTransport):
        with pytest.raises(PathNotFoundError):
            await onedrive.read(_f("od:///docs/zzz"))

    async def test_exists_and_fileinfo(self, onedrive: OneDriveTransport):
        assert await onedrive.exists(_f("od:///docs/a.txt"))
        assert not await onedrive.exists(_f("od:///docs/zzz"))
        info = await onedrive.fileinfo(_f("od:///docs/a.txt"))
        assert info["name"] == "a.txt"
        assert info["size"] == 5
        assert info["type"] == "file"
        with pytest.raises(PathNotFoundError):
            await onedrive.fileinfo(_f("od:///docs/zzz"))

    async def test_url(self, onedrive: OneDriveTransport):
        assert await onedrive.url(_f("od:///docs/a.txt")) == "https://download.example/docs/a.txt"
        assert await onedrive.url(dir_ref("od:///docs")) == "https://od.example/docs"

    async def test_free_space(self, onedrive: OneDriveTransport):
        assert await onedrive.free_space(dir_ref("od:///")) == 700


class TestOneDriveWrite:
    async def test_write(self, onedrive: OneDriveTransport, graph: FakeGraph):
        await onedrive.write(_f("od:///empty/n.json"), b"{}")
        assert graph.nodes["/empty/n.json"] == b"{}"
        put = graph.requests[-1]
        assert put.method == "PUT"
        assert put.headers["content-type"] == "application/json"

    async def test_write_into_missing_folder(self, onedrive: OneDriveTransport, graph: FakeGraph):
        with pytest.raises(PathNotFoundError):
            await onedrive.write(_f("od:///nope/n.txt"), b"")
        assert not [r for r in graph.requests if r.method == "PUT"]

    async def test_write_over_folder(self, onedrive: OneDriveTransport):
        with pytest.raises(InvalidArgumentError):
            await onedrive.write(_f("od:///docs"), b"")

    async def test_mkdir(self, onedrive: OneDriveTransport, graph: FakeGraph):
        await onedrive.mkdir(dir_ref("od:///docs/sub"))
        assert graph.nodes["/docs/sub"] is None
        body = json.loads(graph.requests[-1].content)
        assert body == {"name": "sub", "folder": {}, CONFLICT: "fail"}
        with pytest.raises(ExistsError):
            await onedrive.mkdir(dir_ref("od:///docs/sub"))

    async def test_unlink(self, onedrive: OneDriveTransport, graph: FakeGraph):
        await onedrive.unlink(dir_ref("od:///docs"))
        assert sorted(graph.nodes) == ["/", "/empty"]
        with pytest.raises(InvalidArgumentError):
            await onedrive.unlink(dir_ref("od:///"))

    async def test_copy_waits_for_monitor(self, onedrive: OneDriveTransport, graph: FakeGraph):
        graph.copy_states = ["inProgress", "inProgress"]
        await onedrive.copy(dir_ref("od:///docs"), dir_ref("od:///empty/docs2"))
        assert graph.nodes["/empty/docs2/b.txt"] == b"beta"
        assert graph.nodes["/docs/b.txt"] == b"beta"
        monitors = [r for r in graph.requests if r.url.host == "monitor.example"]
        assert len(monitors) == 3
        copy = next(r for r in graph.requests if r.url.path.endswith(":/copy"))
        assert copy.url.params[CONFLICT] == "replace"
        assert json.loads(copy.content)["parentReference"] == {"path": "/drive/root:/empty"}

    async def test_copy_failed(self, onedrive: OneDriveTransport, graph: FakeGraph):
        graph.copy_states = ["failed"]
        with pytest.raises(InternalError):
            await onedrive.copy(_f("od:///docs/a.txt"), _f("od:///a.txt"))

    async def test_copy_never_finishes(self, graph: FakeGraph, mock_client: Callable[..., httpx.AsyncClient]):
        transport = OneDriveTransport(
            "secret", client=mock_client(graph), api_base=API, poll_interval=0, poll_attempts=2
        )
        graph.copy_states = ["inProgress"] * 5
        with pytest.raises(OperationTimeoutError):
            await transport.copy(_f("od:///docs/a.txt"), _f("od:///a.txt"))

    async def test_move(self, onedrive: OneDriveTransport, graph: FakeGraph):
        await onedrive.move(_f("od:///docs/a.txt"), _f("od:///renamed.txt"))
        patch = graph.requests[-1]
        assert patch.method == "PATCH"
        assert json.loads(patch.content) == {"parentReference": {"path": "/drive/root:"}, "name": "renamed.txt"}
        assert graph.nodes["/renamed.txt"] == b"alpha"
        assert "/docs/a.txt" not in graph.nodes

    async def test_upload(self, onedrive: OneDriveTransport, graph: FakeGraph):
        ref = await onedrive.upload(dir_ref("od:///empty"), Blob(b"pdf", "application/pdf", "r.pdf"))
        assert ref.path == "od:///empty/r.pdf"
        assert graph.nodes["/empty/r.pdf"] == b"pdf"
        with pytest.raises(InvalidArgumentError):
            await onedrive.upload(dir_ref("od:///empty"), Blob(b"x"))
