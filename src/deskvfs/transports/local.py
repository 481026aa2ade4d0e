"""Browser-local persistent transport.

The whole filesystem lives in two maps persisted to a durable
key-value store under ``<namespace>/tree`` and ``<namespace>/data``:

- ``tree``: directory path -> list of child entries
  ``{"filename", "type", "mime", "size", "mtime", "ctime"}``
- ``data``: file path -> base64 payload

Paths are stored without their scheme, so one namespace can be mounted
under any scheme.  Both maps are loaded on open and written back after
every mutation.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    NotMountedError,
    PathNotFoundError,
)
from deskvfs.fs.payload import Blob, base64_to_bytes, bytes_to_base64, bytes_to_dataurl
from deskvfs.fs.paths import format_path, is_within, join, parse
from deskvfs.ref import FileRef, FileType
from deskvfs.storage import MemoryKeyValueStore, SQLKeyValueStore, ensure_open

from .base import BaseTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from deskvfs.fs.payload import MimeMap
    from deskvfs.fs.protocol import FindQuery
    from deskvfs.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "deskvfs/LocalStorage"

DEFAULT_QUOTA = 5 * 1024 * 1024

ROOT = "/"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _rel(path: str) -> str:
    """Scheme-less form of *path* used as storage key."""
    _, segments = parse(path)
    return "/" + "/".join(segments)


def _parent(rel: str) -> str:
    return rel.rsplit("/", 1)[0] or ROOT


def _name(rel: str) -> str:
    return rel.rsplit("/", 1)[1]


def _under(rel: str, prefix: str) -> bool:
    """True when *rel* lies strictly below *prefix*."""
    if prefix == ROOT:
        return rel != ROOT
    return rel.startswith(prefix + "/")


class LocalStorageTransport(BaseTransport):
    """Transport whose in-process maps are the authoritative store."""

    name = "localstorage"

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        quota: int = DEFAULT_QUOTA,
        mime_map: MimeMap | None = None,
        owns_store: bool = False,
    ) -> None:
        super().__init__(mime_map=mime_map)
        self._store = store if store is not None else MemoryKeyValueStore()
        self._owns_store = owns_store
        self._namespace = namespace.rstrip("/")
        self._quota = quota
        self._tree: dict[str, list[dict[str, Any]]] = {}
        self._data: dict[str, str] = {}
        self._loaded = False

    @classmethod
    def from_options(cls, options: dict[str, Any], mime_map: MimeMap) -> LocalStorageTransport:
        store = options.get("store")
        owns_store = False
        if store is None and options.get("database_url"):
            store = SQLKeyValueStore(url=options["database_url"])
            owns_store = True
        return cls(
            store,
            namespace=options.get("namespace", DEFAULT_NAMESPACE),
            quota=int(options.get("quota", DEFAULT_QUOTA)),
            mime_map=mime_map,
            owns_store=owns_store,
        )

    @property
    def tree_key(self) -> str:
        return f"{self._namespace}/tree"

    @property
    def data_key(self) -> str:
        return f"{self._namespace}/data"

    def __repr__(self) -> str:
        return f"LocalStorageTransport({self._namespace!r})"

    # ------------------------------------------------------------------
    # Lifecycle and persistence
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Load both maps from the store (first use creates an empty root)."""
        await ensure_open(self._store)
        try:
            tree_raw = await self._store.get(self.tree_key)
            data_raw = await self._store.get(self.data_key)
            self._tree = json.loads(tree_raw) if tree_raw else {}
            self._data = json.loads(data_raw) if data_raw else {}
        except ValueError as e:
            raise InternalError(f"Corrupt local storage in {self._namespace!r}", cause=e) from e
        self._tree.setdefault(ROOT, [])
        self._loaded = True
        logger.debug(
            "Loaded %s: %d directories, %d files", self._namespace, len(self._tree), len(self._data)
        )

    async def close(self) -> None:
        self._loaded = False
        if self._owns_store:
            closer = getattr(self._store, "close", None)
            if closer is not None:
                await closer()

    async def _persist(self) -> None:
        await self._store.set(self.tree_key, json.dumps(self._tree))
        await self._store.set(self.data_key, json.dumps(self._data))

    @asynccontextmanager
    async def _mutating(self) -> AsyncIterator[None]:
        """Apply a change to both maps and persist it, restoring them on failure."""
        self._require_loaded()
        tree = copy.deepcopy(self._tree)
        data = dict(self._data)
        try:
            yield
            await self._persist()
        except Exception:
            self._tree = tree
            self._data = data
            raise

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise NotMountedError(f"{self!r} is not open")

    # ------------------------------------------------------------------
    # Tree helpers
    # ------------------------------------------------------------------

    def _entry(self, rel: str) -> dict[str, Any] | None:
        if rel == ROOT:
            return {"filename": "", "type": "dir", "mime": None, "size": 0}
        for entry in self._tree.get(_parent(rel), []):
            if entry["filename"] == _name(rel):
                return entry
        return None

    def _require(self, rel: str) -> dict[str, Any]:
        entry = self._entry(rel)
        if entry is None:
            raise PathNotFoundError(f"No such file or directory: {rel}")
        return entry

    def _require_dir(self, rel: str) -> None:
        entry = self._require(rel)
        if entry["type"] != "dir":
            raise InvalidArgumentError(f"Not a directory: {rel}")

    def _put_entry(self, rel: str, entry: dict[str, Any]) -> None:
        siblings = self._tree.setdefault(_parent(rel), [])
        for i, existing in enumerate(siblings):
            if existing["filename"] == entry["filename"]:
                siblings[i] = entry
                return
        siblings.append(entry)

    def _drop_entry(self, rel: str) -> None:
        parent = _parent(rel)
        name = _name(rel)
        self._tree[parent] = [e for e in self._tree.get(parent, []) if e["filename"] != name]

    def _remove(self, rel: str) -> None:
        """Remove *rel* and everything below it, deepest first."""
        dirs = sorted((d for d in self._tree if _under(d, rel)), key=lambda d: d.count("/"), reverse=True)
        for d in dirs:
            del self._tree[d]
        self._tree.pop(rel, None)
        for key in [k for k in self._data if k == rel or _under(k, rel)]:
            del self._data[key]
        self._drop_entry(rel)

    def _to_ref(self, scheme: str | None, rel: str, entry: dict[str, Any]) -> FileRef:
        return FileRef(
            path=format_path(scheme, [s for s in rel.split("/") if s]),
            filename=entry["filename"],
            type=entry["type"],
            mime=entry.get("mime"),
            size=int(entry.get("size") or 0),
            mtime=entry.get("mtime"),
            ctime=entry.get("ctime"),
        )

    def _file_entry(self, rel: str, data_size: int, mime: str | None, ctime: str | None = None) -> dict[str, Any]:
        now = _now()
        name = _name(rel)
        return {
            "filename": name,
            "type": "file",
            "mime": mime or self.guess_mime(name),
            "size": data_size,
            "mtime": now,
            "ctime": ctime or now,
        }

    def _dir_entry(self, rel: str) -> dict[str, Any]:
        now = _now()
        return {"filename": _name(rel), "type": "dir", "mime": None, "size": 0, "mtime": now, "ctime": now}

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def scandir(self, directory: FileRef) -> list[FileRef]:
        self._require_loaded()
        scheme, _ = parse(directory.path)
        rel = _rel(directory.path)
        self._require_dir(rel)
        return [self._to_ref(scheme, join(rel, e["filename"]), e) for e in self._tree.get(rel, [])]

    async def read(self, file: FileRef) -> bytes:
        self._require_loaded()
        rel = _rel(file.path)
        entry = self._require(rel)
        if entry["type"] == "dir":
            raise InvalidArgumentError(f"Is a directory: {file.path}")
        return base64_to_bytes(self._data.get(rel, ""))

    async def exists(self, ref: FileRef) -> bool:
        self._require_loaded()
        return self._entry(_rel(ref.path)) is not None

    async def fileinfo(self, ref: FileRef) -> dict[str, Any]:
        self._require_loaded()
        rel = _rel(ref.path)
        entry = self._require(rel)
        return {"path": ref.path, **entry}

    async def url(self, file: FileRef) -> str | None:
        """Self-contained data URL of the file contents."""
        data = await self.read(file)
        entry = self._require(_rel(file.path))
        return str(bytes_to_dataurl(data, entry.get("mime")))

    async def find(self, root: FileRef, query: FindQuery) -> list[FileRef]:
        self._require_loaded()
        scheme, _ = parse(root.path)
        start = _rel(root.path)
        self._require_dir(start)
        needle = query.query.lower()
        mime_re = re.compile(query.mime) if query.mime else None
        base_depth = 0 if start == ROOT else start.count("/")

        results: list[FileRef] = []
        stack = [start]
        while stack:
            current = stack.pop(0)
            for entry in self._tree.get(current, []):
                rel = join(current, entry["filename"])
                depth = rel.count("/") - base_depth
                if entry["type"] == "dir" and (query.depth is None or depth < query.depth):
                    stack.append(rel)
                if needle and needle not in entry["filename"].lower():
                    continue
                if mime_re is not None and (entry["type"] == "dir" or not mime_re.search(entry.get("mime") or "")):
                    continue
                results.append(self._to_ref(scheme, rel, entry))
                if query.limit is not None and len(results) >= query.limit:
                    return results
        return results

    async def free_space(self, root: FileRef) -> int:
        """Quota minus the serialised footprint of both maps."""
        self._require_loaded()
        used = len(json.dumps(self._tree)) + len(json.dumps(self._data))
        return self._quota - used

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, file: FileRef, data: bytes) -> None:
        rel = _rel(file.path)
        if rel == ROOT:
            raise InvalidArgumentError("Cannot write to the root directory")
        async with self._mutating():
            self._require_dir(_parent(rel))
            existing = self._entry(rel)
            if existing is not None and existing["type"] == "dir":
                raise InvalidArgumentError(f"Is a directory: {file.path}")
            ctime = existing.get("ctime") if existing else None
            self._put_entry(rel, self._file_entry(rel, len(data), file.mime, ctime))
            self._data[rel] = bytes_to_base64(data)

    async def mkdir(self, directory: FileRef) -> None:
        rel = _rel(directory.path)
        async with self._mutating():
            if self._entry(rel) is not None:
                raise ExistsError(f"Already exists: {directory.path}")
            self._require_dir(_parent(rel))
            self._put_entry(rel, self._dir_entry(rel))
            self._tree[rel] = []

    async def unlink(self, ref: FileRef) -> None:
        rel = _rel(ref.path)
        if rel == ROOT:
            raise InvalidArgumentError("Cannot remove the root directory")
        async with self._mutating():
            self._require(rel)
            self._remove(rel)

    def _copy_entry(self, src: str, dst: str) -> None:
        entry = dict(self._require(src))
        entry["filename"] = _name(dst)
        entry["mtime"] = _now()
        if dst != src and self._entry(dst) is not None:
            self._remove(dst)
        self._put_entry(dst, entry)
        if entry["type"] != "dir":
            self._data[dst] = self._data.get(src, "")
            return
        self._tree[dst] = []
        for child in list(self._tree.get(src, [])):
            self._copy_entry(join(src, child["filename"]), join(dst, child["filename"]))

    def _check_endpoints(self, src: FileRef, dst: FileRef, verb: str) -> tuple[str, str]:
        src_rel = _rel(src.path)
        dst_rel = _rel(dst.path)
        self._require(src_rel)
        if is_within(dst_rel, src_rel):
            raise InvalidArgumentError(f"Cannot {verb} {src.path} into itself")
        if is_within(src_rel, dst_rel):
            raise InvalidArgumentError(f"Cannot {verb} {src.path} over its ancestor {dst.path}")
        self._require_dir(_parent(dst_rel))
        return src_rel, dst_rel

    async def copy(self, src: FileRef, dst: FileRef) -> None:
        async with self._mutating():
            src_rel, dst_rel = self._check_endpoints(src, dst, "copy")
            self._copy_entry(src_rel, dst_rel)

    def _rename(self, src: str, dst: str) -> None:
        entry = self._require(src)
        entry["filename"] = _name(dst)
        entry["mtime"] = _now()
        for d in [d for d in self._tree if d == src or _under(d, src)]:
            self._tree[dst + d[len(src) :]] = self._tree.pop(d)
        for key in [k for k in self._data if k == src or _under(k, src)]:
            self._data[dst + key[len(src) :]] = self._data.pop(key)

    async def move(self, src: FileRef, dst: FileRef) -> None:
        """Rename in place within one directory; copy and unlink otherwise."""
        async with self._mutating():
            src_rel, dst_rel = self._check_endpoints(src, dst, "move")
            if self._entry(dst_rel) is not None:
                self._remove(dst_rel)
            if _parent(src_rel) == _parent(dst_rel):
                self._rename(src_rel, dst_rel)
            else:
                self._copy_entry(src_rel, dst_rel)
                self._remove(src_rel)

    async def upload(self, directory: FileRef, blob: Blob) -> FileRef:
        self._require_loaded()
        if not blob.name:
            raise InvalidArgumentError("Uploaded blob has no name")
        path = join(directory.path, blob.name)
        file = FileRef(path=path, type=FileType.FILE, mime=blob.mime, size=blob.size)
        await self.write(file, blob.data)
        entry = self._require(_rel(path))
        scheme, _ = parse(path)
        return self._to_ref(scheme, _rel(path), entry)
