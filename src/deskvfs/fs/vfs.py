"""VFS — the public facade: routing, aliases, preconditions, events.

Every verb resolves its path to a mountpoint, rewrites aliased paths
for delivery, enforces read-only and existence preconditions, calls the
owning transport and broadcasts a ``vfs:*`` event carrying the path the
caller sees.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, TypeVar

from deskvfs.config import ScandirDefaults
from deskvfs.events import EventBus, EventType, VFSEvent, WatchRegistry
from deskvfs.ref import FileRef, FileType

from .exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    InvalidPathError,
    PartialCopyError,
    ReadOnlyError,
    UnsupportedError,
    VFSError,
)
from .listing import create_backlink, filter_listing, is_backlink
from .mounts import MountManager
from .payload import READ_TYPES, Blob, MimeMap, coerce, convert, to_bytes
from .paths import basename, is_within, join, normalize_path, rebase, scheme_of
from .protocol import FindQuery, SupportsDownload, SupportsFind, SupportsFreeSpace, SupportsTrash

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Iterable

    from deskvfs.config import VFSConfig

    from .mounts import Mountpoint
    from .protocol import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Target:
    """A path resolved for delivery.

    ``visible`` is what the caller passed and what events report;
    ``ref`` is what the transport receives once aliases are applied.
    """

    visible: FileRef
    ref: FileRef
    mount: Mountpoint
    delivery: Mountpoint

    @property
    def transport(self) -> Transport:
        transport = self.delivery.transport
        assert transport is not None
        return transport

    @property
    def read_only(self) -> bool:
        return self.mount.read_only or self.delivery.read_only

    @property
    def aliased(self) -> bool:
        return self.mount is not self.delivery

    def child(self, name: str, type: FileType) -> Target:
        """Target for the entry *name* inside this directory."""
        return Target(
            visible=FileRef(path=join(self.visible.path, name), type=type),
            ref=FileRef(path=join(self.ref.path, name), type=type),
            mount=self.mount,
            delivery=self.delivery,
        )

    def to_visible(self, ref: FileRef) -> FileRef:
        """Map a transport FileRef back into the caller's namespace."""
        if not self.aliased or self.mount.alias is None:
            return ref
        if not is_within(ref.path, self.mount.alias):
            return ref
        return ref.with_path(rebase(ref.path, self.mount.alias, self.mount.root))


class VFS:
    """Single entry point for file operations across all mounts.

    Presents one namespace to callers while delegating to the transport
    owning each path.  Enforces read-only mounts and existence
    preconditions, handles cross-transport copy/move, gates optional
    verbs on transport capabilities and fans out mutation events.
    """

    def __init__(
        self,
        manager: MountManager,
        event_bus: EventBus | None = None,
        *,
        scandir_defaults: ScandirDefaults | None = None,
    ) -> None:
        self._manager = manager
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._scandir_defaults = scandir_defaults or ScandirDefaults()
        self._watches = WatchRegistry()
        self._event_bus.register_all(self._watches)

    @classmethod
    async def from_config(cls, config: VFSConfig) -> VFS:
        """Build a manager from *config*, mount everything and wrap it."""
        bus = EventBus()
        manager = MountManager(bus, mime_map=MimeMap(config.mime_map))
        await manager.init(config)
        return cls(manager, bus, scandir_defaults=config.scandir)

    @property
    def manager(self) -> MountManager:
        return self._manager

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def watches(self) -> WatchRegistry:
        return self._watches

    # ------------------------------------------------------------------
    # Capability discovery
    # ------------------------------------------------------------------

    def _get_capability(self, transport: Any, protocol: type[T]) -> T | None:
        if isinstance(transport, protocol):
            return transport
        return None

    def _require_capability(self, target: Target, protocol: type[T], verb: str) -> T:
        capability = self._get_capability(target.transport, protocol)
        if capability is None:
            raise UnsupportedError(f"Mount {target.delivery.name!r} does not support {verb}")
        return capability

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _alias_twin(self, ref: FileRef | None) -> FileRef | None:
        """Visible counterpart of *ref* when it lies under an alias target."""
        if ref is None:
            return None
        for mountpoint in self._manager.all():
            if mountpoint.alias is not None and is_within(ref.path, mountpoint.alias):
                return ref.with_path(rebase(ref.path, mountpoint.alias, mountpoint.root))
        return None

    async def _emit(self, event: VFSEvent) -> None:
        await self._event_bus.emit(event)

        if event.event_type is EventType.MOVE:
            source = self._alias_twin(event.source)
            destination = self._alias_twin(event.destination)
            if source is None and destination is None:
                return
            twin = replace(event, source=source or event.source, destination=destination or event.destination)
        else:
            file = self._alias_twin(event.file)
            if file is None:
                return
            twin = replace(event, file=file)
        await self._event_bus.emit(twin)

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _translate(self, verb: str, path: str) -> AsyncGenerator[None]:
        """Let VFSErrors through; wrap anything else in InternalError."""
        try:
            yield
        except VFSError:
            raise
        except Exception as e:
            logger.debug("%s failed on %s", verb, path, exc_info=True)
            raise InternalError(f"{verb} failed on {path}: {e}", cause=e) from e

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(item: FileRef | str, *, as_dir: bool = False) -> FileRef:
        if isinstance(item, FileRef):
            if as_dir and not item.is_dir:
                return replace(item, type=FileType.DIR)
            return item
        if isinstance(item, str):
            is_dir = as_dir or item.endswith("/")
            return FileRef(path=item, type=FileType.DIR if is_dir else FileType.FILE)
        raise InvalidArgumentError(f"Expected a path or FileRef, got {type(item).__name__}")

    def _resolve(self, item: FileRef | str, *, as_dir: bool = False) -> Target:
        visible = self._coerce(item, as_dir=as_dir)
        if scheme_of(visible.path) is None:
            raise InvalidPathError(f"Path has no scheme: {visible.path!r}")

        mount = self._manager.resolve(visible.path)
        mount.require_mounted()

        delivery = mount
        ref = visible
        if mount.alias is not None and is_within(visible.path, mount.root):
            ref = visible.with_path(rebase(visible.path, mount.root, mount.alias))
            delivery = self._manager.resolve(ref.path)
            if delivery is mount or delivery.alias is not None:
                raise InvalidArgumentError(f"Alias of mount {mount.name!r} does not reach a transport")
            delivery.require_mounted()

        if delivery.transport is None:
            raise InvalidArgumentError(f"Mount {delivery.name!r} has no transport")
        return Target(visible=visible, ref=ref, mount=mount, delivery=delivery)

    def _check_writable(self, target: Target) -> None:
        if target.read_only:
            raise ReadOnlyError(f"Cannot write to read-only mount: {target.visible.path}")

    async def _exists(self, target: Target) -> bool:
        async with self._translate("exists", target.visible.path):
            return await target.transport.exists(target.ref)

    async def _check_absent(self, target: Target, overwrite: bool) -> None:
        if not overwrite and await self._exists(target):
            raise ExistsError(f"Destination already exists: {target.visible.path}")

    def _is_mount_root(self, target: Target) -> bool:
        return target.visible.path == target.mount.root or basename(target.visible.path) == ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Unmount every mountpoint."""
        await self._manager.close()

    # ------------------------------------------------------------------
    # Read Operations
    # ------------------------------------------------------------------

    async def find(
        self,
        path: FileRef | str,
        query: FindQuery | str,
        *,
        limit: int | None = None,
    ) -> list[FileRef]:
        """Search below *path* for entries matching *query*."""
        target = self._resolve(path, as_dir=True)
        if isinstance(query, str):
            query = FindQuery(query=query)
        elif not isinstance(query, FindQuery):
            raise InvalidArgumentError(f"Invalid find query: {query!r}")
        if limit is not None:
            if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
                raise InvalidArgumentError(f"Find limit must be a positive integer, got {limit!r}")
            query = replace(query, limit=limit)

        finder = self._require_capability(target, SupportsFind, "find")
        logger.debug("find %s %r", target.visible.path, query)
        async with self._translate("find", target.visible.path):
            results = await finder.find(target.ref, query)
        if query.limit is not None:
            results = results[: query.limit]
        return [target.to_visible(r) for r in results]

    async def scandir(
        self,
        path: FileRef | str,
        *,
        type_filter: str | None = None,
        mime_filter: Iterable[str] = (),
        show_hidden_files: bool | None = None,
        backlink: bool | None = None,
        sort_by: str | None = None,
        sort_dir: str | None = None,
    ) -> list[FileRef]:
        """List a directory.

        Filters and sorts the transport listing, then prepends a ``..``
        entry unless *path* is the mount root or *backlink* is False.
        """
        defaults = self._scandir_defaults
        target = self._resolve(path, as_dir=True)
        logger.debug("scandir %s", target.visible.path)

        async with self._translate("scandir", target.visible.path):
            entries = await target.transport.scandir(target.ref)

        listing = [target.to_visible(e) for e in entries if not is_backlink(e)]
        listing = filter_listing(
            listing,
            type_filter=type_filter,
            mime_filter=mime_filter,
            show_hidden_files=defaults.show_hidden_files if show_hidden_files is None else show_hidden_files,
            sort_by=defaults.sort_by if sort_by is None else sort_by,
            sort_dir=defaults.sort_dir if sort_dir is None else sort_dir,
        )

        if backlink is None:
            backlink = defaults.backlink
        if backlink and not self._is_mount_root(target):
            listing.insert(0, create_backlink(target.visible.path))
        return listing

    async def read(self, path: FileRef | str, *, type: str = "binary") -> Any:
        """Read a file and convert it to *type*.

        *type* is one of ``binary`` (bytes), ``text`` (str),
        ``datasource`` (DataURL), ``blob`` (Blob) or ``json``.
        """
        if type not in READ_TYPES:
            raise InvalidArgumentError(f"Unknown read type {type!r}")
        target = self._resolve(path)
        logger.debug("read %s as %s", target.visible.path, type)
        async with self._translate("read", target.visible.path):
            data = await target.transport.read(target.ref)
        mime = target.visible.mime or self._manager.mime_map.guess(target.visible.filename)
        return convert(data, type, mime, target.visible.filename)

    async def exists(self, path: FileRef | str) -> bool:
        target = self._resolve(path)
        return await self._exists(target)

    async def fileinfo(self, path: FileRef | str) -> dict[str, Any]:
        target = self._resolve(path)
        async with self._translate("fileinfo", target.visible.path):
            return await target.transport.fileinfo(target.ref)

    async def url(self, path: FileRef | str) -> str | None:
        target = self._resolve(path)
        async with self._translate("url", target.visible.path):
            return await target.transport.url(target.ref)

    async def download(self, path: FileRef | str) -> Blob:
        """Fetch a file as a named :class:`Blob`."""
        target = self._resolve(path)
        downloader = self._get_capability(target.transport, SupportsDownload)
        async with self._translate("download", target.visible.path):
            if downloader is not None:
                return await downloader.download(target.ref)
            data = await target.transport.read(target.ref)
        mime = target.visible.mime or self._manager.mime_map.guess(target.visible.filename)
        return Blob(data=data, mime=mime, name=target.visible.filename)

    async def free_space(self, path: FileRef | str) -> int:
        """Remaining bytes on the mount owning *path* (-1 when unknown)."""
        target = self._resolve(path, as_dir=True)
        meter = self._require_capability(target, SupportsFreeSpace, "free_space")
        root = FileRef(path=target.delivery.root, type=FileType.DIR)
        async with self._translate("free_space", target.visible.path):
            return await meter.free_space(root)

    # ------------------------------------------------------------------
    # Write Operations (read-only checked)
    # ------------------------------------------------------------------

    async def write(
        self,
        path: FileRef | str,
        data: Any,
        *,
        mime: str | None = None,
        overwrite: bool = False,
    ) -> FileRef:
        """Create or replace a file with *data*.

        *data* may be bytes, str, Blob, DataURL or a tagged Payload.
        """
        target = self._resolve(path)
        self._check_writable(target)
        payload = coerce(data, mime)
        raw = to_bytes(payload)
        mime = mime or payload.mime or target.visible.mime
        mime = mime or self._manager.mime_map.guess(target.visible.filename)
        await self._check_absent(target, overwrite)

        logger.debug("write %s (%d bytes)", target.visible.path, len(raw))
        ref = replace(target.ref, type=FileType.FILE, mime=mime, size=len(raw))
        async with self._translate("write", target.visible.path):
            await target.transport.write(ref, raw)

        visible = replace(target.visible, type=FileType.FILE, mime=mime, size=len(raw))
        await self._emit(VFSEvent(event_type=EventType.WRITE, file=visible, origin="write"))
        return visible

    async def mkdir(self, path: FileRef | str, *, overwrite: bool = False) -> FileRef:
        """Create a directory.

        With *overwrite* an existing directory is returned unchanged.
        """
        target = self._resolve(path, as_dir=True)
        self._check_writable(target)
        if await self._exists(target):
            if not overwrite:
                raise ExistsError(f"Destination already exists: {target.visible.path}")
            return target.visible

        logger.debug("mkdir %s", target.visible.path)
        async with self._translate("mkdir", target.visible.path):
            await target.transport.mkdir(target.ref)
        await self._emit(VFSEvent(event_type=EventType.MKDIR, file=target.visible, origin="mkdir"))
        return target.visible

    async def unlink(self, path: FileRef | str) -> None:
        """Remove a file, or a directory with everything below it."""
        target = self._resolve(path)
        self._check_writable(target)
        if self._is_mount_root(target):
            raise InvalidArgumentError(f"Cannot remove mount root: {target.visible.path}")
        logger.debug("unlink %s", target.visible.path)
        async with self._translate("unlink", target.visible.path):
            await target.transport.unlink(target.ref)
        await self._emit(VFSEvent(event_type=EventType.DELETE, file=target.visible, origin="unlink"))

    async def upload(
        self,
        destination: FileRef | str,
        blob: Blob,
        *,
        overwrite: bool = False,
    ) -> FileRef:
        """Store *blob* inside the *destination* directory under ``blob.name``."""
        if not isinstance(blob, Blob):
            raise InvalidArgumentError(f"Upload expects a Blob, got {type(blob).__name__}")
        if not blob.name or "/" in blob.name:
            raise InvalidArgumentError(f"Invalid upload file name: {blob.name!r}")

        directory = self._resolve(destination, as_dir=True)
        self._check_writable(directory)
        file_target = directory.child(blob.name, FileType.FILE)
        await self._check_absent(file_target, overwrite)

        logger.debug("upload %s (%d bytes)", file_target.visible.path, blob.size)
        async with self._translate("upload", file_target.visible.path):
            ref = await directory.transport.upload(directory.ref, blob)

        visible = directory.to_visible(ref)
        await self._emit(VFSEvent(event_type=EventType.UPLOAD, file=visible, origin="upload"))
        return visible

    # ------------------------------------------------------------------
    # Copy / Move
    # ------------------------------------------------------------------

    def _check_not_inside(self, src: Target, dst: Target, verb: str) -> None:
        if is_within(dst.visible.path, src.visible.path) or is_within(dst.ref.path, src.ref.path):
            raise InvalidArgumentError(f"Cannot {verb} {src.visible.path} into itself ({dst.visible.path})")
        if is_within(src.visible.path, dst.visible.path) or is_within(src.ref.path, dst.ref.path):
            raise InvalidArgumentError(f"Cannot {verb} {src.visible.path} over its ancestor {dst.visible.path}")

    async def _copy_file(self, src: Target, dst: Target, *, emit: bool) -> FileRef:
        data = await src.transport.read(src.ref)
        mime = src.visible.mime or self._manager.mime_map.guess(dst.visible.filename)
        ref = replace(dst.ref, type=FileType.FILE, mime=mime, size=len(data))
        await dst.transport.write(ref, data)
        visible = replace(dst.visible, type=FileType.FILE, mime=mime, size=len(data))
        if emit:
            await self._emit(VFSEvent(event_type=EventType.WRITE, file=visible, origin="copy"))
        return visible

    async def _copy_tree(
        self,
        src: Target,
        dst: Target,
        failures: list[tuple[str, VFSError]],
        *,
        emit: bool,
    ) -> None:
        """Reproduce the children of *src* inside the existing *dst* directory."""
        try:
            async with self._translate("scandir", src.visible.path):
                children = await src.transport.scandir(src.ref)
        except VFSError as e:
            failures.append((src.visible.path, e))
            return

        for child in children:
            if is_backlink(child):
                continue
            name = basename(child.path)
            child_type = FileType.DIR if child.is_dir else FileType.FILE
            child_src = replace(src.child(name, child_type), ref=child)
            child_src = replace(child_src, visible=replace(child_src.visible, mime=child.mime, size=child.size))
            child_dst = dst.child(name, child_type)
            try:
                if child.is_dir:
                    async with self._translate("mkdir", child_dst.visible.path):
                        if not await dst.transport.exists(child_dst.ref):
                            await dst.transport.mkdir(child_dst.ref)
                else:
                    async with self._translate("copy", child_src.visible.path):
                        await self._copy_file(child_src, child_dst, emit=emit)
                    continue
            except VFSError as e:
                failures.append((child_src.visible.path, e))
                continue
            await self._copy_tree(child_src, child_dst, failures, emit=emit)

    async def _transfer(self, src: Target, dst: Target, *, emit: bool) -> FileRef:
        """Copy *src* to *dst* through read/write, walking directories."""
        if not src.visible.is_dir:
            async with self._translate("copy", src.visible.path):
                return await self._copy_file(src, dst, emit=emit)

        async with self._translate("mkdir", dst.visible.path):
            if not await dst.transport.exists(dst.ref):
                await dst.transport.mkdir(dst.ref)
        if emit:
            await self._emit(VFSEvent(event_type=EventType.MKDIR, file=dst.visible, origin="copy"))

        failures: list[tuple[str, VFSError]] = []
        await self._copy_tree(src, dst, failures, emit=emit)
        if failures:
            raise PartialCopyError(
                f"Copy of {src.visible.path} to {dst.visible.path} failed for {len(failures)} entries",
                failures=failures,
            )
        return dst.visible

    async def copy(
        self,
        src: FileRef | str,
        dst: FileRef | str,
        *,
        overwrite: bool = False,
    ) -> FileRef:
        """Copy a file or directory tree, across transports if needed."""
        source = self._resolve(src)
        dest = self._resolve(dst, as_dir=source.visible.is_dir)
        self._check_writable(dest)
        if source.visible.is_dir:
            self._check_not_inside(source, dest, "copy")
        await self._check_absent(dest, overwrite)

        logger.debug("copy %s -> %s", source.visible.path, dest.visible.path)
        if source.transport is dest.transport:
            try:
                async with self._translate("copy", source.visible.path):
                    await source.transport.copy(source.ref, replace(dest.ref, type=source.ref.type))
            except UnsupportedError:
                logger.debug("Transport copy unsupported, copying %s by read/write", source.visible.path)
            else:
                visible = replace(
                    dest.visible, type=source.visible.type, mime=source.visible.mime, size=source.visible.size
                )
                event_type = EventType.MKDIR if visible.is_dir else EventType.WRITE
                await self._emit(VFSEvent(event_type=event_type, file=visible, origin="copy"))
                return visible

        return await self._transfer(source, dest, emit=True)

    async def _rollback(self, target: Target) -> None:
        try:
            if await target.transport.exists(target.ref):
                await target.transport.unlink(target.ref)
        except Exception:
            logger.warning("Rollback failed for %s", target.visible.path, exc_info=True)

    async def move(
        self,
        src: FileRef | str,
        dst: FileRef | str,
        *,
        overwrite: bool = False,
    ) -> FileRef:
        """Move a file or directory, across transports if needed.

        A cross-transport move copies first and removes the source only
        after the copy succeeded.  On failure the partial destination is
        removed again so both endpoints stay as they were.
        """
        source = self._resolve(src)
        dest = self._resolve(dst, as_dir=source.visible.is_dir)
        self._check_writable(source)
        self._check_writable(dest)
        self._check_not_inside(source, dest, "move")
        dest_existed = await self._exists(dest)
        if dest_existed and not overwrite:
            raise ExistsError(f"Destination already exists: {dest.visible.path}")

        logger.debug("move %s -> %s", source.visible.path, dest.visible.path)
        moved = False
        if source.transport is dest.transport:
            try:
                async with self._translate("move", source.visible.path):
                    await source.transport.move(source.ref, replace(dest.ref, type=source.ref.type))
                moved = True
            except UnsupportedError:
                logger.debug("Transport move unsupported, moving %s by copy/unlink", source.visible.path)

        if not moved:
            try:
                await self._transfer(source, dest, emit=False)
                async with self._translate("unlink", source.visible.path):
                    await source.transport.unlink(source.ref)
            except VFSError:
                if not dest_existed:
                    await self._rollback(dest)
                raise

        destination = replace(
            dest.visible, type=source.visible.type, mime=source.visible.mime, size=source.visible.size
        )
        await self._emit(
            VFSEvent(event_type=EventType.MOVE, source=source.visible, destination=destination, origin="move")
        )
        return destination

    async def rename(
        self,
        src: FileRef | str,
        dst: FileRef | str,
        *,
        overwrite: bool = False,
    ) -> FileRef:
        """Alias of :meth:`move`."""
        return await self.move(src, dst, overwrite=overwrite)

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def trash(self, path: FileRef | str) -> None:
        target = self._resolve(path)
        self._check_writable(target)
        trasher = self._require_capability(target, SupportsTrash, "trash")
        async with self._translate("trash", target.visible.path):
            await trasher.trash(target.ref)
        await self._emit(VFSEvent(event_type=EventType.DELETE, file=target.visible, origin="trash"))

    async def untrash(self, path: FileRef | str) -> None:
        target = self._resolve(path)
        self._check_writable(target)
        trasher = self._require_capability(target, SupportsTrash, "untrash")
        async with self._translate("untrash", target.visible.path):
            await trasher.untrash(target.ref)
        await self._emit(VFSEvent(event_type=EventType.UPDATE, file=target.visible, origin="untrash"))

    async def empty_trash(self, path: FileRef | str) -> None:
        """Empty the trash of the mount owning *path*."""
        target = self._resolve(path, as_dir=True)
        self._check_writable(target)
        trasher = self._require_capability(target, SupportsTrash, "empty_trash")
        async with self._translate("empty_trash", target.visible.path):
            await trasher.empty_trash(target.ref)
        await self._emit(VFSEvent(event_type=EventType.UPDATE, file=target.visible, origin="empty_trash"))

    # ------------------------------------------------------------------
    # Watches and broadcasting
    # ------------------------------------------------------------------

    def watch(self, path: FileRef | str, callback: Callable[..., Any], *, kind: str | None = None) -> int:
        """Call *callback(event_name, payload)* on mutations at or below *path*.

        *kind* is ``file`` (exact path) or ``dir`` (anything below); a
        directory FileRef or a path ending in ``/`` defaults to ``dir``.
        Returns an index for :meth:`unwatch`.
        """
        ref = self._coerce(path)
        if scheme_of(ref.path) is None:
            raise InvalidPathError(f"Path has no scheme: {ref.path!r}")
        if kind is None:
            kind = "dir" if ref.is_dir else "file"
        return self._watches.watch(ref.path, callback, kind)

    def unwatch(self, index: int) -> bool:
        return self._watches.unwatch(index)

    async def broadcast_message(self, message: str, item: Any, *, origin: str | None = None) -> None:
        """Emit *message* (``vfs:<verb>``) for *item* to subscribers and watches.

        *item* is a FileRef or path, or for ``vfs:move`` a mapping with
        ``source`` and ``destination``.
        """
        try:
            event_type = EventType(message)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown message {message!r}") from e

        if event_type is EventType.MOVE:
            if not isinstance(item, dict) or "source" not in item or "destination" not in item:
                raise InvalidArgumentError("Move messages need a source and a destination")
            event = VFSEvent(
                event_type=event_type,
                source=self._coerce(item["source"]),
                destination=self._coerce(item["destination"]),
                origin=origin,
            )
        elif event_type in (EventType.MOUNT, EventType.UNMOUNT):
            event = VFSEvent(event_type=event_type, mount=str(item), origin=origin)
        else:
            event = VFSEvent(event_type=event_type, file=self._coerce(item), origin=origin)
        await self._emit(event)

    async def trigger_watch(self, method: str, item: Any) -> None:
        """Broadcast ``vfs:<method>`` for *item* as if the verb had run."""
        await self.broadcast_message(f"vfs:{method}", item, origin=method)

    # ------------------------------------------------------------------
    # Mounts
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Mountpoint:
        """Mountpoint owning *path*."""
        return self._manager.resolve(normalize_path(path))
