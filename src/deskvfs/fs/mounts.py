"""Mountpoint and MountManager."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from deskvfs.config import MountSpec, VFSConfig
from deskvfs.events import EventType, VFSEvent

from .exceptions import InternalError, InvalidArgumentError, InvalidPathError, NoMountError, NotMountedError, VFSError
from .payload import MimeMap
from .paths import normalize_path, scheme_of

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from deskvfs.events import EventBus

    from .protocol import Transport

    TransportFactory = Callable[[dict[str, Any], MimeMap], Transport]

logger = logging.getLogger(__name__)


class MountState(str, Enum):
    """Mountpoint lifecycle state."""

    UNMOUNTED = "unmounted"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UNMOUNTING = "unmounting"


def default_match(root: str) -> str:
    """Regex accepting *root* and every path below it."""
    if root.endswith("/"):
        return "^" + re.escape(root)
    return "^" + re.escape(root) + "(?=/|$)"


@dataclass(eq=False)
class Mountpoint:
    """A configured transport instance bound to a virtual path prefix."""

    name: str
    root: str
    transport: Transport | None
    match: re.Pattern[str] | str | None = None
    read_only: bool = False
    visible: bool = True
    special: bool = False
    enabled: bool = True
    alias: str | None = None
    label: str = ""
    transport_name: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    state: MountState = MountState.UNMOUNTED

    def __post_init__(self) -> None:
        self.root = normalize_path(self.root)
        if scheme_of(self.root) is None:
            raise InvalidPathError(f"Mount root {self.root!r} has no scheme")
        if self.match is None:
            self.match = default_match(self.root)
        if isinstance(self.match, str):
            self.match = re.compile(self.match)
        if getattr(self.transport, "read_only", False):
            self.read_only = True
        if self.alias is not None:
            self.alias = normalize_path(self.alias)
        if not self.label:
            self.label = self.name

    @property
    def scheme(self) -> str:
        scheme = scheme_of(self.root)
        assert scheme is not None
        return scheme

    @property
    def pattern(self) -> re.Pattern[str]:
        assert isinstance(self.match, re.Pattern)
        return self.match

    @property
    def is_mounted(self) -> bool:
        return self.state is MountState.MOUNTED

    def match_length(self, path: str) -> int | None:
        """Length of the prefix of *path* accepted by ``match``, or None."""
        m = self.pattern.match(path)
        if m is None:
            return None
        return m.end()

    def require_mounted(self) -> None:
        if self.state is not MountState.MOUNTED:
            raise NotMountedError(f"Mount {self.name!r} is {self.state.value}")

    async def mount(self) -> None:
        """Open the transport.  No-op when already mounted."""
        if self.state is MountState.MOUNTED:
            return
        self.state = MountState.MOUNTING
        try:
            if self.transport is not None:
                await self.transport.open()
        except Exception:
            self.state = MountState.UNMOUNTED
            raise
        self.state = MountState.MOUNTED
        logger.info("Mounted %s at %s", self.name, self.root)

    async def unmount(self) -> None:
        """Close the transport.  No-op when not mounted."""
        if self.state is not MountState.MOUNTED:
            return
        self.state = MountState.UNMOUNTING
        try:
            if self.transport is not None:
                await self.transport.close()
        finally:
            self.state = MountState.UNMOUNTED
        logger.info("Unmounted %s", self.name)

    def __repr__(self) -> str:
        return f"Mountpoint(name={self.name!r}, root={self.root!r}, state={self.state.value!r})"


class MountManager:
    """Registry of transport factories and active mountpoints.

    Resolves virtual paths to the mountpoint owning them.  Mountpoints
    keep their insertion order, which also breaks ties in resolution.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        *,
        mime_map: MimeMap | None = None,
        factories: dict[str, TransportFactory] | None = None,
    ) -> None:
        self._event_bus = event_bus
        self._mime_map = mime_map or MimeMap()
        self._mounts: list[Mountpoint] = []
        if factories is None:
            from deskvfs.transports import BUILTIN_TRANSPORTS

            factories = dict(BUILTIN_TRANSPORTS)
        self._factories: dict[str, TransportFactory] = dict(factories)

    # ------------------------------------------------------------------
    # Transport registry
    # ------------------------------------------------------------------

    def register_transport(self, name: str, factory: TransportFactory) -> None:
        """Register (or replace) a transport factory under *name*."""
        self._factories[name] = factory

    @property
    def transport_names(self) -> list[str]:
        return sorted(self._factories)

    @property
    def mime_map(self) -> MimeMap:
        return self._mime_map

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _emit(self, event: VFSEvent) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit(event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self, config: VFSConfig | Iterable[MountSpec | dict[str, Any]]) -> list[Mountpoint]:
        """Create and mount every configured mount.

        A mount that fails to build or mount is logged and skipped.
        Mount names already registered are left alone, so calling this
        twice is harmless.  Returns the mountpoints added by this call.
        """
        if isinstance(config, VFSConfig):
            if config.mime_map:
                self._mime_map = MimeMap(config.mime_map)
            specs: Iterable[MountSpec | dict[str, Any]] = config.mounts
        else:
            specs = config

        added: list[Mountpoint] = []
        for spec in specs:
            try:
                if not isinstance(spec, MountSpec):
                    spec = MountSpec.from_dict(spec)
                if self.has(spec.name):
                    continue
                added.append(await self.add(spec))
            except Exception:
                name = spec.name if isinstance(spec, MountSpec) else spec.get("name")
                logger.warning("Skipping mount %r", name, exc_info=True)
        return added

    def _create_transport(self, spec: MountSpec) -> Transport:
        assert spec.transport is not None
        factory = self._factories.get(spec.transport)
        if factory is None:
            raise InvalidArgumentError(f"Unknown transport {spec.transport!r} for mount {spec.name!r}")
        return factory(dict(spec.options), self._mime_map)

    def build(self, spec: MountSpec) -> Mountpoint:
        """Instantiate the transport for *spec* and wrap it in a Mountpoint."""
        transport = None if spec.transport is None else self._create_transport(spec)
        return Mountpoint(
            name=spec.name,
            root=spec.root,
            transport=transport,
            match=spec.match,
            read_only=spec.read_only,
            visible=spec.visible,
            special=spec.special,
            enabled=spec.enabled,
            alias=spec.alias,
            label=spec.label,
            transport_name=spec.transport or "",
            options=dict(spec.options),
        )

    async def add(
        self,
        spec: MountSpec | Mountpoint | dict[str, Any],
        *,
        mount_now: bool = True,
    ) -> Mountpoint:
        """Register a mountpoint and optionally mount it right away."""
        if isinstance(spec, dict):
            spec = MountSpec.from_dict(spec)
        mountpoint = spec if isinstance(spec, Mountpoint) else self.build(spec)
        if self.has(mountpoint.name):
            raise InvalidArgumentError(f"Mount {mountpoint.name!r} already exists")

        self._mounts.append(mountpoint)
        if mount_now:
            try:
                await mountpoint.mount()
            except VFSError:
                self._mounts.remove(mountpoint)
                raise
            except Exception as e:
                self._mounts.remove(mountpoint)
                raise InternalError(f"Cannot mount {mountpoint.name!r}", cause=e) from e
            await self._emit(VFSEvent(event_type=EventType.MOUNT, mount=mountpoint.name, origin="mount"))
        return mountpoint

    async def mount(self, name: str) -> Mountpoint:
        """Mount a registered but unmounted mountpoint."""
        mountpoint = self.get(name)
        if not mountpoint.is_mounted:
            await mountpoint.mount()
            await self._emit(VFSEvent(event_type=EventType.MOUNT, mount=name, origin="mount"))
        return mountpoint

    async def remove(self, name: str) -> None:
        """Unmount the named mountpoint and drop it from the registry."""
        mountpoint = self.get(name)
        was_mounted = mountpoint.is_mounted
        try:
            await mountpoint.unmount()
        finally:
            self._mounts.remove(mountpoint)
        if was_mounted:
            await self._emit(VFSEvent(event_type=EventType.UNMOUNT, mount=name, origin="unmount"))

    async def close(self) -> None:
        """Unmount every mountpoint, logging failures."""
        for mountpoint in list(self._mounts):
            try:
                await mountpoint.unmount()
            except Exception:
                logger.warning("Unmount failed for %s", mountpoint.name, exc_info=True)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Mountpoint:
        """Return the enabled mountpoint owning *path*.

        The mount whose ``match`` accepts the longest prefix wins; equal
        lengths go to the mount registered first.
        """
        path = normalize_path(path)
        if scheme_of(path) is None:
            raise InvalidPathError(f"Path has no scheme: {path!r}")

        best: Mountpoint | None = None
        best_len = -1
        for mountpoint in self._mounts:
            if not mountpoint.enabled:
                continue
            length = mountpoint.match_length(path)
            if length is not None and length > best_len:
                best = mountpoint
                best_len = length

        if best is None:
            raise NoMountError(f"No mount found for path: {path}")
        return best

    def list(self, *, visible: bool | None = True, special: bool | None = False) -> list[Mountpoint]:
        """Enabled mountpoints filtered by visibility and special flags (None = any)."""
        return [
            m
            for m in self._mounts
            if m.enabled
            and (visible is None or m.visible == visible)
            and (special is None or m.special == special)
        ]

    def all(self) -> list[Mountpoint]:
        """Every registered mountpoint in insertion order."""
        return list(self._mounts)

    def has(self, name: str) -> bool:
        return any(m.name == name for m in self._mounts)

    def get(self, name: str) -> Mountpoint:
        for mountpoint in self._mounts:
            if mountpoint.name == name:
                return mountpoint
        raise NoMountError(f"No mount named {name!r}")

    def get_transport(self, name: str) -> Transport | None:
        return self.get(name).transport
