"""EventBus, event types and the watch registry."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from deskvfs.fs.exceptions import InvalidArgumentError
from deskvfs.fs.paths import normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from deskvfs.ref import FileRef

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Broadcast messages emitted after successful mutations."""

    MOUNT = "vfs:mount"
    UNMOUNT = "vfs:unmount"
    WRITE = "vfs:write"
    MKDIR = "vfs:mkdir"
    MOVE = "vfs:move"
    DELETE = "vfs:delete"
    UPLOAD = "vfs:upload"
    UPDATE = "vfs:update"


@dataclass(frozen=True, slots=True)
class VFSEvent:
    """Immutable record of a filesystem mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        file: Visible FileRef of the affected object.
        source: Visible source FileRef (moves only).
        destination: Visible destination FileRef (moves only).
        mount: Mountpoint name (mount/unmount only).
        origin: Name of the verb that produced the event.
    """

    event_type: EventType
    file: FileRef | None = None
    source: FileRef | None = None
    destination: FileRef | None = None
    mount: str | None = None
    origin: str | None = None

    @property
    def name(self) -> str:
        return self.event_type.value

    @property
    def paths(self) -> list[str]:
        """Paths touched by this event, destination first for moves."""
        refs = [self.destination, self.source] if self.event_type is EventType.MOVE else [self.file]
        return [r.path for r in refs if r is not None]

    @property
    def payload(self) -> Any:
        """Callback payload: the FileRef, ``{source, destination}`` or the mount name."""
        if self.event_type is EventType.MOVE:
            return {"source": self.source, "destination": self.destination}
        if self.file is not None:
            return self.file
        return self.mount


class EventBus:
    """Dispatches filesystem events to registered handlers.

    Handlers are called sequentially in registration order and may be
    plain callables or coroutine functions.  Exceptions are logged but
    never propagated: a failing handler degrades consistency, it does
    not fail the verb that produced the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def register_all(self, handler: Callable[..., Any]) -> None:
        """Register *handler* for every event type."""
        for event_type in EventType:
            self.register(event_type, handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: VFSEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in list(self._handlers[event.event_type]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.name,
                    event.paths or event.mount,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()


# =============================================================================
# Watches
# =============================================================================


class WatchKind(str, Enum):
    FILE = "file"
    DIR = "dir"


@dataclass(frozen=True, slots=True)
class Watch:
    """A registered interest in mutations at or below ``path``."""

    path: str
    kind: WatchKind
    callback: Callable[..., Any]

    def matches(self, path: str) -> bool:
        if self.kind is WatchKind.FILE:
            return path == self.path
        prefix = self.path if self.path.endswith("/") else self.path + "/"
        return path.startswith(prefix)


class WatchRegistry:
    """Watches keyed by insertion index.

    Removal leaves an empty slot so indices handed out earlier stay
    valid.  Dispatch iterates over a snapshot, so a callback may unwatch
    itself or a neighbour without skipping anyone.
    """

    def __init__(self) -> None:
        self._slots: list[Watch | None] = []

    def watch(self, path: str, callback: Callable[..., Any], kind: WatchKind | str | None = None) -> int:
        """Register *callback* for *path* and return its index."""
        if not callable(callback):
            raise InvalidArgumentError("Watch callback must be callable")
        if kind is None:
            kind = WatchKind.DIR if path.endswith("/") else WatchKind.FILE
        try:
            kind = WatchKind(kind)
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid watch kind: {kind!r}") from e
        self._slots.append(Watch(path=normalize_path(path), kind=kind, callback=callback))
        return len(self._slots) - 1

    def unwatch(self, index: int) -> bool:
        """Drop the watch at *index*. Return True if one was registered."""
        if 0 <= index < len(self._slots) and self._slots[index] is not None:
            self._slots[index] = None
            return True
        return False

    def get(self, index: int) -> Watch | None:
        if 0 <= index < len(self._slots):
            return self._slots[index]
        return None

    def __len__(self) -> int:
        return sum(1 for w in self._slots if w is not None)

    def clear(self) -> None:
        self._slots.clear()

    async def dispatch(self, name: str, paths: list[str], payload: Any) -> int:
        """Invoke every watch matching any of *paths* once.

        Returns the number of callbacks fired.
        """
        fired = 0
        for watch in list(self._slots):
            if watch is None or not any(watch.matches(p) for p in paths):
                continue
            fired += 1
            try:
                result = watch.callback(name, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("Watch %r failed for %s", watch.path, name, exc_info=True)
        return fired

    async def __call__(self, event: VFSEvent) -> None:
        """EventBus handler entry point."""
        if event.event_type in (EventType.MOUNT, EventType.UNMOUNT):
            return
        await self.dispatch(event.name, event.paths, event.payload)
