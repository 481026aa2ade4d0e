"""deskvfs: a mountable virtual filesystem over pluggable async transports.

Paths look like ``home:///Documents/notes.txt``; the scheme picks a
mountpoint and the mountpoint's transport does the work.
"""

__version__ = "0.1.0"

from deskvfs.ref import FileRef, FileType, dir_ref, file_ref
from deskvfs.events import EventBus, EventType, VFSEvent, Watch, WatchKind, WatchRegistry
from deskvfs.config import MountSpec, ScandirDefaults, VFSConfig
from deskvfs.storage import KeyValueStore, MemoryKeyValueStore, SQLKeyValueStore
from deskvfs.fs.mounts import MountManager, Mountpoint, MountState
from deskvfs.fs.vfs import VFS
from deskvfs.fs.exceptions import (
    ExistsError,
    InternalError,
    InvalidArgumentError,
    InvalidPathError,
    NetworkError,
    NoMountError,
    NotEmptyError,
    NotMountedError,
    OperationTimeoutError,
    PartialCopyError,
    PathNotFoundError,
    PayloadConversionError,
    PermissionDeniedError,
    ReadOnlyError,
    UnsupportedError,
    VFSError,
)
from deskvfs.fs.payload import Blob, DataURL, MimeMap
from deskvfs.fs.protocol import FindQuery, Transport
from deskvfs.transports import BUILTIN_TRANSPORTS

__all__ = [
    "BUILTIN_TRANSPORTS",
    "VFS",
    "Blob",
    "DataURL",
    "EventBus",
    "EventType",
    "ExistsError",
    "FileRef",
    "FileType",
    "FindQuery",
    "InternalError",
    "InvalidArgumentError",
    "InvalidPathError",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MimeMap",
    "MountManager",
    "MountSpec",
    "MountState",
    "Mountpoint",
    "NetworkError",
    "NoMountError",
    "NotEmptyError",
    "NotMountedError",
    "OperationTimeoutError",
    "PartialCopyError",
    "PathNotFoundError",
    "PayloadConversionError",
    "PermissionDeniedError",
    "ReadOnlyError",
    "SQLKeyValueStore",
    "ScandirDefaults",
    "Transport",
    "UnsupportedError",
    "VFSConfig",
    "VFSError",
    "VFSEvent",
    "Watch",
    "WatchKind",
    "WatchRegistry",
    "__version__",
    "dir_ref",
    "file_ref",
]
