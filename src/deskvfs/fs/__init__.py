"""Filesystem layer: paths, payloads, errors, transport protocols, caching.

The stateful pieces (:mod:`deskvfs.fs.mounts`, :mod:`deskvfs.fs.vfs`) are
exported from the top-level ``deskvfs`` package.
"""

from deskvfs.fs.cache import MetadataCache
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
from deskvfs.fs.payload import Blob, DataURL, MimeMap, Payload, PayloadKind
from deskvfs.fs.protocol import (
    FindQuery,
    SupportsDownload,
    SupportsFind,
    SupportsFreeSpace,
    SupportsTrash,
    Transport,
)

__all__ = [
    "Blob",
    "DataURL",
    "ExistsError",
    "FindQuery",
    "InternalError",
    "InvalidArgumentError",
    "InvalidPathError",
    "MetadataCache",
    "MimeMap",
    "NetworkError",
    "NoMountError",
    "NotEmptyError",
    "NotMountedError",
    "OperationTimeoutError",
    "PartialCopyError",
    "PathNotFoundError",
    "Payload",
    "PayloadConversionError",
    "PayloadKind",
    "PermissionDeniedError",
    "ReadOnlyError",
    "SupportsDownload",
    "SupportsFind",
    "SupportsFreeSpace",
    "SupportsTrash",
    "Transport",
    "UnsupportedError",
    "VFSError",
]
