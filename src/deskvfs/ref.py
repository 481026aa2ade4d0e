"""FileRef — immutable description of a file or directory."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from deskvfs.fs.exceptions import InvalidArgumentError
from deskvfs.fs.paths import basename, normalize_path


class FileType(str, Enum):
    """Kind of object a FileRef points at."""

    FILE = "file"
    DIR = "dir"
    TRASH = "trash"


@dataclass(frozen=True, slots=True)
class FileRef:
    """Immutable reference to a file or directory.

    Attributes:
        path: Normalized virtual path, ``scheme:///...``.
        filename: Final path segment (derived from ``path`` when empty).
        type: ``file``, ``dir`` or ``trash``.
        mime: Mime type, always None for directories.
        size: Size in bytes, always 0 for directories.
        id: Opaque back-end identifier.
        mtime: Modification time as reported by the back-end.
        ctime: Creation time as reported by the back-end.
        extra: Transport-specific display fields (excluded from equality).
    """

    path: str
    filename: str = ""
    type: FileType = FileType.FILE
    mime: str | None = None
    size: int = 0
    id: str | None = None
    mtime: str | None = None
    ctime: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self) -> None:
        path = normalize_path(self.path)
        object.__setattr__(self, "path", path)
        if not self.filename:
            object.__setattr__(self, "filename", basename(path))
        try:
            kind = FileType(self.type)
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid file type: {self.type!r}") from e
        object.__setattr__(self, "type", kind)
        if kind is FileType.DIR:
            object.__setattr__(self, "mime", None)
            object.__setattr__(self, "size", 0)
        elif self.size is None or self.size < 0:
            object.__setattr__(self, "size", 0)

    @property
    def is_dir(self) -> bool:
        return self.type is FileType.DIR

    @property
    def is_file(self) -> bool:
        return self.type is FileType.FILE

    def with_path(self, path: str) -> FileRef:
        """Copy of this ref at *path* (filename re-derived)."""
        return replace(self, path=path, filename="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "filename": self.filename,
            "type": self.type.value,
            "mime": self.mime,
            "size": self.size,
            "id": self.id,
            "mtime": self.mtime,
            "ctime": self.ctime,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileRef:
        """Build a FileRef from a transport-style mapping."""
        known = {"path", "filename", "type", "mime", "size", "id", "mtime", "ctime"}
        extra = {k: v for k, v in data.items() if k not in known}
        size = data.get("size") or 0
        return cls(
            path=data["path"],
            filename=data.get("filename") or "",
            type=data.get("type") or FileType.FILE,
            mime=data.get("mime"),
            size=int(size),
            id=data.get("id"),
            mtime=data.get("mtime"),
            ctime=data.get("ctime"),
            extra=extra,
        )

    def __repr__(self) -> str:
        parts = [f"path={self.path!r}", f"type={self.type.value!r}"]
        if self.mime is not None:
            parts.append(f"mime={self.mime!r}")
        if self.size:
            parts.append(f"size={self.size!r}")
        if self.id is not None:
            parts.append(f"id={self.id!r}")
        return f"FileRef({', '.join(parts)})"


def file_ref(path: str, type: FileType | str = FileType.FILE, **kwargs: Any) -> FileRef:
    """Create a FileRef, normalizing the path."""
    return FileRef(path=path, type=FileType(type), **kwargs)


def dir_ref(path: str, **kwargs: Any) -> FileRef:
    """Create a directory FileRef."""
    return FileRef(path=path, type=FileType.DIR, **kwargs)
