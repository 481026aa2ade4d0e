"""Listing post-processing: back-links, filtering and sorting."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from deskvfs.ref import FileRef, FileType

from .exceptions import InvalidArgumentError
from .paths import dirname

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

SORT_KEYS = ("filename", "size", "mime", "ctime", "mtime")

SORT_DIRS = ("asc", "desc")

HIDDEN_RE = re.compile(r"^\.\w")

FOLDER_MIMES = frozenset({"application/vnd.google-apps.folder"})


def create_backlink(directory: str) -> FileRef:
    """Synthetic ``..`` entry pointing at the parent of *directory*."""
    return FileRef(path=dirname(directory), filename="..", type=FileType.DIR)


def is_backlink(ref: FileRef) -> bool:
    return ref.filename == ".."


def _compile(patterns: Iterable[str | re.Pattern[str]]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InvalidArgumentError(f"Invalid mime filter {pattern!r}") from e
    return compiled


def _normalize_type(ref: FileRef) -> FileRef:
    if ref.type is not FileType.DIR and ref.mime in FOLDER_MIMES:
        return FileRef(
            path=ref.path,
            filename=ref.filename,
            type=FileType.DIR,
            id=ref.id,
            mtime=ref.mtime,
            ctime=ref.ctime,
            extra=ref.extra,
        )
    return ref


def filter_listing(
    entries: Sequence[FileRef],
    *,
    type_filter: str | None = None,
    mime_filter: Iterable[str | re.Pattern[str]] = (),
    show_hidden_files: bool = True,
    sort_by: str | None = None,
    sort_dir: str = "asc",
) -> list[FileRef]:
    """Filter and sort a transport listing.

    The mime filter applies to files only.  Sorting is stable, puts
    directories before files and sorts missing keys first.
    """
    if type_filter not in (None, "file", "dir"):
        raise InvalidArgumentError(f"Invalid type filter: {type_filter!r}")
    if sort_by is not None and sort_by not in SORT_KEYS:
        raise InvalidArgumentError(f"Invalid sort key: {sort_by!r}")
    if sort_dir not in SORT_DIRS:
        raise InvalidArgumentError(f"Invalid sort direction: {sort_dir!r}")

    mime_patterns = _compile(mime_filter)

    result: list[FileRef] = []
    for ref in entries:
        ref = _normalize_type(ref)
        if type_filter is not None and ref.type.value != type_filter:
            continue
        if not show_hidden_files and HIDDEN_RE.match(ref.filename):
            continue
        if mime_patterns and ref.type is not FileType.DIR:
            mime = ref.mime or ""
            if not any(p.search(mime) for p in mime_patterns):
                continue
        result.append(ref)

    if sort_by is not None:
        def key(ref: FileRef) -> tuple[bool, object]:
            value = getattr(ref, sort_by)
            if isinstance(value, str):
                value = value.lower()
            return (value is not None, value if value is not None else 0)

        result = sorted(result, key=key, reverse=sort_dir == "desc")

    dirs = [r for r in result if r.type is FileType.DIR]
    files = [r for r in result if r.type is not FileType.DIR]
    return dirs + files
