"""Virtual path codec.

Virtual paths have the form ``scheme:///absolute/path``.  The scheme
separator is followed by the absolute path, so the canonical form of
``shared://pub/f`` is ``shared:///pub/f`` and a mount root reads
``scheme:///``.  Schemeless absolute paths (``/a/b``) are accepted too.
"""

from __future__ import annotations

import re

from .exceptions import InvalidPathError

# =============================================================================
# Constants
# =============================================================================

SCHEME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

SCHEME_SEPARATOR = "://"

_IGNORED_SEGMENTS = {"", ".", ".."}


# =============================================================================
# Parsing
# =============================================================================


def _check(path: object) -> str:
    if not isinstance(path, str):
        raise InvalidPathError(f"Path must be a string, got {type(path).__name__}")
    if not path:
        raise InvalidPathError("Path is empty")
    for ch in path:
        if ord(ch) < 0x20 or ch == "\x7f":
            raise InvalidPathError(f"Path contains control character: 0x{ord(ch):02x}")
    return path


def parse(path: str) -> tuple[str | None, list[str]]:
    """Split *path* into ``(scheme, segments)``.

    ``.`` and ``..`` segments and empty segments are dropped, so a path
    can never climb above its scheme root.
    """
    path = _check(path)

    if SCHEME_SEPARATOR in path:
        scheme, rest = path.split(SCHEME_SEPARATOR, 1)
        if not SCHEME_RE.match(scheme):
            raise InvalidPathError(f"Invalid scheme in path: {path!r}")
    elif path.startswith("/"):
        scheme, rest = None, path
    else:
        raise InvalidPathError(f"Path is not absolute: {path!r}")

    segments = [s for s in rest.split("/") if s not in _IGNORED_SEGMENTS]
    return scheme, segments


def format_path(scheme: str | None, segments: list[str]) -> str:
    """Build a canonical path from its parts."""
    body = "/" + "/".join(segments)
    if scheme is None:
        return body
    return f"{scheme}{SCHEME_SEPARATOR}{body}"


# =============================================================================
# Path Utilities
# =============================================================================


def normalize_path(path: str) -> str:
    """Normalize a virtual path.

    - Collapses duplicated slashes
    - Removes trailing slash (except for root)
    - Preserves the scheme

    Examples:
        normalize_path("home://a//b/") -> "home:///a/b"
        normalize_path("home:///") -> "home:///"
        normalize_path("/a/./b") -> "/a/b"
    """
    scheme, segments = parse(path)
    return format_path(scheme, segments)


def scheme_of(path: str) -> str | None:
    """Return the scheme token of *path*, or None for schemeless paths."""
    scheme, _ = parse(path)
    return scheme


def strip_scheme(path: str) -> str:
    """Return the path portion of *path*, always beginning with ``/``."""
    _, segments = parse(path)
    return "/" + "/".join(segments)


def is_root(path: str) -> bool:
    """True when *path* is the root of its scheme."""
    _, segments = parse(path)
    return not segments


def dirname(path: str) -> str:
    """Parent directory of *path*; the root is its own parent."""
    scheme, segments = parse(path)
    return format_path(scheme, segments[:-1])


def basename(path: str) -> str:
    """Final segment of *path* (empty string at the root)."""
    _, segments = parse(path)
    return segments[-1] if segments else ""


def split_path(path: str) -> tuple[str, str]:
    """Split *path* into ``(parent, name)``.

    Examples:
        split_path("home:///foo/bar.txt") -> ("home:///foo", "bar.txt")
        split_path("home:///") -> ("home:///", "")
    """
    scheme, segments = parse(path)
    if not segments:
        return format_path(scheme, []), ""
    return format_path(scheme, segments[:-1]), segments[-1]


def extension(path: str) -> str | None:
    """Lower-cased text after the last dot of the basename, or None."""
    name = basename(path)
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[1].lower()
    return ext or None


def join(*parts: str) -> str:
    """Join path parts.

    The first part carrying a scheme decides the scheme; schemes of
    later parts are discarded.  ``.`` and ``..`` segments are ignored.

    Examples:
        join("home:///a", "b", "../c") -> "home:///a/b/c"
        join("/a", "b") -> "/a/b"
    """
    scheme: str | None = None
    segments: list[str] = []
    for part in parts:
        if not isinstance(part, str):
            raise InvalidPathError(f"Path part must be a string, got {type(part).__name__}")
        if not part:
            continue
        _check(part)
        if SCHEME_SEPARATOR in part:
            part_scheme, rest = part.split(SCHEME_SEPARATOR, 1)
            if not SCHEME_RE.match(part_scheme):
                raise InvalidPathError(f"Invalid scheme in path: {part!r}")
            if scheme is None and not segments:
                scheme = part_scheme
            part = rest
        segments.extend(s for s in part.split("/") if s not in _IGNORED_SEGMENTS)
    return format_path(scheme, segments)


def is_within(path: str, parent: str) -> bool:
    """True when *path* equals *parent* or lies below it."""
    p_scheme, p_segments = parse(path)
    a_scheme, a_segments = parse(parent)
    if p_scheme != a_scheme:
        return False
    return p_segments[: len(a_segments)] == a_segments


def rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    """Move *path* from under *old_prefix* to under *new_prefix*.

    Examples:
        rebase("shared:///pub/f", "shared:///pub", "home:///_internal/pub")
            -> "home:///_internal/pub/f"
    """
    _, p_segments = parse(path)
    _, o_segments = parse(old_prefix)
    n_scheme, n_segments = parse(new_prefix)
    if not is_within(path, old_prefix):
        raise InvalidPathError(f"{path!r} is not under {old_prefix!r}")
    return format_path(n_scheme, n_segments + p_segments[len(o_segments) :])
