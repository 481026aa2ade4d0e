"""Configuration dataclasses for mounts and facade defaults."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from deskvfs.fs.exceptions import InvalidArgumentError
from deskvfs.fs.listing import SORT_DIRS, SORT_KEYS
from deskvfs.fs.paths import normalize_path, scheme_of

_CAMEL_KEYS = {
    "readOnly": "read_only",
    "showHiddenFiles": "show_hidden_files",
    "sortBy": "sort_by",
    "sortDir": "sort_dir",
    "mimeMap": "mime_map",
}


def _snake(data: dict[str, Any]) -> dict[str, Any]:
    return {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}


@dataclass
class MountSpec:
    """Configuration for a single mountpoint."""

    name: str
    """Unique mount name."""

    transport: str | None
    """Registered transport name, e.g. ``"localstorage"``.  None for alias-only mounts."""

    root: str
    """Virtual path prefix, e.g. ``"home:///"``."""

    scheme: str | None = None
    """Scheme token; derived from ``root`` when omitted."""

    match: str | None = None
    """Regex accepting the paths this mount handles; anchors on ``root`` when omitted."""

    read_only: bool = False
    visible: bool = True
    special: bool = False
    enabled: bool = True

    alias: str | None = None
    """Underlying virtual prefix that paths under ``root`` are redirected to."""

    label: str = ""
    """Display name for the mount."""

    options: dict[str, Any] = field(default_factory=dict)
    """Transport-specific settings."""

    def __post_init__(self) -> None:
        if not self.name or not isinstance(self.name, str):
            raise InvalidArgumentError("Mount name is required")
        self.root = normalize_path(self.root)
        root_scheme = scheme_of(self.root)
        if root_scheme is None:
            raise InvalidArgumentError(f"Mount root {self.root!r} has no scheme")
        if self.scheme is None:
            self.scheme = root_scheme
        elif self.scheme != root_scheme:
            raise InvalidArgumentError(
                f"Mount {self.name!r}: scheme {self.scheme!r} does not match root {self.root!r}"
            )
        if self.match is not None:
            try:
                re.compile(self.match)
            except re.error as e:
                raise InvalidArgumentError(f"Mount {self.name!r}: invalid match regex") from e
        if self.alias is not None:
            self.alias = normalize_path(self.alias)
            if scheme_of(self.alias) is None:
                raise InvalidArgumentError(f"Mount {self.name!r}: alias must carry a scheme")
        if not self.transport and self.alias is None:
            raise InvalidArgumentError(f"Mount {self.name!r} has no transport")
        if not self.label:
            self.label = self.name

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MountSpec:
        """Build a spec from a config mapping (camelCase or snake_case keys)."""
        data = _snake(dict(data))
        known = {f for f in cls.__dataclass_fields__}
        options = dict(data.pop("options", None) or {})
        options.update({k: v for k, v in data.items() if k not in known})
        kwargs = {k: v for k, v in data.items() if k in known}
        missing = {"name", "root"} - kwargs.keys()
        if missing:
            raise InvalidArgumentError(f"Mount config missing {sorted(missing)}")
        kwargs.setdefault("transport", None)
        return cls(**kwargs, options=options)


@dataclass
class ScandirDefaults:
    """Default scandir options applied when a caller passes none."""

    show_hidden_files: bool = True
    sort_by: str | None = None
    sort_dir: str = "asc"
    backlink: bool = True

    def __post_init__(self) -> None:
        if self.sort_by is not None and self.sort_by not in SORT_KEYS:
            raise InvalidArgumentError(f"Invalid sort key: {self.sort_by!r}")
        if self.sort_dir not in SORT_DIRS:
            raise InvalidArgumentError(f"Invalid sort direction: {self.sort_dir!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScandirDefaults:
        return cls(**_snake(dict(data)))


@dataclass
class VFSConfig:
    """Top-level configuration: ordered mounts plus facade defaults."""

    mounts: list[MountSpec] = field(default_factory=list)
    scandir: ScandirDefaults = field(default_factory=ScandirDefaults)
    mime_map: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VFSConfig:
        data = _snake(dict(data))
        mounts = [m if isinstance(m, MountSpec) else MountSpec.from_dict(m) for m in data.get("mounts", [])]
        scandir = data.get("scandir") or {}
        if not isinstance(scandir, ScandirDefaults):
            scandir = ScandirDefaults.from_dict(scandir)
        return cls(mounts=mounts, scandir=scandir, mime_map=dict(data.get("mime_map") or {}))

    @classmethod
    def from_json_file(cls, path: str | Path) -> VFSConfig:
        with Path(path).open(encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
