"""Payload codec — conversions between in-memory file payload forms.

Callers hand payloads around as an explicit tagged :class:`Payload`;
plain ``bytes``, ``str``, :class:`Blob` and :class:`DataURL` values are
tagged by type through :func:`coerce`.  All conversions are pure.
"""

from __future__ import annotations

import base64
import binascii
import json
import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import unquote_to_bytes

from .exceptions import InvalidArgumentError, PayloadConversionError

DEFAULT_MIME = "application/octet-stream"
TEXT_MIME = "text/plain"
JSON_MIME = "application/json"

READ_TYPES = ("binary", "text", "datasource", "blob", "json")


class PayloadKind(str, Enum):
    """Tag of a :class:`Payload`."""

    BYTES = "bytes"
    TEXT = "text"
    DATAURL = "dataurl"
    BLOB = "blob"
    BASE64 = "base64"


@dataclass(frozen=True, slots=True)
class Blob:
    """Opaque binary payload with a mime type and optional file name."""

    data: bytes
    mime: str = DEFAULT_MIME
    name: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class DataURL:
    """A ``data:<mime>;base64,<payload>`` string."""

    value: str

    @property
    def mime(self) -> str:
        header = self.value[5:].split(",", 1)[0]
        return header.split(";", 1)[0] or TEXT_MIME

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Payload:
    """Tagged payload variant.

    Attributes:
        kind: Which form ``value`` is in.
        value: ``bytes`` for BYTES, ``str`` for TEXT/BASE64/DATAURL,
            :class:`Blob` for BLOB.
        mime: Declared mime type, if known.
    """

    kind: PayloadKind
    value: Any
    mime: str | None = None


# =============================================================================
# Primitive conversions
# =============================================================================


def text_to_bytes(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise PayloadConversionError("Text is not encodable as UTF-8", cause=e) from e


def bytes_to_text(data: bytes) -> str:
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadConversionError("Payload is not valid UTF-8", cause=e) from e


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_to_bytes(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadConversionError("Invalid base64 payload", cause=e) from e


def bytes_to_dataurl(data: bytes, mime: str | None = None) -> DataURL:
    return DataURL(f"data:{mime or DEFAULT_MIME};base64,{bytes_to_base64(data)}")


def dataurl_to_bytes(url: DataURL | str) -> bytes:
    """Decode the payload of a data URL (base64 or percent-encoded)."""
    value = str(url)
    if not value.startswith("data:") or "," not in value:
        raise PayloadConversionError(f"Not a data URL: {value[:32]!r}")
    header, body = value[5:].split(",", 1)
    if header.endswith(";base64"):
        return base64_to_bytes(body)
    return unquote_to_bytes(body)


def bytes_to_blob(data: bytes, mime: str | None = None, name: str | None = None) -> Blob:
    return Blob(data=bytes(data), mime=mime or DEFAULT_MIME, name=name)


def blob_to_bytes(blob: Blob) -> bytes:
    return blob.data


def bytes_to_json(data: bytes) -> Any:
    text = bytes_to_text(data)
    try:
        return json.loads(text)
    except ValueError as e:
        raise PayloadConversionError("Payload is not valid JSON", cause=e) from e


def json_to_bytes(value: Any) -> bytes:
    try:
        return text_to_bytes(json.dumps(value))
    except (TypeError, ValueError) as e:
        raise PayloadConversionError("Value is not JSON serializable", cause=e) from e


# =============================================================================
# Tagged payload handling
# =============================================================================


def coerce(value: Any, mime: str | None = None) -> Payload:
    """Tag a caller-supplied value as a :class:`Payload`."""
    if isinstance(value, Payload):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Payload(PayloadKind.BYTES, bytes(value), mime)
    if isinstance(value, str):
        return Payload(PayloadKind.TEXT, value, mime)
    if isinstance(value, Blob):
        return Payload(PayloadKind.BLOB, value, mime or value.mime)
    if isinstance(value, DataURL):
        return Payload(PayloadKind.DATAURL, value.value, mime or value.mime)
    raise PayloadConversionError(f"Unsupported payload type: {type(value).__name__}")


def to_bytes(payload: Payload | Any) -> bytes:
    """Reduce any payload form to raw bytes."""
    payload = coerce(payload)
    kind = payload.kind
    if kind is PayloadKind.BYTES:
        return bytes(payload.value)
    if kind is PayloadKind.TEXT:
        return text_to_bytes(payload.value)
    if kind is PayloadKind.DATAURL:
        return dataurl_to_bytes(payload.value)
    if kind is PayloadKind.BLOB:
        return blob_to_bytes(payload.value)
    if kind is PayloadKind.BASE64:
        return base64_to_bytes(payload.value)
    raise PayloadConversionError(f"Unknown payload kind: {kind!r}")


def mime_of(payload: Payload | Any) -> str | None:
    """Declared mime of a payload, if any."""
    return coerce(payload).mime


def convert(data: bytes, type: str = "binary", mime: str | None = None, name: str | None = None) -> Any:
    """Convert bytes returned by a transport to a caller-requested read type.

    ``binary`` returns bytes, ``text`` a str, ``datasource`` a
    :class:`DataURL`, ``blob`` a :class:`Blob`, ``json`` the parsed value.
    """
    if type == "binary":
        return bytes(data)
    if type == "text":
        return bytes_to_text(data)
    if type == "datasource":
        return bytes_to_dataurl(data, mime)
    if type == "blob":
        return bytes_to_blob(data, mime, name)
    if type == "json":
        return bytes_to_json(data)
    raise InvalidArgumentError(f"Unknown read type {type!r}; expected one of {READ_TYPES}")


# =============================================================================
# Mime mapping
# =============================================================================


class MimeMap:
    """Extension to mime lookup.

    Explicit *mapping* entries win, then the ``mimetypes`` registry, then
    *default*.  Keys may be given as ``"txt"`` or ``".txt"``.
    """

    def __init__(self, mapping: Mapping[str, str] | None = None, default: str = DEFAULT_MIME) -> None:
        self._mapping = {self._key(k): v for k, v in (mapping or {}).items()}
        self._default = default

    @staticmethod
    def _key(ext: str) -> str:
        ext = ext.lower()
        return ext if ext.startswith(".") else "." + ext

    def guess(self, filename: str) -> str:
        """Guess the mime type of *filename*."""
        if "." in filename:
            ext = "." + filename.rsplit(".", 1)[1].lower()
            if ext in self._mapping:
                return self._mapping[ext]
        mime, _ = mimetypes.guess_type(filename, strict=False)
        return mime or self._default

    def __contains__(self, ext: str) -> bool:
        return self._key(ext) in self._mapping
