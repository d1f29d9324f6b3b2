"""
assets.py — Immutable image blobs and data-URL helpers.

An ImageAsset is raw encoded bytes plus a MIME type. It is never decoded
here; decoding and re-encoding live in geometry.py.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import DecodeError

MIME_MAP = {
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png":  "image/png",
    ".webp": "image/webp",
    ".gif":  "image/gif",
    ".bmp":  "image/bmp",
}

EXT_MAP = {
    "image/jpeg": ".jpg",
    "image/png":  ".png",
    "image/webp": ".webp",
    "image/gif":  ".gif",
    "image/bmp":  ".bmp",
}

_DATA_URL_HEADER = re.compile(r"^data:([^;,]+)((?:;[^;,]*)*)$")


@dataclass(frozen=True)
class ImageAsset:
    data: bytes
    mime_type: str
    name: str = ""
    width: Optional[int] = None     # set by geometry transforms only
    height: Optional[int] = None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageAsset":
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise DecodeError(f"Could not read {path.name}: {exc.strerror or exc}") from exc
        mime = MIME_MAP.get(path.suffix.lower(), "application/octet-stream")
        return cls(data=data, mime_type=mime, name=path.name)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "application/octet-stream", name: str = "") -> "ImageAsset":
        return cls(data=bytes(data), mime_type=mime_type, name=name)

    @property
    def extension(self) -> str:
        return EXT_MAP.get(self.mime_type, ".bin")

    def __repr__(self) -> str:
        size = f" {self.width}x{self.height}" if self.width and self.height else ""
        return f"<ImageAsset {self.name or '?'} {self.mime_type}{size} {len(self.data)} bytes>"


def to_data_url(asset: ImageAsset) -> str:
    payload = base64.b64encode(asset.data).decode("ascii")
    return f"data:{asset.mime_type};base64,{payload}"


def parse_data_url(url: str, name: str = "") -> ImageAsset:
    """
    Parse ``data:<mime>;base64,<payload>`` back into an ImageAsset.

    Only base64 payloads are accepted; anything else raises DecodeError.
    """
    header, sep, payload = url.partition(",")
    if not sep:
        raise DecodeError("Invalid data URL")
    match = _DATA_URL_HEADER.match(header.strip())
    if not match:
        raise DecodeError("Could not parse MIME type from data URL")
    mime = match.group(1).strip()
    params = [p.strip().lower() for p in match.group(2).split(";") if p.strip()]
    if "base64" not in params:
        raise DecodeError("Data URL is not base64 encoded")
    try:
        data = base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Data URL payload is not valid base64") from exc
    return ImageAsset(data=data, mime_type=mime, name=name)
