"""
geometry.py — Letterbox an image into a fixed square, and undo it.

The model always sees a target×target square: the source is scaled to fit,
centered, and padded with a solid colour. After generation the same
content box is cut back out of the square result.

Both directions go through content_box(), so for a given
(width, height, target) triple the crop is the exact inverse of the pad.

  1920×1080 @ 1024  →  ContentBox(x=0, y=224, width=1024, height=576)
   600×900  @ 1024  →  ContentBox(x=170, y=0, width=683, height=1024)
"""

from __future__ import annotations

import io
import logging
import struct
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .assets import ImageAsset
from .errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

BLACK = (0, 0, 0)
DEFAULT_QUALITY = 95

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError)
_EXIF_ERRORS = _DECODE_ERRORS + (SyntaxError, struct.error, KeyError, TypeError)
_SWAPPED_ORIENTATIONS = {5, 6, 7, 8}   # EXIF orientations that rotate by 90°
_EXIF_ORIENTATION = 0x0112


class ContentBox(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) as used by Image.crop."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def content_box(width: int, height: int, target_dimension: int) -> ContentBox:
    """Where a width×height image lands inside a target×target square."""
    if width <= 0 or height <= 0:
        raise ValueError(f"image dimensions must be positive, got {width}x{height}")
    if target_dimension <= 0:
        raise ValueError(f"target dimension must be positive, got {target_dimension}")

    aspect = width / height
    if aspect > 1:   # landscape
        content_w = target_dimension
        content_h = max(1, round(target_dimension / aspect))
    else:            # portrait or square
        content_h = target_dimension
        content_w = max(1, round(target_dimension * aspect))

    x = (target_dimension - content_w) // 2
    y = (target_dimension - content_h) // 2
    return ContentBox(x, y, content_w, content_h)


# ── Decode / encode ──────────────────────────────────────────────────────────

def _describe(asset: ImageAsset) -> str:
    return asset.name or asset.mime_type


@contextmanager
def decoded(asset: ImageAsset) -> Iterator[Image.Image]:
    """Open an asset with Pillow; the handle is closed when the block exits."""
    try:
        img = Image.open(io.BytesIO(asset.data))
    except _DECODE_ERRORS as exc:
        raise DecodeError(f"Could not decode image '{_describe(asset)}': {exc}") from exc
    try:
        try:
            # animated GIF / WebP: first frame only
            if getattr(img, "is_animated", False):
                img.seek(0)
            img.load()
        except _DECODE_ERRORS as exc:
            raise DecodeError(f"Could not decode image '{_describe(asset)}': {exc}") from exc
        yield img
    finally:
        img.close()


def _oriented(img: Image.Image, asset: ImageAsset) -> Image.Image:
    """Copy of img rotated per its EXIF orientation tag."""
    try:
        return ImageOps.exif_transpose(img)
    except _EXIF_ERRORS as exc:
        raise DecodeError(f"Could not read orientation of '{_describe(asset)}': {exc}") from exc


def _flatten(img: Image.Image, background: Tuple[int, int, int]) -> Image.Image:
    """RGB copy of img, with any transparency composited onto background."""
    has_alpha = img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )
    if not has_alpha:
        return img.convert("RGB")
    with img.convert("RGBA") as rgba:
        flat = Image.new("RGB", rgba.size, background)
        flat.paste(rgba, mask=rgba.getchannel("A"))
    return flat


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    try:
        img.save(buf, format="JPEG", quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"Could not encode image as JPEG: {exc}") from exc
    return buf.getvalue()


# ── Public operations ─────────────────────────────────────────────────────────

def measure_dimensions(asset: ImageAsset) -> Tuple[int, int]:
    """
    Intrinsic (width, height) of an encoded image, after EXIF orientation.

    Raises DecodeError if the bytes are not an image Pillow can read.
    """
    with decoded(asset) as img:
        width, height = img.size
        try:
            orientation = img.getexif().get(_EXIF_ORIENTATION)
        except _EXIF_ERRORS:
            orientation = None
    if orientation in _SWAPPED_ORIENTATIONS:
        width, height = height, width
    return width, height


def pad_to_square(
    asset: ImageAsset,
    target_dimension: int,
    *,
    quality: int = DEFAULT_QUALITY,
    background: Tuple[int, int, int] = BLACK,
) -> ImageAsset:
    """
    Fit the image inside a target×target square, centered on a solid
    background. Always returns exactly target×target JPEG.
    """
    with decoded(asset) as src, _oriented(src, asset) as oriented:
        box = content_box(oriented.width, oriented.height, target_dimension)
        with _flatten(oriented, background) as flat:
            content = flat.resize((box.width, box.height), Image.Resampling.LANCZOS)

    with content, Image.new("RGB", (target_dimension, target_dimension), background) as canvas:
        canvas.paste(content, (box.x, box.y))
        data = _encode_jpeg(canvas, quality)

    logger.debug("Padded %s into %dpx square at %s", _describe(asset), target_dimension, box)
    return ImageAsset(
        data=data,
        mime_type="image/jpeg",
        name=asset.name,
        width=target_dimension,
        height=target_dimension,
    )


def crop_from_square(
    square: ImageAsset,
    original_width: int,
    original_height: int,
    target_dimension: int,
    *,
    quality: int = DEFAULT_QUALITY,
    background: Tuple[int, int, int] = BLACK,
) -> ImageAsset:
    """
    Cut the original-aspect content box back out of a padded square.

    A square that does not come back at target×target is resampled to that
    size first, so the box coordinates line up with the padded input.
    """
    box = content_box(original_width, original_height, target_dimension)

    with decoded(square) as img:
        flat = _flatten(img, background)

    with flat:
        if flat.size != (target_dimension, target_dimension):
            logger.info(
                "Generated image is %dx%d, resampling to %dpx before cropping",
                flat.width, flat.height, target_dimension,
            )
            resized = flat.resize((target_dimension, target_dimension), Image.Resampling.LANCZOS)
        else:
            resized = flat.copy()

    with resized, resized.crop(box.bounds) as region:
        data = _encode_jpeg(region, quality)

    return ImageAsset(
        data=data,
        mime_type="image/jpeg",
        name=square.name,
        width=box.width,
        height=box.height,
    )
