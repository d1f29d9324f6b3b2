import numpy as np
import pytest
from PIL import Image

from screen_mockup.assets import ImageAsset
from screen_mockup.errors import DecodeError
from screen_mockup.geometry import (
    ContentBox,
    content_box,
    crop_from_square,
    measure_dimensions,
    pad_to_square,
)

from .helpers import encode, make_asset, open_asset


# ── content_box ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "width, height, target, expected",
    [
        (1920, 1080, 1024, ContentBox(0, 224, 1024, 576)),
        (1080, 1920, 1024, ContentBox(224, 0, 576, 1024)),
        (800, 800, 1024, ContentBox(0, 0, 1024, 1024)),
        (1000, 100, 1024, ContentBox(0, 461, 1024, 102)),
        (1, 1000, 1024, ContentBox(511, 0, 1, 1024)),
    ],
)
def test_content_box(width, height, target, expected):
    assert content_box(width, height, target) == expected


@pytest.mark.parametrize("width, height, target", [(0, 10, 64), (10, -1, 64), (10, 10, 0)])
def test_content_box_rejects_non_positive(width, height, target):
    with pytest.raises(ValueError):
        content_box(width, height, target)


def test_content_box_bounds():
    assert ContentBox(0, 224, 1024, 576).bounds == (0, 224, 1024, 800)


# ── measure_dimensions ────────────────────────────────────────────────────────

def test_measure_dimensions_png():
    assert measure_dimensions(make_asset(300, 200)) == (300, 200)


def test_measure_dimensions_applies_exif_rotation():
    img = Image.new("RGB", (300, 200), (10, 10, 10))
    exif = Image.Exif()
    exif[0x0112] = 6   # rotate 90° CW on display
    asset = ImageAsset(data=encode(img, "JPEG", exif=exif), mime_type="image/jpeg")
    assert measure_dimensions(asset) == (200, 300)


def test_measure_dimensions_rejects_garbage():
    with pytest.raises(DecodeError):
        measure_dimensions(ImageAsset(data=b"definitely not an image", mime_type="image/png"))


# ── pad_to_square ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("width, height", [(1, 1), (1000, 100), (100, 1000), (640, 480)])
def test_pad_to_square_is_exactly_target(width, height):
    padded = pad_to_square(make_asset(width, height), 256)
    assert padded.mime_type == "image/jpeg"
    assert (padded.width, padded.height) == (256, 256)
    assert open_asset(padded).size == (256, 256)


def test_pad_to_square_letterboxes_with_black():
    padded = pad_to_square(make_asset(200, 100, color=(230, 20, 20)), 128)
    arr = np.asarray(open_asset(padded).convert("RGB")).astype(int)

    # content box is y 32..96
    assert arr[:28].mean() < 10
    assert arr[100:].mean() < 10
    middle = arr[40:88]
    assert middle[..., 0].mean() > 200
    assert middle[..., 1].mean() < 50


def test_pad_to_square_pillarboxes_portrait():
    padded = pad_to_square(make_asset(100, 200, color=(20, 230, 20)), 128)
    arr = np.asarray(open_asset(padded).convert("RGB")).astype(int)

    # content box is x 32..96
    assert arr[:, :28].mean() < 10
    assert arr[:, 100:].mean() < 10
    assert arr[:, 40:88, 1].mean() > 200


def test_pad_to_square_flattens_transparency_onto_background():
    clear = make_asset(64, 64, color=(255, 255, 255, 0), mode="RGBA")
    padded = pad_to_square(clear, 64, background=(0, 0, 255))
    arr = np.asarray(open_asset(padded).convert("RGB")).astype(int)
    assert arr[..., 2].mean() > 240
    assert arr[..., 0].mean() < 15


def test_pad_to_square_keeps_name():
    assert pad_to_square(make_asset(10, 20, name="poster.png"), 32).name == "poster.png"


def test_pad_to_square_rejects_garbage():
    with pytest.raises(DecodeError):
        pad_to_square(ImageAsset(data=b"\x89PNG broken", mime_type="image/png"), 64)


# ── crop_from_square ──────────────────────────────────────────────────────────

def _square_with_box(target, box, fill=(230, 20, 20)):
    img = Image.new("RGB", (target, target), (0, 0, 0))
    img.paste(fill, box.bounds)
    return ImageAsset(data=encode(img, "PNG"), mime_type="image/png", name="generated.png")


def test_crop_extracts_landscape_content_box():
    box = content_box(1920, 1080, 1024)
    square = _square_with_box(1024, box)

    cropped = crop_from_square(square, 1920, 1080, 1024)

    assert (cropped.width, cropped.height) == (1024, 576)
    img = open_asset(cropped)
    assert img.size == (1024, 576)
    arr = np.asarray(img.convert("RGB")).astype(int)
    # no letterbox residue on the first or last row
    assert arr[0, :, 0].mean() > 200
    assert arr[-1, :, 0].mean() > 200
    assert arr[..., 1].mean() < 40


def test_crop_resamples_off_size_square():
    box = content_box(1920, 1080, 512)
    square = _square_with_box(512, box)

    cropped = crop_from_square(square, 1920, 1080, 1024)

    assert open_asset(cropped).size == (1024, 576)


def test_crop_rejects_garbage():
    with pytest.raises(DecodeError):
        crop_from_square(ImageAsset(data=b"", mime_type="image/png"), 10, 10, 64)


@pytest.mark.parametrize(
    "width, height",
    [(1920, 1080), (1080, 1920), (1, 1), (1000, 100), (100, 1000), (333, 777)],
)
def test_round_trip_restores_aspect_ratio(width, height):
    target = 256
    padded = pad_to_square(make_asset(width, height), target)
    cropped = crop_from_square(padded, width, height, target)

    out_w, out_h = open_asset(cropped).size
    assert max(out_w, out_h) == target
    assert out_w / out_h == pytest.approx(width / height, rel=1.0 / min(out_w, out_h))


def test_crop_flattens_transparency_onto_padding_colour():
    clear = make_asset(64, 64, color=(0, 0, 0, 0), mode="RGBA")
    cropped = crop_from_square(clear, 64, 32, 64, background=(255, 255, 255))
    arr = np.asarray(open_asset(cropped).convert("RGB")).astype(int)
    assert arr.mean() > 240


def test_bad_orientation_data_is_decode_error(monkeypatch):
    def broken_transpose(img):
        raise SyntaxError("corrupt EXIF block")

    monkeypatch.setattr("screen_mockup.geometry.ImageOps.exif_transpose", broken_transpose)
    with pytest.raises(DecodeError) as info:
        pad_to_square(make_asset(40, 20, name="room.jpg"), 32)
    assert "room.jpg" in info.value.message
