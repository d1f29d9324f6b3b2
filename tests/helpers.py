import io
from types import SimpleNamespace

from google.genai import types as genai_types
from PIL import Image

from screen_mockup.assets import ImageAsset


def encode(img: Image.Image, fmt: str = "PNG", **save_kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_asset(width, height, color=(220, 30, 30), fmt="PNG", name="image.png", mode="RGB"):
    img = Image.new(mode, (width, height), color)
    mime = {"PNG": "image/png", "JPEG": "image/jpeg"}[fmt]
    return ImageAsset(data=encode(img, fmt), mime_type=mime, name=name)


def open_asset(asset: ImageAsset) -> Image.Image:
    img = Image.open(io.BytesIO(asset.data))
    img.load()
    return img


def text_response(text):
    return genai_types.GenerateContentResponse(
        candidates=[
            genai_types.Candidate(
                content=genai_types.Content(
                    role="model",
                    parts=[genai_types.Part.from_text(text=text)],
                )
            )
        ]
    )


def image_response(data: bytes, mime_type="image/png"):
    return genai_types.GenerateContentResponse(
        candidates=[
            genai_types.Candidate(
                content=genai_types.Content(
                    role="model",
                    parts=[genai_types.Part.from_bytes(data=data, mime_type=mime_type)],
                )
            )
        ]
    )


class FakeModels:
    """Stands in for client.models; replays queued responses in call order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def generate_content(self, *, model, contents, config=None):
        self.calls.append(SimpleNamespace(model=model, contents=contents, config=config))
        if not self.responses:
            raise AssertionError(f"unexpected generate_content call for {model}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(contents)
        return item


class FakeClient:
    def __init__(self, *responses):
        self.models = FakeModels(responses)
