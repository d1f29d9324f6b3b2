"""
config.py — Runtime settings for the screen mockup pipeline.

Values come from the environment (and a local .env file, loaded with
python-dotenv). Every field has a default except the API key.

  GEMINI_API_KEY                    (fallbacks: GOOGLE_API_KEY, API_KEY)
  SCREEN_MOCKUP_DESCRIPTION_MODEL   text/vision model for the scene description
  SCREEN_MOCKUP_COMPOSITION_MODEL   image model for the composite
  SCREEN_MOCKUP_TARGET_DIMENSION    square side sent to the model, in px
  SCREEN_MOCKUP_JPEG_QUALITY        1-100
  SCREEN_MOCKUP_PADDING_COLOR       letterbox colour, hex (#000000)
  SCREEN_MOCKUP_TIMEOUT             per-request timeout, seconds
"""

from __future__ import annotations

import os
import re
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

API_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")

ENV_FIELDS = {
    "SCREEN_MOCKUP_DESCRIPTION_MODEL": "description_model",
    "SCREEN_MOCKUP_COMPOSITION_MODEL": "composition_model",
    "SCREEN_MOCKUP_TARGET_DIMENSION": "target_dimension",
    "SCREEN_MOCKUP_JPEG_QUALITY": "jpeg_quality",
    "SCREEN_MOCKUP_PADDING_COLOR": "padding_color",
    "SCREEN_MOCKUP_TIMEOUT": "timeout_seconds",
}

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def hex_to_rgb(value: str) -> Tuple[int, int, int]:
    """'#1A2B3C' or '1a2b3c' or '#abc' → (r, g, b)."""
    match = _HEX_RE.match(value.strip())
    if not match:
        raise ValueError(f"not a hex colour: {value!r}")
    h = match.group(1)
    if len(h) == 3:
        h = h[0] * 2 + h[1] * 2 + h[2] * 2
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


class Settings(BaseModel):
    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    description_model: str = Field(
        default="gemini-2.5-flash-lite",
        description="Lite text/vision model used to locate the target screen",
    )
    composition_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Image-capable model used to render the composite",
    )
    target_dimension: int = Field(default=1024, gt=0, le=4096)
    jpeg_quality: int = Field(default=95, ge=1, le=100)
    padding_color: Tuple[int, int, int] = Field(default=(0, 0, 0))
    timeout_seconds: float = Field(default=120.0, gt=0)

    @field_validator("padding_color", mode="before")
    @classmethod
    def _parse_padding_color(cls, value):
        if isinstance(value, str):
            return hex_to_rgb(value)
        return value

    @field_validator("padding_color")
    @classmethod
    def _check_padding_color(cls, value: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if any(c < 0 or c > 255 for c in value):
            raise ValueError("padding colour channels must be within 0-255")
        return value

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment. Loads .env when reading os.environ."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        values: dict = {}
        for var in API_KEY_VARS:
            if environ.get(var):
                values["api_key"] = environ[var].strip()
                break

        for var, field_name in ENV_FIELDS.items():
            raw = environ.get(var)
            if raw is None or not raw.strip():
                continue
            try:
                cls.model_validate({**values, field_name: raw.strip()})
            except ValidationError as exc:
                msg = exc.errors()[0].get("msg", str(exc))
                raise ConfigError(f"{var}={raw!r} is invalid: {msg}") from exc
            values[field_name] = raw.strip()

        return cls.model_validate(values)
