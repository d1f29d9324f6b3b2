"""
errors.py — Failure types raised by the screen mockup pipeline.

Every error carries a human-readable ``message`` suitable for showing to the
user as-is, and the ``stage`` of the pipeline it came from (if known).

  CompositeError
    ├── DecodeError          asset is not a readable image / data URL
    ├── EncodeError          Pillow could not encode the output
    ├── DescriptionError     scene description call failed or came back empty
    ├── CompositionError     image generation call failed
    ├── NoImageError         image generation succeeded but returned no image
    └── TransportError       network failure talking to Gemini
          └── AuthenticationError   missing or rejected API key
"""

from __future__ import annotations

from typing import Optional


class CompositeError(Exception):
    """Base class for every failure surfaced by the pipeline."""

    default_message = "An unknown error occurred."

    def __init__(self, message: Optional[str] = None, stage: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.stage = stage
        super().__init__(self.message)


class DecodeError(CompositeError):
    default_message = "The image could not be read. Please upload a valid image file."


class EncodeError(CompositeError):
    default_message = "The image could not be encoded."


class DescriptionError(CompositeError):
    default_message = "The AI failed to analyze the context image."


class CompositionError(CompositeError):
    default_message = "The AI failed to generate the composite image."


class NoImageError(CompositeError):
    default_message = "The AI model did not return an image. Please try again."


class TransportError(CompositeError):
    default_message = "Could not reach the image generation service."


class AuthenticationError(TransportError):
    default_message = (
        "The Gemini API key is missing or was rejected. "
        "Set GEMINI_API_KEY in your environment or .env file."
    )


class ConfigError(ValueError):
    """Raised when an environment variable holds an invalid value."""
