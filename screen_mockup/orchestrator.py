"""
orchestrator.py — Two-call Gemini pipeline that puts a design on a screen.

Stages (strictly sequential, no retries):
  1. measure    original (w, h) of the context photo, the only crop reference
  2. normalize  letterbox design + context into the same square
  3. describe   lite vision model → one paragraph locating the target screen
  4. compose    image model ← design, context, prompt built from step 3
  5. finalize   crop the square result back to the context's aspect ratio

Any failure ends the run with a CompositeError subclass; nothing from a
failed run is kept.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from .assets import ImageAsset, to_data_url
from .config import Settings
from .errors import (
    AuthenticationError,
    CompositeError,
    CompositionError,
    DescriptionError,
    NoImageError,
    TransportError,
)
from .geometry import crop_from_square, measure_dimensions, pad_to_square
from .prompts import DESCRIPTION_PROMPT, build_composition_prompt

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

AUTH_STATUS_CODES = {401, 403}
AUTH_MARKERS = ("API_KEY_INVALID", "API KEY NOT VALID", "UNAUTHENTICATED", "PERMISSION_DENIED")


class Stage(str, Enum):
    SETUP = "setup"
    MEASURE = "measure"
    NORMALIZE = "normalize"
    DESCRIBE = "describe"
    COMPOSE = "compose"
    FINALIZE = "finalize"


STAGE_MESSAGES = {
    Stage.MEASURE:   "Measuring the context photo...",
    Stage.NORMALIZE: "Analyzing your design...",
    Stage.DESCRIBE:  "Scanning the context for the best screen...",
    Stage.COMPOSE:   "Generating photorealistic view...",
    Stage.FINALIZE:  "Assembling the final context...",
}


@dataclass
class CompositeResult:
    image: ImageAsset                   # final, original aspect ratio
    description: str                    # semantic location of the target screen
    original_size: Tuple[int, int]
    design_square: ImageAsset
    context_square: ImageAsset
    generated_square: ImageAsset        # raw model output before cropping
    elapsed_seconds: float = 0.0

    @property
    def data_url(self) -> str:
        return to_data_url(self.image)


# ── Gemini error mapping ──────────────────────────────────────────────────────

def _is_auth_failure(exc: genai_errors.APIError) -> bool:
    if exc.code in AUTH_STATUS_CODES:
        return True
    text = f"{exc.status or ''} {exc.message or ''}".upper()
    return any(marker in text for marker in AUTH_MARKERS)


def _translate_api_error(
    exc: Exception,
    stage: Stage,
    fallback: type,
) -> CompositeError:
    """Map a google-genai / httpx exception onto the pipeline's error types."""
    if isinstance(exc, genai_errors.APIError):
        if _is_auth_failure(exc):
            return AuthenticationError(stage=stage.value)
        if exc.code == 429 or isinstance(exc, genai_errors.ServerError):
            status = " ".join(str(s) for s in (exc.code, exc.status) if s)
            return TransportError(
                f"Gemini is unavailable right now ({status}). Please try again later.",
                stage=stage.value,
            )
        detail = exc.message or exc.status or str(exc.code)
        return fallback(f"{fallback.default_message} ({detail})", stage=stage.value)
    if isinstance(exc, httpx.HTTPError):
        return TransportError(f"Could not reach Gemini: {exc}", stage=stage.value)
    return fallback(f"{fallback.default_message} ({exc})", stage=stage.value)


# ── Response parsing ──────────────────────────────────────────────────────────

def extract_inline_image(response, name: str = "") -> Optional[ImageAsset]:
    """First inline image part across all candidates, or None."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if not inline or not inline.data:
                continue
            data = inline.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            return ImageAsset(data=data, mime_type=inline.mime_type or "image/png", name=name)
    return None


def _no_image_reason(response) -> Optional[str]:
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback else None
    if block_reason:
        return f"blocked: {getattr(block_reason, 'value', block_reason)}"
    for candidate in getattr(response, "candidates", None) or []:
        finish = getattr(candidate, "finish_reason", None)
        if finish and getattr(finish, "value", finish) != "STOP":
            return f"finish reason: {getattr(finish, 'value', finish)}"
    text = getattr(response, "text", None)
    if text:
        return f"model replied with text only: {text.strip()[:200]}"
    return None


def _image_part(asset: ImageAsset) -> genai_types.Part:
    return genai_types.Part.from_bytes(data=asset.data, mime_type=asset.mime_type)


# ── Orchestrator ──────────────────────────────────────────────────────────────

class CompositeOrchestrator:
    """Runs the screen-replacement pipeline against Gemini."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[genai.Client] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._client = client
        self.on_progress = on_progress

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.settings.api_key:
                raise AuthenticationError(stage=Stage.SETUP.value)
            self._client = genai.Client(
                api_key=self.settings.api_key,
                http_options=genai_types.HttpOptions(timeout=self.settings.timeout_ms),
            )
        return self._client

    def _progress(self, stage: Stage) -> None:
        message = STAGE_MESSAGES.get(stage)
        logger.info("[%s] %s", stage.value, message)
        if self.on_progress and message:
            try:
                self.on_progress(message)
            except Exception:
                logger.debug("Progress callback failed", exc_info=True)

    # ── Public entry point ────────────────────────────────────────────────────

    def generate(
        self,
        design: ImageAsset,
        design_label: str,
        context: ImageAsset,
        context_label: str,
    ) -> CompositeResult:
        """
        Composite ``design`` onto the most prominent screen in ``context``.

        Args:
            design:        Image to show on the screen.
            design_label:  Display name of the design (logs only).
            context:       Photo containing the target screen.
            context_label: Display name of the context; names the output.

        Returns a CompositeResult whose image has the context's aspect ratio.
        Raises a CompositeError subclass on any failure.
        """
        start = time.time()
        stage = Stage.SETUP
        target = self.settings.target_dimension
        quality = self.settings.jpeg_quality
        logger.info("Compositing design '%s' into context '%s'", design_label, context_label)

        try:
            client = self.client

            stage = Stage.MEASURE
            self._progress(stage)
            original_w, original_h = measure_dimensions(context)
            logger.info("Context is %dx%d", original_w, original_h)

            stage = Stage.NORMALIZE
            self._progress(stage)
            design_square = pad_to_square(
                design, target, quality=quality, background=self.settings.padding_color
            )
            context_square = pad_to_square(
                context, target, quality=quality, background=self.settings.padding_color
            )

            stage = Stage.DESCRIBE
            self._progress(stage)
            description = self._describe(client, context_square)

            stage = Stage.COMPOSE
            self._progress(stage)
            generated = self._compose(client, design_square, context_square, description)

            stage = Stage.FINALIZE
            self._progress(stage)
            cropped = crop_from_square(
                generated, original_w, original_h, target,
                quality=quality, background=self.settings.padding_color,
            )

        except CompositeError as exc:
            if exc.stage is None:
                exc.stage = stage.value
            logger.error("Composite failed at %s: %s", exc.stage, exc.message)
            raise
        except Exception as exc:
            logger.exception("Unexpected failure at %s", stage.value)
            raise CompositeError(f"An unknown error occurred: {exc}", stage=stage.value) from exc

        final = ImageAsset(
            data=cropped.data,
            mime_type=cropped.mime_type,
            name=f"{Path(context_label or 'context').stem}_composite.jpg",
            width=cropped.width,
            height=cropped.height,
        )
        elapsed = time.time() - start
        logger.info("Composite ready: %dx%d in %.1fs", final.width, final.height, elapsed)
        return CompositeResult(
            image=final,
            description=description,
            original_size=(original_w, original_h),
            design_square=design_square,
            context_square=context_square,
            generated_square=generated,
            elapsed_seconds=elapsed,
        )

    # ── Stages ────────────────────────────────────────────────────────────────

    def _describe(self, client: genai.Client, context_square: ImageAsset) -> str:
        try:
            response = client.models.generate_content(
                model=self.settings.description_model,
                contents=[
                    genai_types.Part.from_text(text=DESCRIPTION_PROMPT),
                    _image_part(context_square),
                ],
            )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise _translate_api_error(exc, Stage.DESCRIBE, DescriptionError) from exc

        description = (getattr(response, "text", None) or "").strip()
        if not description:
            raise DescriptionError(
                "The AI failed to analyze the context image (empty description).",
                stage=Stage.DESCRIBE.value,
            )
        logger.info("Generated description: %s", description)
        return description

    def _compose(
        self,
        client: genai.Client,
        design_square: ImageAsset,
        context_square: ImageAsset,
        description: str,
    ) -> ImageAsset:
        prompt = build_composition_prompt(description, self.settings.padding_color)
        try:
            response = client.models.generate_content(
                model=self.settings.composition_model,
                contents=[
                    _image_part(design_square),
                    _image_part(context_square),
                    genai_types.Part.from_text(text=prompt),
                ],
                config=genai_types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                ),
            )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise _translate_api_error(exc, Stage.COMPOSE, CompositionError) from exc

        generated = extract_inline_image(response)
        if generated is None:
            reason = _no_image_reason(response)
            logger.error("Model response did not contain an image part (%s)", reason or "no reason given")
            message = NoImageError.default_message
            if reason:
                message = f"{message} ({reason})"
            raise NoImageError(message, stage=Stage.COMPOSE.value)

        logger.info("Received image data (%s), %d bytes", generated.mime_type, len(generated.data))
        return replace(generated, name=f"generated{generated.extension}")


def generate_composite(
    design: ImageAsset,
    design_label: str,
    context: ImageAsset,
    context_label: str,
    settings: Optional[Settings] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> CompositeResult:
    """One-shot helper: build a default orchestrator and run it."""
    orchestrator = CompositeOrchestrator(settings=settings, on_progress=on_progress)
    return orchestrator.generate(design, design_label, context, context_label)
