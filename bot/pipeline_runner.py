"""
pipeline_runner.py — Runs the composite pipeline for the Telegram bot.

The orchestrator blocks on two Gemini calls, so it runs in the default
thread pool and the bot stays responsive. Progress messages are passed
back through a sync callback called from the worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from screen_mockup.assets import ImageAsset
from screen_mockup.config import Settings
from screen_mockup.errors import CompositeError
from screen_mockup.orchestrator import CompositeOrchestrator

logger = logging.getLogger(__name__)


# ── Result model ──────────────────────────────────────────────────────────────

@dataclass
class RunResult:
    """Outcome of one generate request."""
    success: bool
    image: Optional[ImageAsset] = None
    description: str = ""
    error: str = ""
    stage: str = ""
    elapsed_seconds: float = 0.0


# ── Progress callback type ────────────────────────────────────────────────────

ProgressCallback = Callable[[str], None]   # sync, called from worker thread

OrchestratorFactory = Callable[[Optional[ProgressCallback]], CompositeOrchestrator]


# ── Runner ────────────────────────────────────────────────────────────────────

class CompositeRunner:
    """Wraps CompositeOrchestrator for async callers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        orchestrator_factory: Optional[OrchestratorFactory] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._factory = orchestrator_factory or self._default_factory

    def _default_factory(self, on_progress: Optional[ProgressCallback]) -> CompositeOrchestrator:
        return CompositeOrchestrator(settings=self.settings, on_progress=on_progress)

    async def run(
        self,
        design_path: Path,
        design_label: str,
        context_path: Path,
        context_label: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RunResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._run_sync,
            design_path,
            design_label,
            context_path,
            context_label,
            on_progress,
        )

    def _run_sync(
        self,
        design_path: Path,
        design_label: str,
        context_path: Path,
        context_label: str,
        on_progress: Optional[ProgressCallback],
    ) -> RunResult:
        start = time.time()
        try:
            design = ImageAsset.from_path(design_path)
            context = ImageAsset.from_path(context_path)
            orchestrator = self._factory(on_progress)
            result = orchestrator.generate(design, design_label, context, context_label)
        except CompositeError as exc:
            logger.warning("Generation failed at %s: %s", exc.stage, exc.message)
            return RunResult(
                success=False,
                error=exc.message,
                stage=exc.stage or "",
                elapsed_seconds=time.time() - start,
            )

        return RunResult(
            success=True,
            image=result.image,
            description=result.description,
            elapsed_seconds=time.time() - start,
        )
