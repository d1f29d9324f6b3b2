"""
session.py — Per-chat upload state for the Telegram conversation.

Holds where the uploaded context and design images were saved and the
names they should be reported under. Everything lives in one temp
directory so a reset can drop it in one go.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ComposeSession:
    """Uploads collected so far in one chat."""

    context_path: Optional[Path] = None
    context_label: str = ""
    design_path: Optional[Path] = None
    design_label: str = ""
    temp_dir: Optional[Path] = field(default=None, repr=False)

    def workdir(self) -> Path:
        if self.temp_dir is None:
            self.temp_dir = Path(tempfile.mkdtemp(prefix="screen_mockup_"))
        return self.temp_dir

    def upload_path(self, role: str, filename: str) -> Path:
        """Destination for an upload. Role is 'context' or 'design'."""
        suffix = Path(filename or "").suffix.lower() or ".jpg"
        return self.workdir() / f"{role}{suffix}"

    def set_context(self, path: Path, label: str) -> None:
        self.context_path = path
        self.context_label = label or path.name

    def set_design(self, path: Path, label: str) -> None:
        self.design_path = path
        self.design_label = label or path.name

    def is_ready(self) -> bool:
        return bool(
            self.context_path and self.context_path.exists()
            and self.design_path and self.design_path.exists()
        )

    def summary(self) -> str:
        return (
            f"Context: {self.context_label or '—'}\n"
            f"Design:  {self.design_label or '—'}"
        )

    def cleanup(self) -> None:
        """Delete uploaded files and forget them."""
        if self.temp_dir is not None:
            shutil.rmtree(self.temp_dir, ignore_errors=True)
        self.temp_dir = None
        self.context_path = None
        self.context_label = ""
        self.design_path = None
        self.design_label = ""
