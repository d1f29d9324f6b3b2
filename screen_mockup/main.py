"""
Screen Mockup Generator — command line

Usage:
  python -m screen_mockup.main --design designs/poster.png --context photos/living_room.jpg
  python -m screen_mockup.main --design d.png --context c.jpg --output out/result.jpg
  python -m screen_mockup.main --design d.png --context c.jpg --keep-intermediates --verbose
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule

from .assets import ImageAsset
from .config import Settings
from .errors import AuthenticationError, CompositeError, ConfigError
from .orchestrator import CompositeOrchestrator, CompositeResult

console = Console()

OUTPUTS_ROOT = Path("outputs")
LOG_FORMAT = "%(asctime)s — %(levelname)s — %(name)s — %(message)s"


# ── CLI ───────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Screen Mockup Generator — put a design on the screen in a photo"
    )
    parser.add_argument("--design", required=True, help="Image to display on the screen")
    parser.add_argument("--context", required=True, help="Photo of a room containing a screen")
    parser.add_argument(
        "--output",
        default=None,
        help="Where to write the JPEG (default: outputs/<timestamp>/composite.jpg)",
    )
    parser.add_argument(
        "--target",
        type=int,
        default=None,
        help="Square size sent to the model, px (default: SCREEN_MOCKUP_TARGET_DIMENSION or 1024)",
    )
    parser.add_argument(
        "--keep-intermediates",
        action="store_true",
        help="Also save the padded inputs, the raw square result and the screen description",
    )
    parser.add_argument(
        "--print-data-url",
        action="store_true",
        help="Print the final image as a data: URL on stdout",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every pipeline stage")
    return parser.parse_args(argv)


# ── Output helpers ────────────────────────────────────────────────────────────

def save_intermediates(result: CompositeResult, output_dir: Path) -> List[Path]:
    """Write padded inputs, the raw model square and the description next to the output."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for stem, asset in (
        ("design_square", result.design_square),
        ("context_square", result.context_square),
        ("generated_square", result.generated_square),
    ):
        path = output_dir / f"{stem}{asset.extension}"
        path.write_bytes(asset.data)
        written.append(path)
    desc_path = output_dir / "description.txt"
    desc_path.write_text(result.description + "\n", encoding="utf-8")
    written.append(desc_path)
    return written


def _resolve_output(arg: Optional[str]) -> Path:
    if arg:
        return Path(arg)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return OUTPUTS_ROOT / timestamp / "composite.jpg"


# ── Main ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.INFO if args.verbose else logging.WARNING,
    )

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return 1
    if args.target is not None:
        if args.target <= 0:
            console.print("[bold red]Error:[/bold red] --target must be a positive number of pixels.")
            return 1
        settings = settings.model_copy(update={"target_dimension": args.target})

    output_path = _resolve_output(args.output)

    console.print(Rule("[bold magenta]Screen Mockup Generator[/bold magenta]"))
    console.print(
        f"  Design: [bold]{args.design}[/bold]  |  "
        f"Context: [bold]{args.context}[/bold]  |  "
        f"Square: [bold]{settings.target_dimension}px[/bold]"
    )

    orchestrator = CompositeOrchestrator(
        settings=settings,
        on_progress=lambda msg: console.print(f"  [cyan]→[/cyan] {msg}"),
    )

    t0 = time.time()
    try:
        design = ImageAsset.from_path(args.design)
        context = ImageAsset.from_path(args.context)
        result = orchestrator.generate(design, design.name, context, context.name)
    except AuthenticationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        console.print("Create a .env file with GEMINI_API_KEY=... or export it.")
        return 1
    except CompositeError as exc:
        stage = f" [dim]({exc.stage})[/dim]" if exc.stage else ""
        console.print(f"[bold red]Failed to generate the image.[/bold red] {exc.message}{stage}")
        return 1

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.image.data)

    if args.keep_intermediates:
        for path in save_intermediates(result, output_path.parent):
            console.print(f"  [dim]Saved → {path}[/dim]")

    console.print(
        Panel(
            f"[italic]{result.description}[/italic]\n\n"
            f"{result.image.width}×{result.image.height}px "
            f"(context was {result.original_size[0]}×{result.original_size[1]}) "
            f"in [bold]{time.time() - t0:.0f}s[/bold]\n"
            f"Saved to: [bold]{output_path}[/bold]",
            title="[bold green]Composite ready[/bold green]",
            border_style="green",
        )
    )

    if args.print_data_url:
        print(result.data_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
