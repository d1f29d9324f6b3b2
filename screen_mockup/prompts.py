"""
prompts.py — Fixed prompts for the two Gemini calls.

  DESCRIPTION_PROMPT         → lite vision model, locates the target screen
  build_composition_prompt() → image model, renders the design onto it
"""

from __future__ import annotations

from typing import Tuple

DESCRIPTION_PROMPT = """\
You are an expert scene analyst. I will provide you with an image of a scene.
Your task is to identify the single most prominent monitor, television, or video wall screen in the entire image.
Provide a dense, semantic description of this specific screen and its location. This description will be used to guide another AI to replace the content on the screen.

Example descriptions:
- "The target is the screen of the black television on the wooden media console, to the left of the white vase."
- "The target is the laptop screen on the desk, which is positioned next to a stack of books and a silver lamp."
- "The target is the large computer monitor with a silver stand in the center of the image."

If you cannot find a suitable screen, as a fallback, describe the most prominent and suitable flat surface for displaying a design.

Provide only the description in a few sentences.
"""

COMPOSITION_TEMPLATE = """\
**Role:**
You are a visual composition expert. Your task is to take a 'design' image and display it on the screen of a monitor/television within a 'context' image. You must completely replace the original content of this screen with the design image.

**Specifications:**
-   **Design to display:**
    The first image provided. This is the image that should appear on the monitor screen. Ignore any {padding} padding around it.
-   **Context to use:**
    The second image provided. This is the context containing the monitor. Ignore any {padding} padding around it.
-   **Target Screen (Crucial):**
    -   You must locate the specific screen in the context as described below. This is the screen whose content you will replace.
    -   **Screen Description:** "{description}"
-   **Final Image Requirements:**
    -   The design image must be realistically displayed on the target screen.
    -   Adjust the design image to match the screen's perspective, aspect ratio, and orientation. The design should fill the screen.
    -   The design image must fill the entire screen, completely covering all of its original content.
    -   The final image's overall style, lighting, shadows, and camera perspective must match the original context. The design on the screen should be affected by the context's lighting, including reflections or glare on the screen surface.
    -   Do not simply paste the design. It must look like it is genuinely being displayed on the monitor.
    -   You must not return the original context image without the design displayed on the monitor.
    -   Keep the {padding} padding around the context exactly where it is; do not paint into it.

The output should ONLY be the final, composed image. Do not add any text or explanation.
"""


COLOUR_NAMES = {
    (0, 0, 0): "black",
    (255, 255, 255): "white",
}


def padding_name(rgb: Tuple[int, int, int]) -> str:
    """Plain name for the letterbox colour: 'black', 'white' or 'solid #rrggbb'."""
    rgb = tuple(rgb)
    if rgb in COLOUR_NAMES:
        return COLOUR_NAMES[rgb]
    return "solid #{:02x}{:02x}{:02x}".format(*rgb)


def build_composition_prompt(
    description: str,
    padding_color: Tuple[int, int, int] = (0, 0, 0),
) -> str:
    # Straight quotes would close the quoted description early.
    safe = description.strip().replace('"', "'")
    return COMPOSITION_TEMPLATE.format(description=safe, padding=padding_name(padding_color))
