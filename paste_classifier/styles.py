"""Default rendering descriptors per label.

The classifier never reads these; they are attached to blocks when a
caller asks for them so a renderer without its own style table can lay
the screenplay out (right-to-left, centred cues and dialogue column).
"""

from __future__ import annotations

from typing import Any

DEFAULT_FONT = "AzarMehrMonospaced-San"
DEFAULT_SIZE = "12pt"

_BASE_STYLE: dict[str, Any] = {
    "direction": "rtl",
    "line_height": "14pt",
    "margin_bottom": "2pt",
    "min_height": "14pt",
}

_LABEL_STYLES: dict[str, dict[str, Any]] = {
    "basmala": {
        "text_align": "left",
        "direction": "ltr",
        "width": "100%",
        "font_weight": "normal",
        "font_size": "16pt",
        "margin": "12px 0 24px 0",
    },
    "scene-header-top-line": {
        "display": "flex",
        "justify_content": "space-between",
        "align_items": "baseline",
        "width": "100%",
    },
    "scene-header-1": {"font_weight": "bold", "text_transform": "uppercase"},
    "scene-header-2": {"flex": "0 0 auto"},
    "scene-header-3": {"text_align": "center"},
    "action": {"text_align": "right", "width": "100%", "margin": "0"},
    "character": {"text_align": "center", "margin": "0 auto"},
    "parenthetical": {"text_align": "center", "margin": "0 auto"},
    "dialogue": {"width": "2.5in", "text_align": "center", "margin": "0 auto"},
    "transition": {"text_align": "center", "margin": "0 auto"},
}


def get_format_styles(label: str, size: str = DEFAULT_SIZE, font: str = DEFAULT_FONT) -> dict[str, Any]:
    style = {"font_family": font, "font_size": size, **_BASE_STYLE}
    style.update(_LABEL_STYLES.get(label, {}))
    return style
