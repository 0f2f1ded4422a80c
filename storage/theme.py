# storage/theme.py - Theme presets + propagation into sections (Phase 11, Day 93)
"""
Theme model helpers and the propagation engine.

apply_theme_to_sections() is a pure map: it returns new section objects and
never mutates its input. The editing session (storage/layout_editor.py)
calls it right before a config is persisted so stored sections carry the
theme tokens the mobile app needs for offline rendering.
"""
from __future__ import annotations

import copy
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .layout_errors import LayoutValidationError
from .layout_types import (
    DEFAULT_FONT_FAMILY,
    THEME_COLOR_FIELDS,
    THEME_FIELDS,
    THEME_INT_FIELDS,
    CategoryHeader,
    ItemList,
    Promotional,
    Section,
    Theme,
)


# ------------------------------------------------------------
# Presets / options
# ------------------------------------------------------------
COLOR_PRESETS: Dict[str, Dict[str, str]] = {
    "Default": {"bg_color": "#f5f5f5", "card_color": "#ffffff", "text_color": "#1f2937", "primary_color": "#3b82f6"},
    "Dark":    {"bg_color": "#111827", "card_color": "#1f2937", "text_color": "#f9fafb", "primary_color": "#60a5fa"},
    "Warm":    {"bg_color": "#fef7ed", "card_color": "#ffffff", "text_color": "#92400e", "primary_color": "#f59e0b"},
    "Cool":    {"bg_color": "#f0f9ff", "card_color": "#ffffff", "text_color": "#164e63", "primary_color": "#0891b2"},
    "Nature":  {"bg_color": "#f7fee7", "card_color": "#ffffff", "text_color": "#365314", "primary_color": "#65a30d"},
    "Elegant": {"bg_color": "#faf7ff", "card_color": "#ffffff", "text_color": "#581c87", "primary_color": "#9333ea"},
}

FONT_OPTIONS: List[Dict[str, str]] = [
    {"label": "System Default", "value": DEFAULT_FONT_FAMILY},
    {"label": "Inter", "value": "Inter, sans-serif"},
    {"label": "Roboto", "value": "Roboto, sans-serif"},
    {"label": "Open Sans", "value": "Open Sans, sans-serif"},
    {"label": "Poppins", "value": "Poppins, sans-serif"},
    {"label": "Playfair Display", "value": "Playfair Display, serif"},
]

# Inclusive slider bounds for the numeric tokens
SLIDER_RANGES: Dict[str, Tuple[int, int]] = {
    "card_elevation": (0, 8),
    "border_radius": (0, 24),
    "font_size_base": (12, 24),
    "spacing_unit": (4, 16),
}

# Tokens copied into ItemList.style
ITEM_STYLE_TOKENS = (
    "card_color",
    "text_color",
    "primary_color",
    "card_elevation",
    "border_radius",
    "font_family",
    "font_size_base",
    "spacing_unit",
)

DARK_TEXT = "#1f2937"
LIGHT_TEXT = "#ffffff"

_HEX_RX = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_RX.match(value.strip()))


def _rgb(color: str) -> Optional[Tuple[int, int, int]]:
    if not is_hex_color(color):
        return None
    h = color.strip()[1:]
    if len(h) == 3:
        h = "".join(ch * 2 for ch in h)
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def relative_luminance(color: str) -> float:
    """WCAG relative luminance of a hex color; unparseable colors count as dark."""
    rgb = _rgb(color)
    if rgb is None:
        return 0.0

    def _chan(c: int) -> float:
        v = c / 255.0
        return v / 12.92 if v <= 0.03928 else ((v + 0.055) / 1.055) ** 2.4

    r, g, b = (_chan(c) for c in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_text_color(background: str) -> str:
    """White text on dark backgrounds, dark gray on light ones."""
    # White is kept while it still reaches 3:1, the large/bold text threshold
    white_ratio = 1.05 / (relative_luminance(background) + 0.05)
    return LIGHT_TEXT if white_ratio >= 3.0 else DARK_TEXT


def clamp_token(field_name: str, value: Any) -> int:
    lo, hi = SLIDER_RANGES[field_name]
    try:
        n = int(value)
    except (TypeError, ValueError, OverflowError):
        raise LayoutValidationError(f"{field_name} must be an integer")
    return max(lo, min(hi, n))


def preset_names() -> List[str]:
    return list(COLOR_PRESETS.keys())


def apply_preset(theme: Theme, name: str) -> Theme:
    """Swap in a preset's colors; non-color tokens are kept."""
    preset = COLOR_PRESETS.get(name)
    if preset is None:
        raise LayoutValidationError(f"Unknown theme preset: {name}")
    return replace(theme, **preset)


def with_field(theme: Theme, field_name: str, value: Any) -> Theme:
    """Return a copy of theme with one token changed (no clamping)."""
    if field_name not in THEME_FIELDS:
        raise LayoutValidationError(f"Unknown theme field: {field_name}")
    if field_name in THEME_INT_FIELDS:
        try:
            value = int(value)
        except (TypeError, ValueError, OverflowError):
            raise LayoutValidationError(f"{field_name} must be an integer")
    else:
        value = "" if value is None else str(value)
    return replace(theme, **{field_name: value})


def theme_errors(theme: Theme) -> List[str]:
    """Human-readable problems with a theme; empty list means valid."""
    errs: List[str] = []
    for name in THEME_COLOR_FIELDS:
        if not is_hex_color(getattr(theme, name)):
            errs.append(f"{name} must be a hex color like #1f2937")
    for name in THEME_INT_FIELDS:
        v = getattr(theme, name)
        if not isinstance(v, int) or v < 0:
            errs.append(f"{name} must be a non-negative integer")
    if not (theme.font_family or "").strip():
        errs.append("font_family is required")
    return errs


# ------------------------------------------------------------
# Propagation
# ------------------------------------------------------------
def item_style_from_theme(theme: Theme) -> Dict[str, Any]:
    return {k: getattr(theme, k) for k in ITEM_STYLE_TOKENS}


def apply_theme_to_section(section: Section, theme: Theme, *, retheme_promotional: bool = False) -> Section:
    if isinstance(section, CategoryHeader):
        content = replace(
            section.content,
            background_color=theme.primary_color,
            text_color=contrast_text_color(theme.primary_color),
            border_radius=theme.border_radius,
            font_family=theme.font_family,
        )
        return replace(section, content=content)

    if isinstance(section, ItemList):
        return replace(section, style=item_style_from_theme(theme))

    if isinstance(section, Promotional):
        changes: Dict[str, Any] = {"font_family": theme.font_family}
        if retheme_promotional:
            changes["background_color"] = theme.primary_color
            changes["text_color"] = contrast_text_color(theme.primary_color)
        return replace(section, content=replace(section.content, **changes))

    return copy.deepcopy(section)


def apply_theme_to_sections(
    sections: Sequence[Section],
    theme: Theme,
    *,
    retheme_promotional: bool = False,
) -> List[Section]:
    return [
        apply_theme_to_section(s, theme, retheme_promotional=retheme_promotional)
        for s in sections
    ]
