# storage/contracts.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .layout_errors import LayoutValidationError
from .layout_types import (
    LAYOUT_TYPES,
    PROMO_KINDS,
    CategoryHeader,
    ItemList,
    LayoutConfig,
    Promotional,
)
from .theme import is_hex_color, theme_errors

"""
Contracts & validators for the **layout engine**.

Everything that writes through the persistence service is checked here first:
- category / item field rules (blank names, negative prices)
- LayoutConfig shape (layout type, columns, sections, theme tokens)

Validators return (ok, error_message) like the portal-side contracts;
stores call ensure_valid() to turn a failure into LayoutValidationError
before any mutating service call.
"""

Result = Tuple[bool, str]


# ---------------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------------

def _is_intlike(x: Any) -> bool:
    if isinstance(x, bool):
        return False
    try:
        int(x)
        return True
    except (TypeError, ValueError, OverflowError):
        return False


def ensure_valid(result: Result) -> None:
    ok, err = result
    if not ok:
        raise LayoutValidationError(err)


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------

def normalize_text(value: Any) -> Optional[str]:
    """
    Normalize an optional text field (name / description / icon).
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return str(value).strip() or None
    cleaned = value.strip()
    return cleaned or None


def normalize_price(raw: Any) -> Tuple[Optional[Decimal], Optional[str]]:
    """
    Normalize a price value into a Decimal amount of dollars.

    Accepted forms:
      - 12, 12.5, Decimal("12.50")
      - "12.50", "$12.50", "1,299.00"
      - "" / None      -> (None, None)  (no price supplied)

    Returns:
      (price | None, error_message | None)
    """
    if raw is None:
        return None, None
    if isinstance(raw, bool):
        return None, "price must be a number"
    txt = str(raw).replace("$", "").replace(",", "").strip()
    if txt == "":
        return None, None
    try:
        price = Decimal(txt)
    except InvalidOperation:
        return None, f"unable to parse price '{raw}'"
    if not price.is_finite():
        return None, f"unable to parse price '{raw}'"
    if price < 0:
        return None, "price must not be negative"
    return price, None


# ---------------------------------------------------------------------------
# Category / item fields
# ---------------------------------------------------------------------------

CATEGORY_KEYS = {"name", "description", "color", "icon", "is_active"}
ITEM_KEYS = {"name", "price", "description", "image_url", "category_id", "is_active", "menu_name", "extra"}


def validate_category_fields(fields: Dict[str, Any], *, partial: bool = False) -> Result:
    if not isinstance(fields, dict):
        return False, "category payload must be an object"
    unknown = sorted(set(fields) - CATEGORY_KEYS)
    if unknown:
        return False, f"unsupported category field(s): {', '.join(unknown)}"
    if not partial or "name" in fields:
        if not normalize_text(fields.get("name")):
            return False, "Category name is required"
    color = fields.get("color")
    if color not in (None, "") and not is_hex_color(color):
        return False, "color must be a hex color like #3b82f6"
    return True, ""


def validate_item_fields(fields: Dict[str, Any], *, partial: bool = False) -> Result:
    if not isinstance(fields, dict):
        return False, "item payload must be an object"
    unknown = sorted(set(fields) - ITEM_KEYS)
    if unknown:
        return False, f"unsupported item field(s): {', '.join(unknown)}"
    if not partial or "name" in fields:
        if not normalize_text(fields.get("name")):
            return False, "Item name is required"
    if not partial or "menu_name" in fields:
        if not normalize_text(fields.get("menu_name")):
            return False, "menu_name is required"
    if "price" in fields:
        _price, err = normalize_price(fields.get("price"))
        if err:
            return False, err
    if "extra" in fields and fields["extra"] is not None and not isinstance(fields["extra"], dict):
        return False, "extra must be an object"
    return True, ""


def validate_version_name(name: Any) -> Result:
    if not normalize_text(name):
        return False, "Version name is required"
    return True, ""


# ---------------------------------------------------------------------------
# LayoutConfig
# ---------------------------------------------------------------------------

def validate_layout_config(config: LayoutConfig) -> Result:
    """
    Full check of a LayoutConfig before it is persisted.

    Section category references are not checked against live categories:
    stale and "uncategorized" refs are legal and resolve at render time.
    """
    if not normalize_text(config.selected_menu):
        return False, "selectedMenu is required"
    if config.layout_type not in LAYOUT_TYPES:
        return False, f"layout_type must be one of: {', '.join(LAYOUT_TYPES)}"
    if not _is_intlike(config.columns) or int(config.columns) < 1:
        return False, "columns must be an integer >= 1"

    seen: set = set()
    for i, s in enumerate(config.sections):
        if not s.id:
            return False, f"sections[{i}].id is required"
        if s.id in seen:
            return False, f"duplicate section id: {s.id}"
        seen.add(s.id)
        if isinstance(s, ItemList):
            if s.layout is not None and s.layout not in LAYOUT_TYPES:
                return False, f"sections[{i}].layout must be grid, list or null"
        elif isinstance(s, Promotional):
            if s.kind not in PROMO_KINDS:
                return False, f"sections[{i}].type must be one of: {', '.join(PROMO_KINDS)}"
            for key in ("background_color", "text_color"):
                val = getattr(s.content, key)
                if val is not None and not is_hex_color(val):
                    return False, f"sections[{i}].content.{key} must be a hex color"
        elif isinstance(s, CategoryHeader):
            for key in ("background_color", "text_color"):
                val = getattr(s.content, key)
                if val is not None and not is_hex_color(val):
                    return False, f"sections[{i}].content.{key} must be a hex color"
        else:
            return False, f"sections[{i}] has an unknown type"

    errs: List[str] = theme_errors(config.theme)
    if errs:
        return False, "theme: " + "; ".join(errs)
    return True, ""


def validate_config_payload(payload: Any) -> Result:
    """
    Shape check for a wire-format config (before lenient parsing).

    Catches what the lenient parser would otherwise silently default.
    """
    if not isinstance(payload, dict):
        return False, "config must be an object"
    lt = payload.get("layout_type")
    if lt is not None and lt not in LAYOUT_TYPES:
        return False, f"layout_type must be one of: {', '.join(LAYOUT_TYPES)}"
    if "columns" in payload and (not _is_intlike(payload["columns"]) or int(payload["columns"]) < 1):
        return False, "columns must be an integer >= 1"
    sections = payload.get("sections", [])
    if not isinstance(sections, list):
        return False, "sections must be a list"
    valid_types = ("category", "items") + PROMO_KINDS
    for i, s in enumerate(sections):
        if not isinstance(s, dict):
            return False, f"sections[{i}] must be an object"
        if s.get("type") not in valid_types:
            return False, f"sections[{i}].type must be one of: {', '.join(valid_types)}"
    theme = payload.get("theme")
    if theme is not None and not isinstance(theme, dict):
        return False, "theme must be an object"
    return True, ""
