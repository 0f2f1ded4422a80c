# storage/sections.py - Section document operations (Phase 11, Day 94)
"""
Building and editing the ordered section list of a LayoutConfig.

Every function here returns a new list; callers replace config.sections
with the result. Promotional sections are owned by the user and survive
regeneration untouched, in their original order, after the generated
category header / item list pairs.
"""
from __future__ import annotations

import copy
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .category_resolution import group_items_by_effective_category
from .layout_errors import LayoutValidationError, NotFoundError
from .layout_types import (
    LAYOUT_TYPES,
    PROMO_KINDS,
    CatalogItem,
    Category,
    CategoryHeader,
    HeaderContent,
    ItemList,
    PromoContent,
    Promotional,
    Section,
    Theme,
    ref_str,
    section_type,
)
from .theme import item_style_from_theme


# ------------------------------------------------------------
# Promotional defaults / templates
# ------------------------------------------------------------
PROMO_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "ad": {
        "text": "Your Advertisement Here",
        "subtitle": "Promote your business",
        "background_color": "#10b981",
        "text_color": "#ffffff",
        "font_size": 16,
        "font_weight": "bold",
        "border_radius": 8,
        "padding": 16,
        "alignment": "center",
    },
    "promotion": {
        "text": "20% OFF TODAY ONLY",
        "subtitle": "Limited time offer",
        "background_color": "#f59e0b",
        "text_color": "#ffffff",
        "font_size": 18,
        "font_weight": "bold",
        "border_radius": 12,
        "padding": 20,
        "alignment": "center",
    },
    "special": {
        "text": "DAILY SPECIAL",
        "subtitle": "Today's featured item",
        "background_color": "#8b5cf6",
        "text_color": "#ffffff",
        "font_size": 16,
        "font_weight": "bold",
        "border_radius": 8,
        "padding": 16,
        "alignment": "center",
    },
}

PROMO_LABELS = {"ad": "Advertisement", "promotion": "Special Offer", "special": "Daily Special"}

CONTENT_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "20% Off Sale": {
        "text": "20% OFF TODAY ONLY",
        "subtitle": "Use code: SAVE20",
        "background_color": "#ef4444",
        "text_color": "#ffffff",
        "font_size": 18,
        "font_weight": "bold",
        "border_radius": 12,
        "padding": 20,
        "alignment": "center",
    },
    "New Item Alert": {
        "text": "NEW ITEM ALERT",
        "subtitle": "Check out our latest addition",
        "background_color": "#10b981",
        "text_color": "#ffffff",
        "font_size": 16,
        "font_weight": "bold",
        "border_radius": 8,
        "padding": 16,
        "alignment": "center",
    },
    "Daily Special": {
        "text": "TODAY'S SPECIAL",
        "subtitle": "Limited availability",
        "background_color": "#8b5cf6",
        "text_color": "#ffffff",
        "font_size": 16,
        "font_weight": "bold",
        "border_radius": 8,
        "padding": 16,
        "alignment": "center",
    },
}

_PROMO_FIELDS = {f.name for f in fields(PromoContent)}
_HEADER_FIELDS = {f.name for f in fields(HeaderContent)}


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _index_of(sections: Sequence[Section], section_id: str) -> int:
    for i, s in enumerate(sections):
        if s.id == section_id:
            return i
    raise NotFoundError(f"Section not found: {section_id}")


def new_section_id(kind: str, sections: Sequence[Section]) -> str:
    taken = {s.id for s in sections}
    n = 1
    while f"{kind}-{n}" in taken:
        n += 1
    return f"{kind}-{n}"


def promotional_sections(sections: Iterable[Section]) -> List[Promotional]:
    return [s for s in sections if isinstance(s, Promotional)]


# ------------------------------------------------------------
# Generation
# ------------------------------------------------------------
def generate_category_sections(
    categories: Sequence[Category],
    items: Sequence[CatalogItem],
    selected_menu: str,
    layout_type: str,
    theme: Theme,
    existing: Sequence[Section] = (),
) -> List[Section]:
    """
    One header + item list per effective category that has active items in
    selected_menu, followed by the promotional sections of ``existing``.

    Items with no live category (no categories at all) get no generated
    section; the renderer's fallback path shows them under "Other Items".
    """
    if layout_type not in LAYOUT_TYPES:
        raise LayoutValidationError(f"layout_type must be one of {', '.join(LAYOUT_TYPES)}")

    menu_items = [it for it in items if it.is_active and it.menu_name == selected_menu]
    out: List[Section] = []
    for cat, _group in group_items_by_effective_category(menu_items, categories):
        if cat is None:
            continue
        out.append(CategoryHeader(
            id=f"category-{cat.id}",
            category_id=cat.id,
            content=HeaderContent(
                text=cat.name,
                background_color=cat.color or theme.primary_color,
                text_color="#ffffff",
                font_size=18,
                font_weight="bold",
                alignment="left",
                border_radius=theme.border_radius,
                padding=12,
            ),
        ))
        out.append(ItemList(
            id=f"items-{cat.id}",
            category_id=cat.id,
            layout=layout_type,
            style=item_style_from_theme(theme),
        ))

    out.extend(copy.deepcopy(promotional_sections(existing)))
    return out


# ------------------------------------------------------------
# Editing
# ------------------------------------------------------------
def make_promotional(
    kind: str,
    sections: Sequence[Section] = (),
    template: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Promotional:
    if kind not in PROMO_KINDS:
        raise LayoutValidationError(f"Unknown promotional kind: {kind}")
    content = dict(PROMO_DEFAULTS[kind])
    if template is not None:
        if template not in CONTENT_TEMPLATES:
            raise LayoutValidationError(f"Unknown content template: {template}")
        content.update(CONTENT_TEMPLATES[template])
    for k, v in (overrides or {}).items():
        if k in _PROMO_FIELDS:
            content[k] = v
    return Promotional(id=new_section_id(kind, sections), kind=kind, content=PromoContent(**content))


def add_promotional(
    sections: Sequence[Section],
    kind: str,
    template: Optional[str] = None,
    *,
    index: Optional[int] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> List[Section]:
    section = make_promotional(kind, sections, template, overrides)
    out = list(sections)
    if index is None or index >= len(out):
        out.append(section)
    else:
        out.insert(max(0, index), section)
    return out


def update_section(sections: Sequence[Section], section_id: str, changes: Dict[str, Any]) -> List[Section]:
    """
    Apply ``changes`` to one section.

    Content fields (text, colors, font_size...) go to the header/promo
    content; ``category_id`` retargets headers and item lists; ``layout`` and
    ``style`` apply to item lists. Unknown keys are rejected.
    """
    idx = _index_of(sections, section_id)
    s = sections[idx]
    changes = dict(changes or {})

    if isinstance(s, ItemList):
        kw: Dict[str, Any] = {}
        if "category_id" in changes:
            kw["category_id"] = ref_str(changes.pop("category_id")) or s.category_id
        if "layout" in changes:
            layout = changes.pop("layout")
            if layout is not None and layout not in LAYOUT_TYPES:
                raise LayoutValidationError(f"layout must be one of {', '.join(LAYOUT_TYPES)}")
            kw["layout"] = layout
        if "style" in changes:
            style = changes.pop("style")
            kw["style"] = dict(style) if isinstance(style, dict) else {}
        updated: Section = replace(s, **kw)
    elif isinstance(s, CategoryHeader):
        kw = {}
        if "category_id" in changes:
            kw["category_id"] = ref_str(changes.pop("category_id")) or s.category_id
        content_changes = {k: changes.pop(k) for k in list(changes) if k in _HEADER_FIELDS}
        updated = replace(s, content=replace(s.content, **content_changes), **kw)
    else:
        content_changes = {k: changes.pop(k) for k in list(changes) if k in _PROMO_FIELDS}
        updated = replace(s, content=replace(s.content, **content_changes))

    if changes:
        raise LayoutValidationError(
            f"Unsupported field(s) for {section_type(s)} section: {', '.join(sorted(changes))}"
        )

    out = list(sections)
    out[idx] = updated
    return out


def remove_section(sections: Sequence[Section], section_id: str) -> List[Section]:
    idx = _index_of(sections, section_id)
    return [s for i, s in enumerate(sections) if i != idx]


def move_section(sections: Sequence[Section], section_id: str, direction: str) -> List[Section]:
    """Swap with the neighbour above/below; moves past either end are no-ops."""
    if direction not in ("up", "down"):
        raise LayoutValidationError("direction must be 'up' or 'down'")
    idx = _index_of(sections, section_id)
    target = idx - 1 if direction == "up" else idx + 1
    out = list(sections)
    if 0 <= target < len(out):
        out[idx], out[target] = out[target], out[idx]
    return out


def set_item_list_layouts(sections: Sequence[Section], layout_type: str) -> List[Section]:
    return [replace(s, layout=layout_type) if isinstance(s, ItemList) else s for s in sections]
