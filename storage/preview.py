# storage/preview.py - Mobile preview renderer (Phase 11, Day 94)
"""
Pure renderer: (LayoutConfig, items, categories[, business]) -> node tree.

Nodes are plain dicts shaped {"type": str, "props": dict, "children": list}
so the portal can return them as JSON and tests can walk them.

Two paths:
  - sectioned: config.sections is non-empty; sections render in order
  - fallback:  no sections; one category_block per effective category

Both paths assign items through storage/category_resolution.py, so an item
lands under the same category either way. The renderer never raises on
malformed item data; a bad price shows as $0.00 and a missing image gets a
placeholder node.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .category_resolution import (
    OTHER_ITEMS_LABEL,
    group_items_by_effective_category,
    live_categories,
    parse_category_ref,
    resolve_category,
)
from .layout_types import (
    BusinessInfo,
    CatalogItem,
    Category,
    CategoryHeader,
    ItemList,
    LayoutConfig,
    Promotional,
    Theme,
    to_decimal,
)

Node = Dict[str, Any]

HEADER_TEXT_COLOR = "#ffffff"
PROMO_TEXT_COLOR = "#ffffff"
MAX_GRID_COLUMNS = 2  # phone width


# ------------------------------------------------------------
# Node helpers
# ------------------------------------------------------------
def _node(type_: str, props: Optional[Dict[str, Any]] = None, children: Optional[List[Node]] = None) -> Node:
    return {"type": type_, "props": props or {}, "children": children or []}


def format_price(value: Any) -> str:
    return f"${to_decimal(value):.2f}"


def _box_shadow(elevation: int) -> str:
    return f"0 {elevation}px {elevation * 2}px rgba(0,0,0,0.1)"


def _card(item: CatalogItem, theme: Theme, category_id: Optional[str]) -> Node:
    data = item.data
    image_url = (data.image_url or "").strip() if isinstance(data.image_url, str) else ""
    if image_url:
        media = _node("image", {"src": image_url, "alt": data.name or ""})
    else:
        media = _node("image_placeholder", {"label": "IMG"})
    return _node(
        "item_card",
        {
            "item_id": item.id,
            "category_id": category_id,
            "name": data.name or "",
            "description": data.description or "",
            "price": format_price(data.price),
            "card_color": theme.card_color,
            "text_color": theme.text_color,
            "price_color": theme.primary_color,
            "border_radius": theme.border_radius,
            "box_shadow": _box_shadow(theme.card_elevation),
            "font_family": theme.font_family,
            "font_size": theme.font_size_base,
        },
        [media],
    )


def _items_node(
    items: Sequence[CatalogItem],
    layout: str,
    columns: int,
    theme: Theme,
    category_id: Optional[str],
) -> Node:
    cards = [_card(it, theme, category_id) for it in items]
    if layout == "grid":
        per_row = max(1, min(columns, MAX_GRID_COLUMNS))
        rows = [
            _node("row", {"columns": per_row}, cards[i:i + per_row])
            for i in range(0, len(cards), per_row)
        ]
        return _node(
            "item_grid",
            {"category_id": category_id, "columns": per_row, "gap": theme.spacing_unit},
            rows,
        )
    return _node("item_list", {"category_id": category_id, "gap": theme.spacing_unit}, cards)


def _category_header_node(
    text: str,
    category: Optional[Category],
    theme: Theme,
    *,
    background_color: Optional[str] = None,
    text_color: Optional[str] = None,
    font_size: int = 18,
    font_weight: str = "bold",
    alignment: str = "left",
    border_radius: Optional[int] = None,
    padding: int = 12,
    font_family: Optional[str] = None,
) -> Node:
    return _node("category_header", {
        "category_id": category.id if category else None,
        "text": text,
        "icon": category.icon if category else None,
        "background_color": background_color or (category.color if category else None) or theme.primary_color,
        "text_color": text_color or HEADER_TEXT_COLOR,
        "font_size": font_size or 16,
        "font_weight": font_weight,
        "alignment": alignment,
        "border_radius": theme.border_radius if border_radius is None else border_radius,
        "padding": padding,
        "font_family": font_family or theme.font_family,
    })


def _promotional_node(section: Promotional, theme: Theme) -> Node:
    c = section.content
    return _node("promotional", {
        "section_id": section.id,
        "kind": section.kind,
        "text": c.text or "",
        "subtitle": c.subtitle,
        "image_url": c.image_url,
        "background_color": c.background_color or theme.primary_color,
        "text_color": c.text_color or PROMO_TEXT_COLOR,
        "font_size": c.font_size or 16,
        "font_weight": c.font_weight,
        "alignment": c.alignment or "center",
        "border_radius": theme.border_radius if c.border_radius is None else c.border_radius,
        "padding": c.padding,
        "font_family": c.font_family or theme.font_family,
    })


# ------------------------------------------------------------
# Render
# ------------------------------------------------------------
def menu_items(config: LayoutConfig, items: Sequence[CatalogItem]) -> List[CatalogItem]:
    return [it for it in items if it.is_active and it.menu_name == config.selected_menu]


def render(
    config: LayoutConfig,
    items: Sequence[CatalogItem],
    categories: Sequence[Category],
    business_info: Optional[BusinessInfo] = None,
) -> Node:
    theme = config.theme
    title = config.selected_menu or (business_info.button_label if business_info else "") or "Menu"
    screen_props = {
        "title": title,
        "business_name": business_info.name if business_info else None,
        "bg_color": theme.bg_color,
        "text_color": theme.text_color,
        "primary_color": theme.primary_color,
        "font_family": theme.font_family,
        "font_size": theme.font_size_base,
        "spacing": theme.spacing_unit,
        "layout_type": config.layout_type,
        "columns": config.columns,
    }

    visible = menu_items(config, items)
    if not visible:
        empty = _node("empty_state", {"message": f"No items in {config.selected_menu}"})
        return _node("screen", screen_props, [empty])

    if config.sections:
        children = _render_sections(config, visible, categories)
    else:
        children = _render_fallback(config, visible, categories)
    return _node("screen", screen_props, children)


def _render_sections(
    config: LayoutConfig,
    visible: List[CatalogItem],
    categories: Sequence[Category],
) -> List[Node]:
    theme = config.theme
    live = live_categories(categories)
    effective = [
        (it, resolve_category(parse_category_ref(it.category_id), live))
        for it in visible
    ]

    out: List[Node] = []
    for section in config.sections:
        if isinstance(section, CategoryHeader):
            cat = resolve_category(parse_category_ref(section.category_id), live)
            c = section.content
            text = cat.name if cat else (c.text or OTHER_ITEMS_LABEL)
            out.append(_category_header_node(
                text,
                cat,
                theme,
                background_color=c.background_color,
                text_color=c.text_color,
                font_size=c.font_size,
                font_weight=c.font_weight,
                alignment=c.alignment,
                border_radius=c.border_radius,
                padding=c.padding,
                font_family=c.font_family,
            ))
        elif isinstance(section, ItemList):
            cat = resolve_category(parse_category_ref(section.category_id), live)
            target = cat.id if cat else None
            group = [it for it, ec in effective if (ec.id if ec else None) == target]
            if not group:
                continue
            layout = section.layout or config.layout_type
            out.append(_items_node(group, layout, config.columns, theme, target))
        elif isinstance(section, Promotional):
            out.append(_promotional_node(section, theme))
    return out


def _render_fallback(
    config: LayoutConfig,
    visible: List[CatalogItem],
    categories: Sequence[Category],
) -> List[Node]:
    theme = config.theme
    out: List[Node] = []
    for cat, group in group_items_by_effective_category(visible, categories):
        cat_id = cat.id if cat else None
        header = _category_header_node(cat.name if cat else OTHER_ITEMS_LABEL, cat, theme)
        body = _items_node(group, config.layout_type, config.columns, theme, cat_id)
        out.append(_node(
            "category_block",
            {"category_id": cat_id, "name": cat.name if cat else OTHER_ITEMS_LABEL},
            [header, body],
        ))
    return out


# ------------------------------------------------------------
# Tree inspection
# ------------------------------------------------------------
def collect_item_placement(tree: Node) -> Dict[str, Optional[str]]:
    """Map item_id -> category_id of the list/grid each card rendered in."""
    placement: Dict[str, Optional[str]] = {}

    def _walk(node: Node, current: Optional[str]) -> None:
        ntype = node.get("type")
        props = node.get("props") or {}
        if ntype in ("item_list", "item_grid"):
            current = props.get("category_id")
        if ntype == "item_card":
            placement[props.get("item_id")] = current
        for child in node.get("children") or []:
            _walk(child, current)

    _walk(tree, None)
    return placement


def count_nodes(tree: Node, type_: str) -> int:
    n = 1 if tree.get("type") == type_ else 0
    return n + sum(count_nodes(c, type_) for c in tree.get("children") or [])
