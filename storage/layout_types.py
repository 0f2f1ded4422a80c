# storage/layout_types.py
"""
Layout Engine Types - Phase 11 (Menu Layout Designer)

Dataclasses for the section-based layout document and the records it
references (categories, catalog items, menu versions), plus the dict
conversions used by the JSON wire format that the mobile app reads.

Wire format notes
-----------------
- LayoutConfig is keyed ``selectedMenu`` (mobile contract), not
  ``selected_menu``.
- Sections carry a ``type`` of "category", "items" or one of the
  promotional kinds ("ad", "promotion", "special").
- Item data lives under ``data`` (name/price/description/image_url plus any
  business-type extras such as year, mileage, duration or sku).

The *_from_dict helpers are lenient: they fill defaults instead of raising,
so a half-broken stored config still loads and renders. Strict checks live
in storage/contracts.py.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union


# ------------------------------------------------------------
# Constants
# ------------------------------------------------------------
UNCATEGORIZED = "uncategorized"
LAYOUT_TYPES = ("grid", "list")
PROMO_KINDS = ("ad", "promotion", "special")
DEFAULT_MENU_NAME = "Default Menu"
DEFAULT_FONT_FAMILY = "system-ui, -apple-system, sans-serif"


# ------------------------------------------------------------
# Records
# ------------------------------------------------------------
@dataclass(frozen=True)
class Theme:
    bg_color: str = "#f5f5f5"
    card_color: str = "#ffffff"
    text_color: str = "#1f2937"
    primary_color: str = "#3b82f6"
    card_elevation: int = 2
    border_radius: int = 8
    font_family: str = DEFAULT_FONT_FAMILY
    font_size_base: int = 16
    spacing_unit: int = 8


THEME_FIELDS = tuple(f.name for f in fields(Theme))
THEME_COLOR_FIELDS = ("bg_color", "card_color", "text_color", "primary_color")
THEME_INT_FIELDS = ("card_elevation", "border_radius", "font_size_base", "spacing_unit")


@dataclass
class Category:
    id: str
    name: str
    position: int = 0
    description: Optional[str] = None
    is_active: bool = True
    color: Optional[str] = None
    icon: Optional[str] = None
    item_count: int = 0  # derived, never persisted


@dataclass
class ItemData:
    name: str
    price: Decimal = Decimal("0")
    description: Optional[str] = None
    image_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CatalogItem:
    id: str
    menu_name: str
    data: ItemData
    category_id: Optional[str] = None
    is_active: bool = True
    date_created: Optional[str] = None


@dataclass
class BusinessInfo:
    id: Optional[int] = None
    name: str = ""
    item_type: str = "food"
    button_label: str = "Menu"


# ------------------------------------------------------------
# Category references (tagged union)
# ------------------------------------------------------------
@dataclass(frozen=True)
class ResolvedRef:
    id: str


@dataclass(frozen=True)
class SentinelRef:
    pass


@dataclass(frozen=True)
class AbsentRef:
    pass


CategoryRef = Union[ResolvedRef, SentinelRef, AbsentRef]


# ------------------------------------------------------------
# Sections
# ------------------------------------------------------------
@dataclass
class HeaderContent:
    text: str = ""
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    font_size: int = 18
    font_weight: str = "bold"
    alignment: str = "left"
    border_radius: Optional[int] = None
    padding: int = 12
    font_family: Optional[str] = None


@dataclass
class PromoContent:
    text: str = "Promotional Content"
    subtitle: Optional[str] = None
    image_url: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    font_size: int = 16
    font_weight: str = "bold"
    alignment: str = "center"
    border_radius: Optional[int] = None
    padding: int = 16
    font_family: Optional[str] = None


@dataclass
class CategoryHeader:
    id: str
    category_id: str = UNCATEGORIZED
    content: HeaderContent = field(default_factory=HeaderContent)


@dataclass
class ItemList:
    id: str
    category_id: str = UNCATEGORIZED
    layout: Optional[str] = None  # None inherits LayoutConfig.layout_type
    style: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Promotional:
    id: str
    kind: str = "promotion"
    content: PromoContent = field(default_factory=PromoContent)


Section = Union[CategoryHeader, ItemList, Promotional]


@dataclass
class LayoutConfig:
    selected_menu: str = DEFAULT_MENU_NAME
    layout_type: str = "list"
    columns: int = 1
    sections: List[Section] = field(default_factory=list)
    theme: Theme = field(default_factory=Theme)


@dataclass
class MenuVersion:
    id: str
    version_name: str
    menu_name: str
    config_snapshot: LayoutConfig
    items_snapshot: List[CatalogItem] = field(default_factory=list)
    created_by: str = ""
    created_at: str = ""
    is_published: bool = False
    change_notes: Optional[str] = None


# ------------------------------------------------------------
# Coercion helpers
# ------------------------------------------------------------
def _to_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return default


def to_decimal(v: Any) -> Decimal:
    """Best-effort price parse; anything unparseable or non-finite is 0."""
    if isinstance(v, Decimal):
        d = v
    else:
        try:
            d = Decimal(str(v).replace("$", "").replace(",", "").strip())
        except (InvalidOperation, ValueError):
            return Decimal("0")
    if not d.is_finite():
        return Decimal("0")
    return d


def price_to_json(price: Decimal) -> Union[float, str]:
    """JSON number when a float holds the price exactly, else its decimal string."""
    as_float = float(price)
    if Decimal(repr(as_float)) == price:
        return as_float
    return str(price)


def ref_str(v: Any) -> Optional[str]:
    """Category id as stored: None/blank -> None, everything else a string."""
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v)
    return s if s.strip() else None


def _as_bool(v: Any, default: bool = True) -> bool:
    if v is None:
        return default
    if isinstance(v, str):
        return v.strip().lower() not in ("0", "false", "no", "off", "")
    return bool(v)


def section_type(section: Section) -> str:
    if isinstance(section, CategoryHeader):
        return "category"
    if isinstance(section, ItemList):
        return "items"
    return section.kind


# ------------------------------------------------------------
# Theme
# ------------------------------------------------------------
def theme_to_dict(theme: Theme) -> Dict[str, Any]:
    return asdict(theme)


def theme_from_dict(d: Optional[Dict[str, Any]]) -> Theme:
    d = dict(d or {})
    # legacy "styling" blocks used background_color
    if "bg_color" not in d and d.get("background_color"):
        d["bg_color"] = d["background_color"]
    base = Theme()
    values: Dict[str, Any] = {}
    for name in THEME_FIELDS:
        raw = d.get(name)
        if raw is None or raw == "":
            continue
        if name in THEME_INT_FIELDS:
            values[name] = _to_int(raw, getattr(base, name))
        else:
            values[name] = str(raw)
    return Theme(**values)


# ------------------------------------------------------------
# Categories / items
# ------------------------------------------------------------
def category_to_dict(cat: Category) -> Dict[str, Any]:
    return asdict(cat)


def category_from_dict(d: Dict[str, Any]) -> Category:
    return Category(
        id=str(d.get("id")),
        name=str(d.get("name") or ""),
        position=_to_int(d.get("position"), 0),
        description=_opt_str(d.get("description")),
        is_active=_as_bool(d.get("is_active"), True),
        color=_opt_str(d.get("color")),
        icon=_opt_str(d.get("icon")),
        item_count=_to_int(d.get("item_count"), 0),
    )


_ITEM_DATA_KEYS = ("name", "price", "description", "image_url", "category_id")


def item_to_dict(item: CatalogItem) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(item.data.extra)
    data.update({
        "name": item.data.name,
        "price": price_to_json(item.data.price),
        "description": item.data.description,
        "image_url": item.data.image_url,
    })
    out: Dict[str, Any] = {
        "id": item.id,
        "menu_name": item.menu_name,
        "category_id": item.category_id,
        "is_active": item.is_active,
        "data": data,
    }
    if item.date_created:
        out["date_created"] = item.date_created
    return out


def item_from_dict(d: Dict[str, Any]) -> CatalogItem:
    raw = d.get("data")
    data = raw if isinstance(raw, dict) else {}
    # Column first, then the JSON data copy older rows carry
    category_id = ref_str(d.get("category_id"))
    if category_id is None:
        category_id = ref_str(data.get("category_id"))
    extra = {k: v for k, v in data.items() if k not in _ITEM_DATA_KEYS}
    return CatalogItem(
        id=str(d.get("id")),
        menu_name=str(d.get("menu_name") or DEFAULT_MENU_NAME),
        category_id=category_id,
        is_active=_as_bool(d.get("is_active"), True),
        date_created=_opt_str(d.get("date_created")),
        data=ItemData(
            name=str(data.get("name") or d.get("name") or ""),
            price=to_decimal(data.get("price", d.get("price", 0))),
            description=_opt_str(data.get("description")),
            image_url=_opt_str(data.get("image_url")),
            extra=extra,
        ),
    )


# ------------------------------------------------------------
# Sections
# ------------------------------------------------------------
def _content_kwargs(cls, raw: Any) -> Dict[str, Any]:
    raw = raw if isinstance(raw, dict) else {}
    defaults = cls()
    out: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in raw or raw[f.name] is None:
            continue
        if isinstance(getattr(defaults, f.name), int) or f.name == "border_radius":
            out[f.name] = _to_int(raw[f.name], getattr(defaults, f.name))
        else:
            out[f.name] = str(raw[f.name])
    return out


def section_to_dict(section: Section) -> Dict[str, Any]:
    if isinstance(section, CategoryHeader):
        return {
            "id": section.id,
            "type": "category",
            "category_id": section.category_id,
            "content": asdict(section.content),
        }
    if isinstance(section, ItemList):
        return {
            "id": section.id,
            "type": "items",
            "category_id": section.category_id,
            "layout": section.layout,
            "style": dict(section.style),
        }
    return {
        "id": section.id,
        "type": section.kind,
        "content": asdict(section.content),
    }


def section_from_dict(d: Dict[str, Any], index: int = 0) -> Optional[Section]:
    """Parse one wire section. Unknown types return None."""
    if not isinstance(d, dict):
        return None
    stype = str(d.get("type") or "")
    sid = str(d.get("id") or f"{stype or 'section'}-{index}")
    cat = ref_str(d.get("category_id")) or UNCATEGORIZED

    if stype == "category":
        kwargs = _content_kwargs(HeaderContent, d.get("content"))
        kwargs.setdefault("text", str(d.get("title") or ""))
        return CategoryHeader(id=sid, category_id=cat, content=HeaderContent(**kwargs))
    if stype == "items":
        layout = d.get("layout")
        style = d.get("style")
        return ItemList(
            id=sid,
            category_id=cat,
            layout=layout if layout in LAYOUT_TYPES else None,
            style=dict(style) if isinstance(style, dict) else {},
        )
    if stype in PROMO_KINDS:
        kwargs = _content_kwargs(PromoContent, d.get("content"))
        return Promotional(id=sid, kind=stype, content=PromoContent(**kwargs))
    return None


# ------------------------------------------------------------
# LayoutConfig / MenuVersion
# ------------------------------------------------------------
def config_to_dict(config: LayoutConfig) -> Dict[str, Any]:
    return {
        "selectedMenu": config.selected_menu,
        "layout_type": config.layout_type,
        "columns": config.columns,
        "sections": [section_to_dict(s) for s in config.sections],
        "theme": theme_to_dict(config.theme),
    }


def config_from_dict(d: Optional[Dict[str, Any]], menu_name: Optional[str] = None) -> LayoutConfig:
    d = d if isinstance(d, dict) else {}
    layout_type = d.get("layout_type")
    sections: List[Section] = []
    raw_sections = d.get("sections")
    for i, raw in enumerate(raw_sections if isinstance(raw_sections, list) else []):
        s = section_from_dict(raw, i)
        if s is not None:
            sections.append(s)
    return LayoutConfig(
        selected_menu=str(
            d.get("selectedMenu") or d.get("selected_menu") or menu_name or DEFAULT_MENU_NAME
        ),
        layout_type=layout_type if layout_type in LAYOUT_TYPES else "list",
        columns=max(1, _to_int(d.get("columns"), 1)),
        sections=sections,
        theme=theme_from_dict(d.get("theme") or d.get("styling")),
    )


def version_to_dict(v: MenuVersion) -> Dict[str, Any]:
    return {
        "id": v.id,
        "version_name": v.version_name,
        "menu_name": v.menu_name,
        "config_snapshot": config_to_dict(v.config_snapshot),
        "items_snapshot": [item_to_dict(it) for it in v.items_snapshot],
        "created_by": v.created_by,
        "created_at": v.created_at,
        "is_published": v.is_published,
        "change_notes": v.change_notes,
    }


def version_from_dict(d: Dict[str, Any]) -> MenuVersion:
    menu_name = str(d.get("menu_name") or DEFAULT_MENU_NAME)
    items = d.get("items_snapshot")
    return MenuVersion(
        id=str(d.get("id")),
        version_name=str(d.get("version_name") or ""),
        menu_name=menu_name,
        config_snapshot=config_from_dict(d.get("config_snapshot"), menu_name),
        items_snapshot=[item_from_dict(it) for it in (items if isinstance(items, list) else [])
                        if isinstance(it, dict)],
        created_by=str(d.get("created_by") or ""),
        created_at=str(d.get("created_at") or ""),
        is_published=_as_bool(d.get("is_published"), False),
        change_notes=_opt_str(d.get("change_notes")),
    )
