# storage/category_resolution.py - Effective category resolution (Phase 11, Day 92)
"""
Single source of truth for "which category does this item render under".

Rules, applied per item:
  1. category_id names a live category  -> that category
  2. otherwise, if any live category     -> the first one by position
  3. otherwise                            -> None ("Other Items")

Section references (CategoryHeader / ItemList category_id) go through the
same rules, so the "uncategorized" sentinel and stale ids land on the same
category their items do. Both preview paths call into this module.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from .layout_types import (
    UNCATEGORIZED,
    AbsentRef,
    CatalogItem,
    Category,
    CategoryRef,
    ResolvedRef,
    SentinelRef,
)

OTHER_ITEMS_LABEL = "Other Items"


def parse_category_ref(value: Any) -> CategoryRef:
    if value is None:
        return AbsentRef()
    s = str(value).strip()
    if not s:
        return AbsentRef()
    if s == UNCATEGORIZED:
        return SentinelRef()
    return ResolvedRef(s)


def live_categories(categories: Iterable[Category]) -> List[Category]:
    """
    Every category in position order (ties keep input order). is_active is
    a display flag only; an inactive category still owns its items.
    """
    return sorted(categories, key=lambda c: c.position)


def resolve_category(ref: CategoryRef, live: List[Category]) -> Optional[Category]:
    """Resolve a parsed ref against an already-filtered, sorted live list."""
    if isinstance(ref, ResolvedRef):
        for c in live:
            if c.id == ref.id:
                return c
    # Sentinel, absent and stale refs all fall through to the first category
    return live[0] if live else None


def effective_category(item: CatalogItem, categories: Iterable[Category]) -> Optional[Category]:
    return resolve_category(parse_category_ref(item.category_id), live_categories(categories))


def effective_category_id(item: CatalogItem, categories: Iterable[Category]) -> Optional[str]:
    cat = effective_category(item, categories)
    return cat.id if cat else None


def resolve_section_category(category_id: Any, categories: Iterable[Category]) -> Optional[Category]:
    return resolve_category(parse_category_ref(category_id), live_categories(categories))


def group_items_by_effective_category(
    items: Iterable[CatalogItem],
    categories: Iterable[Category],
) -> List[Tuple[Optional[Category], List[CatalogItem]]]:
    """
    Group items under their effective category.

    Groups come out in category position order; only non-empty groups are
    returned, and the None bucket (no live categories at all) is last.
    Items keep their input order inside a group.
    """
    live = live_categories(categories)
    buckets: Dict[Optional[str], List[CatalogItem]] = {}
    for it in items:
        cat = resolve_category(parse_category_ref(it.category_id), live)
        buckets.setdefault(cat.id if cat else None, []).append(it)

    out: List[Tuple[Optional[Category], List[CatalogItem]]] = []
    for c in live:
        if c.id in buckets:
            out.append((c, buckets[c.id]))
    if None in buckets:
        out.append((None, buckets[None]))
    return out
