# storage/category_store.py - Category CRUD + ordering (Phase 11, Day 91)
"""
CategoryStore keeps a business's categories in position order and writes
every change through the persistence service.

Invariant: after any successful mutation, positions are exactly 0..N-1.

Local state changes only after the service call succeeds, except reorder()
which applies the swap locally first and rolls back if persisting fails.
After delete() the local list is renumbered before the shifted positions
are written, so a failed write leaves stored gaps that load() closes.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .category_resolution import effective_category_id
from .contracts import ensure_valid, normalize_text, validate_category_fields
from .layout_errors import LayoutValidationError, NotFoundError
from .layout_service import LayoutService
from .layout_types import CatalogItem, Category

log = logging.getLogger(__name__)

DEFAULT_CATEGORY_COLOR = "#3b82f6"


# ------------------------------------------------------------
# Business-type suggestions
# ------------------------------------------------------------
CATEGORY_SUGGESTIONS: Dict[str, List[Dict[str, str]]] = {
    "food": [
        {"name": "Appetizers", "icon": "🥗", "color": "#10b981"},
        {"name": "Main Courses", "icon": "🍽️", "color": "#3b82f6"},
        {"name": "Desserts", "icon": "🍰", "color": "#f59e0b"},
        {"name": "Beverages", "icon": "🥤", "color": "#06b6d4"},
        {"name": "Specials", "icon": "⭐", "color": "#8b5cf6"},
        {"name": "Kids Menu", "icon": "🧒", "color": "#ec4899"},
    ],
    "cars": [
        {"name": "Sedans", "icon": "🚗", "color": "#3b82f6"},
        {"name": "SUVs", "icon": "🚙", "color": "#10b981"},
        {"name": "Trucks", "icon": "🚚", "color": "#f59e0b"},
        {"name": "Luxury", "icon": "🏎️", "color": "#8b5cf6"},
        {"name": "Electric", "icon": "⚡", "color": "#06b6d4"},
        {"name": "Used", "icon": "🔄", "color": "#6b7280"},
    ],
    "health": [
        {"name": "Massage Therapy", "icon": "💆", "color": "#10b981"},
        {"name": "Facial Treatments", "icon": "✨", "color": "#f59e0b"},
        {"name": "Body Treatments", "icon": "🧘", "color": "#3b82f6"},
        {"name": "Nail Services", "icon": "💅", "color": "#ec4899"},
        {"name": "Wellness Packages", "icon": "🌿", "color": "#8b5cf6"},
        {"name": "Consultations", "icon": "👩‍⚕️", "color": "#06b6d4"},
    ],
    "products": [
        {"name": "New Arrivals", "icon": "🆕", "color": "#10b981"},
        {"name": "Best Sellers", "icon": "🔥", "color": "#f59e0b"},
        {"name": "Sale Items", "icon": "💰", "color": "#ef4444"},
        {"name": "Electronics", "icon": "📱", "color": "#3b82f6"},
        {"name": "Clothing", "icon": "👕", "color": "#8b5cf6"},
        {"name": "Home & Garden", "icon": "🏠", "color": "#06b6d4"},
    ],
}

BUSINESS_TYPE_LABELS: Dict[str, Dict[str, str]] = {
    "food": {"singular": "Menu Item", "plural": "Menu Items"},
    "cars": {"singular": "Vehicle", "plural": "Inventory"},
    "health": {"singular": "Service", "plural": "Services"},
    "products": {"singular": "Product", "plural": "Products"},
}


def suggestions_for(business_type: Optional[str]) -> List[Dict[str, str]]:
    """Suggestions for a business type; unknown types get the food list."""
    return [dict(s) for s in CATEGORY_SUGGESTIONS.get(business_type or "", CATEGORY_SUGGESTIONS["food"])]


def business_labels(business_type: Optional[str]) -> Dict[str, str]:
    return dict(BUSINESS_TYPE_LABELS.get(business_type or "", BUSINESS_TYPE_LABELS["food"]))


# ====================================================================
# Store
# ====================================================================
class CategoryStore:
    def __init__(
        self,
        service: LayoutService,
        business_id: str,
        categories: Optional[Iterable[Category]] = None,
        *,
        catalog: Any = None,
    ) -> None:
        self.service = service
        self.business_id = str(business_id)
        self.catalog = catalog  # optional ItemCatalog, detached on delete
        self._categories: List[Category] = []
        if categories is not None:
            self._set(categories)

    # -- state ---------------------------------------------------------
    def _set(self, categories: Iterable[Category]) -> None:
        ordered = sorted(categories, key=lambda c: c.position)
        self._categories = [replace(c, position=i) for i, c in enumerate(ordered)]

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def _index(self, category_id: str) -> int:
        cid = str(category_id)
        for i, c in enumerate(self._categories):
            if c.id == cid:
                return i
        raise NotFoundError(f"Category not found: {category_id}")

    def get(self, category_id: str) -> Category:
        return self._categories[self._index(category_id)]

    # -- CRUD ----------------------------------------------------------
    def load(self) -> List[Category]:
        self._set(self.service.list_categories(self.business_id))
        return self.categories

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = DEFAULT_CATEGORY_COLOR,
        icon: Optional[str] = None,
    ) -> Category:
        ensure_valid(validate_category_fields({"name": name, "color": color}))
        fields = {
            "name": normalize_text(name),
            "description": normalize_text(description),
            "color": color or DEFAULT_CATEGORY_COLOR,
            "icon": normalize_text(icon),
            "position": len(self._categories),
            "is_active": True,
        }
        created = self.service.create_category(self.business_id, fields)
        created = replace(created, position=len(self._categories))
        self._categories.append(created)
        log.info("Created category %s (%s) for business %s", created.id, created.name, self.business_id)
        return created

    def update(self, category_id: str, partial: Dict[str, Any]) -> Category:
        partial = dict(partial or {})
        if "position" in partial:
            raise LayoutValidationError("position cannot be changed through update; use reorder")
        ensure_valid(validate_category_fields(partial, partial=True))
        if "name" in partial:
            partial["name"] = normalize_text(partial["name"])
        idx = self._index(category_id)
        updated = self.service.update_category(self.business_id, self._categories[idx].id, partial)
        updated = replace(updated, position=idx, item_count=self._categories[idx].item_count)
        self._categories[idx] = updated
        return updated

    def delete(self, category_id: str) -> None:
        """
        Remove a category. Items that referenced it keep existing with no
        category_id and render under the first remaining category.
        """
        idx = self._index(category_id)
        cid = self._categories[idx].id
        self.service.delete_category(self.business_id, cid)
        remaining = [c for c in self._categories if c.id != cid]
        # Local positions stay dense even if persisting the shift fails;
        # load() renumbers stored gaps the same way.
        self._categories = [replace(c, position=i) for i, c in enumerate(remaining)]
        if self.catalog is not None:
            self.catalog.detach_category(cid)
        self._persist_positions(remaining)
        log.info("Deleted category %s for business %s", cid, self.business_id)

    # -- ordering ------------------------------------------------------
    def _persist_positions(self, stored: List[Category]) -> None:
        """Write positions that differ from ``stored`` (same order as local)."""
        for old, new in zip(stored, self._categories):
            if old.position != new.position:
                self.service.update_category(self.business_id, new.id, {"position": new.position})

    def reorder(self, category_id: str, direction: str) -> List[Category]:
        if direction not in ("up", "down"):
            raise LayoutValidationError("direction must be 'up' or 'down'")
        idx = self._index(category_id)
        target = idx - 1 if direction == "up" else idx + 1
        if target < 0 or target >= len(self._categories):
            return self.categories

        previous = list(self._categories)
        moved = list(previous)
        moved[idx], moved[target] = moved[target], moved[idx]
        self._categories = [replace(c, position=i) for i, c in enumerate(moved)]

        persisted: List[Category] = []
        try:
            for old, new in zip(moved, self._categories):
                if old.position != new.position:
                    self.service.update_category(self.business_id, new.id, {"position": new.position})
                    persisted.append(old)
        except Exception:
            self._categories = previous
            self._compensate(persisted)
            raise
        return self.categories

    def _compensate(self, persisted: List[Category]) -> None:
        for old in persisted:
            try:
                self.service.update_category(self.business_id, old.id, {"position": old.position})
            except Exception:
                log.warning(
                    "Could not restore position %s of category %s after failed reorder",
                    old.position, old.id, exc_info=True,
                )

    # -- suggestions ---------------------------------------------------
    def suggestions(self, business_type: Optional[str]) -> List[Dict[str, str]]:
        """Suggestions not already present (case-insensitive name match)."""
        taken = {c.name.strip().lower() for c in self._categories}
        return [s for s in suggestions_for(business_type) if s["name"].lower() not in taken]

    def add_suggested(self, name: str, business_type: Optional[str]) -> Category:
        for s in suggestions_for(business_type):
            if s["name"] == name:
                return self.create(s["name"], description=f"{s['name']} category", color=s["color"], icon=s["icon"])
        raise NotFoundError(f"No suggested category named {name!r} for {business_type or 'food'}")

    # -- derived -------------------------------------------------------
    def with_item_counts(self, items: Iterable[CatalogItem], menu_name: Optional[str] = None) -> List[Category]:
        """Categories with item_count filled from each item's effective category."""
        counts: Dict[str, int] = {}
        for it in items:
            if not it.is_active:
                continue
            if menu_name is not None and it.menu_name != menu_name:
                continue
            cid = effective_category_id(it, self._categories)
            if cid is not None:
                counts[cid] = counts.get(cid, 0) + 1
        self._categories = [replace(c, item_count=counts.get(c.id, 0)) for c in self._categories]
        return self.categories
