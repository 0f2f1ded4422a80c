# storage/item_catalog.py
"""
ItemCatalog: the items a business sells, each tagged with the menu it
belongs to and an optional (possibly stale) category_id.

Items never fail because of their category reference; resolution to an
effective category happens at render time.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .contracts import ensure_valid, normalize_price, normalize_text, validate_item_fields
from .layout_errors import NotFoundError
from .layout_service import LayoutService
from .layout_types import CatalogItem, ItemData, ref_str

log = logging.getLogger(__name__)

COPY_SUFFIX = " (Copy)"


class ItemCatalog:
    def __init__(
        self,
        service: LayoutService,
        business_id: str,
        items: Optional[Iterable[CatalogItem]] = None,
    ) -> None:
        self.service = service
        self.business_id = str(business_id)
        self._items: List[CatalogItem] = list(items or [])

    # -- state ---------------------------------------------------------
    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items)

    def _index(self, item_id: str) -> int:
        iid = str(item_id)
        for i, it in enumerate(self._items):
            if it.id == iid:
                return i
        raise NotFoundError(f"Item not found: {item_id}")

    def get(self, item_id: str) -> CatalogItem:
        return self._items[self._index(item_id)]

    def items_for_menu(self, menu_name: str, active_only: bool = False) -> List[CatalogItem]:
        return [
            it for it in self._items
            if it.menu_name == menu_name and (it.is_active or not active_only)
        ]

    def menu_names(self) -> List[str]:
        """Distinct menu names in first-seen order."""
        seen: List[str] = []
        for it in self._items:
            if it.menu_name not in seen:
                seen.append(it.menu_name)
        return seen

    # -- CRUD ----------------------------------------------------------
    def load(self, menu_name: Optional[str] = None) -> List[CatalogItem]:
        loaded = self.service.list_items(self.business_id, menu_name)
        if menu_name is None:
            self._items = list(loaded)
        else:
            self._items = [it for it in self._items if it.menu_name != menu_name] + list(loaded)
        return self.items

    def create(
        self,
        menu_name: str,
        name: str,
        price: Any = 0,
        *,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        category_id: Optional[str] = None,
        is_active: bool = True,
        extra: Optional[Dict[str, Any]] = None,
    ) -> CatalogItem:
        ensure_valid(validate_item_fields({
            "menu_name": menu_name,
            "name": name,
            "price": price,
            "extra": extra,
        }))
        parsed, _err = normalize_price(price)
        data = ItemData(
            name=normalize_text(name) or "",
            price=parsed if parsed is not None else Decimal("0"),
            description=normalize_text(description),
            image_url=normalize_text(image_url),
            extra=dict(extra or {}),
        )
        created = self.service.create_item(
            self.business_id,
            normalize_text(menu_name) or "",
            data,
            category_id=ref_str(category_id),
            is_active=is_active,
        )
        self._items.append(created)
        return created

    def update(self, item_id: str, partial: Dict[str, Any]) -> CatalogItem:
        """
        Partial update. Data keys (name, price, description, image_url, extra)
        merge into the item's data; category_id / is_active / menu_name
        update the record itself.
        """
        partial = dict(partial or {})
        ensure_valid(validate_item_fields(partial, partial=True))
        idx = self._index(item_id)
        current = self._items[idx]

        fields: Dict[str, Any] = {}
        data = current.data
        data_changes: Dict[str, Any] = {}
        if "name" in partial:
            data_changes["name"] = normalize_text(partial["name"]) or ""
        if "price" in partial:
            parsed, _err = normalize_price(partial["price"])
            data_changes["price"] = parsed if parsed is not None else Decimal("0")
        for key in ("description", "image_url"):
            if key in partial:
                data_changes[key] = normalize_text(partial[key])
        if "extra" in partial:
            merged = dict(data.extra)
            merged.update(partial["extra"] or {})
            data_changes["extra"] = merged
        if data_changes:
            fields["data"] = replace(data, **data_changes)
        if "category_id" in partial:
            fields["category_id"] = ref_str(partial["category_id"])
        if "is_active" in partial:
            fields["is_active"] = bool(partial["is_active"])
        if "menu_name" in partial:
            fields["menu_name"] = normalize_text(partial["menu_name"])

        updated = self.service.update_item(self.business_id, current.id, fields)
        self._items[idx] = updated
        return updated

    def delete(self, item_id: str) -> None:
        idx = self._index(item_id)
        self.service.delete_item(self.business_id, self._items[idx].id)
        del self._items[idx]

    def duplicate(self, item_id: str) -> CatalogItem:
        src = self.get(item_id)
        data = replace(src.data, name=f"{src.data.name}{COPY_SUFFIX}", extra=dict(src.data.extra))
        created = self.service.create_item(
            self.business_id,
            src.menu_name,
            data,
            category_id=src.category_id,
            is_active=src.is_active,
        )
        self._items.append(created)
        return created

    # -- category / menu maintenance -----------------------------------
    def detach_category(self, category_id: str) -> int:
        """Clear category_id locally on items that pointed at a deleted category."""
        cid = str(category_id)
        n = 0
        for i, it in enumerate(self._items):
            if it.category_id == cid:
                self._items[i] = replace(it, category_id=None)
                n += 1
        return n

    def replace_menu_items(self, menu_name: str, items: Iterable[CatalogItem]) -> List[CatalogItem]:
        """
        Make the live items of ``menu_name`` match ``items`` (a version
        snapshot). Snapshot items whose id still exists are updated in
        place; the rest are recreated; live items absent from the snapshot
        are deleted.

        If a service call fails, the writes already made are undone
        (deleted items come back under new ids), the menu is reloaded from
        the service and the original error is re-raised.
        """
        wanted = list(items)
        live = {it.id: it for it in self._items if it.menu_name == menu_name}
        keep_ids = set()
        result: List[CatalogItem] = []
        updated: List[CatalogItem] = []
        created: List[str] = []
        deleted: List[CatalogItem] = []

        try:
            for snap in wanted:
                if snap.id in live:
                    result.append(self.service.update_item(self.business_id, snap.id, {
                        "data": snap.data,
                        "category_id": snap.category_id,
                        "is_active": snap.is_active,
                        "menu_name": menu_name,
                    }))
                    updated.append(live[snap.id])
                    keep_ids.add(snap.id)
                else:
                    new = self.service.create_item(
                        self.business_id, menu_name, snap.data,
                        category_id=snap.category_id, is_active=snap.is_active,
                    )
                    created.append(new.id)
                    result.append(new)

            for iid, it in live.items():
                if iid not in keep_ids:
                    self.service.delete_item(self.business_id, iid)
                    deleted.append(it)
        except Exception:
            self._undo_replace(updated, created, deleted)
            self._reload_menu(menu_name)
            raise

        self._items = [it for it in self._items if it.menu_name != menu_name] + result
        log.info("Restored %d item(s) for menu %r (business %s)", len(result), menu_name, self.business_id)
        return list(result)

    def _undo_replace(
        self,
        updated: List[CatalogItem],
        created: List[str],
        deleted: List[CatalogItem],
    ) -> None:
        for old in updated:
            try:
                self.service.update_item(self.business_id, old.id, {
                    "data": old.data,
                    "category_id": old.category_id,
                    "is_active": old.is_active,
                    "menu_name": old.menu_name,
                })
            except Exception:
                log.warning("Could not restore item %s after failed menu restore", old.id, exc_info=True)
        for iid in created:
            try:
                self.service.delete_item(self.business_id, iid)
            except Exception:
                log.warning("Could not remove item %s after failed menu restore", iid, exc_info=True)
        for old in deleted:
            try:
                self.service.create_item(
                    self.business_id, old.menu_name, old.data,
                    category_id=old.category_id, is_active=old.is_active,
                )
            except Exception:
                log.warning("Could not recreate item %s after failed menu restore", old.id, exc_info=True)

    def _reload_menu(self, menu_name: str) -> None:
        try:
            self.load(menu_name)
        except Exception:
            log.warning("Could not reload menu %r after failed restore", menu_name, exc_info=True)
