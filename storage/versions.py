# storage/versions.py - Menu layout versions: snapshot / publish / revert / export (Phase 11, Day 95)
from __future__ import annotations

import copy
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .contracts import ensure_valid, normalize_text, validate_version_name
from .layout_errors import LayoutValidationError, VersionNotFoundError
from .layout_service import LayoutService
from .layout_types import (
    CatalogItem,
    LayoutConfig,
    MenuVersion,
    config_from_dict,
    config_to_dict,
    item_from_dict,
    item_to_dict,
    price_to_json,
)

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _utc_iso() -> str:
    """UTC timestamp like 2026-01-31T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _dashes(s: str) -> str:
    return re.sub(r"\s+", "-", s or "")


def export_filename(menu_name: str, version_name: str) -> str:
    return f"{_dashes(menu_name)}-{_dashes(version_name).lower()}.json"


def import_export(document: Dict[str, Any]) -> Tuple[LayoutConfig, List[CatalogItem]]:
    """Rebuild (config, items) from an export document."""
    if not isinstance(document, dict):
        raise LayoutValidationError("export document must be an object")
    missing = [k for k in ("menu_name", "config", "items") if k not in document]
    if missing:
        raise LayoutValidationError(f"export document missing key(s): {', '.join(missing)}")
    items = document.get("items")
    if not isinstance(items, list):
        raise LayoutValidationError("export document items must be a list")
    config = config_from_dict(document.get("config"), str(document.get("menu_name")))
    return config, [item_from_dict(it) for it in items if isinstance(it, dict)]


# ------------------------------------------------------------
# Compare
# ------------------------------------------------------------
_ITEM_DIFF_FIELDS = ("name", "price", "description", "image_url", "category_id", "is_active")


def _normalize_for_match(val: Any) -> str:
    """Lowercase + strip for matching names."""
    return (val or "").strip().lower()


def _item_fields(item: CatalogItem) -> Dict[str, Any]:
    return {
        "name": item.data.name,
        "price": item.data.price,
        "description": item.data.description or "",
        "image_url": item.data.image_url or "",
        "category_id": item.category_id,
        "is_active": item.is_active,
    }


def _diff_item_fields(item_a: CatalogItem, item_b: CatalogItem) -> List[Dict[str, Any]]:
    """Field-level changes as ``{field, old, new}``; prices add price_direction."""
    a, b = _item_fields(item_a), _item_fields(item_b)
    changes: List[Dict[str, Any]] = []
    for f in _ITEM_DIFF_FIELDS:
        if a[f] != b[f]:
            entry: Dict[str, Any] = {"field": f, "old": a[f], "new": b[f]}
            if f == "price":
                entry["old"] = price_to_json(a[f])
                entry["new"] = price_to_json(b[f])
                entry["price_direction"] = "increase" if b[f] > a[f] else "decrease"
            changes.append(entry)
    return changes


def compare_versions(va: MenuVersion, vb: MenuVersion) -> Dict[str, Any]:
    """
    Item-level diff between two versions of the same menu.

    Items pair by id first, then by normalized name among the leftovers.
    ``changes`` is sorted modified, added, removed, unchanged.
    """
    items_a = list(va.items_snapshot)
    items_b = list(vb.items_snapshot)

    paired: List[Tuple[CatalogItem, CatalogItem]] = []
    used_a: set = set()
    used_b: set = set()

    b_by_id = {it.id: j for j, it in enumerate(items_b)}
    for i, ia in enumerate(items_a):
        j = b_by_id.get(ia.id)
        if j is not None and j not in used_b:
            paired.append((ia, items_b[j]))
            used_a.add(i)
            used_b.add(j)

    for i, ia in enumerate(items_a):
        if i in used_a:
            continue
        key = _normalize_for_match(ia.data.name)
        for j, ib in enumerate(items_b):
            if j not in used_b and _normalize_for_match(ib.data.name) == key:
                paired.append((ia, ib))
                used_a.add(i)
                used_b.add(j)
                break

    changes: List[Dict[str, Any]] = []
    for ia, ib in paired:
        fc = _diff_item_fields(ia, ib)
        changes.append({
            "status": "modified" if fc else "unchanged",
            "item_a": item_to_dict(ia),
            "item_b": item_to_dict(ib),
            "field_changes": fc,
        })
    for i, ia in enumerate(items_a):
        if i not in used_a:
            changes.append({"status": "removed", "item_a": item_to_dict(ia), "item_b": None, "field_changes": []})
    for j, ib in enumerate(items_b):
        if j not in used_b:
            changes.append({"status": "added", "item_a": None, "item_b": item_to_dict(ib), "field_changes": []})

    _status_order = {"modified": 0, "added": 1, "removed": 2, "unchanged": 3}
    changes.sort(key=lambda c: _status_order[c["status"]])

    counts = {"added": 0, "removed": 0, "modified": 0, "unchanged": 0}
    for c in changes:
        counts[c["status"]] += 1

    def _head(v: MenuVersion) -> Dict[str, Any]:
        return {
            "id": v.id,
            "version_name": v.version_name,
            "created_at": v.created_at,
            "is_published": v.is_published,
            "item_count": len(v.items_snapshot),
        }

    return {
        "version_a": _head(va),
        "version_b": _head(vb),
        "menu_name": va.menu_name,
        "summary": {**counts, "total_a": len(items_a), "total_b": len(items_b)},
        "changes": changes,
    }


# ====================================================================
# Store
# ====================================================================
class VersionStore:
    """Versions of one (business, menu). Ids from other menus never resolve."""

    def __init__(self, service: LayoutService, business_id: str, menu_name: str) -> None:
        self.service = service
        self.business_id = str(business_id)
        self.menu_name = menu_name
        self._versions: List[MenuVersion] = []

    def load(self) -> List[MenuVersion]:
        versions = self.service.list_versions(self.business_id, self.menu_name)
        # Foreign-menu rows never resolve through get()
        self._versions = [v for v in versions if v.menu_name == self.menu_name]
        self._versions.sort(key=lambda v: (v.created_at, _sort_id(v.id)), reverse=True)
        return self.list()

    def list(self) -> List[MenuVersion]:
        return list(self._versions)

    def get(self, version_id: str) -> MenuVersion:
        vid = str(version_id)
        for v in self._versions:
            if v.id == vid:
                return v
        raise VersionNotFoundError(f"Version {version_id} not found for menu {self.menu_name!r}")

    def published(self) -> Optional[MenuVersion]:
        for v in self._versions:
            if v.is_published:
                return v
        return None

    # -- mutations -----------------------------------------------------
    def save(
        self,
        name: str,
        notes: Optional[str] = None,
        *,
        config: LayoutConfig,
        items: Sequence[CatalogItem],
        created_by: str = "",
    ) -> MenuVersion:
        ensure_valid(validate_version_name(name))
        snapshot_config = copy.deepcopy(config)
        snapshot_items = [copy.deepcopy(it) for it in items if it.menu_name == self.menu_name]
        draft = MenuVersion(
            id="",
            version_name=normalize_text(name) or "",
            menu_name=self.menu_name,
            config_snapshot=snapshot_config,
            items_snapshot=snapshot_items,
            created_by=created_by,
            created_at="",
            is_published=False,
            change_notes=normalize_text(notes),
        )
        created = self.service.create_version(self.business_id, draft)
        self._versions.insert(0, created)
        log.info(
            "Saved version %s (%s) for menu %r with %d item(s)",
            created.id, created.version_name, self.menu_name, len(snapshot_items),
        )
        return created

    def publish(self, version_id: str) -> MenuVersion:
        target = self.get(version_id)
        self.service.publish_version(self.business_id, self.menu_name, target.id)
        self._versions = [
            _with_published(v, v.id == target.id) for v in self._versions
        ]
        return self.get(target.id)

    def revert(self, version_id: str) -> Tuple[LayoutConfig, List[CatalogItem]]:
        v = self.get(version_id)
        return copy.deepcopy(v.config_snapshot), copy.deepcopy(v.items_snapshot)

    # -- export / compare ----------------------------------------------
    def export(self, version_id: str) -> Dict[str, Any]:
        v = self.get(version_id)
        return {
            "menu_name": v.menu_name,
            "version": v.version_name,
            "config": config_to_dict(v.config_snapshot),
            "items": [item_to_dict(it) for it in v.items_snapshot],
            "exported_at": _utc_iso(),
        }

    def export_json(self, version_id: str) -> str:
        return json.dumps(self.export(version_id), indent=2, ensure_ascii=False)

    def export_filename(self, version_id: str) -> str:
        v = self.get(version_id)
        return export_filename(v.menu_name, v.version_name)

    def compare(self, version_a: str, version_b: str) -> Dict[str, Any]:
        return compare_versions(self.get(version_a), self.get(version_b))


def _sort_id(version_id: str) -> Any:
    return (0, int(version_id)) if version_id.isdigit() else (1, version_id)


def _with_published(v: MenuVersion, flag: bool) -> MenuVersion:
    if v.is_published == flag:
        return v
    out = copy.copy(v)
    out.is_published = flag
    return out
