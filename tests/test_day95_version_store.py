"""
Day 95 -- Menu Versions: Snapshot, Publish, Revert, Export, Compare (Phase 11, Day 5).

Covers:
  Save:
  - blank name rejected, nothing stored
  - snapshot holds only the store's menu
  - snapshot is a deep copy (later edits don't leak in)
  - newest first, stable after reload

  Publish:
  - at most one published version per menu
  - publishing in one menu leaves other menus alone
  - ids from another menu never resolve

  Revert:
  - returns independent deep copies

  Export:
  - document keys, UTC timestamp ending in Z
  - filename dashes + lowercase version
  - import_export rebuilds config and items
  - prices a float cannot hold exactly are exported as strings
  - malformed documents rejected

  Compare:
  - pair by id, then by normalized name
  - field changes with price direction
  - ordering modified, added, removed, unchanged
  - summary counts
"""

from __future__ import annotations

import json
import sqlite3
from decimal import Decimal
from typing import Optional

import pytest

from storage.layout_types import (
    CatalogItem,
    ItemData,
    ItemList,
    LayoutConfig,
    MenuVersion,
    Theme,
)


# ---------------------------------------------------------------------------
# In-memory DB helpers
# ---------------------------------------------------------------------------
_TEST_CONN: Optional[sqlite3.Connection] = None


def _make_test_db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _patch_db(monkeypatch):
    global _TEST_CONN
    _TEST_CONN = _make_test_db()
    import storage.layout_db as layout_db_mod

    def mock_connect():
        return _TEST_CONN

    monkeypatch.setattr(layout_db_mod, "db_connect", mock_connect)
    layout_db_mod.ensure_schema()
    return _TEST_CONN


@pytest.fixture(autouse=True)
def fresh_db(monkeypatch):
    conn = _patch_db(monkeypatch)
    yield conn
    global _TEST_CONN
    _TEST_CONN = None


def _service():
    from storage.layout_db import SqliteLayoutService
    return SqliteLayoutService()


def _store(menu="Lunch", business_id="b1"):
    from storage.versions import VersionStore
    store = VersionStore(_service(), business_id, menu)
    store.load()
    return store


def _seed_items(business_id="b1"):
    from storage.item_catalog import ItemCatalog
    cat = ItemCatalog(_service(), business_id)
    cat.load()
    cat.create("Lunch", "Burger", "10.00")
    cat.create("Lunch", "Fries", "3.50", description="Crispy")
    cat.create("Dinner", "Steak", "25.00")
    return cat


def _config(menu="Lunch"):
    return LayoutConfig(
        selected_menu=menu,
        layout_type="grid",
        columns=2,
        sections=[ItemList(id="items-1", category_id="1", layout="grid")],
        theme=Theme(primary_color="#9333ea"),
    )


def _ver(vid, items, name=None):
    return MenuVersion(
        id=str(vid),
        version_name=name or f"v{vid}",
        menu_name="Lunch",
        config_snapshot=LayoutConfig(selected_menu="Lunch"),
        items_snapshot=items,
    )


def _it(iid, name, price="5.00", **kw):
    return CatalogItem(
        id=str(iid),
        menu_name="Lunch",
        category_id=kw.pop("category_id", None),
        data=ItemData(name=name, price=Decimal(price), **kw),
    )


# ===========================================================================
# Save
# ===========================================================================
class TestSave:
    def test_blank_name_rejected(self):
        from storage.layout_errors import LayoutValidationError
        store = _store()
        with pytest.raises(LayoutValidationError):
            store.save("   ", config=_config(), items=[])
        assert _store().list() == []

    def test_snapshot_filters_menu(self):
        cat = _seed_items()
        v = _store().save("v1", "first cut", config=_config(), items=cat.items, created_by="sam")
        assert v.id
        assert v.created_by == "sam"
        assert v.change_notes == "first cut"
        assert v.is_published is False
        assert sorted(it.data.name for it in v.items_snapshot) == ["Burger", "Fries"]

        stored = _store().get(v.id)
        assert sorted(it.data.name for it in stored.items_snapshot) == ["Burger", "Fries"]
        assert stored.config_snapshot.theme.primary_color == "#9333ea"
        assert stored.config_snapshot.sections[0].id == "items-1"

    def test_snapshot_is_deep_copy(self):
        cat = _seed_items()
        store = _store()
        config = _config()
        items = cat.items
        v = store.save("v1", config=config, items=items)
        config.columns = 4
        config.sections.clear()
        items[0].data.name = "Changed"
        assert v.config_snapshot.columns == 2
        assert len(v.config_snapshot.sections) == 1
        assert "Changed" not in [it.data.name for it in store.get(v.id).items_snapshot]

    def test_newest_first(self):
        store = _store()
        v1 = store.save("v1", config=_config(), items=[])
        v2 = store.save("v2", config=_config(), items=[])
        assert [v.id for v in store.list()] == [v2.id, v1.id]
        assert [v.id for v in _store().list()] == [v2.id, v1.id]


# ===========================================================================
# Publish
# ===========================================================================
class TestPublish:
    def test_single_published(self):
        store = _store()
        v1 = store.save("v1", config=_config(), items=[])
        v2 = store.save("v2", config=_config(), items=[])
        store.publish(v1.id)
        assert store.published().id == v1.id
        store.publish(v2.id)
        assert store.published().id == v2.id

        reloaded = _store()
        assert [v.id for v in reloaded.list() if v.is_published] == [v2.id]

    def test_other_menu_untouched(self):
        dinner = _store("Dinner")
        d1 = dinner.save("d1", config=_config("Dinner"), items=[])
        dinner.publish(d1.id)

        lunch = _store("Lunch")
        l1 = lunch.save("l1", config=_config(), items=[])
        lunch.publish(l1.id)

        assert _store("Dinner").published().id == d1.id
        assert _store("Lunch").published().id == l1.id

    def test_foreign_id_never_resolves(self):
        from storage.layout_errors import VersionNotFoundError
        d1 = _store("Dinner").save("d1", config=_config("Dinner"), items=[])
        lunch = _store("Lunch")
        with pytest.raises(VersionNotFoundError):
            lunch.get(d1.id)
        with pytest.raises(VersionNotFoundError):
            lunch.publish(d1.id)
        with pytest.raises(VersionNotFoundError):
            _service().publish_version("b1", "Lunch", d1.id)

    def test_unknown_id(self):
        from storage.layout_errors import NotFoundError
        with pytest.raises(NotFoundError):
            _store().revert("12345")


# ===========================================================================
# Revert
# ===========================================================================
class TestRevert:
    def test_deep_copies(self):
        cat = _seed_items()
        store = _store()
        v = store.save("v1", config=_config(), items=cat.items)
        cfg1, items1 = store.revert(v.id)
        cfg1.sections.clear()
        items1[0].data.name = "Mutated"
        cfg2, items2 = store.revert(v.id)
        assert len(cfg2.sections) == 1
        assert "Mutated" not in [it.data.name for it in items2]


# ===========================================================================
# Export
# ===========================================================================
class TestExport:
    def test_document(self):
        cat = _seed_items()
        store = _store()
        v = store.save("Summer V2", config=_config(), items=cat.items)
        doc = store.export(v.id)
        assert list(doc) == ["menu_name", "version", "config", "items", "exported_at"]
        assert doc["menu_name"] == "Lunch"
        assert doc["version"] == "Summer V2"
        assert doc["exported_at"].endswith("Z")
        assert doc["config"]["selectedMenu"] == "Lunch"
        assert json.loads(store.export_json(v.id))["version"] == "Summer V2"

    def test_filename(self):
        from storage.versions import export_filename
        assert export_filename("Lunch Menu", "Summer V2") == "Lunch-Menu-summer-v2.json"
        v = _store("Lunch Menu").save("Fall  Edition", config=_config("Lunch Menu"), items=[])
        assert _store("Lunch Menu").export_filename(v.id) == "Lunch-Menu-fall-edition.json"

    def test_import_round_trip(self):
        from storage.versions import import_export
        cat = _seed_items()
        store = _store()
        v = store.save("v1", config=_config(), items=cat.items)
        config, items = import_export(json.loads(store.export_json(v.id)))
        assert config.layout_type == "grid"
        assert config.columns == 2
        assert config.theme.primary_color == "#9333ea"
        assert [s.id for s in config.sections] == ["items-1"]
        by_name = {it.data.name: it for it in items}
        assert set(by_name) == {"Burger", "Fries"}
        assert by_name["Fries"].data.price == Decimal("3.50")
        assert by_name["Fries"].data.description == "Crispy"

    def test_exact_price_survives_round_trip(self):
        from storage.versions import import_export
        store = _store()
        v = store.save("v1", config=_config(), items=[_it(1, "Caviar", "12345678901234567.89"), _it(2, "Tea", "3.50")])
        stored = {it.data.name: it.data.price for it in _store().get(v.id).items_snapshot}
        assert stored["Caviar"] == Decimal("12345678901234567.89")

        doc = json.loads(store.export_json(v.id))
        prices = {it["data"]["name"]: it["data"]["price"] for it in doc["items"]}
        assert prices == {"Caviar": "12345678901234567.89", "Tea": 3.5}
        _cfg, items = import_export(doc)
        assert {it.data.name: it.data.price for it in items}["Caviar"] == Decimal("12345678901234567.89")

    @pytest.mark.parametrize("doc", [[], {"menu_name": "Lunch"}, {"menu_name": "x", "config": {}, "items": "no"}])
    def test_import_rejects_malformed(self, doc):
        from storage.layout_errors import LayoutValidationError
        from storage.versions import import_export
        with pytest.raises(LayoutValidationError):
            import_export(doc)


# ===========================================================================
# Compare
# ===========================================================================
class TestCompare:
    def _diff(self):
        from storage.versions import compare_versions
        va = _ver(1, [_it(1, "Burger", "10.00"), _it(2, "Fries", "3.00"), _it(3, "Salad"), _it(4, "Tacos", "8.00")])
        vb = _ver(2, [_it(1, "Burger", "12.00"), _it(2, "Fries", "3.00"), _it(5, "Soup"), _it(9, " tacos ", "8.00")])
        return compare_versions(va, vb)

    def test_summary(self):
        diff = self._diff()
        assert diff["summary"] == {
            "added": 1, "removed": 1, "modified": 2, "unchanged": 1, "total_a": 4, "total_b": 4,
        }
        assert diff["version_a"]["version_name"] == "v1"
        assert diff["version_b"]["item_count"] == 4

    def test_ordering(self):
        statuses = [c["status"] for c in self._diff()["changes"]]
        assert statuses == ["modified", "modified", "added", "removed", "unchanged"]

    def test_price_direction(self):
        burger = next(c for c in self._diff()["changes"] if c["item_a"] and c["item_a"]["id"] == "1")
        assert burger["field_changes"] == [
            {"field": "price", "old": 10.0, "new": 12.0, "price_direction": "increase"},
        ]

    def test_name_match_pairs_across_ids(self):
        tacos = next(c for c in self._diff()["changes"] if c["item_a"] and c["item_a"]["id"] == "4")
        assert tacos["item_b"]["id"] == "9"
        assert [f["field"] for f in tacos["field_changes"]] == ["name"]

    def test_price_decrease(self):
        from storage.versions import compare_versions
        diff = compare_versions(_ver(1, [_it(1, "A", "9.00")]), _ver(2, [_it(1, "A", "7.00")]))
        assert diff["changes"][0]["field_changes"][0]["price_direction"] == "decrease"

    def test_via_store(self):
        cat = _seed_items()
        store = _store()
        v1 = store.save("v1", config=_config(), items=cat.items)
        burger = next(it for it in cat.items if it.data.name == "Burger")
        cat.update(burger.id, {"price": "11.00"})
        v2 = store.save("v2", config=_config(), items=cat.items)
        diff = store.compare(v1.id, v2.id)
        assert diff["summary"]["modified"] == 1
        assert diff["summary"]["unchanged"] == 1
