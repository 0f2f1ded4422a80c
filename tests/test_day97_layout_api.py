"""
Day 97 -- Layout Portal JSON API (Phase 11, Day 7).

Covers:
  Envelope:
  - non-object bodies -> 400 {"ok": false}
  - unknown ids -> 404
  - unexpected failures -> 500, logged
  - oversized bodies -> 413

  Categories:
  - create / patch / delete / move
  - item counts per menu
  - suggestions list + add

  Items:
  - create / list by menu / patch / duplicate / delete
  - menus listing

  Layout:
  - GET default config for a new menu
  - PUT validates, regenerates and persists propagated sections
  - Infinity columns -> 400; overflowing theme tokens fall back to defaults
  - stored + draft preview with placement

  Versions:
  - create, list with published_id, publish
  - export.json / export.xlsx downloads
  - compare requires a and b
  - revert
  - import preview

  Misc:
  - /api/themes/presets, /__ping, /__routes, /health
"""

from __future__ import annotations

import io
import sqlite3
from typing import Optional

import pytest


# ---------------------------------------------------------------------------
# In-memory DB helpers
# ---------------------------------------------------------------------------
_TEST_CONN: Optional[sqlite3.Connection] = None


def _make_test_db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
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


@pytest.fixture
def client(monkeypatch):
    _patch_db(monkeypatch)
    from portal.app import app
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    global _TEST_CONN
    _TEST_CONN = None


BASE = "/api/businesses/b1"


def _seed(client):
    apps = client.post(f"{BASE}/categories", json={"name": "Appetizers", "color": "#10b981"}).get_json()["category"]
    mains = client.post(f"{BASE}/categories", json={"name": "Mains"}).get_json()["category"]
    client.post(f"{BASE}/items", json={"menu_name": "Lunch", "name": "Wings", "price": "9.00", "category_id": apps["id"]})
    client.post(f"{BASE}/items", json={"menu_name": "Lunch", "name": "Burger", "price": 12, "category_id": mains["id"]})
    client.post(f"{BASE}/items", json={"menu_name": "Dinner", "name": "Steak", "price": "25.00"})
    return apps, mains


# ===========================================================================
# Envelope
# ===========================================================================
class TestEnvelope:
    def test_non_object_body(self, client):
        resp = client.post(f"{BASE}/categories", data="not json", content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json() == {"ok": False, "error": "Expected JSON object"}

    def test_validation_error(self, client):
        resp = client.post(f"{BASE}/categories", json={"name": "  "})
        assert resp.status_code == 400
        assert resp.get_json()["ok"] is False

    def test_not_found(self, client):
        resp = client.patch(f"{BASE}/categories/404", json={"name": "Ghost"})
        assert resp.status_code == 404
        assert resp.get_json()["ok"] is False

    def test_unexpected_failure(self, client, monkeypatch):
        from storage.layout_db import SqliteLayoutService

        def boom(self, business_id, menu_name=None):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(SqliteLayoutService, "list_items", boom)
        resp = client.get(f"{BASE}/items")
        assert resp.status_code == 500
        assert resp.get_json() == {"ok": False, "error": "disk on fire"}

    def test_body_too_large(self, client, monkeypatch):
        from portal.app import app
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64)
        resp = client.post(f"{BASE}/categories", json={"name": "x" * 500})
        assert resp.status_code == 413
        assert resp.get_json()["ok"] is False


# ===========================================================================
# Categories
# ===========================================================================
class TestCategoriesApi:
    def test_create_and_list(self, client):
        apps, mains = _seed(client)
        assert apps["position"] == 0
        assert mains["position"] == 1
        assert mains["color"] == "#3b82f6"

        cats = client.get(f"{BASE}/categories?menu=Lunch").get_json()["categories"]
        assert [(c["name"], c["item_count"]) for c in cats] == [("Appetizers", 1), ("Mains", 1)]

        # Steak has no category: counts under the first category when menus aren't filtered
        cats = client.get(f"{BASE}/categories").get_json()["categories"]
        assert [c["item_count"] for c in cats] == [2, 1]

    def test_patch(self, client):
        apps, _mains = _seed(client)
        resp = client.patch(f"{BASE}/categories/{apps['id']}", json={"name": "Starters"})
        assert resp.status_code == 200
        assert resp.get_json()["category"]["name"] == "Starters"

    def test_move(self, client):
        apps, mains = _seed(client)
        resp = client.post(f"{BASE}/categories/{mains['id']}/move", json={"direction": "up"})
        assert [c["name"] for c in resp.get_json()["categories"]] == ["Mains", "Appetizers"]
        assert client.post(f"{BASE}/categories/{mains['id']}/move", json={"direction": "left"}).status_code == 400

    def test_delete_detaches_items(self, client):
        apps, _mains = _seed(client)
        resp = client.delete(f"{BASE}/categories/{apps['id']}")
        assert [c["name"] for c in resp.get_json()["categories"]] == ["Mains"]
        assert resp.get_json()["categories"][0]["position"] == 0
        items = client.get(f"{BASE}/items?menu=Lunch").get_json()["items"]
        wings = next(it for it in items if it["data"]["name"] == "Wings")
        assert wings["category_id"] is None

    def test_suggestions(self, client):
        client.post(f"{BASE}/categories", json={"name": "Appetizers"})
        data = client.get(f"{BASE}/categories/suggestions").get_json()
        names = [s["name"] for s in data["suggestions"]]
        assert "Appetizers" not in names
        assert "Desserts" in names

        resp = client.post(f"{BASE}/categories/suggestions", json={"name": "Desserts"})
        assert resp.status_code == 201
        cat = resp.get_json()["category"]
        assert cat["description"] == "Desserts category"
        assert cat["color"] == "#f59e0b"

        assert client.post(f"{BASE}/categories/suggestions", json={"name": "Nope"}).status_code == 404


# ===========================================================================
# Items
# ===========================================================================
class TestItemsApi:
    def test_create_list_menus(self, client):
        _seed(client)
        lunch = client.get(f"{BASE}/items?menu=Lunch").get_json()["items"]
        assert sorted(it["data"]["name"] for it in lunch) == ["Burger", "Wings"]
        assert next(it for it in lunch if it["data"]["name"] == "Wings")["data"]["price"] == 9.0
        assert client.get(f"{BASE}/menus").get_json()["menus"] == ["Lunch", "Dinner"]

    def test_create_rejects(self, client):
        assert client.post(f"{BASE}/items", json={"menu_name": "Lunch"}).status_code == 400
        assert client.post(f"{BASE}/items", json={"menu_name": "Lunch", "name": "X", "price": "-1"}).status_code == 400
        assert client.post(f"{BASE}/items", json={"name": "X"}).status_code == 400

    def test_patch_duplicate_delete(self, client):
        _seed(client)
        burger = next(
            it for it in client.get(f"{BASE}/items").get_json()["items"] if it["data"]["name"] == "Burger"
        )
        resp = client.patch(f"{BASE}/items/{burger['id']}", json={"price": "13.50"})
        assert resp.get_json()["item"]["data"]["price"] == 13.5

        dup = client.post(f"{BASE}/items/{burger['id']}/duplicate").get_json()["item"]
        assert dup["data"]["name"] == "Burger (Copy)"
        assert dup["id"] != burger["id"]

        assert client.delete(f"{BASE}/items/{dup['id']}").get_json() == {"ok": True, "deleted": dup["id"]}
        assert client.delete(f"{BASE}/items/{dup['id']}").status_code == 404


# ===========================================================================
# Layout config + preview
# ===========================================================================
class TestLayoutApi:
    def test_default_config(self, client):
        cfg = client.get(f"{BASE}/menus/Brunch/config").get_json()["config"]
        assert cfg["selectedMenu"] == "Brunch"
        assert cfg["layout_type"] == "list"
        assert cfg["sections"] == []
        assert cfg["theme"]["primary_color"] == "#3b82f6"

    def test_put_regenerate_and_persist(self, client):
        apps, mains = _seed(client)
        body = {
            "config": {
                "layout_type": "grid",
                "columns": 2,
                "theme": {"primary_color": "#111827"},
                "sections": [{"id": "ad-1", "type": "ad", "content": {"text": "Visit us"}}],
            },
            "regenerate": True,
        }
        resp = client.put(f"{BASE}/menus/Lunch/config", json=body)
        assert resp.status_code == 200
        saved = resp.get_json()["config"]
        assert [s["id"] for s in saved["sections"]] == [
            f"category-{apps['id']}", f"items-{apps['id']}",
            f"category-{mains['id']}", f"items-{mains['id']}",
            "ad-1",
        ]
        assert saved["sections"][0]["content"]["background_color"] == "#111827"
        assert saved["sections"][1]["layout"] == "grid"
        assert saved["sections"][1]["style"]["primary_color"] == "#111827"

        stored = client.get(f"{BASE}/menus/Lunch/config").get_json()["config"]
        assert stored == saved

    def test_put_rejects(self, client):
        assert client.put(f"{BASE}/menus/Lunch/config", json={"layout_type": "carousel"}).status_code == 400
        assert client.put(f"{BASE}/menus/Lunch/config", json={"sections": [{"type": "banner"}]}).status_code == 400
        bad_theme = {"theme": {"bg_color": "blue"}}
        assert client.put(f"{BASE}/menus/Lunch/config", json=bad_theme).status_code == 400
        dupes = {"sections": [{"id": "x", "type": "ad"}, {"id": "x", "type": "special"}]}
        assert client.put(f"{BASE}/menus/Lunch/config", json=dupes).status_code == 400

    def test_infinite_columns_rejected(self, client):
        body = '{"config": {"columns": Infinity}}'
        put = client.put(f"{BASE}/menus/Lunch/config", data=body, content_type="application/json")
        assert put.status_code == 400
        assert put.get_json()["ok"] is False
        post = client.post(f"{BASE}/menus/Lunch/preview", data=body, content_type="application/json")
        assert post.status_code == 400
        assert "columns" in post.get_json()["error"]

    def test_overflowing_theme_token_falls_back(self, client):
        _seed(client)
        body = '{"config": {"theme": {"card_elevation": 1e400}}}'
        put = client.put(f"{BASE}/menus/Lunch/config", data=body, content_type="application/json")
        assert put.status_code == 200
        assert put.get_json()["config"]["theme"]["card_elevation"] == 2
        post = client.post(f"{BASE}/menus/Lunch/preview", data=body, content_type="application/json")
        assert post.status_code == 200
        assert post.get_json()["tree"]["type"] == "screen"

    def test_preview_stored(self, client):
        apps, mains = _seed(client)
        data = client.get(f"{BASE}/menus/Lunch/preview").get_json()
        assert data["tree"]["type"] == "screen"
        assert sorted(data["placement"].values()) == sorted([apps["id"], mains["id"]])

    def test_preview_draft(self, client):
        apps, _mains = _seed(client)
        body = {
            "config": {"sections": [{"id": "l", "type": "items", "category_id": "uncategorized"}]},
            "business": {"id": 7, "name": "Joe's", "button_label": "Menu"},
        }
        data = client.post(f"{BASE}/menus/Lunch/preview", json=body).get_json()
        assert data["tree"]["props"]["business_name"] == "Joe's"
        assert list(data["placement"].values()) == [apps["id"]]

    def test_preview_empty_menu(self, client):
        tree = client.get(f"{BASE}/menus/Brunch/preview").get_json()["tree"]
        assert tree["children"][0]["props"]["message"] == "No items in Brunch"


# ===========================================================================
# Versions
# ===========================================================================
class TestVersionsApi:
    def _version(self, client, name="v1"):
        resp = client.post(
            f"{BASE}/menus/Lunch/versions",
            json={"name": name, "notes": "launch"},
            headers={"X-User": "sam"},
        )
        assert resp.status_code == 201
        return resp.get_json()["version"]

    def test_create_list_publish(self, client):
        _seed(client)
        v1 = self._version(client)
        assert v1["created_by"] == "sam"
        assert v1["change_notes"] == "launch"
        assert len(v1["items_snapshot"]) == 2

        v2 = self._version(client, "v2")
        client.post(f"{BASE}/menus/Lunch/versions/{v1['id']}/publish")
        data = client.get(f"{BASE}/menus/Lunch/versions").get_json()
        assert [v["id"] for v in data["versions"]] == [v2["id"], v1["id"]]
        assert data["published_id"] == v1["id"]

        assert client.post(f"{BASE}/menus/Dinner/versions/{v1['id']}/publish").status_code == 404

    def test_blank_name(self, client):
        assert client.post(f"{BASE}/menus/Lunch/versions", json={"name": " "}).status_code == 400
        assert client.post(f"{BASE}/menus/Lunch/versions", json={}).status_code == 400

    def test_export_json(self, client):
        _seed(client)
        v = self._version(client, "Summer V2")
        resp = client.get(f"{BASE}/menus/Lunch/versions/{v['id']}/export.json")
        assert resp.status_code == 200
        assert 'filename="Lunch-summer-v2.json"' in resp.headers["Content-Disposition"]
        doc = resp.get_json()
        assert doc["version"] == "Summer V2"
        assert doc["exported_at"].endswith("Z")

    def test_export_xlsx(self, client):
        from openpyxl import load_workbook
        _seed(client)
        v = self._version(client)
        resp = client.get(f"{BASE}/menus/Lunch/versions/{v['id']}/export.xlsx")
        assert resp.status_code == 200
        assert resp.headers["Content-Disposition"].endswith('filename="Lunch-v1.xlsx"')
        ws = load_workbook(io.BytesIO(resp.data)).active
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0][:4] == ("id", "name", "description", "price")
        assert sorted(r[1] for r in rows[1:]) == ["Burger", "Wings"]

    def test_compare(self, client):
        _seed(client)
        v1 = self._version(client)
        burger = next(
            it for it in client.get(f"{BASE}/items?menu=Lunch").get_json()["items"]
            if it["data"]["name"] == "Burger"
        )
        client.patch(f"{BASE}/items/{burger['id']}", json={"price": "10.00"})
        v2 = self._version(client, "v2")

        diff = client.get(f"{BASE}/menus/Lunch/versions/compare?a={v1['id']}&b={v2['id']}").get_json()["diff"]
        assert diff["summary"]["modified"] == 1
        assert diff["changes"][0]["field_changes"][0]["price_direction"] == "decrease"
        assert client.get(f"{BASE}/menus/Lunch/versions/compare?a={v1['id']}").status_code == 400

    def test_revert(self, client):
        _seed(client)
        v = self._version(client)
        wings = next(
            it for it in client.get(f"{BASE}/items?menu=Lunch").get_json()["items"]
            if it["data"]["name"] == "Wings"
        )
        client.delete(f"{BASE}/items/{wings['id']}")
        data = client.post(f"{BASE}/menus/Lunch/versions/{v['id']}/revert").get_json()
        assert sorted(it["data"]["name"] for it in data["items"]) == ["Burger", "Wings"]
        lunch = client.get(f"{BASE}/items?menu=Lunch").get_json()["items"]
        assert sorted(it["data"]["name"] for it in lunch) == ["Burger", "Wings"]

    def test_import_preview(self, client):
        _seed(client)
        v = self._version(client)
        doc = client.get(f"{BASE}/menus/Lunch/versions/{v['id']}/export.json").get_json()
        data = client.post(f"{BASE}/menus/Brunch/import", json=doc).get_json()
        assert data["config"]["selectedMenu"] == "Brunch"
        assert data["tree"]["props"]["title"] == "Brunch"
        assert client.post(f"{BASE}/menus/Brunch/import", json={"menu_name": "x"}).status_code == 400


# ===========================================================================
# Misc
# ===========================================================================
class TestMisc:
    def test_presets(self, client):
        data = client.get("/api/themes/presets").get_json()
        assert set(data["presets"]) == {"Default", "Dark", "Warm", "Cool", "Nature", "Elegant"}
        assert data["ranges"]["border_radius"] == {"min": 0, "max": 24}
        assert data["promotional"]["ad"]["label"] == "Advertisement"
        assert "20% Off Sale" in data["templates"]

    def test_ping_and_routes(self, client):
        assert client.get("/__ping").get_json()["ok"] is True
        rules = client.get("/__routes").get_json()
        assert "/health" in rules
        assert "/api/businesses/<business_id>/menus/<menu_name>/config" in rules

    def test_health(self, client):
        data = client.get("/health").get_json()
        assert data["status"] == "ok"
        assert data["db"] == {"ok": True}

    def test_index(self, client):
        assert client.get("/").get_json()["service"] == "menu-layout-portal"
