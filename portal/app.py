# portal/app.py
from flask import Flask, jsonify, request, make_response

# --- Standard libs & typing ---
import io
import os
import sys
from pathlib import Path
from functools import wraps
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from openpyxl import Workbook
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

# --- Paths ---
ROOT = Path(__file__).resolve().parents[1]

# Make project root importable so we can import storage.*
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

# --- Load .env if available (LAYOUT_DB_PATH / PORTAL_SECRET_KEY / THEME_DEBOUNCE_MS) ---
load_dotenv(ROOT / ".env")

from storage import layout_db
from storage.category_store import CategoryStore, business_labels
from storage.contracts import validate_config_payload
from storage.item_catalog import ItemCatalog
from storage.layout_editor import LayoutEditor
from storage.layout_errors import LayoutValidationError, NotFoundError
from storage.layout_types import (
    BusinessInfo,
    category_to_dict,
    config_from_dict,
    config_to_dict,
    item_to_dict,
    version_to_dict,
)
from storage.preview import collect_item_placement, render
from storage.sections import CONTENT_TEMPLATES, PROMO_DEFAULTS, PROMO_LABELS
from storage.theme import COLOR_PRESETS, FONT_OPTIONS, SLIDER_RANGES
from storage.versions import import_export

from portal.contracts import (
    business_from_payload,
    validate_item_payload,
    validate_move_payload,
    validate_object,
    validate_preview_payload,
    validate_version_payload,
)

# ------------------------
# App & Config
# ------------------------
app = Flask(__name__)

app.config["SECRET_KEY"] = os.getenv("PORTAL_SECRET_KEY") or "dev-secret-change-me"
app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024        # JSON bodies only


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


# ------------------------
# Service / store factories
# ------------------------
def _service() -> layout_db.SqliteLayoutService:
    return layout_db.SqliteLayoutService()


def _catalog(business_id: str, menu_name: Optional[str] = None) -> ItemCatalog:
    catalog = ItemCatalog(_service(), business_id)
    catalog.load(menu_name)
    return catalog


def _categories(business_id: str, catalog: Optional[ItemCatalog] = None) -> CategoryStore:
    store = CategoryStore(_service(), business_id, catalog=catalog)
    store.load()
    return store


def _editor(business_id: str, menu_name: str) -> LayoutEditor:
    editor = LayoutEditor(
        _service(),
        business_id,
        menu_name,
        created_by=request.headers.get("X-User", ""),
    )
    editor.load()
    return editor


# ------------------------
# Error envelope
# ------------------------
def api_errors(view):
    """Map layout errors onto the JSON envelope: 400 / 404 / 500."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except LayoutValidationError as e:
            return jsonify({"ok": False, "error": str(e)}), 400
        except NotFoundError as e:
            return jsonify({"ok": False, "error": str(e)}), 404
        except RequestEntityTooLarge:
            return jsonify({"ok": False, "error": "Request body too large. Raise MAX_CONTENT_LENGTH for bigger documents."}), 413
        except Exception as e:
            app.logger.exception("Layout API failure in %s", view.__name__)
            return jsonify({"ok": False, "error": str(e)}), 500
    return wrapper


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    ok, err = validate_object(payload)
    if not ok:
        raise LayoutValidationError(err)
    return payload


def _check(result) -> None:
    ok, err = result
    if not ok:
        raise LayoutValidationError(err)


# ------------------------
# Categories
# ------------------------
@app.get("/api/businesses/<business_id>/categories")
@api_errors
def list_categories(business_id):
    menu_name = request.args.get("menu")
    catalog = _catalog(business_id)
    store = _categories(business_id, catalog)
    cats = store.with_item_counts(catalog.items, menu_name)
    return jsonify({"ok": True, "categories": [category_to_dict(c) for c in cats]})


@app.post("/api/businesses/<business_id>/categories")
@api_errors
def create_category(business_id):
    body = _json_body()
    store = _categories(business_id)
    cat = store.create(
        body.get("name"),
        description=body.get("description"),
        color=body.get("color") or "#3b82f6",
        icon=body.get("icon"),
    )
    return jsonify({"ok": True, "category": category_to_dict(cat)}), 201


@app.patch("/api/businesses/<business_id>/categories/<category_id>")
@api_errors
def update_category(business_id, category_id):
    body = _json_body()
    store = _categories(business_id)
    cat = store.update(category_id, body)
    return jsonify({"ok": True, "category": category_to_dict(cat)})


@app.delete("/api/businesses/<business_id>/categories/<category_id>")
@api_errors
def delete_category(business_id, category_id):
    catalog = _catalog(business_id)
    store = _categories(business_id, catalog)
    store.delete(category_id)
    return jsonify({
        "ok": True,
        "categories": [category_to_dict(c) for c in store.categories],
    })


@app.post("/api/businesses/<business_id>/categories/<category_id>/move")
@api_errors
def move_category(business_id, category_id):
    body = request.get_json(silent=True)
    _check(validate_move_payload(body))
    store = _categories(business_id)
    cats = store.reorder(category_id, body["direction"])
    return jsonify({"ok": True, "categories": [category_to_dict(c) for c in cats]})


@app.get("/api/businesses/<business_id>/categories/suggestions")
@api_errors
def category_suggestions(business_id):
    business_type = request.args.get("business_type") or "food"
    store = _categories(business_id)
    return jsonify({
        "ok": True,
        "business_type": business_type,
        "labels": business_labels(business_type),
        "suggestions": store.suggestions(business_type),
    })


@app.post("/api/businesses/<business_id>/categories/suggestions")
@api_errors
def add_suggested_category(business_id):
    body = _json_body()
    store = _categories(business_id)
    cat = store.add_suggested(str(body.get("name") or ""), body.get("business_type") or "food")
    return jsonify({"ok": True, "category": category_to_dict(cat)}), 201


# ------------------------
# Items
# ------------------------
@app.get("/api/businesses/<business_id>/items")
@api_errors
def list_items(business_id):
    menu_name = request.args.get("menu")
    catalog = _catalog(business_id, menu_name)
    items = catalog.items_for_menu(menu_name) if menu_name else catalog.items
    return jsonify({"ok": True, "items": [item_to_dict(it) for it in items]})


@app.post("/api/businesses/<business_id>/items")
@api_errors
def create_item(business_id):
    body = request.get_json(silent=True)
    _check(validate_item_payload(body))
    catalog = ItemCatalog(_service(), business_id)
    item = catalog.create(
        body.get("menu_name") or request.args.get("menu") or "",
        body.get("name"),
        body.get("price", 0),
        description=body.get("description"),
        image_url=body.get("image_url"),
        category_id=body.get("category_id"),
        is_active=bool(body.get("is_active", True)),
        extra=body.get("extra"),
    )
    return jsonify({"ok": True, "item": item_to_dict(item)}), 201


@app.patch("/api/businesses/<business_id>/items/<item_id>")
@api_errors
def update_item(business_id, item_id):
    body = request.get_json(silent=True)
    _check(validate_item_payload(body, partial=True))
    catalog = _catalog(business_id)
    item = catalog.update(item_id, body)
    return jsonify({"ok": True, "item": item_to_dict(item)})


@app.delete("/api/businesses/<business_id>/items/<item_id>")
@api_errors
def delete_item(business_id, item_id):
    catalog = _catalog(business_id)
    catalog.delete(item_id)
    return jsonify({"ok": True, "deleted": str(item_id)})


@app.post("/api/businesses/<business_id>/items/<item_id>/duplicate")
@api_errors
def duplicate_item(business_id, item_id):
    catalog = _catalog(business_id)
    item = catalog.duplicate(item_id)
    return jsonify({"ok": True, "item": item_to_dict(item)}), 201


@app.get("/api/businesses/<business_id>/menus")
@api_errors
def list_menu_names(business_id):
    catalog = _catalog(business_id)
    return jsonify({"ok": True, "menus": catalog.menu_names()})


# ------------------------
# Layout config + preview
# ------------------------
@app.get("/api/businesses/<business_id>/menus/<menu_name>/config")
@api_errors
def get_layout_config(business_id, menu_name):
    editor = _editor(business_id, menu_name)
    return jsonify({"ok": True, "config": config_to_dict(editor.config)})


@app.put("/api/businesses/<business_id>/menus/<menu_name>/config")
@api_errors
def save_layout_config(business_id, menu_name):
    body = _json_body()
    raw = body.get("config", body)
    _check(validate_config_payload(raw))
    with _editor(business_id, menu_name) as editor:
        editor.config = config_from_dict(raw, menu_name)
        editor.config.selected_menu = menu_name
        if body.get("regenerate"):
            editor.regenerate_sections()
        saved = editor.save_theme_with_layout()
    return jsonify({"ok": True, "config": config_to_dict(saved), "saved_at": _now_iso()})


@app.get("/api/businesses/<business_id>/menus/<menu_name>/preview")
@api_errors
def preview_stored(business_id, menu_name):
    editor = _editor(business_id, menu_name)
    tree = editor.preview()
    return jsonify({"ok": True, "tree": tree, "placement": collect_item_placement(tree)})


@app.post("/api/businesses/<business_id>/menus/<menu_name>/preview")
@api_errors
def preview_draft(business_id, menu_name):
    body = request.get_json(silent=True)
    _check(validate_preview_payload(body))
    editor = _editor(business_id, menu_name)
    config = editor.config
    if body.get("config") is not None:
        config = config_from_dict(body["config"], menu_name)
    biz = business_from_payload(body.get("business"))
    business = BusinessInfo(**biz) if biz else None
    tree = render(config, editor.catalog.items, editor.categories.categories, business)
    return jsonify({"ok": True, "tree": tree, "placement": collect_item_placement(tree)})


# ------------------------
# Versions
# ------------------------
@app.get("/api/businesses/<business_id>/menus/<menu_name>/versions")
@api_errors
def list_versions(business_id, menu_name):
    editor = _editor(business_id, menu_name)
    versions = editor.versions.list()
    published = editor.versions.published()
    return jsonify({
        "ok": True,
        "versions": [version_to_dict(v) for v in versions],
        "published_id": published.id if published else None,
    })


@app.post("/api/businesses/<business_id>/menus/<menu_name>/versions")
@api_errors
def create_version(business_id, menu_name):
    body = request.get_json(silent=True)
    _check(validate_version_payload(body))
    editor = _editor(business_id, menu_name)
    v = editor.save_version(
        body.get("name", body.get("version_name")),
        body.get("notes", body.get("change_notes")),
    )
    return jsonify({"ok": True, "version": version_to_dict(v)}), 201


@app.post("/api/businesses/<business_id>/menus/<menu_name>/versions/<version_id>/publish")
@api_errors
def publish_version(business_id, menu_name, version_id):
    editor = _editor(business_id, menu_name)
    v = editor.publish_version(version_id)
    return jsonify({"ok": True, "version": version_to_dict(v)})


@app.post("/api/businesses/<business_id>/menus/<menu_name>/versions/<version_id>/revert")
@api_errors
def revert_version(business_id, menu_name, version_id):
    editor = _editor(business_id, menu_name)
    config, items = editor.revert_to(version_id)
    return jsonify({
        "ok": True,
        "config": config_to_dict(config),
        "items": [item_to_dict(it) for it in items],
    })


@app.get("/api/businesses/<business_id>/menus/<menu_name>/versions/<version_id>/export.json")
@api_errors
def export_version_json(business_id, menu_name, version_id):
    editor = _editor(business_id, menu_name)
    filename, text = editor.export_version(version_id)
    filename = secure_filename(filename)
    resp = make_response(text)
    resp.headers["Content-Type"] = "application/json; charset=utf-8"
    resp.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp


@app.get("/api/businesses/<business_id>/menus/<menu_name>/versions/<version_id>/export.xlsx")
@api_errors
def export_version_xlsx(business_id, menu_name, version_id):
    editor = _editor(business_id, menu_name)
    v = editor.versions.get(version_id)
    cats = {c.id: c.name for c in editor.categories.categories}

    wb = Workbook()
    ws = wb.active
    ws.title = (v.version_name or f"Version {v.id}")[:31]

    headers = ["id", "name", "description", "price", "category_id", "category", "is_active", "image_url"]
    ws.append(headers)
    for it in v.items_snapshot:
        ws.append([
            it.id,
            it.data.name,
            it.data.description or "",
            float(it.data.price),
            it.category_id or "",
            cats.get(it.category_id or "", ""),
            "yes" if it.is_active else "no",
            it.data.image_url or "",
        ])

    out = io.BytesIO()
    wb.save(out)
    out.seek(0)

    filename = secure_filename(editor.versions.export_filename(version_id).replace(".json", ".xlsx"))
    resp = make_response(out.read())
    resp.headers["Content-Type"] = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    resp.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp


@app.get("/api/businesses/<business_id>/menus/<menu_name>/versions/compare")
@api_errors
def compare_versions(business_id, menu_name):
    a = request.args.get("a")
    b = request.args.get("b")
    if not a or not b:
        raise LayoutValidationError("query parameters a and b are required")
    editor = _editor(business_id, menu_name)
    return jsonify({"ok": True, "diff": editor.versions.compare(a, b)})


@app.post("/api/businesses/<business_id>/menus/<menu_name>/import")
@api_errors
def import_version_export(business_id, menu_name):
    """Preview an export document as it would render (nothing is written)."""
    body = _json_body()
    config, items = import_export(body)
    config.selected_menu = menu_name
    for it in items:
        it.menu_name = menu_name
    editor = _editor(business_id, menu_name)
    tree = render(config, items, editor.categories.categories)
    return jsonify({"ok": True, "config": config_to_dict(config), "tree": tree})


# ------------------------
# Theme catalog
# ------------------------
@app.get("/api/themes/presets")
def theme_presets():
    return jsonify({
        "ok": True,
        "presets": COLOR_PRESETS,
        "fonts": FONT_OPTIONS,
        "ranges": {k: {"min": lo, "max": hi} for k, (lo, hi) in SLIDER_RANGES.items()},
        "promotional": {
            kind: {"label": PROMO_LABELS[kind], "content": content}
            for kind, content in PROMO_DEFAULTS.items()
        },
        "templates": CONTENT_TEMPLATES,
    })


# ------------------------
# Diagnostics
# ------------------------
@app.get("/__ping")
def __ping():
    return jsonify({"ok": True, "time": _now_iso()})


@app.get("/__routes")
def __routes():
    return jsonify(sorted([r.rule for r in app.url_map.iter_rules()]))


# ------------------------
# Blueprint registration (core)
# ------------------------
from routes.core import core_bp

app.register_blueprint(core_bp)

# ------------------------
# Run
# ------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
