# storage/layout_db.py - SQLite persistence for the layout engine (Phase 11, Day 91+)
"""
SqliteLayoutService implements storage/layout_service.LayoutService on the
stdlib sqlite3 module.

Tables
------
layout_categories  one row per category, scoped by business_id
catalog_items      item data as a JSON blob; category_id is free TEXT so
                   stale ids survive (they resolve at render time)
layout_configs     one JSON config per (business_id, menu_name)
layout_versions    immutable JSON snapshots; is_published per menu

Deleting a category nulls category_id on that business's items in the same
transaction. Items are never deleted by a category delete.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .layout_errors import NotFoundError, VersionNotFoundError
from .layout_types import (
    CatalogItem,
    Category,
    ItemData,
    LayoutConfig,
    MenuVersion,
    config_from_dict,
    config_to_dict,
    item_from_dict,
    item_to_dict,
    ref_str,
)

log = logging.getLogger(__name__)

# ------------------------------------------------------------
# Paths / DB
# ------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]   # project root
DB_PATH = Path(os.getenv("LAYOUT_DB_PATH") or (ROOT / "storage" / "layout.db"))


def db_connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {k: row[k] for k in row.keys()}


# ------------------------------------------------------------
# Schema (idempotent; safe to call repeatedly)
# ------------------------------------------------------------
def ensure_schema() -> None:
    with db_connect() as conn:
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS layout_categories (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              business_id TEXT NOT NULL,
              name        TEXT NOT NULL,
              description TEXT,
              position    INTEGER NOT NULL DEFAULT 0,
              is_active   INTEGER NOT NULL DEFAULT 1,
              color       TEXT,
              icon        TEXT,
              created_at  TEXT NOT NULL,
              updated_at  TEXT
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS catalog_items (
              id           INTEGER PRIMARY KEY AUTOINCREMENT,
              business_id  TEXT NOT NULL,
              menu_name    TEXT NOT NULL,
              category_id  TEXT,
              is_active    INTEGER NOT NULL DEFAULT 1,
              data         TEXT NOT NULL DEFAULT '{}',
              date_created TEXT NOT NULL,
              updated_at   TEXT
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS layout_configs (
              business_id TEXT NOT NULL,
              menu_name   TEXT NOT NULL,
              config      TEXT NOT NULL,
              updated_at  TEXT NOT NULL,
              PRIMARY KEY (business_id, menu_name)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS layout_versions (
              id              INTEGER PRIMARY KEY AUTOINCREMENT,
              business_id     TEXT NOT NULL,
              menu_name       TEXT NOT NULL,
              version_name    TEXT NOT NULL,
              config_snapshot TEXT NOT NULL,
              items_snapshot  TEXT NOT NULL DEFAULT '[]',
              created_by      TEXT,
              created_at      TEXT NOT NULL,
              is_published    INTEGER NOT NULL DEFAULT 0,
              change_notes    TEXT
            )
        """)

        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_layout_categories_business "
            "ON layout_categories(business_id, position)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_catalog_items_business_menu "
            "ON catalog_items(business_id, menu_name)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_layout_versions_menu "
            "ON layout_versions(business_id, menu_name)"
        )
        conn.commit()


# ------------------------------------------------------------
# Row -> record
# ------------------------------------------------------------
def _category_from_row(row: sqlite3.Row) -> Category:
    return Category(
        id=str(row["id"]),
        name=row["name"],
        description=row["description"],
        position=int(row["position"] or 0),
        is_active=bool(row["is_active"]),
        color=row["color"],
        icon=row["icon"],
    )


def _item_from_row(row: sqlite3.Row) -> CatalogItem:
    d = _row_to_dict(row)
    try:
        d["data"] = json.loads(d.get("data") or "{}")
    except ValueError:
        log.warning("catalog_items.id=%s has unreadable data JSON", d.get("id"))
        d["data"] = {}
    return item_from_dict(d)


def _data_to_json(data: ItemData) -> str:
    blob = dict(data.extra)
    blob.update({
        "name": data.name,
        "price": str(data.price),
        "description": data.description,
        "image_url": data.image_url,
    })
    return json.dumps(blob, ensure_ascii=False)


def _version_from_row(row: sqlite3.Row) -> MenuVersion:
    items = json.loads(row["items_snapshot"] or "[]")
    return MenuVersion(
        id=str(row["id"]),
        version_name=row["version_name"],
        menu_name=row["menu_name"],
        config_snapshot=config_from_dict(json.loads(row["config_snapshot"] or "{}"), row["menu_name"]),
        items_snapshot=[item_from_dict(it) for it in items if isinstance(it, dict)],
        created_by=row["created_by"] or "",
        created_at=row["created_at"],
        is_published=bool(row["is_published"]),
        change_notes=row["change_notes"],
    )


# ====================================================================
# Service
# ====================================================================
class SqliteLayoutService:
    """LayoutService backed by the module-level db_connect()."""

    def __init__(self) -> None:
        ensure_schema()

    # -- categories ----------------------------------------------------
    def list_categories(self, business_id: str) -> List[Category]:
        with db_connect() as conn:
            rows = conn.execute(
                "SELECT * FROM layout_categories WHERE business_id = ? "
                "ORDER BY position ASC, id ASC",
                (str(business_id),),
            ).fetchall()
        return [_category_from_row(r) for r in rows]

    def _get_category(self, conn: sqlite3.Connection, business_id: str, category_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM layout_categories WHERE id = ? AND business_id = ?",
            (category_id, str(business_id)),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Category not found: {category_id}")
        return row

    def create_category(self, business_id: str, fields: Dict[str, Any]) -> Category:
        now = _now()
        with db_connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO layout_categories (business_id, name, description, position,
                                               is_active, color, icon, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(business_id),
                    fields["name"],
                    fields.get("description"),
                    int(fields.get("position") or 0),
                    1 if fields.get("is_active", True) else 0,
                    fields.get("color"),
                    fields.get("icon"),
                    now,
                    now,
                ),
            )
            conn.commit()
            row = self._get_category(conn, business_id, str(cur.lastrowid))
        return _category_from_row(row)

    def update_category(self, business_id: str, category_id: str, fields: Dict[str, Any]) -> Category:
        allowed = ("name", "description", "position", "is_active", "color", "icon")
        sets: List[str] = []
        args: List[Any] = []
        for key in allowed:
            if key in fields:
                val = fields[key]
                if key == "is_active":
                    val = 1 if val else 0
                sets.append(f"{key} = ?")
                args.append(val)
        with db_connect() as conn:
            self._get_category(conn, business_id, category_id)
            if sets:
                sets.append("updated_at = ?")
                args.extend([_now(), category_id, str(business_id)])
                conn.execute(
                    f"UPDATE layout_categories SET {', '.join(sets)} WHERE id = ? AND business_id = ?",
                    args,
                )
                conn.commit()
            row = self._get_category(conn, business_id, category_id)
        return _category_from_row(row)

    def delete_category(self, business_id: str, category_id: str) -> None:
        with db_connect() as conn:
            self._get_category(conn, business_id, category_id)
            conn.execute(
                "UPDATE catalog_items SET category_id = NULL, updated_at = ? "
                "WHERE business_id = ? AND category_id = ?",
                (_now(), str(business_id), str(category_id)),
            )
            conn.execute(
                "DELETE FROM layout_categories WHERE id = ? AND business_id = ?",
                (category_id, str(business_id)),
            )
            conn.commit()

    # -- items ---------------------------------------------------------
    def list_items(self, business_id: str, menu_name: Optional[str] = None) -> List[CatalogItem]:
        qs = "SELECT * FROM catalog_items WHERE business_id = ?"
        args: List[Any] = [str(business_id)]
        if menu_name is not None:
            qs += " AND menu_name = ?"
            args.append(menu_name)
        qs += " ORDER BY id ASC"
        with db_connect() as conn:
            rows = conn.execute(qs, args).fetchall()
        return [_item_from_row(r) for r in rows]

    def _get_item(self, conn: sqlite3.Connection, business_id: str, item_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM catalog_items WHERE id = ? AND business_id = ?",
            (item_id, str(business_id)),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return row

    def create_item(
        self,
        business_id: str,
        menu_name: str,
        data: ItemData,
        category_id: Optional[str] = None,
        is_active: bool = True,
    ) -> CatalogItem:
        with db_connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO catalog_items (business_id, menu_name, category_id, is_active,
                                           data, date_created, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(business_id),
                    menu_name,
                    ref_str(category_id),
                    1 if is_active else 0,
                    _data_to_json(data),
                    _now(),
                    _now(),
                ),
            )
            conn.commit()
            row = self._get_item(conn, business_id, str(cur.lastrowid))
        return _item_from_row(row)

    def update_item(self, business_id: str, item_id: str, fields: Dict[str, Any]) -> CatalogItem:
        sets: List[str] = []
        args: List[Any] = []
        if "menu_name" in fields:
            sets.append("menu_name = ?")
            args.append(fields["menu_name"])
        if "category_id" in fields:
            sets.append("category_id = ?")
            args.append(ref_str(fields["category_id"]))
        if "is_active" in fields:
            sets.append("is_active = ?")
            args.append(1 if fields["is_active"] else 0)
        if "data" in fields:
            sets.append("data = ?")
            args.append(_data_to_json(fields["data"]))
        with db_connect() as conn:
            self._get_item(conn, business_id, item_id)
            if sets:
                sets.append("updated_at = ?")
                args.extend([_now(), item_id, str(business_id)])
                conn.execute(
                    f"UPDATE catalog_items SET {', '.join(sets)} WHERE id = ? AND business_id = ?",
                    args,
                )
                conn.commit()
            row = self._get_item(conn, business_id, item_id)
        return _item_from_row(row)

    def delete_item(self, business_id: str, item_id: str) -> None:
        with db_connect() as conn:
            self._get_item(conn, business_id, item_id)
            conn.execute(
                "DELETE FROM catalog_items WHERE id = ? AND business_id = ?",
                (item_id, str(business_id)),
            )
            conn.commit()

    # -- layout config -------------------------------------------------
    def load_layout_config(self, business_id: str, menu_name: str) -> Optional[LayoutConfig]:
        with db_connect() as conn:
            row = conn.execute(
                "SELECT config FROM layout_configs WHERE business_id = ? AND menu_name = ?",
                (str(business_id), menu_name),
            ).fetchone()
        if row is None:
            return None
        return config_from_dict(json.loads(row["config"] or "{}"), menu_name)

    def save_layout_config(self, business_id: str, menu_name: str, config: LayoutConfig) -> None:
        blob = json.dumps(config_to_dict(config), ensure_ascii=False)
        with db_connect() as conn:
            conn.execute(
                """
                INSERT INTO layout_configs (business_id, menu_name, config, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(business_id, menu_name)
                DO UPDATE SET config = excluded.config, updated_at = excluded.updated_at
                """,
                (str(business_id), menu_name, blob, _now()),
            )
            conn.commit()

    # -- versions ------------------------------------------------------
    def list_versions(self, business_id: str, menu_name: str) -> List[MenuVersion]:
        with db_connect() as conn:
            rows = conn.execute(
                "SELECT * FROM layout_versions WHERE business_id = ? AND menu_name = ? "
                "ORDER BY created_at DESC, id DESC",
                (str(business_id), menu_name),
            ).fetchall()
        return [_version_from_row(r) for r in rows]

    def create_version(self, business_id: str, version: MenuVersion) -> MenuVersion:
        with db_connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO layout_versions (business_id, menu_name, version_name,
                                             config_snapshot, items_snapshot, created_by,
                                             created_at, is_published, change_notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    str(business_id),
                    version.menu_name,
                    version.version_name,
                    json.dumps(config_to_dict(version.config_snapshot), ensure_ascii=False),
                    json.dumps([item_to_dict(it) for it in version.items_snapshot], ensure_ascii=False),
                    version.created_by,
                    version.created_at or _now(),
                    version.change_notes,
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM layout_versions WHERE id = ?", (cur.lastrowid,)
            ).fetchone()
        return _version_from_row(row)

    def publish_version(self, business_id: str, menu_name: str, version_id: str) -> None:
        with db_connect() as conn:
            row = conn.execute(
                "SELECT id FROM layout_versions WHERE id = ? AND business_id = ? AND menu_name = ?",
                (version_id, str(business_id), menu_name),
            ).fetchone()
            if row is None:
                raise VersionNotFoundError(f"Version not found: {version_id}")
            conn.execute(
                "UPDATE layout_versions SET is_published = CASE WHEN id = ? THEN 1 ELSE 0 END "
                "WHERE business_id = ? AND menu_name = ?",
                (version_id, str(business_id), menu_name),
            )
            conn.commit()
