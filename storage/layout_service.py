# storage/layout_service.py
"""
The stores (categories, items, versions) and the editor talk to persistence
only through this interface. Every call is an atomic request/response with
no retries; failures propagate to the caller unchanged.

storage/layout_db.py is the SQLite implementation the portal uses.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .layout_types import CatalogItem, Category, ItemData, LayoutConfig, MenuVersion


class LayoutService(Protocol):
    # -- categories ----------------------------------------------------
    def list_categories(self, business_id: str) -> List[Category]: ...

    def create_category(self, business_id: str, fields: Dict[str, Any]) -> Category: ...

    def update_category(self, business_id: str, category_id: str, fields: Dict[str, Any]) -> Category: ...

    def delete_category(self, business_id: str, category_id: str) -> None: ...

    # -- items ---------------------------------------------------------
    def list_items(self, business_id: str, menu_name: Optional[str] = None) -> List[CatalogItem]: ...

    def create_item(
        self,
        business_id: str,
        menu_name: str,
        data: ItemData,
        category_id: Optional[str] = None,
        is_active: bool = True,
    ) -> CatalogItem: ...

    def update_item(self, business_id: str, item_id: str, fields: Dict[str, Any]) -> CatalogItem: ...

    def delete_item(self, business_id: str, item_id: str) -> None: ...

    # -- layout config -------------------------------------------------
    def load_layout_config(self, business_id: str, menu_name: str) -> Optional[LayoutConfig]: ...

    def save_layout_config(self, business_id: str, menu_name: str, config: LayoutConfig) -> None: ...

    # -- versions ------------------------------------------------------
    def list_versions(self, business_id: str, menu_name: str) -> List[MenuVersion]: ...

    def create_version(self, business_id: str, version: MenuVersion) -> MenuVersion: ...

    def publish_version(self, business_id: str, menu_name: str, version_id: str) -> None: ...
