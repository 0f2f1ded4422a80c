# storage/layout_editor.py - Layout editing session (Phase 11, Day 96)
"""
LayoutEditor ties the stores together for one (business, menu):

- holds the draft LayoutConfig and the Category / Item / Version stores
- color edits are debounced per field; presets and slider releases commit
  immediately
- save_theme_with_layout() flushes pending edits, stamps the theme into the
  sections, validates and persists

Timers belong to the session: close() (or leaving the ``with`` block)
cancels every pending edit without committing it.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import sections as section_ops
from .category_store import CategoryStore
from .contracts import ensure_valid, validate_layout_config
from .debounce import FieldDebouncer
from .item_catalog import ItemCatalog
from .layout_errors import LayoutValidationError
from .layout_service import LayoutService
from .layout_types import (
    LAYOUT_TYPES,
    THEME_COLOR_FIELDS,
    THEME_FIELDS,
    BusinessInfo,
    CatalogItem,
    LayoutConfig,
    MenuVersion,
    Theme,
)
from .preview import render
from .theme import SLIDER_RANGES, apply_preset, apply_theme_to_sections, clamp_token, with_field
from .versions import VersionStore

log = logging.getLogger(__name__)


class LayoutEditor:
    def __init__(
        self,
        service: LayoutService,
        business_id: str,
        menu_name: str,
        *,
        debounce_ms: Optional[int] = None,
        timer_factory: Optional[Callable[..., Any]] = None,
        created_by: str = "",
        retheme_promotional: bool = False,
    ) -> None:
        self.service = service
        self.business_id = str(business_id)
        self.menu_name = menu_name
        self.created_by = created_by
        self.retheme_promotional = retheme_promotional

        self.catalog = ItemCatalog(service, business_id)
        self.categories = CategoryStore(service, business_id, catalog=self.catalog)
        self.versions = VersionStore(service, business_id, menu_name)
        self.config = LayoutConfig(selected_menu=menu_name)

        self._lock = threading.RLock()
        self._debouncer = FieldDebouncer(
            self._commit_theme_field,
            delay_ms=debounce_ms,
            timer_factory=timer_factory,
        )

    # -- lifecycle -----------------------------------------------------
    def load(self) -> LayoutConfig:
        self.categories.load()
        self.catalog.load()
        stored = self.service.load_layout_config(self.business_id, self.menu_name)
        with self._lock:
            self.config = stored or LayoutConfig(selected_menu=self.menu_name)
            self.config.selected_menu = self.menu_name
        self.versions.load()
        return self.config

    def close(self) -> None:
        self._debouncer.cancel_all()

    def __enter__(self) -> "LayoutEditor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- theme ---------------------------------------------------------
    @property
    def theme(self) -> Theme:
        with self._lock:
            return self.config.theme

    def pending_theme_fields(self) -> List[str]:
        return self._debouncer.pending()

    def _commit_theme_field(self, field_name: str, value: Any) -> None:
        with self._lock:
            self.config.theme = with_field(self.config.theme, field_name, value)

    def edit_theme_field(self, field_name: str, value: Any) -> None:
        """Debounced edit; the last value per field wins when its timer fires."""
        if field_name not in THEME_FIELDS:
            raise LayoutValidationError(f"Unknown theme field: {field_name}")
        # Bad values fail now, not later on the timer thread
        with_field(self.theme, field_name, value)
        self._debouncer.submit(field_name, value)

    def set_theme_value(self, field_name: str, value: Any) -> Theme:
        """Immediate commit (slider release, font pick). Numeric tokens are clamped."""
        if field_name in SLIDER_RANGES:
            value = clamp_token(field_name, value)
        self._debouncer.cancel(field_name)
        with self._lock:
            self.config.theme = with_field(self.config.theme, field_name, value)
            return self.config.theme

    def apply_preset(self, name: str) -> Theme:
        # Pending color edits would otherwise land on top of the preset
        for key in THEME_COLOR_FIELDS:
            self._debouncer.cancel(key)
        with self._lock:
            self.config.theme = apply_preset(self.config.theme, name)
            return self.config.theme

    def reset_theme(self) -> Theme:
        self._debouncer.cancel_all()
        with self._lock:
            self.config.theme = Theme()
            return self.config.theme

    # -- layout --------------------------------------------------------
    def set_layout_type(self, layout_type: str) -> LayoutConfig:
        if layout_type not in LAYOUT_TYPES:
            raise LayoutValidationError(f"layout_type must be one of: {', '.join(LAYOUT_TYPES)}")
        with self._lock:
            cfg = self.config
            cfg.layout_type = layout_type
            cfg.columns = max(cfg.columns, 2) if layout_type == "grid" else 1
            cfg.sections = section_ops.set_item_list_layouts(cfg.sections, layout_type)
            return cfg

    def set_columns(self, columns: Any) -> LayoutConfig:
        try:
            n = int(columns)
        except (TypeError, ValueError, OverflowError):
            raise LayoutValidationError("columns must be an integer >= 1")
        if n < 1:
            raise LayoutValidationError("columns must be an integer >= 1")
        with self._lock:
            self.config.columns = n
            return self.config

    # -- sections ------------------------------------------------------
    def regenerate_sections(self) -> LayoutConfig:
        with self._lock:
            cfg = self.config
            cfg.sections = section_ops.generate_category_sections(
                self.categories.categories,
                self.catalog.items,
                cfg.selected_menu,
                cfg.layout_type,
                cfg.theme,
                existing=cfg.sections,
            )
            return cfg

    def add_promotional(self, kind: str, template: Optional[str] = None, **overrides: Any) -> LayoutConfig:
        with self._lock:
            self.config.sections = section_ops.add_promotional(
                self.config.sections, kind, template, overrides=overrides or None,
            )
            return self.config

    def update_section(self, section_id: str, changes: Dict[str, Any]) -> LayoutConfig:
        with self._lock:
            self.config.sections = section_ops.update_section(self.config.sections, section_id, changes)
            return self.config

    def remove_section(self, section_id: str) -> LayoutConfig:
        with self._lock:
            self.config.sections = section_ops.remove_section(self.config.sections, section_id)
            return self.config

    def move_section(self, section_id: str, direction: str) -> LayoutConfig:
        with self._lock:
            self.config.sections = section_ops.move_section(self.config.sections, section_id, direction)
            return self.config

    # -- save / preview ------------------------------------------------
    def save_theme_with_layout(self) -> LayoutConfig:
        self._debouncer.flush()
        with self._lock:
            candidate = replace(
                self.config,
                sections=apply_theme_to_sections(
                    self.config.sections,
                    self.config.theme,
                    retheme_promotional=self.retheme_promotional,
                ),
            )
            ensure_valid(validate_layout_config(candidate))
            self.service.save_layout_config(self.business_id, self.menu_name, candidate)
            self.config = candidate
        log.info(
            "Saved layout for business %s menu %r (%d section(s))",
            self.business_id, self.menu_name, len(candidate.sections),
        )
        return candidate

    def preview(self, business_info: Optional[BusinessInfo] = None) -> Dict[str, Any]:
        with self._lock:
            return render(self.config, self.catalog.items, self.categories.categories, business_info)

    # -- versions ------------------------------------------------------
    def save_version(self, name: str, notes: Optional[str] = None) -> MenuVersion:
        self._debouncer.flush()
        with self._lock:
            config = self.config
        return self.versions.save(
            name, notes, config=config, items=self.catalog.items, created_by=self.created_by,
        )

    def publish_version(self, version_id: str) -> MenuVersion:
        return self.versions.publish(version_id)

    def revert_to(self, version_id: str) -> Tuple[LayoutConfig, List[CatalogItem]]:
        """
        Make the snapshot live: the menu's items are rewritten to match it
        and the snapshot config becomes (and is stored as) the current
        layout. Pending theme edits are discarded.
        """
        config, items = self.versions.revert(version_id)
        self._debouncer.cancel_all()
        restored = self.catalog.replace_menu_items(self.menu_name, items)
        config.selected_menu = self.menu_name
        self.service.save_layout_config(self.business_id, self.menu_name, config)
        with self._lock:
            self.config = config
        log.info("Reverted menu %r to version %s", self.menu_name, version_id)
        return config, restored

    def export_version(self, version_id: str) -> Tuple[str, str]:
        """(filename, json_text) for a download."""
        return self.versions.export_filename(version_id), self.versions.export_json(version_id)
