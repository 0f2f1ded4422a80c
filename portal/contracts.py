# portal/contracts.py
from __future__ import annotations
from typing import Any, Dict, Optional, Tuple

from storage.contracts import validate_config_payload

# Request-shape checks for the JSON API. Field rules (blank names, prices,
# theme tokens) live in storage/contracts.py; these only make sure the body
# is something the handlers can read.

def _is_intlike(x: Any) -> bool:
    if isinstance(x, bool):
        return False
    try:
        int(x); return True
    except (TypeError, ValueError, OverflowError):
        return False

def validate_object(payload: Any) -> Tuple[bool, str]:
    if not isinstance(payload, dict):
        return False, "Expected JSON object"
    return True, ""

def validate_move_payload(payload: Any) -> Tuple[bool, str]:
    ok, err = validate_object(payload)
    if not ok:
        return ok, err
    if payload.get("direction") not in ("up", "down"):
        return False, "direction must be 'up' or 'down'"
    return True, ""

def validate_item_payload(payload: Any, *, partial: bool = False) -> Tuple[bool, str]:
    ok, err = validate_object(payload)
    if not ok:
        return ok, err
    for key in ("name", "description", "image_url", "menu_name"):
        if key in payload and payload[key] is not None and not isinstance(payload[key], str):
            return False, f"{key} must be a string"
    if not partial and "name" not in payload:
        return False, "missing key: name"
    if "price" in payload and isinstance(payload["price"], (dict, list)):
        return False, "price must be a number or string"
    if "extra" in payload and payload["extra"] is not None and not isinstance(payload["extra"], dict):
        return False, "extra must be an object"
    return True, ""

def validate_version_payload(payload: Any) -> Tuple[bool, str]:
    ok, err = validate_object(payload)
    if not ok:
        return ok, err
    name = payload.get("name", payload.get("version_name"))
    if not isinstance(name, str):
        return False, "name must be a string"
    notes = payload.get("notes", payload.get("change_notes"))
    if notes is not None and not isinstance(notes, str):
        return False, "notes must be a string"
    return True, ""

def validate_preview_payload(payload: Any) -> Tuple[bool, str]:
    ok, err = validate_object(payload)
    if not ok:
        return ok, err
    config = payload.get("config")
    if config is not None:
        ok, err = validate_config_payload(config)
        if not ok:
            return ok, f"config: {err}"
    business = payload.get("business")
    if business is not None and not isinstance(business, dict):
        return False, "business must be an object"
    return True, ""

def business_from_payload(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    bid = raw.get("id")
    return {
        "id": int(bid) if _is_intlike(bid) else None,
        "name": str(raw.get("name") or ""),
        "item_type": str(raw.get("item_type") or "food"),
        "button_label": str(raw.get("button_label") or "Menu"),
    }
