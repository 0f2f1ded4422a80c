# routes/core.py
from flask import Blueprint, jsonify
from datetime import datetime, timezone

from storage import layout_db

core_bp = Blueprint("core", __name__)

@core_bp.get("/")
def index():
    return jsonify({"service": "menu-layout-portal", "api": "/api/businesses/<business_id>/..."})

@core_bp.get("/health")
def health():
    db_ok = True
    try:
        with layout_db.db_connect() as conn:
            conn.execute("SELECT 1").fetchone()
    except Exception as e:
        db_ok = False
        db_error = str(e)
    payload = {
        "status": "ok" if db_ok else "degraded",
        "time": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "db": {"ok": db_ok},
    }
    if not db_ok:
        payload["db"]["error"] = db_error
    return jsonify(payload), (200 if db_ok else 503)
