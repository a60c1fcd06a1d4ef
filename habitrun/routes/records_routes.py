# habitrun/routes/records_routes.py
import os

from flask import Blueprint, jsonify, request, send_from_directory

from .. import services
from ..stats_core import ordered_recent

records_bp = Blueprint("records", __name__)
uploads_bp = Blueprint("uploads", __name__)

MAX_RECENT_LIMIT = 50


def _safe_int(v, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


# ------------------------------
# GET /api/records/recent?limit=8
# ------------------------------
@records_bp.route("/recent", methods=["GET"])
def recent_records():
    svc = services()
    default_limit = svc.dashboard.recent_limit
    limit = _safe_int(request.args.get("limit"), default_limit)
    limit = max(1, min(limit, MAX_RECENT_LIMIT))

    snapshot = svc.store.snapshot()
    names = {u.id: u.name for u in snapshot.users}
    rows = ordered_recent(snapshot.records, limit)

    return jsonify(
        {
            "records": [
                dict(r.to_dict(), user_name=names.get(r.user_id, "Unknown")) for r in rows
            ]
        }
    ), 200


# ------------------------------
# GET /uploads/<path>
# ------------------------------
@uploads_bp.route("/<path:filename>", methods=["GET"])
def uploaded_image(filename):
    path = services().blob_store.open_path(filename)
    return send_from_directory(os.path.dirname(path), os.path.basename(path))
