# habitrun/routes/dashboard_routes.py
from flask import Blueprint, current_app, jsonify

from .. import services
from ..errors import PersistenceFailure
from ..stats_core import day_countdown

dashboard_bp = Blueprint("dashboard", __name__)


# -------------------------
# DASHBOARD OVERVIEW
# -------------------------
@dashboard_bp.route("/overview", methods=["GET"])
def dashboard_overview():
    """
    Returns:
    {
      "reference_date": "2026-10-17",
      "users": [ { user_id, name, total_distance, valid_days, completion_rate,
                   today_distance, is_done_today, current_streak_days, ... } ],
      "team_daily": { "count": 2, "total": 3, "rate": 66.7 },
      "penalties": [ { user_id, name, missed_days, total_penalty } ],
      "team_total_penalty": 60000,
      "countdown": { hours, minutes, seconds, total_seconds, percentage_left,
                     theme, label },
      "recent_records": [ ... ],
      "policy": { daily_goal_km, min_upload_km, max_pace_min_per_km,
                  penalty_per_missed_day },
      "stale": false   # true when the store read failed and the last good
                       # snapshot is served instead
    }
    """
    svc = services()
    stale = False
    try:
        snapshot = svc.dashboard.refresh()
    except PersistenceFailure:
        snapshot = svc.dashboard.latest()
        if snapshot is None:
            raise
        stale = True
        current_app.logger.warning(
            f"[dashboard] store read failed, serving generation {snapshot.generation}"
        )

    body = snapshot.to_dict(policy=svc.policy)
    body["stale"] = stale
    if stale:
        body["countdown"] = day_countdown(svc.clock.now()).to_dict()
    return jsonify(body), 200


@dashboard_bp.route("/countdown", methods=["GET"])
def dashboard_countdown():
    return jsonify(day_countdown(services().clock.now()).to_dict()), 200
