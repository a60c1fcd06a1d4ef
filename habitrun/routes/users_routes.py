# habitrun/routes/users_routes.py
from flask import Blueprint, current_app, jsonify, request

from .. import services

users_bp = Blueprint("users", __name__)


@users_bp.route("", methods=["GET"])
def list_users():
    users = services().store.list_users()
    return jsonify({"users": [_user_dict(u) for u in users]}), 200


@users_bp.route("", methods=["POST"])
def create_user():
    data = request.get_json(silent=True) or {}
    svc = services()

    user = svc.store.create_user(data.get("name"), joined_at=svc.clock.utcnow())
    current_app.logger.info(f"[users] created user_id={user.id} name='{user.name}'")
    return jsonify({"user": _user_dict(user)}), 201


@users_bp.route("/<user_id>", methods=["PATCH"])
def rename_user(user_id):
    data = request.get_json(silent=True) or {}
    user = services().store.rename_user(user_id, data.get("name"))
    return jsonify({"user": _user_dict(user)}), 200


def _user_dict(user):
    return {
        "id": user.id,
        "name": user.name,
        "joined_at": user.joined_at.isoformat() if user.joined_at else None,
    }
