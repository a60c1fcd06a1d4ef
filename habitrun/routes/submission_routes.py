# habitrun/routes/submission_routes.py
"""
Upload dialog over HTTP. One submission per open dialog:

    POST   /api/submissions                {user_id?}   -> open
    PUT    /api/submissions/<sid>/user     {user_id}
    POST   /api/submissions/<sid>/image    multipart "image" or raw body
    POST   /api/submissions/<sid>/analyze               -> verification
    POST   /api/submissions/<sid>/confirm               -> stored record
    GET    /api/submissions/<sid>
    DELETE /api/submissions/<sid>                       -> close dialog
"""
from flask import Blueprint, current_app, jsonify, request

from .. import services
from ..errors import InvalidInput
from ..vision import decode_image

submissions_bp = Blueprint("submissions", __name__)


@submissions_bp.route("", methods=["POST"])
def open_submission():
    data = request.get_json(silent=True) or {}
    session = services().submissions.open(user_id=data.get("user_id") or None)
    return jsonify({"submission": session.to_dict()}), 201


@submissions_bp.route("/<sid>", methods=["GET"])
def get_submission(sid):
    session = services().submissions.get(sid)
    return jsonify({"submission": session.to_dict()}), 200


@submissions_bp.route("/<sid>", methods=["DELETE"])
def close_submission(sid):
    services().submissions.close(sid)
    return jsonify({"message": "Submission closed"}), 200


@submissions_bp.route("/<sid>/user", methods=["PUT"])
def select_user(sid):
    data = request.get_json(silent=True) or {}
    session = services().submissions.get(sid)
    session.select_user((data.get("user_id") or "").strip())
    return jsonify({"submission": session.to_dict()}), 200


@submissions_bp.route("/<sid>/image", methods=["POST"])
def select_image(sid):
    session = services().submissions.get(sid)

    upload = request.files.get("image")
    if upload is not None:
        image_bytes = upload.read()
        filename = upload.filename
    else:
        image_bytes = request.get_data()
        filename = request.args.get("filename")

    if not image_bytes:
        raise InvalidInput("image is required")
    if decode_image(image_bytes) is None:
        raise InvalidInput("uploaded file is not a readable image")

    session.select_image(image_bytes, filename)
    return jsonify({"submission": session.to_dict()}), 200


@submissions_bp.route("/<sid>/analyze", methods=["POST"])
def analyze_submission(sid):
    session = services().submissions.get(sid)
    verification = session.analyze()
    current_app.logger.info(
        f"[submissions] {sid} user_id={session.user_id} -> {verification.reason.value}"
    )
    return jsonify(
        {"submission": session.to_dict(), "verification": verification.to_dict()}
    ), 200


@submissions_bp.route("/<sid>/confirm", methods=["POST"])
def confirm_submission(sid):
    svc = services()
    session = svc.submissions.get(sid)
    record = session.confirm()
    current_app.logger.info(
        f"[submissions] {sid} stored record_id={record.id} "
        f"user_id={record.user_id} distance={record.distance_km}km"
    )
    # dialog is done once the record is stored
    svc.submissions.close(sid)
    return jsonify({"message": "Workout recorded", "record": record.to_dict()}), 201
