from flask import Blueprint, jsonify, request
from flask_login import current_user

from ..auth import user_required
from ..db import main_session
from ..models import User

bp = Blueprint("users", __name__, url_prefix="/users")


@bp.get("/me")
@user_required
def me():
    with main_session() as db:
        u = db.get(User, current_user.user_id)
        if not u:
            return jsonify({"error": "User not found"}), 404
        return jsonify(u.to_dict())


@bp.put("/me")
@user_required
def update_me():
    body = request.get_json(silent=True) or {}
    updates = {}
    if isinstance(body.get("name"), str):
        updates["name"] = body["name"]
    # the profile form sends "phone", older clients send "mobno"
    for key in ("phone", "mobno"):
        if isinstance(body.get(key), str):
            updates["mobno"] = body[key]
    if isinstance(body.get("address"), str):
        updates["address"] = body["address"]
    if not updates:
        return jsonify({"error": "No updatable fields provided"}), 400

    with main_session() as db:
        u = db.get(User, current_user.user_id)
        if not u:
            return jsonify({"error": "User not found"}), 404
        for k, v in updates.items():
            setattr(u, k, v)
        db.commit()
        return jsonify(u.to_dict())
