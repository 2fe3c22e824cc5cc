from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import func, select

from ..auth import user_required
from ..db import main_session
from ..models import Order
from ..payloads import order_payload

bp = Blueprint("orders", __name__, url_prefix="/orders")


@bp.get("")
@bp.get("/")
@user_required
def list_orders():
    with main_session() as db:
        orders = db.execute(
            select(Order).where(Order.user_id == current_user.user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        ).scalars().all()
        return jsonify({"orders": [order_payload(o) for o in orders]})


@bp.get("/count")
@user_required
def count_orders():
    q = select(func.count(Order.id)).where(Order.user_id == current_user.user_id)
    if request.args.get("capturedOnly", "").lower() == "true":
        q = q.where(Order.payment_status == "captured")
    with main_session() as db:
        return jsonify({"count": db.scalar(q) or 0})


@bp.get("/<int:order_id>")
@user_required
def get_order(order_id):
    with main_session() as db:
        o = db.get(Order, order_id)
        if not o or o.user_id != current_user.user_id:
            return jsonify({"error": "Order not found"}), 404
        return jsonify({"order": order_payload(o)})
