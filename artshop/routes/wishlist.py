from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import delete, func, select

from ..auth import user_required
from ..db import main_session
from ..models import Product, WishlistItem
from ..payloads import product_payload

bp = Blueprint("wishlist", __name__, url_prefix="/wishlist")


def _item_payload(item):
    d = item.to_dict()
    d["product"] = product_payload(item.product)
    return d


@bp.get("")
@bp.get("/")
@user_required
def list_wishlist():
    with main_session() as db:
        items = db.execute(
            select(WishlistItem).where(WishlistItem.user_id == current_user.user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        ).scalars().all()
        return jsonify({"items": [_item_payload(i) for i in items]})


@bp.get("/count")
@user_required
def count_wishlist():
    with main_session() as db:
        n = db.scalar(select(func.count(WishlistItem.id)).where(WishlistItem.user_id == current_user.user_id))
    return jsonify({"count": n or 0})


@bp.post("/add")
@user_required
def add_to_wishlist():
    body = request.get_json(silent=True) or {}
    try:
        pid = int(body.get("productId"))
    except (TypeError, ValueError):
        return jsonify({"error": "Missing productId"}), 400

    uid = current_user.user_id
    with main_session() as db:
        if not db.get(Product, pid):
            return jsonify({"error": "Product not found"}), 404
        item = db.execute(
            select(WishlistItem).where(WishlistItem.user_id == uid, WishlistItem.product_id == pid)
        ).scalar_one_or_none()
        if not item:
            item = WishlistItem(user_id=uid, product_id=pid)
            db.add(item)
            db.commit()
        return jsonify({"item": item.to_dict()})


@bp.delete("/remove-by-product/<int:product_id>")
@user_required
def remove_by_product(product_id):
    with main_session() as db:
        db.execute(delete(WishlistItem).where(WishlistItem.user_id == current_user.user_id,
                                              WishlistItem.product_id == product_id))
        db.commit()
    return jsonify({"success": True})


@bp.delete("/<int:item_id>")
@user_required
def remove_item(item_id):
    with main_session() as db:
        result = db.execute(delete(WishlistItem).where(WishlistItem.id == item_id,
                                                       WishlistItem.user_id == current_user.user_id))
        db.commit()
    return jsonify({"success": True, "deleted": result.rowcount})
