import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import delete, select

from ..auth import user_required
from ..db import main_session
from ..models import CartItem, Product
from ..payloads import cart_item_payload

log = logging.getLogger(__name__)

bp = Blueprint("cart", __name__, url_prefix="/cart")


def _positive_int(value):
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n >= 1 else None


def cart_totals(items):
    total_items = sum(i.quantity for i in items)
    total_cents = sum(i.product.price_cents * i.quantity for i in items)
    return total_items, total_cents


@bp.post("/add")
@user_required
def cart_add():
    body = request.get_json(silent=True) or {}
    pid = _positive_int(body.get("productId"))
    qty = _positive_int(body.get("quantity"))
    if not pid or not qty:
        return jsonify({"error": "Valid productId and quantity are required"}), 400

    uid = current_user.user_id
    with main_session() as db:
        if not db.get(Product, pid):
            return jsonify({"error": "Product not found"}), 404
        row = db.execute(
            select(CartItem).where(CartItem.user_id == uid, CartItem.product_id == pid)
        ).scalar_one_or_none()
        if row:
            row.quantity += qty
        else:
            row = CartItem(user_id=uid, product_id=pid, quantity=qty)
            db.add(row)
        db.commit()
        return jsonify({"message": "Item added to cart successfully", "cartItem": cart_item_payload(row)})


@bp.get("")
@bp.get("/")
@user_required
def cart_view():
    with main_session() as db:
        items = db.execute(
            select(CartItem).where(CartItem.user_id == current_user.user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        ).scalars().all()
        total_items, total_cents = cart_totals(items)
        return jsonify({
            "cartItems": [cart_item_payload(i, with_section=True) for i in items],
            "totalItems": total_items,
            "totalAmount": round(total_cents / 100, 2),
        })


def _own_item(db, item_id):
    return db.execute(
        select(CartItem).where(CartItem.id == item_id, CartItem.user_id == current_user.user_id)
    ).scalar_one_or_none()


@bp.put("/update/<int:item_id>")
@user_required
def cart_update(item_id):
    body = request.get_json(silent=True) or {}
    qty = _positive_int(body.get("quantity"))
    if not qty:
        return jsonify({"error": "Valid quantity is required (minimum 1)"}), 400
    with main_session() as db:
        row = _own_item(db, item_id)
        if not row:
            return jsonify({"error": "Cart item not found"}), 404
        row.quantity = qty
        db.commit()
        return jsonify({"message": "Cart item updated successfully", "cartItem": cart_item_payload(row)})


@bp.delete("/remove/<int:item_id>")
@user_required
def cart_remove(item_id):
    with main_session() as db:
        row = _own_item(db, item_id)
        if not row:
            return jsonify({"error": "Cart item not found"}), 404
        db.delete(row)
        db.commit()
    return jsonify({"message": "Item removed from cart successfully"})


@bp.delete("/clear")
@user_required
def cart_clear():
    with main_session() as db:
        result = db.execute(delete(CartItem).where(CartItem.user_id == current_user.user_id))
        db.commit()
    return jsonify({"message": "Cart cleared successfully", "deletedCount": result.rowcount})
