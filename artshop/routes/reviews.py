from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import select

from ..auth import user_required
from ..db import main_session
from ..models import Order, OrderItem, Product, Review

bp = Blueprint("reviews", __name__, url_prefix="/reviews")


def _product_id(raw):
    return int(raw) if raw.isascii() and raw.isdigit() else None


def has_purchased(db, user_id, product_id):
    """Only a captured payment counts as a purchase."""
    row = db.execute(
        select(OrderItem.id).join(Order, OrderItem.order_id == Order.id)
        .where(OrderItem.product_id == product_id, Order.user_id == user_id,
               Order.payment_status == "captured")
        .limit(1)
    ).first()
    return row is not None


@bp.get("/<raw_id>")
def list_reviews(raw_id):
    pid = _product_id(raw_id)
    if pid is None:
        return jsonify({"error": "Invalid product id"}), 400
    with main_session() as db:
        reviews = db.execute(
            select(Review).where(Review.product_id == pid)
            .order_by(Review.created_at.desc(), Review.id.desc())
        ).scalars().all()
        payload = []
        for r in reviews:
            d = r.to_dict()
            d["user"] = {"id": r.user.id, "name": r.user.name}
            payload.append(d)
        return jsonify({"reviews": payload})


@bp.get("/can-review/<raw_id>")
@user_required
def can_review(raw_id):
    pid = _product_id(raw_id)
    if pid is None:
        return jsonify({"error": "Invalid product id"}), 400
    with main_session() as db:
        return jsonify({"canReview": has_purchased(db, current_user.user_id, pid)})


@bp.post("/<raw_id>")
@user_required
def create_review(raw_id):
    pid = _product_id(raw_id)
    if pid is None:
        return jsonify({"error": "Invalid product id"}), 400
    body = request.get_json(silent=True) or {}
    try:
        rating = int(body.get("rating"))
    except (TypeError, ValueError):
        rating = 0
    if rating < 1 or rating > 5:
        return jsonify({"error": "Rating must be 1-5"}), 400

    uid = current_user.user_id
    with main_session() as db:
        if not db.get(Product, pid):
            return jsonify({"error": "Product not found"}), 404
        if not has_purchased(db, uid, pid):
            return jsonify({"error": "Not allowed to review unless purchased"}), 403
        existing = db.execute(
            select(Review).where(Review.product_id == pid, Review.user_id == uid)
        ).scalar_one_or_none()
        if existing:
            return jsonify({"error": "You have already reviewed this product"}), 409
        review = Review(product_id=pid, user_id=uid, rating=rating, message=body.get("message") or None)
        db.add(review)
        db.commit()
        return jsonify({"review": review.to_dict()}), 201
