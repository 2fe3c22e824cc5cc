import logging
from datetime import datetime

import stripe
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import delete, select, update

from ..auth import user_required
from ..db import main_session
from ..models import CartItem, Order, OrderItem, User
from ..notifications import notify, send_all_notifications
from ..payments import (PaymentError, create_payment_intent, fetch_payment_intent,
                        intent_matches, parse_webhook)
from .cart import cart_totals

log = logging.getLogger(__name__)

bp = Blueprint("payment", __name__, url_prefix="/payment")


# ---------- order state transitions ----------
def settle_order(db, order, payment_id):
    """Mark the order paid and empty the buyer's cart. False if it was already settled.

    The capture is a conditional UPDATE, so a verify call racing the webhook
    settles the order exactly once.
    """
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.payment_status != "captured")
        .values(payment_id=payment_id, payment_status="captured", status="paid",
                updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return False
    db.execute(delete(CartItem).where(CartItem.user_id == order.user_id))
    db.commit()
    log.info(f"Order #{order.id} paid ({payment_id})")
    return True


def fail_order(db, order):
    # a captured payment is never downgraded
    if order.payment_status == "captured":
        return
    order.payment_status = "failed"
    order.status = "cancelled"
    db.commit()
    log.info(f"Order #{order.id} marked failed")


def _notify_paid(order):
    try:
        send_all_notifications(order)
    except Exception:
        log.exception(f"Failed to send notifications for order #{order.id}")


def _payment_id(intent):
    return getattr(intent, "latest_charge", None) or intent.id


def _own_order_by_intent(db, intent_id):
    return db.execute(
        select(Order).where(Order.payment_intent_id == intent_id, Order.user_id == current_user.user_id)
    ).scalar_one_or_none()


# --------------------------- CHECKOUT ---------------------------
@bp.post("/create-order")
@user_required
def create_order():
    uid = current_user.user_id
    with main_session() as db:
        items = db.execute(select(CartItem).where(CartItem.user_id == uid)).scalars().all()
        if not items:
            return jsonify({"error": "Cart is empty"}), 400
        user = db.get(User, uid)
        if not user or not user.mobno or not user.address:
            return jsonify({"error": "Please add your phone number and address in your profile before checkout"}), 400

        _, items_cents = cart_totals(items)
        total = items_cents + current_app.config["DELIVERY_CHARGE_CENTS"]
        order = Order(user_id=uid, total_cents=total, status="pending", payment_status="pending")
        order.items = [OrderItem(product_id=i.product_id, quantity=i.quantity,
                                 price_cents=i.product.price_cents) for i in items]
        db.add(order)
        db.commit()

        try:
            intent = create_payment_intent(order, user)
        except PaymentError as e:
            log.error(f"Gateway order creation failed for order #{order.id}: {e}")
            notify(f"Payment init failed for order #{order.id} (user {uid}): {e}")
            fail_order(db, order)
            return jsonify({"error": "Failed to create order", "details": str(e)}), 500

        order.payment_intent_id = intent.id
        db.commit()
        log.info(f"Order #{order.id} created with payment intent {intent.id}")
        return jsonify({
            "success": True,
            "order": {
                "id": order.id,
                "paymentIntentId": intent.id,
                "clientSecret": intent.client_secret,
                "amount": order.total_amount,
                "currency": current_app.config["CURRENCY"].upper(),
                "user": {"name": user.name, "email": user.email, "contact": user.mobno},
            },
        }), 201


@bp.post("/verify")
@user_required
def verify():
    body = request.get_json(silent=True) or {}
    intent_id = body.get("paymentIntentId")
    if not intent_id:
        return jsonify({"error": "Missing payment verification details"}), 400

    log.info(f"Payment verify called by user {current_user.user_id} for {intent_id} from {request.remote_addr}")
    with main_session() as db:
        order = _own_order_by_intent(db, intent_id)
        if not order:
            return jsonify({"error": "Order not found"}), 404
        if order.payment_status == "captured":
            return jsonify({"success": True, "message": "Payment already verified",
                            "orderId": order.id, "paymentId": order.payment_id})

        try:
            intent = fetch_payment_intent(intent_id)
        except PaymentError as e:
            log.error(f"Error fetching payment intent {intent_id}: {e}")
            fail_order(db, order)
            return jsonify({"error": "Failed to verify payment with gateway", "success": False}), 400

        problem = intent_matches(intent, order)
        if problem:
            log.warning(f"Payment rejected for order #{order.id}: {problem}")
            fail_order(db, order)
            return jsonify({"error": problem, "success": False}), 400

        payment_id = _payment_id(intent)
        if settle_order(db, order, payment_id):
            _notify_paid(order)
        return jsonify({"success": True, "message": "Payment verified successfully",
                        "orderId": order.id, "paymentId": order.payment_id})


@bp.post("/failure")
@user_required
def failure():
    body = request.get_json(silent=True) or {}
    intent_id = body.get("paymentIntentId")
    if not intent_id:
        return jsonify({"error": "Missing order details"}), 400
    with main_session() as db:
        order = _own_order_by_intent(db, intent_id)
        if order:
            fail_order(db, order)
    return jsonify({"success": False, "message": "Payment failed",
                    "error": body.get("error") or "Payment was not completed"})


@bp.get("/status/<int:order_id>")
@user_required
def status(order_id):
    with main_session() as db:
        o = db.get(Order, order_id)
        if not o or o.user_id != current_user.user_id:
            return jsonify({"error": "Order not found"}), 404
        return jsonify({"success": True, "order": {
            "id": o.id,
            "totalAmount": o.total_amount,
            "status": o.status,
            "paymentStatus": o.payment_status,
            "paymentIntentId": o.payment_intent_id,
            "paymentId": o.payment_id,
            "createdAt": o.to_dict()["createdAt"],
        }})


# --------------------------- GATEWAY WEBHOOK ---------------------------
@bp.post("/webhook")
def webhook():
    payload = request.get_data(as_text=True)
    sig = request.headers.get("Stripe-Signature", "")
    try:
        event = parse_webhook(payload, sig)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.warning(f"Stripe webhook signature failure: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    intent = event.data.object
    if event.type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        return jsonify({"received": True})

    try:
        with main_session() as db:
            order = db.execute(
                select(Order).where(Order.payment_intent_id == intent.id)
            ).scalar_one_or_none()
            if not order:
                log.warning(f"Webhook {event.type} for unknown intent {intent.id}")
                return jsonify({"received": True})
            if event.type == "payment_intent.payment_failed":
                fail_order(db, order)
                return jsonify({"received": True})
            problem = intent_matches(intent, order)
            if problem:
                log.warning(f"Webhook payment rejected for order #{order.id}: {problem}")
                notify(f"Webhook payment mismatch on order #{order.id}: {problem}")
                return jsonify({"received": True})
            if settle_order(db, order, _payment_id(intent)):
                _notify_paid(order)
        return jsonify({"received": True})
    except Exception as e:
        log.exception("Stripe webhook error")
        notify(f"Stripe webhook error: {e}")
        return jsonify({"error": "Webhook processing failed"}), 500
