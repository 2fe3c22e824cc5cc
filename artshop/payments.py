"""Stripe gateway calls.

A PaymentIntent is the gateway-side order. Capture is confirmed by fetching
the intent back from Stripe, and webhooks are authenticated with Stripe's
HMAC-SHA256 signature header.
"""
import logging

import stripe
from flask import current_app

log = logging.getLogger(__name__)

CAPTURED = "succeeded"


class PaymentError(Exception):
    pass


def _configure():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


def create_payment_intent(order, user):
    _configure()
    try:
        return stripe.PaymentIntent.create(
            amount=order.total_cents,
            currency=current_app.config["CURRENCY"].lower(),
            receipt_email=user.email,
            description=f"Order #{order.id}",
            metadata={"order_id": str(order.id), "user_id": str(user.id)},
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        raise PaymentError(str(e)) from e


def fetch_payment_intent(intent_id):
    _configure()
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as e:
        raise PaymentError(str(e)) from e


def parse_webhook(payload, signature):
    """Return the verified event; raises stripe.SignatureVerificationError or ValueError."""
    return stripe.Webhook.construct_event(payload, signature, current_app.config["STRIPE_WEBHOOK_SECRET"])


def intent_matches(intent, order):
    """Why the intent cannot settle ``order``, or None when it can."""
    # StripeObject is not a dict subclass, so no .get()
    metadata = getattr(intent, "metadata", None)
    order_id = metadata["order_id"] if metadata is not None and "order_id" in metadata else None
    if str(order_id) != str(order.id):
        return "Payment does not belong to this order"
    if intent.amount != order.total_cents:
        return "Payment amount does not match order total"
    if intent.status != CAPTURED:
        return f"Payment not captured. Current status: {intent.status}"
    return None
