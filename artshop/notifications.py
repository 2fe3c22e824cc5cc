import logging
import smtplib
from email.mime.text import MIMEText

import requests
from flask import current_app, render_template

log = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


def notify(msg: str):
    """Operational alert to Slack; never raises."""
    url = current_app.config["SLACK_WEBHOOK_URL"]
    if not url:
        return
    try:
        requests.post(url, json={"text": msg}, timeout=5)
    except Exception as e:
        log.warning(f"Slack notify failed: {e}")


def send_email(to, subject, html):
    cfg = current_app.config
    if not cfg["SMTP_HOST"]:
        raise RuntimeError("SMTP not configured")
    if not to:
        raise ValueError("No recipient address")
    m = MIMEText(html, "html", "utf-8")
    m["Subject"] = subject
    m["From"] = cfg["EMAIL_FROM"]
    m["To"] = to
    with smtplib.SMTP(cfg["SMTP_HOST"], cfg["SMTP_PORT"], timeout=10) as s:
        s.starttls()
        if cfg["SMTP_USER"] and cfg["SMTP_PASS"]:
            s.login(cfg["SMTP_USER"], cfg["SMTP_PASS"])
        s.send_message(m)


def format_money(amount) -> str:
    currency = current_app.config["CURRENCY"].upper()
    if currency == "INR":
        return f"₹{amount:.2f}"
    if currency == "USD":
        return f"${amount:.2f}"
    return f"{amount:.2f} {currency}"


def _item_title(item):
    return item.product.title if item.product else f"Product {item.product_id}"


def send_email_to_customer(order):
    html = render_template("email_customer.html", order=order, item_title=_item_title,
                           format_money=format_money)
    send_email(order.user.email, f"Order Confirmation #{order.id}", html)


def send_email_to_admin(order):
    html = render_template("email_admin.html", order=order, item_title=_item_title,
                           format_money=format_money)
    send_email(current_app.config["ADMIN_EMAIL"], f"NEW ORDER #{order.id}", html)


def chat_message(order):
    items = "\n".join(f"• {_item_title(i)} x{i.quantity}" for i in order.items)
    customer = order.user.name or order.user.email or "-"
    return (f"NEW ORDER\nOrder: #{order.id}\nAmount: {format_money(order.total_amount)}\n"
            f"Customer: {customer}\n\nItems:\n{items}\n\nProcess this order now!")


def send_chat_to_admin(order):
    token = current_app.config["TELEGRAM_BOT_TOKEN"]
    chat_id = current_app.config["TELEGRAM_CHAT_ID"]
    if not token or not chat_id:
        raise RuntimeError("Telegram not configured")
    r = requests.post(f"{TELEGRAM_API}/bot{token}/sendMessage",
                      json={"chat_id": chat_id, "text": chat_message(order)}, timeout=10)
    r.raise_for_status()


def send_all_notifications(order):
    """Fan out order notifications; each channel fails on its own."""
    result = {"customer_email": False, "admin_email": False, "chat": False, "errors": {}}
    channels = (
        ("customer_email", send_email_to_customer),
        ("admin_email", send_email_to_admin),
        ("chat", send_chat_to_admin),
    )
    for name, send in channels:
        try:
            send(order)
            result[name] = True
        except Exception as e:
            result["errors"][name] = str(e)
            log.error(f"Order #{order.id} {name} notification failed: {e}")
    log.info(f"Notification results for order #{order.id}: {result}")
    return result
