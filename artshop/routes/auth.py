import hmac
import logging
import secrets
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

import requests
from flask import Blueprint, current_app, jsonify, redirect, request, url_for
from sqlalchemy import select

from ..auth import (check_password, hash_password, is_legacy_hash,
                    issue_artist_token, issue_user_token)
from ..db import main_session
from ..models import User
from ..notifications import notify

log = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


def _credentials():
    body = request.get_json(silent=True) or {}
    email = (body.get("email") or "").strip()
    password = body.get("password") or ""
    return body, email, password


# --------------------------- ARTIST ---------------------------
@bp.post("/adminlogin")
@bp.post("/auth/login")
def artist_login():
    _, email, password = _credentials()
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    artist_email = current_app.config["ARTIST_EMAIL"]
    artist_password = current_app.config["ARTIST_PASSWORD"]
    ok = bool(artist_email and artist_password) \
        and hmac.compare_digest(email, artist_email) \
        and hmac.compare_digest(password, artist_password)
    if not ok:
        log.warning(f"Failed artist login attempt for {email}")
        notify(f"Failed artist login attempt for {email}")
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({
        "message": "Login successful",
        "token": issue_artist_token(artist_email),
        "artist": {"email": artist_email},
    })


# --------------------------- CUSTOMERS ---------------------------
@bp.post("/signup")
def signup():
    body, email, password = _credentials()
    email = email.lower()
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    with main_session() as db:
        exists = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if exists:
            return jsonify({"error": "User already exists"}), 409
        u = User(
            name=body.get("name") or None,
            email=email,
            password_hash=hash_password(password),
            mobno=body.get("mobno") or None,
            address=body.get("address") or None,
        )
        db.add(u)
        db.commit()
        log.info(f"New customer signup: {email}")
        return jsonify({"message": "Signup successful", "token": issue_user_token(u), "user": u.to_dict()}), 201


@bp.get("/signup")
def signup_page():
    frontend = current_app.config["FRONTEND_URL"]
    target = f"{frontend.rstrip('/')}/login" if frontend else "/login"
    return redirect(target, code=302)


@bp.post("/login")
def login():
    _, email, password = _credentials()
    email = email.lower()
    if not email or not password:
        return jsonify({"error": "Email and password required"}), 400

    with main_session() as db:
        u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u or not check_password(password, u.password_hash):
            return jsonify({"error": "Invalid credentials"}), 401
        if is_legacy_hash(u.password_hash):
            u.password_hash = hash_password(password)
            db.commit()
            log.info(f"Upgraded legacy password hash for user {u.id}")
        return jsonify({"message": "Login successful", "token": issue_user_token(u), "user": u.to_dict()})


# --------------------------- GOOGLE OAUTH ---------------------------
def _google_redirect_uri():
    return url_for("auth.google_callback", _external=True)


@bp.get("/auth/google/login")
def google_login():
    client_id = current_app.config["GOOGLE_CLIENT_ID"]
    if not client_id:
        return jsonify({"error": "Google client ID not configured"}), 500
    params = {
        "client_id": client_id,
        "redirect_uri": _google_redirect_uri(),
        "response_type": "code",
        "scope": "openid email profile",
        "prompt": "select_account",
        "access_type": "offline",
    }
    return redirect(f"{GOOGLE_AUTH_URL}?{urlencode(params)}")


def _with_query(url, **params):
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v})
    return urlunparse(parts._replace(query=urlencode(query)))


@bp.get("/auth/google/callback")
def google_callback():
    code = request.args.get("code")
    if not code:
        return jsonify({"error": "Missing code"}), 400
    cfg = current_app.config
    if not cfg["GOOGLE_CLIENT_ID"] or not cfg["GOOGLE_CLIENT_SECRET"]:
        log.error("Google client ID/secret not set")
        return jsonify({"error": "Google OAuth not configured on server"}), 500

    try:
        token_resp = requests.post(GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": cfg["GOOGLE_CLIENT_ID"],
            "client_secret": cfg["GOOGLE_CLIENT_SECRET"],
            "redirect_uri": _google_redirect_uri(),
            "grant_type": "authorization_code",
        }, timeout=10)
        if not token_resp.ok:
            log.error(f"Token exchange failed: {token_resp.status_code} {token_resp.text[:200]}")
            return jsonify({"error": "Failed to exchange code for token"}), 502
        access_token = token_resp.json().get("access_token")

        user_resp = requests.get(GOOGLE_USERINFO_URL,
                                 headers={"Authorization": f"Bearer {access_token}"}, timeout=10)
        if not user_resp.ok:
            log.error(f"Userinfo fetch failed: {user_resp.status_code} {user_resp.text[:200]}")
            return jsonify({"error": "Failed to fetch user info"}), 502
        profile = user_resp.json()
    except requests.RequestException as e:
        log.error(f"Google OAuth request failed: {e}")
        return jsonify({"error": "Google OAuth request failed"}), 502

    email = (profile.get("email") or "").lower()
    name = profile.get("name")
    if not email:
        log.error(f"Google profile missing email: {profile}")
        return jsonify({"error": "Google account has no email"}), 400

    with main_session() as db:
        u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u:
            # random password nobody knows; the account signs in through Google
            u = User(name=name, email=email, password_hash=hash_password(secrets.token_hex(24)))
            db.add(u)
            db.commit()
            log.info(f"Created customer {email} from Google sign-in")
        token = issue_user_token(u)

    return redirect(_with_query(cfg["FRONTEND_URL"], userToken=token, userName=name), code=302)
