import hashlib
import hmac
import logging
import re
from datetime import datetime, timedelta, timezone
from functools import wraps

import bcrypt
import jwt
from flask import current_app, g, jsonify
from flask_login import LoginManager, UserMixin, current_user

log = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ARTIST_TOKEN_TTL = timedelta(hours=24)
USER_TOKEN_TTL = timedelta(days=7)

NO_TOKEN = "Access denied. No token provided."
BAD_TOKEN = "Invalid token."

login_manager = LoginManager()
login_manager.session_protection = None


class Principal(UserMixin):
    """Whoever presented the bearer token: the artist or a customer."""

    def __init__(self, email, user_id=None, is_artist=False, name=None):
        self.email = email
        self.user_id = user_id
        self.is_artist = is_artist
        self.name = name
        self.id = f"artist:{email}" if is_artist else str(user_id)


# ---------- Passwords ----------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def is_legacy_hash(stored: str) -> bool:
    return not stored.startswith("$2") and stored.count("$") == 1


def check_password(password: str, stored: str) -> bool:
    if not stored:
        return False
    if is_legacy_hash(stored):
        # salt$sha256(salt + password), written by earlier releases
        salt, digest = stored.split("$")
        attempt = hashlib.sha256((salt + password).encode()).hexdigest()
        return hmac.compare_digest(attempt, digest)
    try:
        return bcrypt.checkpw(password.encode(), stored.encode())
    except ValueError:
        return False


# ---------- Tokens ----------
def _encode(payload, ttl):
    now = datetime.now(timezone.utc)
    claims = dict(payload, iat=now, exp=now + ttl)
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def issue_artist_token(email):
    return _encode({"email": email, "role": "artist"}, ARTIST_TOKEN_TTL)


def issue_user_token(user):
    payload = {"userId": user.id, "email": user.email}
    if user.name:
        payload["name"] = user.name
    return _encode(payload, USER_TOKEN_TTL)


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALGORITHM])


def bearer_token(header):
    m = re.match(r"^bearer\s+(\S+)\s*$", header or "", re.IGNORECASE)
    return m.group(1) if m else None


@login_manager.request_loader
def load_principal(request):
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        g.auth_error = NO_TOKEN
        return None
    try:
        claims = decode_token(token)
    except jwt.PyJWTError as e:
        log.info(f"Token verification failed: {e}")
        g.auth_error = BAD_TOKEN
        return None
    if claims.get("role") == "artist":
        if claims.get("email") != current_app.config["ARTIST_EMAIL"]:
            g.auth_error = BAD_TOKEN
            return None
        return Principal(claims.get("email"), is_artist=True)
    if not claims.get("userId"):
        g.auth_error = "Invalid token format."
        return None
    return Principal(claims.get("email"), user_id=int(claims["userId"]), name=claims.get("name"))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": g.get("auth_error", NO_TOKEN)}), 401


def user_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if current_user.is_artist:
            return jsonify({"error": "Invalid token format."}), 401
        return view(*args, **kwargs)
    return wrapper


def artist_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_artist:
            return jsonify({"error": BAD_TOKEN}), 401
        return view(*args, **kwargs)
    return wrapper
