import logging
import time
from datetime import datetime, timezone

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .auth import login_manager
from .cli import register_cli
from .config import DEFAULT_JWT_SECRET, load_config
from .db import init_db
from .routes import register_blueprints
from .storage import storage_type

log = logging.getLogger("artshop")

DEFAULT_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]


# ---------- Logging ----------
def setup_logging(app):
    if log.handlers:
        return
    log.setLevel(logging.INFO)
    if app.config.get("LOG_FILE"):
        fh = logging.FileHandler(app.config["LOG_FILE"])
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(fh)
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log.addHandler(ch)


def allowed_origins(raw):
    extra = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return list(dict.fromkeys(DEFAULT_ORIGINS + extra))


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if overrides:
        app.config.update(overrides)
    app.secret_key = app.config["JWT_SECRET"]
    setup_logging(app)
    if app.config["JWT_SECRET"] == DEFAULT_JWT_SECRET:
        log.warning("JWT_SECRET is not set; tokens are signed with the insecure development default")

    CORS(app, origins=allowed_origins(app.config["ALLOWED_ORIGINS"]),
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization"],
         supports_credentials=True)
    login_manager.init_app(app)
    init_db(app)
    register_blueprints(app)
    register_cli(app)

    @app.before_request
    def log_request_start():
        g.request_started = time.monotonic()
        log.info(f"--> {request.method} {request.full_path.rstrip('?')}")

    @app.after_request
    def log_request_end(response):
        started = g.get("request_started")
        ms = int((time.monotonic() - started) * 1000) if started else 0
        log.info(f"<-- {request.method} {request.full_path.rstrip('?')} {response.status_code} {ms}ms")
        return response

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def unhandled_error(e):
        log.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"error": "Internal server error"}), 500

    with app.app_context():
        log.info(f"Starting art gallery backend, storage mode: {storage_type().upper()}")
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
