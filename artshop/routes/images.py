import logging
import os
import re
import time
from urllib.parse import quote, unquote

from flask import Blueprint, Response, current_app, jsonify, redirect

from ..storage import ImageNotFound, StorageError, github, is_using_github

log = logging.getLogger(__name__)

bp = Blueprint("images", __name__)

CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_HEADERS = {
    "Cache-Control": "public, max-age=31536000",
    "Access-Control-Allow-Origin": "*",
}


def guess_content_type(key):
    if re.search(r"\.(jpg|jpeg)$", key, re.IGNORECASE):
        return "image/jpeg"
    if re.search(r"\.png$", key, re.IGNORECASE):
        return "image/png"
    if re.search(r"\.webp$", key, re.IGNORECASE):
        return "image/webp"
    if re.search(r"\.gif$", key, re.IGNORECASE):
        return "image/gif"
    return "application/octet-stream"


def cache_path(key):
    safe = re.sub(r"[^a-zA-Z0-9._-]", "_", key)
    return os.path.join(current_app.config["IMAGE_CACHE_DIR"], safe)


def _read_cache(path, max_age=None):
    try:
        st = os.stat(path)
    except OSError:
        return None
    if max_age is not None and time.time() - st.st_mtime >= max_age:
        return None
    with open(path, "rb") as f:
        return f.read()


def _write_cache(path, data):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        log.warning(f"Failed to write image cache {path}: {e}")


def _image_response(data, content_type):
    return Response(data, mimetype=content_type, headers=CACHE_HEADERS)


@bp.get("/api/github-image/<path:key>")
def github_image(key):
    if not is_using_github():
        return jsonify({"error": "GitHub storage not configured"}), 400
    owner, repo, _ = github.repo_settings()
    if not owner or not repo:
        return jsonify({"error": "GitHub storage not properly configured"}), 500

    path = cache_path(key)
    cached = _read_cache(path, max_age=CACHE_TTL_SECONDS)
    if cached is not None:
        return _image_response(cached, guess_content_type(key))

    try:
        data, content_type = github.fetch_image(key)
    except ImageNotFound:
        return jsonify({"error": "Image not found"}), 404
    except StorageError as e:
        log.error(f"All attempts to fetch image {key} from GitHub failed: {e}")
        stale = _read_cache(path)
        if stale is not None:
            log.warning(f"Serving stale cached image {key}")
            return _image_response(stale, guess_content_type(key))
        return jsonify({"error": "Failed to fetch image from GitHub"}), 502

    _write_cache(path, data)
    return _image_response(data, content_type or guess_content_type(key))


@bp.get("/image/<path:key>")
def legacy_image(key):
    # old frontend bundles request /image/<key>, sometimes /image//api/github-image/<key>
    key = unquote(key).lstrip("/")
    if key.lower().startswith("api/github-image/"):
        key = key[len("api/github-image/"):]
    return redirect(f"/api/github-image/{quote(key)}", code=302)
