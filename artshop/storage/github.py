"""A GitHub repository used as the image store.

Files are committed through the contents API (base64 payloads). Reads go
through this backend's ``/api/github-image/`` proxy so private repositories
work without exposing the token to browsers.
"""
import base64
import logging
import time
from datetime import datetime, timezone

import requests
from flask import current_app

from .errors import ImageNotFound, StorageError

log = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
RAW_ROOT = "https://raw.githubusercontent.com"
API_VERSION = "2022-11-28"
PROXY_PREFIX = "/api/github-image/"
FETCH_ATTEMPTS = 3
TIMEOUT = 30


def repo_settings():
    cfg = current_app.config
    return cfg["GITHUB_REPO_OWNER"], cfg["GITHUB_REPO_NAME"], cfg["GITHUB_REPO_BRANCH"] or "main"


def _headers(accept="application/vnd.github+json"):
    headers = {"Accept": accept, "X-GitHub-Api-Version": API_VERSION}
    token = current_app.config["GITHUB_TOKEN"]
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _contents_url(path):
    owner, repo, _ = repo_settings()
    return f"{API_ROOT}/repos/{owner}/{repo}/contents/{path}"


def raw_url(key):
    owner, repo, branch = repo_settings()
    return f"{RAW_ROOT}/{owner}/{repo}/{branch}/{key}"


def file_sha(path):
    _, _, branch = repo_settings()
    r = requests.get(_contents_url(path), headers=_headers(), params={"ref": branch}, timeout=TIMEOUT)
    if r.status_code == 404:
        return None
    if not r.ok:
        raise StorageError(f"GitHub lookup of {path} failed: {r.status_code}")
    return r.json().get("sha")


def put_file(path, data, message, sha=None):
    if not current_app.config["GITHUB_TOKEN"]:
        raise StorageError("GITHUB_TOKEN is not configured in environment variables")
    owner, repo, branch = repo_settings()
    if not owner or not repo:
        raise StorageError("GitHub repository configuration is incomplete")

    body = {
        "message": message,
        "content": base64.b64encode(data).decode(),
        "branch": branch,
    }
    if sha:
        body["sha"] = sha
    try:
        r = requests.put(_contents_url(path), headers=_headers(), json=body, timeout=TIMEOUT)
    except requests.RequestException as e:
        raise StorageError(f"Failed to upload file to GitHub: {e}") from e
    if r.status_code == 401:
        raise StorageError("GitHub authentication failed. Check your GITHUB_TOKEN")
    if r.status_code == 404:
        raise StorageError("GitHub repository not found. Check GITHUB_REPO_OWNER and GITHUB_REPO_NAME")
    if not r.ok:
        raise StorageError(f"Failed to upload file to GitHub: {r.status_code} {r.text[:200]}")
    return r.json()


def upload_file_to_github(key, data, mimetype, original_name, folder):
    result = put_file(key, data, f"Add {folder} image: {original_name}")
    log.info(f"Uploaded {key} to GitHub")
    return {
        "key": key,
        "url": raw_url(key),
        "metadata": {
            "originalName": original_name,
            "size": len(data),
            "mimeType": mimetype,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "sha": (result.get("content") or {}).get("sha"),
        },
    }


def delete_file(path):
    """Remove a file from the repository; a file that is already gone is fine."""
    sha = file_sha(path)
    if sha is None:
        return False
    _, _, branch = repo_settings()
    r = requests.delete(_contents_url(path), headers=_headers(),
                        json={"message": f"Delete image: {path}", "sha": sha, "branch": branch},
                        timeout=TIMEOUT)
    if r.status_code == 404:
        return False
    if not r.ok:
        raise StorageError(f"Failed to delete file from GitHub: {r.status_code}")
    log.info(f"Deleted {path} from GitHub")
    return True


def github_image_url(key):
    """Absolute proxy URL for a stored key."""
    if not key:
        return ""
    if key.startswith(("http://", "https://")):
        return key
    origin = current_app.config["BACKEND_URL"].rstrip("/")
    if key.startswith("/image/"):
        return origin + PROXY_PREFIX + key[len("/image/"):]
    if key.startswith(PROXY_PREFIX):
        return origin + key
    return origin + PROXY_PREFIX + key.lstrip("/")


def fetch_image(key, sleep=time.sleep):
    """Download an image, trying raw.githubusercontent.com before the API.

    Returns ``(content, content_type)``; content_type may be None.
    Raises StorageError when every attempt failed.
    """
    try:
        r = requests.get(raw_url(key), timeout=TIMEOUT)
        if r.ok:
            return r.content, r.headers.get("Content-Type")
    except requests.RequestException as e:
        log.warning(f"raw.githubusercontent fetch failed, trying API: {e}")

    _, _, branch = repo_settings()
    if not current_app.config["GITHUB_TOKEN"]:
        log.warning("No GITHUB_TOKEN set; unauthenticated GitHub API request may fail")
    last_error = None
    for attempt in range(1, FETCH_ATTEMPTS + 1):
        try:
            r = requests.get(_contents_url(key), headers=_headers("application/vnd.github.raw"),
                             params={"ref": branch}, timeout=TIMEOUT)
        except requests.RequestException as e:
            last_error = e
            log.warning(f"GitHub API fetch attempt {attempt} failed: {e}")
            sleep(0.5 * 2 ** (attempt - 1))
            continue
        if r.ok:
            return r.content, r.headers.get("Content-Type")
        if r.status_code == 404:
            raise ImageNotFound(f"Image not found on GitHub: {key}")
        last_error = f"HTTP {r.status_code}"
        log.warning(f"GitHub API fetch attempt {attempt} returned {r.status_code}")
        sleep(0.5 * 2 ** (attempt - 1))
    raise StorageError(f"All attempts to fetch {key} from GitHub failed: {last_error}")
