"""Storage adapter: one upload/URL interface over B2 or a GitHub repository.

``USE_GITHUB_STORAGE`` picks the backend.
"""
import os
import uuid

from flask import current_app

from . import b2, github
from .errors import ImageNotFound, StorageError

FOLDERS = ("sections", "products")
MAX_IMAGES = 10

__all__ = [
    "FOLDERS", "MAX_IMAGES", "ImageNotFound", "StorageError",
    "image_url", "image_urls", "is_using_github", "new_key", "storage_type",
    "upload_file", "upload_files",
]


def is_using_github():
    return bool(current_app.config["USE_GITHUB_STORAGE"])


def storage_type():
    return "github" if is_using_github() else "backblaze"


def new_key(folder, filename):
    if folder not in FOLDERS:
        raise ValueError(f"unknown upload folder: {folder}")
    ext = os.path.splitext(filename or "")[1].lower()
    return f"{folder}/{uuid.uuid4()}{ext}"


def upload_file(file, folder):
    """Store one uploaded file (a werkzeug FileStorage) under ``folder``."""
    data = file.read()
    key = new_key(folder, file.filename)
    mimetype = file.mimetype or "application/octet-stream"
    name = file.filename or os.path.basename(key)
    if is_using_github():
        return github.upload_file_to_github(key, data, mimetype, name, folder)
    return b2.upload_file_to_b2(key, data, mimetype, name)


def upload_files(files, folder):
    # sequential on both backends; GitHub rate-limits parallel commits
    return [upload_file(f, folder) for f in files]


def image_url(key, expires_in=None):
    if not key:
        return ""
    if key.startswith(("http://", "https://")):
        return key
    if is_using_github():
        return github.github_image_url(key)
    return b2.generate_signed_url(key, expires_in or current_app.config["SIGNED_URL_EXPIRES"])


def image_urls(keys, expires_in=None):
    return [image_url(k, expires_in) for k in keys or []]
