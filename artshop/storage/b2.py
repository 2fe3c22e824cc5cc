"""Backblaze B2 through its S3-compatible API.

The bucket is private: reads go through presigned GET URLs.
"""
import logging
from datetime import datetime, timezone

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from .errors import StorageError

log = logging.getLogger(__name__)

_clients = {}


def get_client():
    cfg = current_app.config
    cache_key = (cfg["B2_ENDPOINT"], cfg["B2_REGION"], cfg["B2_APPLICATION_KEY_ID"])
    client = _clients.get(cache_key)
    if client is None:
        client = boto3.client(
            "s3",
            region_name=cfg["B2_REGION"] or None,
            endpoint_url=cfg["B2_ENDPOINT"] or None,
            aws_access_key_id=cfg["B2_APPLICATION_KEY_ID"],
            aws_secret_access_key=cfg["B2_APPLICATION_KEY"],
            # B2 needs path-style addressing
            config=Config(s3={"addressing_style": "path"},
                          connect_timeout=30, read_timeout=30,
                          max_pool_connections=25),
        )
        _clients[cache_key] = client
    return client


def upload_file_to_b2(key, data, mimetype, original_name):
    cfg = current_app.config
    uploaded_at = datetime.now(timezone.utc).isoformat()
    try:
        get_client().put_object(
            Bucket=cfg["B2_BUCKET_NAME"],
            Key=key,
            Body=data,
            ContentType=mimetype,
            Metadata={"originalName": original_name.encode("ascii", "ignore").decode(),
                      "uploadedAt": uploaded_at},
        )
    except (BotoCoreError, ClientError) as e:
        log.error(f"Error uploading {key} to B2: {e}")
        raise StorageError("Failed to upload file") from e
    return {
        "key": key,
        "url": f"{cfg['B2_ENDPOINT']}/{cfg['B2_BUCKET_NAME']}/{key}",
        "metadata": {
            "originalName": original_name,
            "size": len(data),
            "mimeType": mimetype,
            "uploadedAt": uploaded_at,
        },
    }


def generate_signed_url(key, expires_in=3600):
    try:
        return get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": current_app.config["B2_BUCKET_NAME"], "Key": key},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as e:
        log.error(f"Error generating signed URL for {key}: {e}")
        raise StorageError("Failed to generate signed URL") from e


def download_from_b2(key):
    try:
        obj = get_client().get_object(Bucket=current_app.config["B2_BUCKET_NAME"], Key=key)
        return obj["Body"].read()
    except (BotoCoreError, ClientError) as e:
        raise StorageError(f"Failed to download {key} from B2: {e}") from e
