import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from image_ingest.errors import StorageWriteFailure

logger = logging.getLogger(__name__)

PRODUCT_PREFIX = "products"
SITE_PREFIX = "site"


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=current_app.config["S3_ENDPOINT_URL"] or None,
        aws_access_key_id=current_app.config["S3_ACCESS_KEY"] or None,
        aws_secret_access_key=current_app.config["S3_SECRET_KEY"] or None,
        region_name=current_app.config["S3_REGION"],
        config=BotoConfig(signature_version="s3v4"),
    )


def variant_key(file_hash, size, extension="webp"):
    """Content-addressed key: the same bytes and size always land on one path."""
    return f"{PRODUCT_PREFIX}/{file_hash}/{size}.{extension}"


def site_key(slot, file_hash, extension="webp"):
    return f"{SITE_PREFIX}/{slot}/{file_hash}.{extension}"


def upload(storage_key, data, content_type="image/webp", private=False):
    """Upload bytes to S3. Overwrites any object already at the key."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    acl = "private" if private else "public-read"

    client.put_object(
        Bucket=bucket,
        Key=storage_key,
        Body=data,
        ContentType=content_type,
        CacheControl=current_app.config["S3_CACHE_CONTROL"],
        ACL=acl,
    )


def get_public_url(storage_key):
    """Return the public CDN URL for a storage key."""
    base = current_app.config["S3_PUBLIC_URL"].rstrip("/")
    return f"{base}/{storage_key}"


def write_variants(file_hash, variant_set):
    """Write all four variants under their content-addressed keys.

    Returns a list of ``(variant, storage_key, url)`` in size order. On any
    failure the keys already written by this call are removed best-effort
    and StorageWriteFailure is raised.
    """
    written = []
    try:
        for variant in variant_set:
            key = variant_key(file_hash, variant.size, variant.extension)
            upload(key, variant.data, content_type=variant.mime_type)
            written.append((variant, key, get_public_url(key)))
    except (BotoCoreError, ClientError) as e:
        logger.error(
            "Storage write failed for %s after %d of %d variants: %s",
            file_hash[:12], len(written), len(variant_set), e,
        )
        _discard([key for _, key, _ in written])
        raise StorageWriteFailure(
            "Failed to store image variants",
            stage="store",
            context={"file_hash": file_hash},
        ) from e
    return written


def write_single(storage_key, variant):
    try:
        upload(storage_key, variant.data, content_type=variant.mime_type)
    except (BotoCoreError, ClientError) as e:
        logger.error("Storage write failed for %s: %s", storage_key, e)
        raise StorageWriteFailure(
            "Failed to store image", stage="store", context={"key": storage_key}
        ) from e
    return get_public_url(storage_key)


def _discard(storage_keys):
    try:
        delete_many(storage_keys)
    except (BotoCoreError, ClientError):
        logger.exception("Cleanup of partial variant set failed: %s", storage_keys)


def delete_many(storage_keys):
    """Delete multiple objects from S3."""
    if not storage_keys:
        return
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    objects = [{"Key": k} for k in storage_keys]
    client.delete_objects(
        Bucket=bucket,
        Delete={"Objects": objects},
    )


def list_keys(prefix):
    """Yield every key under ``prefix``."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get("Contents", []):
            yield obj["Key"]
