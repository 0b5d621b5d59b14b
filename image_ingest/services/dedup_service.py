"""Content-level deduplication of variant sets.

Callers must hold ``locks.keyed_lock(locks.hash_key(file_hash))`` around
``resolve_variants`` and the record insert that follows it, otherwise two
uploads of the same bytes can both miss and both render.
"""
import logging

from flask import current_app

from image_ingest.models.image import VARIANT_TAGS
from image_ingest.services import image_records, image_service, storage_service
from image_ingest.services.image_records import StoredVariant

logger = logging.getLogger(__name__)


def find_existing(file_hash):
    """Stored variants of a complete set with this hash, in size order."""
    rows = image_records.find_complete_set(file_hash)
    if rows is None:
        return None
    return [StoredVariant.from_row(rows[tag]) for tag in VARIANT_TAGS]


def resolve_variants(file_hash, data):
    """Return ``(stored_variants, reused)`` for the given content.

    On a hit nothing is rendered or written. On a miss the four variants are
    rendered and written under content-addressed keys.
    """
    existing = find_existing(file_hash)
    if existing is not None:
        logger.info("Dedup hit for %s, reusing stored variants", file_hash[:12])
        return existing, True

    logger.info("Dedup miss for %s, generating variants", file_hash[:12])
    cfg = current_app.config
    variant_set = image_service.generate_variants(
        data,
        cfg["VARIANT_SIZES"],
        fmt=cfg["VARIANT_FORMAT"],
        quality=cfg["VARIANT_QUALITY"],
        max_workers=cfg["VARIANT_WORKERS"],
        max_pixels=cfg["MAX_IMAGE_PIXELS"],
    )
    written = storage_service.write_variants(file_hash, variant_set)
    stored = [
        StoredVariant(v.size, url, key, v.width, v.height, v.mime_type)
        for v, key, url in written
    ]
    return stored, False
