"""Hero and logo slot images.

Each slot is one row keyed by the slot name. Uploading replaces the row in
place; the superseded storage object is purged later.
"""
import logging

from flask import current_app

from image_ingest.errors import DatabaseFailure
from image_ingest.extensions import db
from image_ingest.locks import keyed_lock, slot_key
from image_ingest.models.site_image import SiteImage
from image_ingest.services import image_records, image_service, storage_service
from image_ingest.services.upload_service import validate
from image_ingest.workers.storage_cleanup import schedule_purge

logger = logging.getLogger(__name__)


def _upsert_slot(slot, url, key, file_hash):
    """Point ``slot`` at the new object. Returns ``(row, superseded_key)``."""
    superseded = None
    with image_records.transaction("upsert_site", slot=slot):
        row = SiteImage.query.filter_by(slot=slot).with_for_update().first()
        if row is None:
            row = SiteImage(slot=slot)
            db.session.add(row)
        else:
            superseded = row.storage_key
        row.url = url
        row.storage_key = key
        row.file_hash = file_hash
    return row, superseded


def upload_site_image(upload):
    """Render and store an image for ``upload.site_slot``.

    Returns the slot's SiteImage row.
    """
    slot = upload.site_slot
    validate(upload)
    file_hash = image_service.content_hash(upload.data)
    key = None

    try:
        with keyed_lock(slot_key(slot)):
            current = db.session.get(SiteImage, slot)
            if current is not None and current.file_hash == file_hash:
                logger.info("Site slot %s already holds %s", slot, file_hash[:12])
                return current

            cfg = current_app.config
            rendition = image_service.render_single(
                upload.data,
                cfg["SITE_SLOT_SIZES"][slot],
                fmt=cfg["VARIANT_FORMAT"],
                quality=cfg["VARIANT_QUALITY"],
                max_pixels=cfg["MAX_IMAGE_PIXELS"],
            )
            key = storage_service.site_key(slot, file_hash, rendition.extension)
            url = storage_service.write_single(key, rendition)
            row, superseded = _upsert_slot(slot, url, key, file_hash)
    except DatabaseFailure:
        if key:
            schedule_purge(slot_key(slot), [key])
        raise

    logger.info("Site slot %s now holds %s", slot, file_hash[:12])
    if superseded and superseded != key:
        schedule_purge(slot_key(slot), [superseded])
    return row


def current_site_images():
    """URL per slot, falling back to the configured defaults."""
    images = dict(current_app.config["SITE_IMAGE_DEFAULTS"])
    for row in SiteImage.query.all():
        images[row.slot] = row.url
    return images
