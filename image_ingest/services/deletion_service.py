import logging

from image_ingest.errors import NotFound
from image_ingest.locks import hash_key, keyed_lock, product_key
from image_ingest.services import image_records, primary_service
from image_ingest.workers.storage_cleanup import schedule_purge

logger = logging.getLogger(__name__)


def _purge_released(released):
    # Other logical images may share the objects; the job re-checks
    for file_hash, keys in released.items():
        schedule_purge(hash_key(file_hash), keys)


def delete_product_images(product_id):
    """Delete every image row of a product. Idempotent.

    Returns the number of size rows removed.
    """
    with keyed_lock(product_key(product_id)):
        with image_records.transaction("delete", product_id=product_id):
            removed, released = image_records.delete_for_product(product_id)

    logger.info("Deleted %d image rows for product %s", removed, product_id)
    _purge_released(released)
    return removed


def delete_logical_image(image_group):
    """Delete the four rows of one logical image.

    If it was its product's primary image, the next image by display order
    is promoted.
    """
    rows = image_records.rows_for_group(image_group)
    if not rows:
        raise NotFound(f"Image {image_group} not found", stage="delete")
    product_id = rows[0].product_id

    if product_id is None:
        with image_records.transaction("delete", image_group=image_group):
            removed, released = image_records.delete_group(image_group)
    else:
        with keyed_lock(product_key(product_id)):
            with image_records.transaction("delete", image_group=image_group,
                                           product_id=product_id):
                removed, released = image_records.delete_group(image_group)
                primary_service.promote_after_delete(product_id)

    if not removed:
        raise NotFound(f"Image {image_group} not found", stage="delete")
    logger.info("Deleted image %s of product %s", image_group, product_id)
    _purge_released(released)
