"""Keeps at most one primary logical image per product.

All writes happen with the product's rows selected FOR UPDATE and, in
process or through Redis, under the product's keyed lock.
"""
import logging

from image_ingest.errors import NotFound, PrimaryConflict
from image_ingest.extensions import db
from image_ingest.locks import keyed_lock, product_key
from image_ingest.models.image import ProductImage
from image_ingest.services import image_records

logger = logging.getLogger(__name__)


def _primary_groups(rows):
    return {row.image_group for row in rows if row.is_primary}


def _clear_and_set(product_id, image_group, rows=None):
    if rows is None:
        rows = image_records.images_for_product(product_id, lock=True)
    target = [row for row in rows if row.image_group == image_group]
    if not target:
        raise NotFound(
            f"Image {image_group} not found for product {product_id}",
            stage="reconcile_primary",
            context={"product_id": product_id},
        )

    for row in rows:
        row.is_primary = row.image_group == image_group
    db.session.flush()

    groups = {
        g for (g,) in db.session.query(ProductImage.image_group)
        .filter_by(product_id=product_id, is_primary=True)
        .distinct()
    }
    if groups != {image_group}:
        raise PrimaryConflict(
            f"Product {product_id} has primaries {sorted(groups)}",
            stage="reconcile_primary",
            context={"product_id": product_id},
        )
    return target


def set_primary(product_id, image_group):
    """Make ``image_group`` the product's only primary image.

    Returns the size rows of the new primary.
    """
    with keyed_lock(product_key(product_id)):
        with image_records.transaction("reconcile_primary", product_id=product_id):
            rows = _clear_and_set(product_id, image_group)
    logger.info("Product %s primary image is now %s", product_id, image_group)
    return rows


def reconcile_on_insert(product_id, image_group, requested):
    """Run inside the insert transaction with the product lock held.

    The new image becomes primary if the caller asked for it or the product
    has no primary yet (its first image). Returns the primary rows of the
    new image, or an empty list if it did not become primary.
    """
    rows = image_records.images_for_product(product_id, lock=True)
    existing = _primary_groups(r for r in rows if r.image_group != image_group)
    if requested or not existing:
        return _clear_and_set(product_id, image_group, rows)
    return []


def promote_after_delete(product_id):
    """Promote the first remaining image if the primary was removed."""
    rows = image_records.images_for_product(product_id, lock=True)
    if not rows or _primary_groups(rows):
        return None
    successor = rows[0].image_group
    _clear_and_set(product_id, successor, rows)
    logger.info("Promoted %s to primary for product %s", successor, product_id)
    return successor
