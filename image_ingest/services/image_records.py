"""Persistence for product image rows and site slot rows.

Functions here only add/flush; callers own the transaction through
``transaction()`` so that a logical image's four rows and any primary
reconciliation commit together or not at all.
"""
import logging
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from image_ingest.errors import DatabaseFailure
from image_ingest.extensions import db
from image_ingest.models.image import ProductImage, VARIANT_TAGS
from image_ingest.models.site_image import SiteImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredVariant:
    size: str
    url: str
    storage_key: str
    width: int
    height: int
    mime_type: str

    @classmethod
    def from_row(cls, row):
        return cls(row.size, row.url, row.storage_key, row.width, row.height, row.mime_type)


@contextmanager
def transaction(stage, **context):
    """Commit on success; roll back and translate database errors on failure."""
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Database failure at %s %s: %s", stage, context, e)
        raise DatabaseFailure(
            "Database operation failed", stage=stage, context=context
        ) from e
    except Exception:
        db.session.rollback()
        raise


def new_group_key():
    return uuid.uuid4().hex


def insert_logical_image(product_id, file_hash, stored_variants, display_order,
                         is_primary=False):
    """Add the four size rows of one logical image and flush.

    Returns the rows in size order.
    """
    by_size = {v.size: v for v in stored_variants}
    if len(stored_variants) != len(VARIANT_TAGS) or set(by_size) != set(VARIANT_TAGS):
        raise ValueError(f"Expected one variant per size {VARIANT_TAGS}")

    group = new_group_key()
    rows = []
    for tag in VARIANT_TAGS:
        variant = by_size[tag]
        row = ProductImage(
            image_group=group,
            product_id=product_id,
            size=tag,
            url=variant.url,
            storage_key=variant.storage_key,
            file_hash=file_hash,
            mime_type=variant.mime_type,
            width=variant.width,
            height=variant.height,
            is_primary=is_primary,
            display_order=display_order,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


def find_complete_set(file_hash):
    """Rows of the oldest logical image with this hash having all four sizes."""
    group = (
        db.session.query(ProductImage.image_group)
        .filter(ProductImage.file_hash == file_hash)
        .group_by(ProductImage.image_group)
        .having(db.func.count(db.distinct(ProductImage.size)) == len(VARIANT_TAGS))
        .order_by(db.func.min(ProductImage.id))
        .limit(1)
        .scalar()
    )
    if group is None:
        return None
    rows = ProductImage.query.filter_by(image_group=group).all()
    return {row.size: row for row in rows}


def images_for_product(product_id, lock=False):
    query = ProductImage.query.filter_by(product_id=product_id).order_by(
        ProductImage.display_order, ProductImage.id
    )
    if lock:
        query = query.with_for_update()
    return query.all()


def rows_for_group(image_group):
    return (
        ProductImage.query.filter_by(image_group=image_group)
        .order_by(ProductImage.id)
        .populate_existing()
        .all()
    )


def group_rows(rows):
    """Collapse size rows into logical images, keeping the input order."""
    groups = {}
    for row in rows:
        entry = groups.get(row.image_group)
        if entry is None:
            entry = groups[row.image_group] = {
                "image_group": row.image_group,
                "product_id": row.product_id,
                "file_hash": row.file_hash,
                "is_primary": row.is_primary,
                "display_order": row.display_order,
                "created_at": row.created_at.isoformat() if row.created_at else None,
                "variants": {},
            }
        entry["variants"][row.size] = row.url
    return list(groups.values())


def logical_images_for_product(product_id):
    return group_rows(images_for_product(product_id))


def next_display_order(product_id):
    current = (
        db.session.query(db.func.max(ProductImage.display_order))
        .filter(ProductImage.product_id == product_id)
        .scalar()
    )
    return 0 if current is None else current + 1


def _delete_rows(rows):
    """Delete rows.

    Returns ``(rows removed, {file_hash: [storage keys]})``. Rows sharing
    content report their keys once.
    """
    released = defaultdict(set)
    for row in rows:
        released[row.file_hash].add(row.storage_key)
        db.session.delete(row)
    db.session.flush()
    return len(rows), {h: sorted(keys) for h, keys in released.items()}


def delete_for_product(product_id):
    return _delete_rows(images_for_product(product_id, lock=True))


def delete_group(image_group):
    return _delete_rows(rows_for_group(image_group))


def referenced_keys(storage_keys):
    """The subset of ``storage_keys`` still pointed at by any row."""
    keys = list(storage_keys)
    if not keys:
        return set()
    found = set()
    for i in range(0, len(keys), 500):
        chunk = keys[i:i + 500]
        found.update(
            k for (k,) in db.session.query(ProductImage.storage_key)
            .filter(ProductImage.storage_key.in_(chunk))
            .distinct()
        )
        found.update(
            k for (k,) in db.session.query(SiteImage.storage_key)
            .filter(SiteImage.storage_key.in_(chunk))
        )
    return found
