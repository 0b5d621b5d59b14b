"""Product image upload pipeline.

Stages run in order and any of them may raise a PipelineError, which ends
the upload without persisting anything:

    validate -> hash -> dedup (hit | generate -> store) -> insert -> primary

The content hash lock is held from the dedup check through the insert
commit; the product lock is nested inside it for the insert and primary
reconciliation.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app

from image_ingest.errors import NotFound, PipelineError, ValidationError
from image_ingest.locks import hash_key, keyed_lock, product_key
from image_ingest.models.site_image import SiteImage
from image_ingest.services import (
    catalog,
    dedup_service,
    image_records,
    image_service,
    primary_service,
)
from image_ingest.workers.storage_cleanup import schedule_purge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceUpload:
    data: bytes
    mime_type: str
    declared_size: Optional[int] = None
    product_id: Optional[int] = None
    site_slot: Optional[str] = None
    image_index: Optional[int] = None
    is_primary: bool = False
    filename: str = ""

    def __post_init__(self):
        if (self.product_id is None) == (self.site_slot is None):
            raise ValidationError(
                "Upload must target exactly one of a product or a site slot",
                stage="validate",
            )
        if self.product_id is not None and self.product_id < 1:
            raise ValidationError("Product ID must be a positive integer", stage="validate")
        if self.site_slot is not None and self.site_slot not in SiteImage.SLOTS:
            raise ValidationError("Type must be either hero or logo", stage="validate")
        if self.image_index is not None and self.image_index < 0:
            raise ValidationError(
                "Image index must be a non-negative integer", stage="validate"
            )


@dataclass
class UploadResult:
    file_hash: str
    image_group: str
    images: List[image_records.StoredVariant]
    reused: bool
    primary_rows: list = field(default_factory=list)

    @property
    def primary_image(self):
        """The medium row of the new image if it became primary."""
        for row in self.primary_rows:
            if row.size == "medium":
                return row
        return None


def validate(upload):
    cfg = current_app.config
    image_service.validate_upload(
        upload.data,
        upload.mime_type,
        declared_size=upload.declared_size,
        allowed_types=cfg["ALLOWED_IMAGE_TYPES"],
        max_size=cfg["MAX_IMAGE_BYTES"],
    )


def upload_product_image(upload):
    """Run the full pipeline for one product upload.

    Returns:
        UploadResult
    """
    product_id = upload.product_id
    context = {"product_id": product_id}
    stored = None
    reused = False
    try:
        validate(upload)
        if not catalog.product_exists(product_id):
            raise NotFound(f"Product with ID {product_id} not found", stage="validate")

        file_hash = image_service.content_hash(upload.data)
        context["file_hash"] = file_hash[:12]
        logger.info("Upload hashed %s", context)

        with keyed_lock(hash_key(file_hash)):
            stored, reused = dedup_service.resolve_variants(file_hash, upload.data)

            with keyed_lock(product_key(product_id)):
                with image_records.transaction("insert", **context):
                    display_order = upload.image_index
                    if display_order is None:
                        display_order = image_records.next_display_order(product_id)
                    rows = image_records.insert_logical_image(
                        product_id, file_hash, stored, display_order
                    )
                    image_group = rows[0].image_group
                    primary_rows = primary_service.reconcile_on_insert(
                        product_id, image_group, upload.is_primary
                    )
    except PipelineError as e:
        logger.warning(
            "Upload failed at %s: %s %s", e.stage, e.message, {**context, **e.context}
        )
        if stored and not reused:
            # Variants were written but no row points at them
            schedule_purge(hash_key(file_hash), [v.storage_key for v in stored])
        raise

    logger.info(
        "Upload stored %s as %s (reused=%s, primary=%s)",
        context, image_group, reused, bool(primary_rows),
    )
    return UploadResult(
        file_hash=file_hash,
        image_group=image_group,
        images=stored,
        reused=reused,
        primary_rows=primary_rows,
    )
