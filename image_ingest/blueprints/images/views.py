"""Image upload, gallery and site slot endpoints."""
import logging

from flask import current_app, request
from werkzeug.exceptions import RequestEntityTooLarge

from image_ingest.blueprints.images import images_bp
from image_ingest.errors import NoFileProvided, PipelineError, ValidationError
from image_ingest.services import (
    deletion_service,
    gallery_service,
    image_records,
    primary_service,
    site_image_service,
    upload_service,
)
from image_ingest.services.upload_service import SourceUpload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@images_bp.errorhandler(PipelineError)
def handle_pipeline_error(error):
    body = error.to_dict()
    if error.status_code >= 500:
        logger.error(
            "%s at stage %s: %s %s",
            type(error).__name__, error.stage, error.message, error.context,
        )
        if not current_app.debug:
            body["message"] = "Image operation failed, please retry"
    return body, error.status_code


@images_bp.errorhandler(RequestEntityTooLarge)
def handle_too_large(error):
    limit = current_app.config["MAX_IMAGE_BYTES"] // (1024 * 1024)
    return {
        "success": False,
        "message": f"Image file size must be less than {limit}MB",
    }, 400


# ---------------------------------------------------------------------------
# Parameter parsing
# ---------------------------------------------------------------------------

def _parse_int(value, name, minimum):
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = None
    if number is None or number < minimum:
        qualifier = "positive" if minimum > 0 else "non-negative"
        raise ValidationError(f"{name} must be a {qualifier} integer", stage="validate")
    return number


def _optional_int(value, name, minimum, default=None):
    if value is None or value == "":
        return default
    return _parse_int(value, name, minimum)


def _parse_bool(value, name):
    if value is None or value == "":
        return False
    if value not in ("true", "false"):
        raise ValidationError(f"{name} must be true or false", stage="validate")
    return value == "true"


def _read_file():
    file = request.files.get("image")
    if file is None or not file.filename:
        raise NoFileProvided(stage="validate")
    data = file.read()
    return file, data


# ---------------------------------------------------------------------------
# Product images
# ---------------------------------------------------------------------------

@images_bp.route("/upload/<product_id>", methods=["POST"])
def upload_product_image(product_id):
    """Upload one image for a product and derive its four variants."""
    product_id = _parse_int(product_id, "Product ID", minimum=1)
    image_index = _optional_int(request.form.get("imageIndex"), "Image index", minimum=0)
    is_primary = _parse_bool(request.form.get("isPrimary"), "isPrimary")
    file, data = _read_file()

    result = upload_service.upload_product_image(
        SourceUpload(
            data=data,
            mime_type=file.mimetype,
            declared_size=file.content_length or None,
            product_id=product_id,
            image_index=image_index,
            is_primary=is_primary,
            filename=file.filename,
        )
    )

    payload = {
        "images": [
            {"size": v.size, "url": v.url, "fileHash": result.file_hash}
            for v in result.images
        ],
    }
    if result.primary_image is not None:
        payload["primaryImage"] = result.primary_image.to_dict()

    verb = "Reused" if result.reused else "Successfully uploaded"
    return {
        "success": True,
        "data": payload,
        "message": f"{verb} {len(result.images)} image variations for product {product_id}",
    }, 201


@images_bp.route("/product/<product_id>", methods=["GET"])
def get_product_images(product_id):
    product_id = _parse_int(product_id, "Product ID", minimum=1)
    return {
        "success": True,
        "data": {"images": image_records.logical_images_for_product(product_id)},
    }


@images_bp.route("/product/<product_id>", methods=["DELETE"])
def delete_product_images(product_id):
    product_id = _parse_int(product_id, "Product ID", minimum=1)
    deletion_service.delete_product_images(product_id)
    return {
        "success": True,
        "message": f"Successfully deleted all images for product {product_id}",
    }, 200


@images_bp.route("/product/<product_id>/primary/<image_group>", methods=["POST"])
def set_primary_image(product_id, image_group):
    product_id = _parse_int(product_id, "Product ID", minimum=1)
    rows = primary_service.set_primary(product_id, image_group)
    return {
        "success": True,
        "data": {"images": [row.to_dict() for row in rows]},
        "message": f"Image {image_group} is now the primary image",
    }


@images_bp.route("/<image_group>", methods=["DELETE"])
def delete_image(image_group):
    deletion_service.delete_logical_image(image_group)
    return {"success": True, "message": f"Deleted image {image_group}"}, 200


# ---------------------------------------------------------------------------
# Gallery
# ---------------------------------------------------------------------------

@images_bp.route("/gallery", methods=["GET"])
def gallery():
    result = gallery_service.gallery(
        filter_=request.args.get("filter", "all"),
        page=_optional_int(request.args.get("page"), "page", minimum=1, default=1),
        limit=_optional_int(request.args.get("limit"), "limit", minimum=1),
        product_id=_optional_int(request.args.get("productId"), "Product ID", minimum=1),
    )
    return {"success": True, "data": result}


@images_bp.route("/products-with-counts", methods=["GET"])
def products_with_counts():
    products = gallery_service.products_with_image_counts(
        sort_by=request.args.get("sort_by", "image_count"),
        sort_direction=request.args.get("sort_direction", "asc"),
        image_filter=request.args.get("filter", "all"),
    )
    return {"success": True, "data": {"products": products}}


# ---------------------------------------------------------------------------
# Site images
# ---------------------------------------------------------------------------

@images_bp.route("/site", methods=["POST"])
def upload_site_image():
    slot = request.form.get("type")
    if not slot:
        raise ValidationError("Type is required (hero or logo)", stage="validate")
    file, data = _read_file()

    row = site_image_service.upload_site_image(
        SourceUpload(
            data=data,
            mime_type=file.mimetype,
            declared_size=file.content_length or None,
            site_slot=slot,
            filename=file.filename,
        )
    )
    return {
        "success": True,
        "data": {"url": row.url, "type": row.slot},
        "message": f"Successfully uploaded {row.slot} image",
    }, 201


@images_bp.route("/site/current", methods=["GET"])
def current_site_images():
    return {"success": True, "data": site_image_service.current_site_images()}
