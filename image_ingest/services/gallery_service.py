"""Read-only queries for the admin image gallery."""
from flask import current_app

from image_ingest.errors import ValidationError
from image_ingest.extensions import db
from image_ingest.models.image import ProductImage
from image_ingest.models.product import Product

GALLERY_FILTERS = {"all", "used", "unused"}
SORT_FIELDS = {"name", "image_count"}
SORT_DIRECTIONS = {"asc", "desc"}
IMAGE_FILTERS = {"all", "with_images", "without_images"}


def _check_choice(value, choices, name):
    if value not in choices:
        raise ValidationError(
            f"{name} must be one of {', '.join(sorted(choices))}", stage="query"
        )


def gallery(filter_="all", page=1, limit=None, product_id=None):
    """Image rows newest first, with the owning product's name.

    ``used`` rows are attached to a product, ``unused`` rows are orphaned.
    """
    _check_choice(filter_, GALLERY_FILTERS, "filter")
    max_limit = current_app.config["GALLERY_MAX_LIMIT"]
    if limit is None:
        limit = current_app.config["GALLERY_DEFAULT_LIMIT"]
    if page < 1:
        raise ValidationError("page must be a positive integer", stage="query")
    if not 1 <= limit <= max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}", stage="query")

    query = db.session.query(ProductImage, Product.name).outerjoin(
        Product, ProductImage.product_id == Product.id
    )
    if filter_ == "used":
        query = query.filter(ProductImage.product_id.isnot(None))
    elif filter_ == "unused":
        query = query.filter(ProductImage.product_id.is_(None))
    if product_id is not None:
        query = query.filter(ProductImage.product_id == product_id)

    pagination = query.order_by(
        ProductImage.created_at.desc(), ProductImage.id.desc()
    ).paginate(page=page, per_page=limit, error_out=False, max_per_page=max_limit)

    images = []
    for image, product_name in pagination.items:
        item = image.to_dict()
        item["product_name"] = product_name
        images.append(item)

    return {
        "images": images,
        "pagination": {
            "page": page,
            "total": pagination.total,
            "pages": pagination.pages,
        },
    }


def products_with_image_counts(sort_by="image_count", sort_direction="asc",
                               image_filter="all"):
    """Active products with the number of logical images attached to each."""
    _check_choice(sort_by, SORT_FIELDS, "sort_by")
    _check_choice(sort_direction, SORT_DIRECTIONS, "sort_direction")
    _check_choice(image_filter, IMAGE_FILTERS, "filter")

    image_count = db.func.count(db.distinct(ProductImage.image_group)).label("image_count")
    query = (
        db.session.query(Product.id, Product.name, Product.price, image_count)
        .outerjoin(ProductImage, ProductImage.product_id == Product.id)
        .filter(Product.active.is_(True))
        .group_by(Product.id, Product.name, Product.price)
    )
    if image_filter == "with_images":
        query = query.having(image_count > 0)
    elif image_filter == "without_images":
        query = query.having(image_count == 0)

    order = image_count if sort_by == "image_count" else Product.name
    order = order.desc() if sort_direction == "desc" else order.asc()
    rows = query.order_by(order, Product.id.asc()).all()

    return [
        {
            "id": row.id,
            "name": row.name,
            "price": float(row.price) if row.price is not None else None,
            "image_count": row.image_count,
        }
        for row in rows
    ]
