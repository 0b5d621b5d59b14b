"""Read-only view of the catalog the pipeline attaches images to."""
from image_ingest.extensions import db
from image_ingest.models.product import Product


def product_exists(product_id):
    return (
        db.session.query(Product.id).filter(Product.id == product_id).first()
        is not None
    )


def get_product(product_id):
    return db.session.get(Product, product_id)
