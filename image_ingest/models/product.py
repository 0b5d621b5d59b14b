from datetime import datetime, timezone
from image_ingest.extensions import db


class Product(db.Model):
    """Catalog product. Owned by the catalog service; read-only here."""

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    images = db.relationship("ProductImage", backref="product", lazy="dynamic")

    def __repr__(self):
        return f"<Product {self.id}: {self.name}>"
