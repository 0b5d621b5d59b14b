from datetime import datetime, timezone
from image_ingest.extensions import db


VARIANT_TAGS = ("thumb", "small", "medium", "large")


class ProductImage(db.Model):
    """One stored size of a logical image.

    A logical image is the four rows sharing ``image_group``. They are
    inserted together and carry the same ``file_hash`` and ``is_primary``.
    """

    __tablename__ = "product_images"

    id = db.Column(db.Integer, primary_key=True)
    image_group = db.Column(db.String(32), nullable=False, index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    size = db.Column(db.String(10), nullable=False)  # thumb, small, medium, large
    url = db.Column(db.String(1024), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False)
    file_hash = db.Column(db.String(64), nullable=False, index=True)
    mime_type = db.Column(db.String(50), nullable=False, default="image/webp")
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("image_group", "size", name="uq_image_group_size"),
        db.Index("ix_product_images_product_primary", "product_id", "is_primary"),
    )

    SIZES = set(VARIANT_TAGS)

    def to_dict(self):
        return {
            "id": self.id,
            "image_group": self.image_group,
            "product_id": self.product_id,
            "size": self.size,
            "url": self.url,
            "file_hash": self.file_hash,
            "is_primary": self.is_primary,
            "display_order": self.display_order,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProductImage {self.image_group}/{self.size}>"
