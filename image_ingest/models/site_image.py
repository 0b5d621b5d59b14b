from datetime import datetime, timezone
from image_ingest.extensions import db


class SiteImage(db.Model):
    """Current image of a site slot. The slot is the primary key."""

    __tablename__ = "site_images"

    slot = db.Column(db.String(20), primary_key=True)  # hero, logo
    url = db.Column(db.String(1024), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False)
    file_hash = db.Column(db.String(64), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    SLOTS = {"hero", "logo"}

    def __repr__(self):
        return f"<SiteImage {self.slot}>"
