"""Flask CLI commands for image maintenance."""
from collections import defaultdict

import click


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        from image_ingest.extensions import db

        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("set-primary")
    @click.argument("product_id", type=int)
    @click.argument("image_group")
    def set_primary(product_id, image_group):
        """Make IMAGE_GROUP the primary image of PRODUCT_ID."""
        from image_ingest.errors import PipelineError
        from image_ingest.services import primary_service

        try:
            primary_service.set_primary(product_id, image_group)
        except PipelineError as e:
            raise click.ClickException(e.message)
        click.echo(f"Product {product_id} primary image: {image_group}")

    @app.cli.command("purge-orphans")
    @click.option("--dry-run", is_flag=True, help="List objects without deleting.")
    def purge_orphans(dry_run):
        """Delete stored objects that no image row references."""
        from image_ingest.locks import hash_key, slot_key
        from image_ingest.services import image_records, storage_service
        from image_ingest.workers.storage_cleanup import purge_unreferenced

        # products/<hash>/<size>.<ext> and site/<slot>/<hash>.<ext>
        by_lock = defaultdict(list)
        for key in storage_service.list_keys(f"{storage_service.PRODUCT_PREFIX}/"):
            by_lock[hash_key(key.split("/")[1])].append(key)
        for key in storage_service.list_keys(f"{storage_service.SITE_PREFIX}/"):
            by_lock[slot_key(key.split("/")[1])].append(key)

        total = 0
        for lock_name, keys in sorted(by_lock.items()):
            if dry_run:
                orphaned = sorted(set(keys) - image_records.referenced_keys(keys))
            else:
                orphaned = purge_unreferenced(lock_name, keys)
            for key in orphaned:
                click.echo(f"  {key}")
            total += len(orphaned)

        verb = "Would delete" if dry_run else "Deleted"
        click.echo(f"{verb} {total} unreferenced objects.")

    @app.cli.command("stats")
    def stats():
        """Show image statistics."""
        from image_ingest.extensions import db
        from image_ingest.models.image import ProductImage
        from image_ingest.models.site_image import SiteImage

        logical = db.session.query(
            db.func.count(db.distinct(ProductImage.image_group))
        ).scalar()
        hashes = db.session.query(
            db.func.count(db.distinct(ProductImage.file_hash))
        ).scalar()
        orphaned = db.session.query(
            db.func.count(db.distinct(ProductImage.image_group))
        ).filter(ProductImage.product_id.is_(None)).scalar()

        click.echo(f"Logical images: {logical}")
        click.echo(f"  distinct contents: {hashes}")
        click.echo(f"  unattached: {orphaned}")
        for row in SiteImage.query.order_by(SiteImage.slot):
            click.echo(f"Site {row.slot}: {row.url}")
