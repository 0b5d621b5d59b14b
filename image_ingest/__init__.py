import os
from flask import Flask
from dotenv import load_dotenv

load_dotenv()


def _default_config_name():
    name = os.environ.get("FLASK_ENV")
    if name:
        return name
    # A bound PORT means a deployed process
    return "production" if os.environ.get("PORT") else "development"


def create_app(config_name=None, overrides=None):
    """Build the image ingestion app.

    ``overrides`` is applied on top of the selected config class.
    """
    flask_app = Flask(__name__)
    config_name = config_name or _default_config_name()

    from image_ingest.config import config_map

    config_cls = config_map.get(config_name, config_map["development"])
    flask_app.config.from_object(config_cls)
    if overrides:
        flask_app.config.update(overrides)

    if hasattr(config_cls, "init_app"):
        config_cls.init_app(flask_app)

    # Initialize extensions
    from image_ingest.extensions import db, migrate, init_redis

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    init_redis(flask_app)

    # Import models so Alembic sees them
    from image_ingest.models import Product, ProductImage, SiteImage  # noqa: F401

    # Register blueprints
    from image_ingest.blueprints.images import images_bp

    flask_app.register_blueprint(images_bp, url_prefix="/api/images")

    # Register CLI commands
    from image_ingest.cli import register_cli

    register_cli(flask_app)

    # Health check
    @flask_app.route("/health")
    def health():
        from image_ingest import extensions

        checks = {"status": "ok"}
        try:
            db.session.execute(db.text("SELECT 1"))
            checks["db"] = "ok"
        except Exception:
            flask_app.logger.exception("Health check DB probe failed")
            checks["db"] = "error"
            checks["status"] = "degraded"
        try:
            if extensions.redis_client:
                extensions.redis_client.ping()
                checks["redis"] = "ok"
            else:
                checks["redis"] = "not configured"
        except Exception:
            flask_app.logger.exception("Health check Redis probe failed")
            checks["redis"] = "error"
            checks["status"] = "degraded"
        status_code = 200 if checks["status"] == "ok" else 503
        return checks, status_code

    return flask_app
