import io
from decimal import Decimal

import pytest
from PIL import Image as PILImage

from image_ingest import create_app
from image_ingest.extensions import db as _db
from image_ingest.models.product import Product
from image_ingest.services import storage_service


class FakeS3:
    """Records objects in memory; optionally fails the Nth put_object."""

    def __init__(self):
        self.objects = {}
        self.puts = []
        self.fail_on_put = None

    def put_object(self, Bucket, Key, Body, ContentType, **kwargs):
        from botocore.exceptions import ClientError

        self.puts.append(Key)
        if self.fail_on_put is not None and len(self.puts) == self.fail_on_put:
            raise ClientError(
                {"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject"
            )
        self.objects[Key] = Body

    def delete_objects(self, Bucket, Delete):
        for obj in Delete["Objects"]:
            self.objects.pop(obj["Key"], None)

    def get_paginator(self, name):
        s3 = self

        class _Paginator:
            def paginate(self, Bucket, Prefix):
                keys = sorted(k for k in s3.objects if k.startswith(Prefix))
                yield {"Contents": [{"Key": k} for k in keys]}

        return _Paginator()


@pytest.fixture
def app(tmp_path):
    """Create application for testing.

    A file-backed SQLite database lets worker threads share state.
    """
    app = create_app(
        "testing",
        overrides={
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'images.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 30},
            },
        },
    )
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def s3(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(storage_service, "_get_client", lambda: fake)
    return fake


@pytest.fixture
def make_product(db):
    def _make(name="Rosas Rojas", price="29.99", product_id=None, active=True):
        product = Product(id=product_id, name=name, price=Decimal(price), active=active)
        db.session.add(product)
        db.session.commit()
        return product.id

    return _make


@pytest.fixture
def image_bytes():
    """Encode a solid-colour test image."""

    def _make(size=(1600, 1200), color=(200, 30, 60), fmt="JPEG"):
        img = PILImage.new("RGB", size, color)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make
