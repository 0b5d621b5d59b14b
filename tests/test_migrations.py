"""Tests for the Alembic revision that creates the image tables."""
import importlib.util
from pathlib import Path

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

REVISION = (
    Path(__file__).resolve().parent.parent
    / "migrations" / "versions" / "7c1e2d9a4b30_create_image_tables.py"
)


def _load_revision():
    module_spec = importlib.util.spec_from_file_location("create_image_tables", REVISION)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _run(engine, step):
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            step()


def test_upgrade_on_empty_database(tmp_path):
    engine = sa.create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    revision = _load_revision()

    _run(engine, revision.upgrade)

    tables = set(sa.inspect(engine).get_table_names())
    assert {"products", "product_images", "site_images"} <= tables

    _run(engine, revision.downgrade)

    assert set(sa.inspect(engine).get_table_names()) == {"products"}


def test_upgrade_keeps_existing_catalog_table(tmp_path):
    engine = sa.create_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    with engine.begin() as conn:
        conn.execute(sa.text(
            "CREATE TABLE products (id INTEGER PRIMARY KEY, name VARCHAR(255) NOT NULL,"
            " price NUMERIC(10, 2) NOT NULL, active BOOLEAN NOT NULL, sku VARCHAR(40))"
        ))
        conn.execute(sa.text(
            "INSERT INTO products (id, name, price, active, sku)"
            " VALUES (1, 'Tulipanes', 19.50, 1, 'TUL-01')"
        ))

    _run(engine, _load_revision().upgrade)

    columns = {c["name"] for c in sa.inspect(engine).get_columns("products")}
    assert "sku" in columns
    with engine.connect() as conn:
        assert conn.execute(sa.text("SELECT count(*) FROM products")).scalar() == 1
