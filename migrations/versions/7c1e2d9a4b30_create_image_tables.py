"""create product_images and site_images

product_images references the catalog's products table. When the catalog
schema is not present yet, a minimal products table with the columns this
service reads is created; an existing one is left untouched. Downgrade never
drops products.

Revision ID: 7c1e2d9a4b30
Revises:
Create Date: 2026-10-12 09:15:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c1e2d9a4b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    if not sa.inspect(bind).has_table('products'):
        op.create_table(
            'products',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_products_active', 'products', ['active'])

    op.create_table(
        'product_images',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('image_group', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('size', sa.String(length=10), nullable=False),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('file_hash', sa.String(length=64), nullable=False),
        sa.Column('mime_type', sa.String(length=50), nullable=False),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('image_group', 'size', name='uq_image_group_size'),
    )
    op.create_index('ix_product_images_image_group', 'product_images', ['image_group'])
    op.create_index('ix_product_images_product_id', 'product_images', ['product_id'])
    op.create_index('ix_product_images_file_hash', 'product_images', ['file_hash'])
    op.create_index('ix_product_images_created_at', 'product_images', ['created_at'])
    op.create_index(
        'ix_product_images_product_primary', 'product_images', ['product_id', 'is_primary']
    )

    op.create_table(
        'site_images',
        sa.Column('slot', sa.String(length=20), nullable=False),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('file_hash', sa.String(length=64), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('slot'),
    )


def downgrade():
    op.drop_table('site_images')
    op.drop_index('ix_product_images_product_primary', table_name='product_images')
    op.drop_index('ix_product_images_created_at', table_name='product_images')
    op.drop_index('ix_product_images_file_hash', table_name='product_images')
    op.drop_index('ix_product_images_product_id', table_name='product_images')
    op.drop_index('ix_product_images_image_group', table_name='product_images')
    op.drop_table('product_images')
