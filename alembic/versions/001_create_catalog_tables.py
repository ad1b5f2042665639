"""Create catalog and sync ledger tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog and sync ledger tables."""
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('scraped_id', sa.String(100), nullable=True, index=True),
        sa.Column('scraped_slug', sa.String(255), nullable=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('names', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('parent_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('visible', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    op.create_table(
        'manufacturers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=False, index=True),
        sa.Column('contact_info', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    # Parameters are scoped per category
    op.create_table(
        'parameters',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('external_id', sa.Integer(), nullable=True),
        sa.Column('scraped_key', sa.String(100), nullable=True),
        sa.Column('names', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_unique_constraint(
        'uq_parameters_category_external',
        'parameters',
        ['category_id', 'external_id'],
    )
    op.create_unique_constraint(
        'uq_parameters_category_key',
        'parameters',
        ['category_id', 'scraped_key'],
    )

    op.create_table(
        'parameter_options',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('parameter_id', sa.Integer(),
                  sa.ForeignKey('parameters.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('external_id', sa.Integer(), nullable=True),
        sa.Column('names', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )

    # sku and external_id are not unique: duplicates are collapsed by the sync
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.Integer(), nullable=True, index=True),
        sa.Column('sku', sa.String(100), nullable=True, index=True),
        sa.Column('reference_number', sa.String(100), nullable=True),
        sa.Column('model', sa.String(255), nullable=True),
        sa.Column('barcode', sa.String(100), nullable=True),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('manufacturer_id', sa.Integer(),
                  sa.ForeignKey('manufacturers.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('names', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('descriptions', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('price_client', sa.Numeric(12, 2), nullable=True),
        sa.Column('price_partner', sa.Numeric(12, 2), nullable=True),
        sa.Column('price_promo', sa.Numeric(12, 2), nullable=True),
        sa.Column('price_client_promo', sa.Numeric(12, 2), nullable=True),
        sa.Column('markup_percentage', sa.Numeric(6, 2), nullable=False, server_default='20'),
        sa.Column('discount', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='NOT_AVAILABLE'),
        sa.Column('visible', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('warranty', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Numeric(10, 3), nullable=True),
        sa.Column('primary_image_url', sa.String(1000), nullable=True),
        sa.Column('additional_image_urls', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    op.create_table(
        'product_parameters',
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('parameter_id', sa.Integer(),
                  sa.ForeignKey('parameters.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('option_id', sa.Integer(),
                  sa.ForeignKey('parameter_options.id', ondelete='CASCADE'), primary_key=True),
    )

    # Sync ledger
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sync_type', sa.String(50), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
    )


def downgrade() -> None:
    """Drop catalog and sync ledger tables."""
    op.drop_table('sync_runs')
    op.drop_table('product_parameters')
    op.drop_table('products')
    op.drop_table('parameter_options')
    op.drop_table('parameters')
    op.drop_table('manufacturers')
    op.drop_table('categories')
