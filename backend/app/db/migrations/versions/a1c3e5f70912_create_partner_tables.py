"""create partners, partner_products, sync_logs

Revision ID: a1c3e5f70912
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c3e5f70912'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'partners',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_partners')),
    )
    op.create_index(op.f('ix_partners_shop'), 'partners', ['shop'], unique=True)

    op.create_table(
        'partner_products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('partner_shop', sa.String(length=255), nullable=False),
        sa.Column('partner_product_id', sa.String(length=255), nullable=False),
        sa.Column('partner_variant_id', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=512), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('partner_sku', sa.String(length=512), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('selling_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('inventory_quantity', sa.Integer(), nullable=True),
        sa.Column('is_new', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_partner_products')),
        sa.UniqueConstraint('partner_shop', 'partner_variant_id', name='uq_partner_products_shop_variant'),
    )
    op.create_index(op.f('ix_partner_products_partner_shop'), 'partner_products', ['partner_shop'], unique=False)
    op.create_index('ix_partner_products_partner_sku', 'partner_products', ['partner_sku'], unique=False)

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('partner_shop', sa.String(length=255), nullable=True),
        sa.Column('sync_type', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('items_processed', sa.Integer(), nullable=False),
        sa.Column('items_created', sa.Integer(), nullable=False),
        sa.Column('items_updated', sa.Integer(), nullable=False),
        sa.Column('items_failed', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sync_logs')),
    )
    op.create_index(op.f('ix_sync_logs_partner_shop'), 'sync_logs', ['partner_shop'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_sync_logs_partner_shop'), table_name='sync_logs')
    op.drop_table('sync_logs')
    op.drop_index('ix_partner_products_partner_sku', table_name='partner_products')
    op.drop_index(op.f('ix_partner_products_partner_shop'), table_name='partner_products')
    op.drop_table('partner_products')
    op.drop_index(op.f('ix_partners_shop'), table_name='partners')
    op.drop_table('partners')
