"""create owner_store

Revision ID: b7d2f4a61c38
Revises: a1c3e5f70912
Create Date: 2026-10-17 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7d2f4a61c38'
down_revision = 'a1c3e5f70912'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'owner_store',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('location_id', sa.String(length=255), nullable=True),
        sa.Column('is_connected', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_owner_store')),
    )
    op.create_index(op.f('ix_owner_store_shop'), 'owner_store', ['shop'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_owner_store_shop'), table_name='owner_store')
    op.drop_table('owner_store')
