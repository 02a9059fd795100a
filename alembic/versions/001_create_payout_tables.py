"""Create creator, product and payout tables

Revision ID: 001_payout_tables
Revises:
Create Date: 2026-10-01

Tables created:
- creators: Creator profiles with payout preferences
- products: Creator products listed in the shop
- payouts: One payout per creator per period (unique)
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_payout_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Check if tables already exist (for idempotent migrations)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    # 1. Creators Table
    if 'creators' not in existing_tables:
        op.create_table(
            'creators',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('name', sa.String(200), nullable=True),
            sa.Column('email', sa.String(255), nullable=False),
            sa.Column('role', sa.String(20), nullable=False, server_default='creator'),
            sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),

            # Payout preferences
            sa.Column('payment_method', sa.String(20), nullable=True),
            sa.Column('currency', sa.String(3), nullable=True),

            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_creators_email', 'creators', ['email'], unique=True)
        op.create_index('ix_creators_is_approved', 'creators', ['is_approved'])
        print("Created table: creators")

    # 2. Products Table
    if 'products' not in existing_tables:
        op.create_table(
            'products',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creators.id', ondelete='CASCADE'), nullable=False),
            sa.Column('external_product_id', sa.String(100), nullable=True),
            sa.Column('title', sa.String(300), nullable=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('image_url', sa.String(1000), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_products_creator_id', 'products', ['creator_id'])
        op.create_index('ix_products_external_product_id', 'products', ['external_product_id'])
        op.create_index('ix_products_status', 'products', ['status'])
        print("Created table: products")

    # 3. Payouts Table
    if 'payouts' not in existing_tables:
        op.create_table(
            'payouts',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('creators.id', ondelete='RESTRICT'), nullable=False),
            sa.Column('creator_name', sa.String(200), nullable=True),

            # Amount
            sa.Column('amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('currency', sa.String(3), nullable=True),
            sa.Column('computed_amount', sa.Numeric(12, 2), nullable=True),
            sa.Column('is_manual_amount', sa.Boolean(), nullable=False, server_default=sa.false()),

            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            sa.Column('method', sa.String(20), nullable=False, server_default='iban'),

            # Period
            sa.Column('period_start', sa.Date(), nullable=False),
            sa.Column('period_end', sa.Date(), nullable=False),

            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

            sa.UniqueConstraint('creator_id', 'period_start', 'period_end', name='uq_payout_creator_period'),
        )
        op.create_index('ix_payouts_creator_id', 'payouts', ['creator_id'])
        op.create_index('ix_payouts_status', 'payouts', ['status'])
        op.create_index('ix_payouts_period', 'payouts', ['period_start', 'period_end'])
        print("Created table: payouts")


def downgrade():
    op.drop_table('payouts')
    op.drop_table('products')
    op.drop_table('creators')
