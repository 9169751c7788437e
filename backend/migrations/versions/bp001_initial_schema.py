"""Initial schema for the head office and branch databases

HEAD OFFICE (default bind):
1. branches, branch_users (credential store), head_office_users
2. session_tokens
3. mirror_sync_issues (queued mirror writes)

BRANCH ("branch" bind):
1. users (branch user mirror)
2. zones, tables
3. sales, sale_line_items, invoice_sequences

Revision ID: bp001_initial
Revises:
Create Date: 2026-10-18

Multi-database revision: Flask-Migrate's multidb env runs upgrade_() on the
head office engine and upgrade_branch() on the branch engine.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'bp001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade(engine_name):
    globals()["upgrade_%s" % engine_name]()


def downgrade(engine_name):
    globals()["downgrade_%s" % engine_name]()


def upgrade_():
    # ==========================================================================
    # STEP 1: Branches and credentials
    # ==========================================================================
    op.create_table('branches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_branches_code', 'branches', ['code'], unique=True)
    op.create_index('ix_branches_is_active', 'branches', ['is_active'])

    op.create_table('branch_users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('username_normalized', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name_en', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('full_name_ar', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('preferred_language', sa.String(length=8), nullable=False, server_default='en'),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='Cashier'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_branch_users_branch_id_branches'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'username_normalized', name='uq_branch_users_branch_username')
    )
    op.create_index('ix_branch_users_branch_id', 'branch_users', ['branch_id'])

    op.create_table('head_office_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_head_office_users_username', 'head_office_users', ['username'], unique=True)

    # ==========================================================================
    # STEP 2: Sessions
    # ==========================================================================
    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('principal_type', sa.String(length=16), nullable=False),
        sa.Column('principal_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_session_tokens_branch_id_branches'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_principal_id', 'session_tokens', ['principal_id'])
    op.create_index('ix_session_tokens_branch_id', 'session_tokens', ['branch_id'])
    op.create_index('ix_session_tokens_principal_active', 'session_tokens', ['principal_id', 'is_revoked'])

    # ==========================================================================
    # STEP 3: Mirror sync queue
    # ==========================================================================
    op.create_table('mirror_sync_issues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_user_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('operation', sa.String(length=32), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_mirror_sync_issues_branch_user_id', 'mirror_sync_issues', ['branch_user_id'])
    op.create_index('ix_mirror_sync_issues_open', 'mirror_sync_issues', ['resolved_at', 'branch_id'])


def downgrade_():
    op.drop_table('mirror_sync_issues')
    op.drop_table('session_tokens')
    op.drop_table('head_office_users')
    op.drop_table('branch_users')
    op.drop_table('branches')


def upgrade_branch():
    # ==========================================================================
    # STEP 1: User mirror
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name_en', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('full_name_ar', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('preferred_language', sa.String(length=8), nullable=False, server_default='en'),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='Cashier'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])
    op.create_index('ix_users_branch_username', 'users', ['branch_id', 'username'])

    # ==========================================================================
    # STEP 2: Floor layout
    # ==========================================================================
    op.create_table('zones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'name', name='uq_zones_branch_name')
    )
    op.create_index('ix_zones_branch_id', 'zones', ['branch_id'])

    op.create_table('tables',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('zone_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('position_x', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('position_y', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('rotation', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('width', sa.Numeric(6, 2), nullable=False, server_default='10'),
        sa.Column('height', sa.Numeric(6, 2), nullable=False, server_default='10'),
        sa.Column('shape', sa.String(length=20), nullable=False, server_default='Rectangle'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['zone_id'], ['zones.id'], name='fk_tables_zone_id_zones'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tables_branch_id', 'tables', ['branch_id'])
    op.create_index('ix_tables_branch_number', 'tables', ['branch_id', 'number'])
    op.create_index('ix_tables_zone_id', 'tables', ['zone_id'])
    op.create_index('ix_tables_status', 'tables', ['status'])

    # ==========================================================================
    # STEP 3: Order ledger
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=True),
        sa.Column('table_number', sa.Integer(), nullable=True),
        sa.Column('guest_count', sa.Integer(), nullable=True),
        sa.Column('order_type', sa.String(length=16), nullable=False, server_default='TakeOut'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('change_returned_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cleared_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id'], name='fk_sales_table_id_tables'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'invoice_number', name='uq_sales_branch_invoice')
    )
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_table_id', 'sales', ['table_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_by', 'sales', ['created_by'])
    op.create_index('ix_sales_branch_status_created', 'sales', ['branch_id', 'status', 'created_at'])

    op.create_table('sale_line_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('discount_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discounted_unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_sale_line_items_sale_id_sales'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sale_line_items_sale_id', 'sale_line_items', ['sale_id'])

    op.create_table('invoice_sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', name='uq_invoice_sequences_branch')
    )


def downgrade_branch():
    op.drop_table('invoice_sequences')
    op.drop_table('sale_line_items')
    op.drop_table('sales')
    op.drop_table('tables')
    op.drop_table('zones')
    op.drop_table('users')
