"""Initial schema: tenancy, auth, catalog, contracts, treasury, audit, settings

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. Organizations, users, session tokens
2. Customers, partners, partner groups, brokers and their obligations
3. Units, unit partner shares, contracts, installments
4. Safes, vouchers, transfers (money stored as integer cents)
5. Audit log and per-organization settings

Tenant data tables carry org_id and a nullable deleted_at (soft delete).
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _tenant_columns():
    return [
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
    ]


def _tenant_indexes(table):
    with op.batch_alter_table(table, schema=None) as batch_op:
        batch_op.create_index(f'ix_{table}_org_id', ['org_id'], unique=False)
        batch_op.create_index(f'ix_{table}_deleted_at', ['deleted_at'], unique=False)


def upgrade():
    # ==========================================================================
    # 1. TENANCY AND AUTH
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('organizations', schema=None) as batch_op:
        batch_op.create_index('ix_organizations_code', ['code'], unique=True)
        batch_op.create_index('ix_organizations_is_active', ['is_active'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='accountant'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'username', name='uq_users_org_username'),
        sa.UniqueConstraint('org_id', 'email', name='uq_users_org_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_users_username', ['username'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_session_tokens_token_hash', ['token_hash'], unique=True)
        batch_op.create_index('ix_session_tokens_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_session_tokens_org_id', ['org_id'], unique=False)

    # ==========================================================================
    # 2. PARTIES
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('national_id', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('customers')

    op.create_table('partners',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('partners')

    op.create_table('partner_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('partner_groups')

    op.create_table('partner_group_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('partner_id', sa.Integer(), nullable=False),
        sa.Column('share_bps', sa.Integer(), nullable=False, server_default='0'),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['group_id'], ['partner_groups.id'], ),
        sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('partner_group_members')
    with op.batch_alter_table('partner_group_members', schema=None) as batch_op:
        batch_op.create_index('ix_partner_group_members_group_id', ['group_id'], unique=False)
        batch_op.create_index('ix_partner_group_members_partner_id', ['partner_id'], unique=False)

    op.create_table('brokers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('brokers')

    # ==========================================================================
    # 3. SAFES, UNITS, CONTRACTS, INSTALLMENTS
    # ==========================================================================
    op.create_table('safes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('opening_balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('safes')

    op.create_table('units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('unit_type', sa.String(length=64), nullable=False, server_default='apartment'),
        sa.Column('area', sa.String(length=64), nullable=True),
        sa.Column('floor', sa.String(length=32), nullable=True),
        sa.Column('building', sa.String(length=64), nullable=True),
        sa.Column('total_price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('units')
    with op.batch_alter_table('units', schema=None) as batch_op:
        batch_op.create_index('ix_units_code', ['code'], unique=False)
        batch_op.create_index('ix_units_status', ['status'], unique=False)

    op.create_table('unit_partners',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('partner_id', sa.Integer(), nullable=False),
        sa.Column('share_bps', sa.Integer(), nullable=False),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('unit_partners')
    with op.batch_alter_table('unit_partners', schema=None) as batch_op:
        batch_op.create_index('ix_unit_partners_unit_id', ['unit_id'], unique=False)
        batch_op.create_index('ix_unit_partners_partner_id', ['partner_id'], unique=False)

    op.create_table('contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('total_price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('broker_name', sa.String(length=255), nullable=True),
        sa.Column('broker_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('commission_safe_id', sa.Integer(), nullable=True),
        sa.Column('down_payment_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('down_payment_safe_id', sa.Integer(), nullable=True),
        sa.Column('maintenance_deposit_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payment_type', sa.String(length=16), nullable=False, server_default='installment'),
        sa.Column('installment_frequency', sa.String(length=16), nullable=False, server_default='monthly'),
        sa.Column('installment_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_annual_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('annual_payment_cents', sa.BigInteger(), nullable=False, server_default='0'),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['commission_safe_id'], ['safes.id'], ),
        sa.ForeignKeyConstraint(['down_payment_safe_id'], ['safes.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('contracts')
    with op.batch_alter_table('contracts', schema=None) as batch_op:
        batch_op.create_index('ix_contracts_code', ['code'], unique=False)
        batch_op.create_index('ix_contracts_unit_id', ['unit_id'], unique=False)
        batch_op.create_index('ix_contracts_customer_id', ['customer_id'], unique=False)

    op.create_table('installments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('installments')
    with op.batch_alter_table('installments', schema=None) as batch_op:
        batch_op.create_index('ix_installments_unit_id', ['unit_id'], unique=False)
        batch_op.create_index('ix_installments_contract_id', ['contract_id'], unique=False)
        batch_op.create_index('ix_installments_due_date', ['due_date'], unique=False)

    # ==========================================================================
    # 4. TREASURY MOVEMENTS AND OBLIGATIONS
    # ==========================================================================
    op.create_table('vouchers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('safe_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('payer', sa.String(length=255), nullable=True),
        sa.Column('beneficiary', sa.String(length=255), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['safe_id'], ['safes.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('vouchers')
    with op.batch_alter_table('vouchers', schema=None) as batch_op:
        batch_op.create_index('ix_vouchers_org_type', ['org_id', 'type'], unique=False)
        batch_op.create_index('ix_vouchers_safe_id', ['safe_id'], unique=False)
        batch_op.create_index('ix_vouchers_unit_id', ['unit_id'], unique=False)
        batch_op.create_index('ix_vouchers_contract_id', ['contract_id'], unique=False)

    op.create_table('transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('from_safe_id', sa.Integer(), nullable=False),
        sa.Column('to_safe_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['from_safe_id'], ['safes.id'], ),
        sa.ForeignKeyConstraint(['to_safe_id'], ['safes.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('transfers')
    with op.batch_alter_table('transfers', schema=None) as batch_op:
        batch_op.create_index('ix_transfers_from_safe_id', ['from_safe_id'], unique=False)
        batch_op.create_index('ix_transfers_to_safe_id', ['to_safe_id'], unique=False)

    op.create_table('broker_dues',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('broker_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('voucher_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['broker_id'], ['brokers.id'], ),
        sa.ForeignKeyConstraint(['voucher_id'], ['vouchers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('broker_dues')
    with op.batch_alter_table('broker_dues', schema=None) as batch_op:
        batch_op.create_index('ix_broker_dues_broker_id', ['broker_id'], unique=False)

    op.create_table('partner_debts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('partner_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_tenant_columns(),
        sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    _tenant_indexes('partner_debts')
    with op.batch_alter_table('partner_debts', schema=None) as batch_op:
        batch_op.create_index('ix_partner_debts_partner_id', ['partner_id'], unique=False)

    # ==========================================================================
    # 5. AUDIT LOG AND SETTINGS
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_audit_logs_org_created', ['org_id', 'created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)

    op.create_table('organization_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('theme', sa.String(length=16), nullable=False, server_default='light'),
        sa.Column('font_size', sa.Integer(), nullable=False, server_default='16'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EGP'),
        sa.Column('lock_password_hash', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_organization_settings_org'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('organization_settings', schema=None) as batch_op:
        batch_op.create_index('ix_organization_settings_org_id', ['org_id'], unique=False)


def downgrade():
    for table in (
        'organization_settings', 'audit_logs',
        'partner_debts', 'broker_dues', 'transfers', 'vouchers',
        'installments', 'contracts', 'unit_partners', 'units', 'safes',
        'brokers', 'partner_group_members', 'partner_groups', 'partners', 'customers',
        'session_tokens', 'users', 'organizations',
    ):
        op.drop_table(table)
