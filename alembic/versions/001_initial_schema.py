"""Initial schema with all current tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Accounts
    op.create_table(
        'user_accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('phone_verified', sa.Boolean(), nullable=False),
        sa.Column('corporate_email', sa.String(255), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('account_status', sa.String(20), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_accounts_phone_number', 'user_accounts', ['phone_number'], unique=True)
    op.create_index('ix_user_accounts_corporate_email', 'user_accounts', ['corporate_email'], unique=True)

    op.create_table(
        'session_metadata',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('device_type', sa.String(50), nullable=True),
        sa.Column('device_id', sa.String(255), nullable=True),
        sa.Column('app_version', sa.String(50), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('mobile_verified', sa.Boolean(), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('end_reason', sa.String(50), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_session_metadata_session_id', 'session_metadata', ['session_id'], unique=True)
    op.create_index('ix_session_metadata_user_id', 'session_metadata', ['user_id'])
    op.create_index('ix_session_metadata_is_active', 'session_metadata', ['is_active'])

    # Corporate email
    op.create_table(
        'email_verifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('corporate_email', sa.String(255), nullable=False),
        sa.Column('otp_hash', sa.String(128), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_verifications_user_id', 'email_verifications', ['user_id'])

    op.create_table(
        'email_change_audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('old_email', sa.String(255), nullable=True),
        sa.Column('new_email', sa.String(255), nullable=True),
        sa.Column('change_type', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('mobile_otp_verified', sa.Boolean(), nullable=True),
        sa.Column('email_otp_verified', sa.Boolean(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_change_audit_logs_user_id', 'email_change_audit_logs', ['user_id'])
    op.create_index('ix_email_change_audit_logs_created_at', 'email_change_audit_logs', ['created_at'])

    # Profiles
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(10), nullable=True),
        sa.Column('profile_picture_url', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_profiles_user_id', 'user_profiles', ['user_id'], unique=True)

    op.create_table(
        'driver_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('license_number', sa.String(50), nullable=False),
        sa.Column('license_expiry', sa.Date(), nullable=False),
        sa.Column('license_verified', sa.Boolean(), nullable=True),
        sa.Column('license_verified_at', sa.DateTime(), nullable=True),
        sa.Column('vehicle_type', sa.String(20), nullable=False),
        sa.Column('vehicle_make', sa.String(50), nullable=False),
        sa.Column('vehicle_model', sa.String(50), nullable=False),
        sa.Column('vehicle_year', sa.Integer(), nullable=False),
        sa.Column('license_plate', sa.String(20), nullable=False),
        sa.Column('vehicle_capacity', sa.Integer(), nullable=False),
        sa.Column('fuel_type', sa.String(20), nullable=True),
        sa.Column('max_detour_meters', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('license_number'),
    )
    op.create_index('ix_driver_profiles_user_id', 'driver_profiles', ['user_id'], unique=True)

    op.create_table(
        'rider_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('gender_preference', sa.String(30), nullable=False),
        sa.Column('vehicle_type_preferences', sa.JSON(), nullable=True),
        sa.Column('favorite_drivers', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rider_profiles_user_id', 'rider_profiles', ['user_id'], unique=True)

    # Wallet
    op.create_table(
        'wallets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('auto_reload_enabled', sa.Boolean(), nullable=True),
        sa.Column('auto_reload_threshold', sa.Numeric(12, 2), nullable=True),
        sa.Column('auto_reload_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('bank_account_linked', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallets_user_id', 'wallets', ['user_id'], unique=True)

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('wallet_id', sa.Uuid(), nullable=False),
        sa.Column('method_type', sa.String(20), nullable=False),
        sa.Column('identifier_encrypted', sa.Text(), nullable=False),
        sa.Column('identifier_fingerprint', sa.String(64), nullable=False),
        sa.Column('masked_identifier', sa.String(50), nullable=False),
        sa.Column('provider', sa.String(100), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_methods_wallet_id', 'payment_methods', ['wallet_id'])
    op.create_index(
        'ix_payment_methods_identifier_fingerprint', 'payment_methods', ['identifier_fingerprint']
    )

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('wallet_id', sa.Uuid(), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('payment_method_id', sa.Uuid(), nullable=True),
        sa.Column('reference_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_wallet_transactions_wallet_created', 'wallet_transactions', ['wallet_id', 'created_at']
    )

    # Safety
    op.create_table(
        'emergency_contacts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('relation', sa.String(50), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_emergency_contacts_user_id', 'emergency_contacts', ['user_id'])

    op.create_table(
        'family_sharing_contacts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('can_view_location', sa.Boolean(), nullable=True),
        sa.Column('receive_ride_updates', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_family_sharing_contacts_user_id', 'family_sharing_contacts', ['user_id'])

    op.create_table(
        'sos_alerts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('contacts_notified', sa.Integer(), nullable=True),
        sa.Column('location_share_id', sa.Uuid(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sos_alerts_user_id', 'sos_alerts', ['user_id'])

    op.create_table(
        'location_shares',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('share_token', sa.String(64), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('ride_id', sa.String(64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_location_shares_user_id', 'location_shares', ['user_id'])
    op.create_index('ix_location_shares_share_token', 'location_shares', ['share_token'], unique=True)

    # Audit
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_user_created', 'audit_logs', ['user_id', 'created_at'])

    op.create_table(
        'security_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(10), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('identifier', sa.String(255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_created_at', 'security_events', ['created_at'])


def downgrade() -> None:
    op.drop_table('security_events')
    op.drop_table('audit_logs')
    op.drop_table('location_shares')
    op.drop_table('sos_alerts')
    op.drop_table('family_sharing_contacts')
    op.drop_table('emergency_contacts')
    op.drop_table('wallet_transactions')
    op.drop_table('payment_methods')
    op.drop_table('wallets')
    op.drop_table('rider_profiles')
    op.drop_table('driver_profiles')
    op.drop_table('user_profiles')
    op.drop_table('email_change_audit_logs')
    op.drop_table('email_verifications')
    op.drop_table('session_metadata')
    op.drop_table('user_accounts')
