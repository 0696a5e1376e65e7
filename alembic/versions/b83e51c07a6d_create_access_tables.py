"""Create credential, delegation and permission tables

Revision ID: b83e51c07a6d
Revises: 4f2a8c1d9e07
Create Date: 2026-10-19 09:20:05.118734

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'b83e51c07a6d'
down_revision: Union[str, None] = '4f2a8c1d9e07'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'platform_accounts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('platform', sa.String(length=32), nullable=False),
        sa.Column('external_resource_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_platform_accounts_workspace_id', 'platform_accounts', ['workspace_id'], unique=False
    )
    op.create_index(
        'ix_platform_account_resource',
        'platform_accounts',
        ['workspace_id', 'platform', 'external_resource_id'],
        unique=True,
    )

    op.create_table(
        'agencies',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('platform', sa.String(length=32), nullable=False),
        sa.Column('external_business_id', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_agencies_owner_user_id', 'agencies', ['owner_user_id'], unique=False)

    op.create_table(
        'delegation_links',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.String(length=36), nullable=False),
        sa.Column('agency_id', sa.String(length=36), nullable=False),
        sa.Column('linked_by', sa.String(length=36), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['platform_accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['agency_id'], ['agencies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delegation_account', 'delegation_links', ['account_id'], unique=True)
    op.create_index('ix_delegation_agency', 'delegation_links', ['agency_id'], unique=False)

    op.create_table(
        'platform_credentials',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('principal_id', sa.String(length=36), nullable=False),
        sa.Column('principal_type', sa.String(length=16), nullable=False),
        sa.Column('platform', sa.String(length=32), nullable=False),
        sa.Column('auth_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('access_token', postgresql.BYTEA(), nullable=False),
        sa.Column('refresh_token', postgresql.BYTEA(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scope', sa.String(length=1024), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False),
        sa.Column('last_refreshed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('token_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_platform_credentials_principal_id', 'platform_credentials', ['principal_id']
    )
    op.create_index(
        'ix_credential_principal_created', 'platform_credentials', ['principal_id', 'created_at']
    )
    # At most one active credential per principal
    op.create_index(
        'uq_credential_active_principal',
        'platform_credentials',
        ['principal_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'user_workspace_permissions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('permission_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('grant_history', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('updated_by', sa.String(length=36), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'workspace_id', name='uq_user_workspace'),
    )
    op.create_index(
        'ix_user_workspace_permissions_user_id', 'user_workspace_permissions', ['user_id']
    )
    op.create_index(
        'ix_user_workspace_permissions_workspace_id',
        'user_workspace_permissions',
        ['workspace_id'],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('user_workspace_permissions')
    op.drop_table('platform_credentials')
    op.drop_table('delegation_links')
    op.drop_table('agencies')
    op.drop_table('platform_accounts')
