"""initial schema: users, clients, onboarding, platform connections

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PLATFORMS = ('meta', 'google', 'tiktok', 'shopify')


def _connection_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('platform', sa.Enum(*PLATFORMS, name='platform'), nullable=False),
        sa.Column('platform_user_id', sa.String(255), nullable=False),
        sa.Column('platform_username', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scopes', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('assets', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('role', sa.Enum('admin', 'client', name='userrole'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'clients',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('admin_id', sa.UUID(as_uuid=False), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column(
            'status',
            sa.Enum('active', 'inactive', 'suspended', name='clientstatus'),
            nullable=False,
        ),
        sa.Column('last_onboarding_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('admin_id', 'email', name='uq_clients_admin_email'),
    )
    op.create_index('ix_clients_admin_id', 'clients', ['admin_id'])

    op.create_table(
        'onboarding_links',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('admin_id', sa.UUID(as_uuid=False), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('client_id', sa.UUID(as_uuid=False), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('link_name', sa.String(255), nullable=True),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('platforms', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('requested_permissions', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'in_progress', 'completed', 'expired', name='linkstatus'),
            nullable=False,
        ),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_onboarding_links_admin_id', 'onboarding_links', ['admin_id'])
    op.create_index('ix_onboarding_links_token', 'onboarding_links', ['token'], unique=True)

    op.create_table(
        'onboarding_requests',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('link_id', sa.UUID(as_uuid=False), sa.ForeignKey('onboarding_links.id'), nullable=False),
        sa.Column('client_id', sa.UUID(as_uuid=False), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('client_email', sa.String(255), nullable=True),
        sa.Column('client_name', sa.String(255), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('granted_permissions', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('platform_connections', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column(
            'status',
            sa.Enum('pending', 'in_progress', 'completed', 'rejected', name='requeststatus'),
            nullable=False,
        ),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_onboarding_requests_link_id', 'onboarding_requests', ['link_id'])

    op.create_table(
        'client_platform_connections',
        *_connection_columns(),
        sa.Column('client_id', sa.UUID(as_uuid=False), sa.ForeignKey('clients.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'client_id', 'platform', name='uq_client_platform_connections_client_platform'
        ),
    )
    op.create_index(
        'ix_client_platform_connections_client_id', 'client_platform_connections', ['client_id']
    )

    # The platform enum type already exists from the table above
    admin_columns = _connection_columns()
    admin_columns[1] = sa.Column(
        'platform',
        postgresql.ENUM(*PLATFORMS, name='platform', create_type=False),
        nullable=False,
    )
    op.create_table(
        'admin_platform_connections',
        *admin_columns,
        sa.Column('admin_id', sa.UUID(as_uuid=False), sa.ForeignKey('users.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'admin_id', 'platform', name='uq_admin_platform_connections_admin_platform'
        ),
    )
    op.create_index(
        'ix_admin_platform_connections_admin_id', 'admin_platform_connections', ['admin_id']
    )


def downgrade() -> None:
    op.drop_table('admin_platform_connections')
    op.drop_table('client_platform_connections')
    op.drop_table('onboarding_requests')
    op.drop_table('onboarding_links')
    op.drop_table('clients')
    op.drop_table('users')
    for enum_name in ('platform', 'requeststatus', 'linkstatus', 'clientstatus', 'userrole'):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
