"""create_vault_tables

Revision ID: 4f2a9c1e7b30
Revises:
Create Date: 2026-10-17 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'credential_records',
        sa.Column('proxy_id', sa.String(length=100), primary_key=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('ciphertext', sa.LargeBinary(), nullable=False),
        sa.Column('nonce', sa.LargeBinary(length=12), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('rotation_interval_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_rotated_at', sa.BigInteger(), nullable=False),
        sa.Column('webhook_url', sa.String(length=2048), nullable=True),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('superseded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_credential_records_owner_id', 'credential_records', ['owner_id'])
    op.create_index(
        'ix_credential_rotation_candidates',
        'credential_records',
        ['revoked', 'superseded', 'rotation_interval_seconds'],
    )

    # Primary key on from_proxy_id: at most one successor per key.
    # head_proxy_id is moved forward on every rotation.
    op.create_table(
        'rotation_links',
        sa.Column(
            'from_proxy_id',
            sa.String(length=100),
            sa.ForeignKey('credential_records.proxy_id'),
            primary_key=True,
        ),
        sa.Column(
            'to_proxy_id',
            sa.String(length=100),
            sa.ForeignKey('credential_records.proxy_id'),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            'head_proxy_id',
            sa.String(length=100),
            sa.ForeignKey('credential_records.proxy_id'),
            nullable=False,
        ),
        sa.Column('rotated_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_rotation_links_head', 'rotation_links', ['head_proxy_id'])

    op.create_table(
        'vault_notifications',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column(
            'context',
            postgresql.JSONB().with_variant(sa.Text(), 'sqlite'),
            nullable=True,
        ),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_notification_owner_created', 'vault_notifications', ['owner_id', 'created_at']
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_notification_owner_created', table_name='vault_notifications')
    op.drop_table('vault_notifications')
    op.drop_index('ix_rotation_links_head', table_name='rotation_links')
    op.drop_table('rotation_links')
    op.drop_index('ix_credential_rotation_candidates', table_name='credential_records')
    op.drop_index('ix_credential_records_owner_id', table_name='credential_records')
    op.drop_table('credential_records')
