"""Add workspace owners

Revision ID: e5d19a3b7c42
Revises: b83e51c07a6d
Create Date: 2026-10-19 14:02:37.551206

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'e5d19a3b7c42'
down_revision: Union[str, None] = 'b83e51c07a6d'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # One row per bootstrapped workspace; the key serializes concurrent bootstraps
    op.create_table(
        'workspace_owners',
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('workspace_id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('workspace_owners')
