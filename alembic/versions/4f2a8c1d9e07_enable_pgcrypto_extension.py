"""Enable pgcrypto extension

Revision ID: 4f2a8c1d9e07
Revises:
Create Date: 2026-10-19 09:12:41.304518

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '4f2a8c1d9e07'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Enable pgcrypto extension for token encryption."""
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')


def downgrade() -> None:
    """Disable pgcrypto extension."""
    op.execute('DROP EXTENSION IF EXISTS pgcrypto')
