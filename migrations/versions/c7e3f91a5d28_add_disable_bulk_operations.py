"""add disable_bulk_operations to user_settings

Revision ID: c7e3f91a5d28
Revises: 8d25b0e6c1f4
Create Date: 2025-06-16 09:02:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c7e3f91a5d28'
down_revision: Union[str, None] = '8d25b0e6c1f4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('user_settings', sa.Column('disable_bulk_operations', sa.Boolean(), nullable=False, server_default=sa.false()))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('user_settings', 'disable_bulk_operations')
