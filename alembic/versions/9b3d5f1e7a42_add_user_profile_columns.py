"""add_user_profile_columns

Revision ID: 9b3d5f1e7a42
Revises: 4c1e7a9d2b30
Create Date: 2026-10-19 10:02:51.207114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b3d5f1e7a42'
down_revision: Union[str, None] = '4c1e7a9d2b30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add profile, investor profile and terms columns to users table."""
    from sqlalchemy import inspect

    bind = op.get_bind()
    inspector = inspect(bind)
    columns = [col['name'] for col in inspector.get_columns('users')]

    if 'bio' not in columns:
        op.add_column('users', sa.Column('bio', sa.String(), nullable=True))
    if 'phone_number' not in columns:
        op.add_column('users', sa.Column('phone_number', sa.String(), nullable=True))
    if 'profile_info' not in columns:
        op.add_column('users', sa.Column('profile_info', sa.JSON(), nullable=True))
    if 'is_investor_profile_complete' not in columns:
        op.add_column('users', sa.Column('is_investor_profile_complete', sa.Boolean(), nullable=False, server_default=sa.false()))
    if 'agreed_to_terms' not in columns:
        op.add_column('users', sa.Column('agreed_to_terms', sa.Boolean(), nullable=False, server_default=sa.false()))


def downgrade() -> None:
    """Remove profile columns from users table."""
    op.drop_column('users', 'agreed_to_terms')
    op.drop_column('users', 'is_investor_profile_complete')
    op.drop_column('users', 'profile_info')
    op.drop_column('users', 'phone_number')
    op.drop_column('users', 'bio')
