"""add_subscription_activation_count

Revision ID: 7c4e2b91f0a6
Revises: 3a1c9e7b5d20
Create Date: 2026-10-19 16:41:07.209115

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c4e2b91f0a6'
down_revision: Union[str, None] = '3a1c9e7b5d20'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add activation_count to subscriptions."""
    from sqlalchemy import inspect

    bind = op.get_bind()
    inspector = inspect(bind)
    columns = [col['name'] for col in inspector.get_columns('subscriptions')]

    if 'activation_count' not in columns:
        op.add_column(
            'subscriptions',
            sa.Column('activation_count', sa.Integer(), nullable=False, server_default='0'),
        )
        # Rows activated before this column existed count as one activation
        op.execute("UPDATE subscriptions SET activation_count = 1 WHERE status = 'active'")


def downgrade() -> None:
    """Remove activation_count from subscriptions."""
    with op.batch_alter_table('subscriptions') as batch_op:
        batch_op.drop_column('activation_count')
