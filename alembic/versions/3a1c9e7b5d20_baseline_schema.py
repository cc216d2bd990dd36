"""baseline_schema

Revision ID: 3a1c9e7b5d20
Revises:
Create Date: 2026-10-19 10:12:44.518203

Creates users, profile sections, the subscription ledger, quota debits and
job descriptions. Tables that already exist are left untouched.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '3a1c9e7b5d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _timestamps(with_updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)
        )
    return columns


def _profile_child(table_name: str, *columns, with_updated: bool = True) -> None:
    if table_exists(table_name):
        return
    op.create_table(table_name,
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        *columns,
        *_timestamps(with_updated),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f(f'ix_{table_name}_id'), table_name, ['id'], unique=False)
    op.create_index(op.f(f'ix_{table_name}_profile_id'), table_name, ['profile_id'], unique=False)


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('password_hash', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    if not table_exists('profiles'):
        op.create_table('profiles',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('mobile', sa.String(), nullable=True),
            sa.Column('location', sa.String(), nullable=True),
            sa.Column('linkedin_url', sa.String(), nullable=True),
            sa.Column('portfolio_url', sa.String(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )

    _profile_child('work_experience',
        sa.Column('company', sa.String(), nullable=False),
        sa.Column('position', sa.String(), nullable=False),
        sa.Column('start_date', sa.String(), nullable=True),
        sa.Column('end_date', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
    )
    _profile_child('education',
        sa.Column('institution', sa.String(), nullable=False),
        sa.Column('degree', sa.String(), nullable=False),
        sa.Column('start_date', sa.String(), nullable=True),
        sa.Column('end_date', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
    )
    _profile_child('skills',
        sa.Column('name', sa.String(), nullable=False),
        with_updated=False,
    )
    _profile_child('projects',
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(), nullable=True),
    )
    _profile_child('achievements',
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date', sa.String(), nullable=True),
        with_updated=False,
    )

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('plan_name', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('resumes_remaining', sa.Integer(), nullable=False),
            sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('gateway', sa.String(), nullable=False),
            sa.Column('gateway_order_id', sa.String(), nullable=True),
            sa.Column('gateway_payment_id', sa.String(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint('resumes_remaining >= 0', name='ck_subscriptions_remaining_non_negative'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=False)
        op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
        op.create_index(op.f('ix_subscriptions_gateway_order_id'), 'subscriptions', ['gateway_order_id'], unique=True)
        op.create_index('idx_subscriptions_user_status', 'subscriptions', ['user_id', 'status'], unique=False)

    if not table_exists('quota_debits'):
        op.create_table('quota_debits',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('subscription_id', sa.Integer(), nullable=False),
            sa.Column('idempotency_key', sa.String(), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            *_timestamps(with_updated=False),
            sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_quota_debits_id'), 'quota_debits', ['id'], unique=False)
        op.create_index(op.f('ix_quota_debits_subscription_id'), 'quota_debits', ['subscription_id'], unique=False)
        op.create_index(op.f('ix_quota_debits_idempotency_key'), 'quota_debits', ['idempotency_key'], unique=True)

    if not table_exists('job_descriptions'):
        op.create_table('job_descriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            *_timestamps(with_updated=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_job_descriptions_id'), 'job_descriptions', ['id'], unique=False)
        op.create_index(op.f('ix_job_descriptions_user_id'), 'job_descriptions', ['user_id'], unique=False)


def downgrade() -> None:
    for table_name in (
        'job_descriptions',
        'quota_debits',
        'subscriptions',
        'achievements',
        'projects',
        'skills',
        'education',
        'work_experience',
        'profiles',
        'users',
    ):
        if table_exists(table_name):
            op.drop_table(table_name)
