"""Create behavior analytics tables (action log, patterns, suggestions)

Revision ID: 002_add_behavior_tables
Revises: 001_add_integration_tables
Create Date: 2026-10-19 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_add_behavior_tables'
down_revision: Union[str, Sequence[str], None] = '001_add_integration_tables'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user_actions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('module', sa.String(length=50), nullable=False),
        sa.Column('action_type', sa.String(length=100), nullable=False),
        sa.Column('context', sa.JSON(), nullable=False),
        sa.Column('page_url', sa.String(length=500), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_user_actions_user_id', 'user_actions', ['user_id'], unique=False)
    op.create_index('ix_user_actions_module', 'user_actions', ['module'], unique=False)
    op.create_index('ix_user_actions_created_at', 'user_actions', ['created_at'], unique=False)

    op.create_table(
        'behavior_patterns',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('module', sa.String(length=50), nullable=False),
        sa.Column('pattern_type', sa.String(length=30), nullable=False),
        sa.Column('pattern_data', sa.JSON(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('frequency', sa.Integer(), nullable=False),
        sa.Column('last_occurrence', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'module', 'pattern_type', name='uq_behavior_pattern_key')
    )
    op.create_index('ix_behavior_patterns_user_id', 'behavior_patterns', ['user_id'], unique=False)

    op.create_table(
        'proactive_suggestions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('module', sa.String(length=50), nullable=False),
        sa.Column('suggestion_type', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('suggested_action', sa.JSON(), nullable=False),
        sa.Column('trigger_pattern', sa.String(length=36), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dismissed', sa.Boolean(), nullable=False),
        sa.Column('dismissed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acted_upon', sa.Boolean(), nullable=False),
        sa.Column('acted_upon_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_proactive_suggestions_user_id', 'proactive_suggestions', ['user_id'], unique=False)
    # Speeds up the live-suggestion dedup lookup
    op.create_index(
        'ix_proactive_suggestions_live',
        'proactive_suggestions',
        ['user_id', 'module', 'suggestion_type', 'dismissed', 'acted_upon'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_proactive_suggestions_live', table_name='proactive_suggestions')
    op.drop_index('ix_proactive_suggestions_user_id', table_name='proactive_suggestions')
    op.drop_table('proactive_suggestions')
    op.drop_index('ix_behavior_patterns_user_id', table_name='behavior_patterns')
    op.drop_table('behavior_patterns')
    op.drop_index('ix_user_actions_created_at', table_name='user_actions')
    op.drop_index('ix_user_actions_module', table_name='user_actions')
    op.drop_index('ix_user_actions_user_id', table_name='user_actions')
    op.drop_table('user_actions')
