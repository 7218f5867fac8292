"""Levels schema - play history, ladders, payments, notifications

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Play-side tables (written by the game service, read here)
    op.create_table(
        'content_blocks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('creator_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('block_id', sa.Uuid(), sa.ForeignKey('content_blocks.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('topic', sa.String(255), nullable=False, server_default='general'),
        sa.Column('text', sa.String(2000), nullable=False, server_default=''),
    )

    op.create_table(
        'answer_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('question_id', sa.Uuid(), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('block_id', sa.Uuid(), sa.ForeignKey('content_blocks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('topic_name', sa.String(255), nullable=False, server_default='general'),
        sa.Column('result', sa.String(20), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_answer_events_user_question', 'answer_events', ['user_id', 'question_id', 'answered_at'])
    op.create_index('ix_answer_events_user_block', 'answer_events', ['user_id', 'block_id'])
    op.create_index('ix_answer_events_block_time', 'answer_events', ['block_id', 'answered_at'])

    op.create_table(
        'class_enrollments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('instructor_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('student_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('instructor_id', 'student_id', name='uq_class_enrollments_pair'),
    )

    # Level ladders
    op.create_table(
        'level_definitions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('level_type', sa.String(20), nullable=False, index=True),
        sa.Column('level_order', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('min_threshold', sa.Float(), nullable=False),
        sa.Column('max_threshold', sa.Float(), nullable=True),
        sa.Column('weekly_reward', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('benefits', sa.JSON(), nullable=False),
        sa.UniqueConstraint('level_type', 'level_order', name='uq_level_definitions_type_order'),
        sa.UniqueConstraint('level_type', 'name', name='uq_level_definitions_type_name'),
    )

    op.create_table(
        'user_levels',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('level_type', sa.String(20), nullable=False),
        sa.Column('scope', sa.String(64), nullable=False, server_default='global'),
        sa.Column('block_id', sa.Uuid(), nullable=True),
        sa.Column('current_level_id', sa.Uuid(), sa.ForeignKey('level_definitions.id'), nullable=True),
        sa.Column('metric_value', sa.Float(), nullable=False, server_default='0'),
        sa.Column('metrics_snapshot', sa.JSON(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_calculated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'level_type', 'scope', name='uq_user_levels_user_type_scope'),
    )
    op.create_index('ix_user_levels_type_level', 'user_levels', ['level_type', 'current_level_id'])

    op.create_table(
        'level_progression_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('level_type', sa.String(20), nullable=False),
        sa.Column('block_id', sa.Uuid(), nullable=True),
        sa.Column('previous_level_id', sa.Uuid(), nullable=True),
        sa.Column('previous_level_name', sa.String(100), nullable=True),
        sa.Column('new_level_id', sa.Uuid(), nullable=True),
        sa.Column('new_level_name', sa.String(100), nullable=True),
        sa.Column('direction', sa.String(20), nullable=False),
        sa.Column('metrics_at_transition', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_level_progression_user_time', 'level_progression_events', ['user_id', 'created_at'])

    # Currency and weekly payments
    op.create_table(
        'currency_accounts',
        sa.Column('user_id', sa.Uuid(), primary_key=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'currency_transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(100), nullable=False),
        sa.Column('reference_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_currency_transactions_user_time', 'currency_transactions', ['user_id', 'created_at'])

    op.create_table(
        'weekly_payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('week_end', sa.Date(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('breakdown', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_weekly_payments_user_week'),
    )
    op.create_index('ix_weekly_payments_week_status', 'weekly_payments', ['week_start', 'status'])

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_notifications_user_time', 'notifications', ['user_id', 'created_at'])
    op.create_index('ix_notifications_user_unread', 'notifications', ['user_id', 'read_at'])
    op.create_index('ix_notifications_created', 'notifications', ['created_at'])

    op.create_table(
        'notification_preferences',
        sa.Column('user_id', sa.Uuid(), primary_key=True),
        sa.Column('level_up', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('level_progress', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('weekly_payment', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('push_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Audit log
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('weekly_payments')
    op.drop_table('currency_transactions')
    op.drop_table('currency_accounts')
    op.drop_table('level_progression_events')
    op.drop_table('user_levels')
    op.drop_table('level_definitions')
    op.drop_table('class_enrollments')
    op.drop_table('answer_events')
    op.drop_table('questions')
    op.drop_table('content_blocks')
