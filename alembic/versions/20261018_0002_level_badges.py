"""Level badges - badge definitions per rung and earned badges

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'badge_definitions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('level_type', sa.String(20), nullable=False),
        sa.Column('level_name', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('icon', sa.String(100), nullable=False, server_default=''),
        sa.Column('color', sa.String(20), nullable=False, server_default='#6B7280'),
        sa.Column('rarity', sa.String(20), nullable=False, server_default='common'),
        sa.Column('benefits', sa.JSON(), nullable=False),
        sa.UniqueConstraint('level_type', 'level_name', name='uq_badge_definitions_type_level'),
    )

    op.create_table(
        'user_badges',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('badge_id', sa.Uuid(), sa.ForeignKey('badge_definitions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('earned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badges_user_badge'),
    )
    op.create_index('ix_user_badges_user_time', 'user_badges', ['user_id', 'earned_at'])


def downgrade() -> None:
    op.drop_table('user_badges')
    op.drop_table('badge_definitions')
