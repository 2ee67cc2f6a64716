"""Create points ledger, goal and evolution tables

Revision ID: 5e1a7c2d9b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5e1a7c2d9b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Create the five tables behind the points ledger.

    points_ledger and goal_history are append-only; the application refuses
    updates and deletes of their rows. children has no points column: the
    balance is always SUM(points_ledger.delta).
    """
    op.create_table(
        'children',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('nickname', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'goal_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('child_id', sa.Integer(), nullable=False),
        sa.Column('goal_threshold', sa.Integer(), nullable=False),
        sa.Column('reward_description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['child_id'], ['children.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('child_id')
    )

    op.create_table(
        'goal_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('child_id', sa.Integer(), nullable=False),
        sa.Column('goal_threshold_at_achievement', sa.Integer(), nullable=False),
        sa.Column('reward_description_at_achievement', sa.Text(), nullable=True),
        sa.Column('balance_at_achievement', sa.Integer(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['child_id'], ['children.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_goal_history_child_achieved', 'goal_history',
                    ['child_id', 'achieved_at', 'id'], unique=False)

    op.create_table(
        'points_ledger',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('child_id', sa.Integer(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('submission_id', sa.String(length=64), nullable=True),
        sa.Column('goal_history_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('delta <> 0', name='check_ledger_delta_nonzero'),
        sa.CheckConstraint(
            "reason IN ('chore_approved', 'goal_achieved_reset', 'manual_adjustment')",
            name='check_ledger_reason'
        ),
        sa.ForeignKeyConstraint(['child_id'], ['children.id']),
        sa.ForeignKeyConstraint(['goal_history_id'], ['goal_history.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('goal_history_id', name='unique_ledger_goal_history'),
        sa.UniqueConstraint('submission_id', name='unique_ledger_submission')
    )
    op.create_index('idx_points_ledger_child_order', 'points_ledger',
                    ['child_id', 'created_at', 'id'], unique=False)

    op.create_table(
        'evolution_slots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('child_id', sa.Integer(), nullable=False),
        sa.Column('slot_number', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('level_reached_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('slot_number BETWEEN 1 AND 3', name='check_slot_number'),
        sa.CheckConstraint('level BETWEEN 1 AND 5', name='check_slot_level'),
        sa.ForeignKeyConstraint(['child_id'], ['children.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('child_id', 'slot_number', name='unique_child_slot')
    )


def downgrade():
    """Drop the points ledger tables."""
    op.drop_table('evolution_slots')
    op.drop_index('idx_points_ledger_child_order', table_name='points_ledger')
    op.drop_table('points_ledger')
    op.drop_index('idx_goal_history_child_achieved', table_name='goal_history')
    op.drop_table('goal_history')
    op.drop_table('goal_configs')
    op.drop_table('children')
