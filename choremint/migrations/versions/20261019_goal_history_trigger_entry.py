"""Record the ledger entry that triggered each achieved goal

Revision ID: 20261019_trigger_entry
Revises: 5e1a7c2d9b40
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_trigger_entry'
down_revision = '5e1a7c2d9b40'
branch_labels = None
depends_on = None


def upgrade():
    # No foreign key: points_ledger already references goal_history
    with op.batch_alter_table('goal_history', schema=None) as batch_op:
        batch_op.add_column(sa.Column('trigger_entry_id', sa.Integer(), nullable=True))
        batch_op.create_unique_constraint('unique_goal_history_trigger_entry', ['trigger_entry_id'])


def downgrade():
    with op.batch_alter_table('goal_history', schema=None) as batch_op:
        batch_op.drop_constraint('unique_goal_history_trigger_entry', type_='unique')
        batch_op.drop_column('trigger_entry_id')
