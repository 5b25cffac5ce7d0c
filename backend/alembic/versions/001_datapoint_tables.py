"""Create accepted and rejected datapoint tables

Revision ID: 001_datapoint_tables
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_datapoint_tables'
down_revision = None
branch_labels = None
depends_on = None


def _datapoint_columns():
    return [
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    op.create_table('accepted', *_datapoint_columns())
    op.create_index('ix_accepted_time', 'accepted', ['time'])

    op.create_table(
        'rejected',
        *_datapoint_columns(),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('detail', sa.String(length=255), nullable=True),
    )
    op.create_index('ix_rejected_time', 'rejected', ['time'])
    op.create_index('ix_rejected_reason', 'rejected', ['reason'])


def downgrade():
    op.drop_index('ix_rejected_reason', table_name='rejected')
    op.drop_index('ix_rejected_time', table_name='rejected')
    op.drop_table('rejected')
    op.drop_index('ix_accepted_time', table_name='accepted')
    op.drop_table('accepted')
