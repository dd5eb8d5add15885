"""insight run ledger

Revision ID: 9b3d2f61c8a4
Revises: 4f1a9c2e7b10
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b3d2f61c8a4'
down_revision: Union[str, Sequence[str], None] = '4f1a9c2e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'insight_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trigger', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='running'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('insight_id', sa.Integer(), sa.ForeignKey('weekly_insights.id'), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
    )
    # at most one running row across every process
    op.create_index(
        'uq_insight_runs_one_running', 'insight_runs', ['status'], unique=True,
        postgresql_where=sa.text("status = 'running'"),
        sqlite_where=sa.text("status = 'running'"),
    )


def downgrade() -> None:
    op.drop_index('uq_insight_runs_one_running', table_name='insight_runs')
    op.drop_table('insight_runs')
