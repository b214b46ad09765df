"""Daily visit statistics

Revision ID: 001_daily_visit_statistics
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_daily_visit_statistics'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create daily_visit_statistics: one row per calendar day holding the
    page view total, the serialized estimator and the UV estimate.
    """
    bind = op.get_bind()
    existing_tables = inspect(bind).get_table_names()

    if 'daily_visit_statistics' in existing_tables:
        return

    op.create_table(
        'daily_visit_statistics',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('statistics_date', sa.Date(), nullable=False),
        sa.Column('page_views', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('estimator_snapshot', sa.LargeBinary(), nullable=True),
        sa.Column('unique_visitors', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index(
        'ix_daily_visit_statistics_statistics_date',
        'daily_visit_statistics',
        ['statistics_date'],
        unique=True
    )


def downgrade() -> None:
    op.drop_index('ix_daily_visit_statistics_statistics_date', table_name='daily_visit_statistics')
    op.drop_table('daily_visit_statistics')
