"""SUNAT schedule and classification history

Revision ID: 8b2d4e6f1a35
Revises: 3f1c2a9b7d10
Create Date: 2026-10-19 16:40:02.551318

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8b2d4e6f1a35'
down_revision: Union[str, Sequence[str], None] = '3f1c2a9b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table('classification_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('previous_code', sa.String(length=5), nullable=True),
        sa.Column('new_code', sa.String(length=5), nullable=False),
        sa.Column('months_elapsed', sa.Integer(), nullable=True),
        sa.Column('outstanding', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('responsible_user_id', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['responsible_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_classification_history_id'), 'classification_history', ['id'], unique=False)
    op.create_index(op.f('ix_classification_history_client_id'), 'classification_history', ['client_id'], unique=False)

    op.create_table('sunat_schedule',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('ruc_digit', sa.Integer(), nullable=False),
        sa.Column('due_day', sa.Integer(), nullable=False),
        sa.Column('due_month', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sunat_schedule_id'), 'sunat_schedule', ['id'], unique=False)
    op.create_index(op.f('ix_sunat_schedule_year'), 'sunat_schedule', ['year'], unique=False)


def downgrade() -> None:
    op.drop_table('sunat_schedule')
    op.drop_table('classification_history')
