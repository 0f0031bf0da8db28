"""Initial cobranza schema

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    # --- 1. Catálogos ---
    op.create_table('classifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=5), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('color', sa.String(length=20), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_classifications_id'), 'classifications', ['id'], unique=False)

    op.create_table('portfolios',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_portfolios_id'), 'portfolios', ['id'], unique=False)

    # --- 2. Usuarios ---
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # --- 3. Clientes ---
    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('legal_name', sa.String(), nullable=False),
        sa.Column('contact_name', sa.String(), nullable=True),
        sa.Column('tax_id', sa.String(length=11), nullable=False),
        sa.Column('tax_id_last_digit', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('classification_id', sa.Integer(), nullable=True),
        sa.Column('portfolio_id', sa.Integer(), nullable=True),
        sa.Column('applies_fixed_fee', sa.Boolean(), nullable=False),
        sa.Column('monthly_fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('registered_at', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['classification_id'], ['classifications.id'], ),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolios.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tax_id')
    )
    op.create_index(op.f('ix_clients_id'), 'clients', ['id'], unique=False)
    op.create_index(op.f('ix_clients_legal_name'), 'clients', ['legal_name'], unique=False)

    # --- 4. Pagos (uno por cliente y mes de servicio) ---
    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('service_month', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('concept', sa.String(), nullable=True),
        sa.Column('operation_number', sa.String(), nullable=True),
        sa.Column('proof_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'service_month', name='uq_payment_client_service_month')
    )
    op.create_index(op.f('ix_payments_id'), 'payments', ['id'], unique=False)
    op.create_index(op.f('ix_payments_client_id'), 'payments', ['client_id'], unique=False)

    # --- 5. Compromisos de pago ---
    op.create_table('payment_commitments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('promised_date', sa.Date(), nullable=False),
        sa.Column('promised_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('linked_payment_id', sa.Integer(), nullable=True),
        sa.Column('responsible_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['linked_payment_id'], ['payments.id'], ),
        sa.ForeignKeyConstraint(['responsible_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_commitments_id'), 'payment_commitments', ['id'], unique=False)
    op.create_index(op.f('ix_payment_commitments_client_id'), 'payment_commitments', ['client_id'], unique=False)

    # --- 6. Plantillas (una por clasificación) ---
    op.create_table('message_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('classification_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['classification_id'], ['classifications.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('classification_id')
    )
    op.create_index(op.f('ix_message_templates_id'), 'message_templates', ['id'], unique=False)

    # --- 7. Notificaciones ---
    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('recipient', sa.String(), nullable=True),
        sa.Column('subject', sa.String(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('responsible_user_id', sa.Integer(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['responsible_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
    op.create_index(op.f('ix_notifications_client_id'), 'notifications', ['client_id'], unique=False)

    # --- 8. Recibos ---
    op.create_table('receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_to', sa.String(), nullable=True),
        sa.Column('send_status', sa.String(), nullable=True),
        sa.Column('send_error', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id'),
        sa.UniqueConstraint('sequence'),
        sa.UniqueConstraint('receipt_number')
    )
    op.create_index(op.f('ix_receipts_id'), 'receipts', ['id'], unique=False)

    # --- 9. Tipo de cambio y bitácora del proceso automático ---
    op.create_table('exchange_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('currency_from', sa.String(length=3), nullable=True),
        sa.Column('currency_to', sa.String(length=3), nullable=True),
        sa.Column('buy_price', sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column('sell_price', sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column('rate_date', sa.Date(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('acquired_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_exchange_rates_id'), 'exchange_rates', ['id'], unique=False)

    op.create_table('process_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('executed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('trigger', sa.String(), nullable=False),
        sa.Column('service_month', sa.Date(), nullable=False),
        sa.Column('clients_processed', sa.Integer(), nullable=True),
        sa.Column('payments_generated', sa.Integer(), nullable=True),
        sa.Column('reclassified', sa.Integer(), nullable=True),
        sa.Column('reminders_sent', sa.Integer(), nullable=True),
        sa.Column('errors', sa.Text(), nullable=True),
        sa.Column('summary', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_process_runs_id'), 'process_runs', ['id'], unique=False)


def downgrade() -> None:
    for table in (
        'process_runs', 'exchange_rates', 'receipts', 'notifications', 'message_templates',
        'payment_commitments', 'payments', 'clients', 'users', 'portfolios', 'classifications',
    ):
        op.drop_table(table)
