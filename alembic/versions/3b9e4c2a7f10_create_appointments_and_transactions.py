"""Create appointments and transactions tables

Revision ID: 3b9e4c2a7f10
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3b9e4c2a7f10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPOINTMENT_STATUS = ('scheduled', 'confirmed', 'completed', 'cancelled', 'no-show')
APPOINTMENT_CATEGORY = ('checkup', 'cleaning', 'filling', 'extraction', 'root-canal',
                        'crown', 'consultation', 'other')
PAYMENT_STATUS = ('pending', 'partial', 'paid')
PAYMENT_METHOD = ('cash', 'card', 'insurance', 'other')
TRANSACTION_TYPE = ('payment', 'refund', 'adjustment')


def upgrade() -> None:
    # Enum types are created once and shared between tables
    bind = op.get_bind()
    enums = {
        'appointment_status': APPOINTMENT_STATUS,
        'appointment_category': APPOINTMENT_CATEGORY,
        'payment_status': PAYMENT_STATUS,
        'payment_method': PAYMENT_METHOD,
        'transaction_type': TRANSACTION_TYPE,
    }
    for name, values in enums.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    def enum(name):
        return postgresql.ENUM(*enums[name], name=name, create_type=False)

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('practitioner_id', sa.String(), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('category', enum('appointment_category'), nullable=False),
        sa.Column('status', enum('appointment_status'), nullable=False),
        sa.Column('color_code', sa.String(), nullable=False),
        sa.Column('payment_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('payment_status', enum('payment_status'), nullable=False),
        sa.Column('payment_method', enum('payment_method'), nullable=False),
        sa.Column('payment_notes', sa.String(), nullable=True),
        sa.Column('notes', sa.String(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('end_time > start_time', name='ck_appointments_end_after_start'),
        sa.CheckConstraint('payment_amount >= 0', name='ck_appointments_payment_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_appointments_id'), 'appointments', ['id'], unique=False)
    op.create_index(op.f('ix_appointments_practitioner_id'), 'appointments', ['practitioner_id'], unique=False)
    op.create_index(op.f('ix_appointments_subject_id'), 'appointments', ['subject_id'], unique=False)
    op.create_index('ix_appointments_practitioner_range', 'appointments',
                    ['practitioner_id', 'start_time', 'end_time'], unique=False)

    # appointment_id is a plain column; transactions outlive their appointment
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=True),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('type', enum('transaction_type'), nullable=False),
        sa.Column('payment_method', enum('payment_method'), nullable=False),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_transactions_amount_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_date'), 'transactions', ['date'], unique=False)
    op.create_index(op.f('ix_transactions_appointment_id'), 'transactions', ['appointment_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_transactions_appointment_id'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_date'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_id'), table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_appointments_practitioner_range', table_name='appointments')
    op.drop_index(op.f('ix_appointments_subject_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_practitioner_id'), table_name='appointments')
    op.drop_index(op.f('ix_appointments_id'), table_name='appointments')
    op.drop_table('appointments')

    bind = op.get_bind()
    for name in ('transaction_type', 'payment_method', 'payment_status',
                 'appointment_category', 'appointment_status'):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
