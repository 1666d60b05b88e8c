"""billing_schema_baseline

Revision ID: 3c1f9a2b7d10
Revises:
Create Date: 2025-11-05 18:46:59.800551

Baseline schema for the clinic billing ledger: directory (patients, doctors),
service catalog, appointments with their service lines, invoices and the
payment journal. Money columns are DECIMAL(10, 2); every table check mirrors
a ledger invariant (non-negative prices and totals, strictly positive
payments, amount_due within [0, total_amount], closed status and payment
method sets).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create all billing tables, constraints and indexes."""
    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('medical_record_number', sa.String(50), nullable=True, unique=True),
        sa.Column('phone_number', sa.String(30), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('insurance_provider', sa.String(150), nullable=True),
        sa.Column('insurance_number', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_patients_id', 'patients', ['id'])

    op.create_table(
        'doctors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('specialty', sa.String(150), nullable=True),
        sa.Column('license_number', sa.String(100), nullable=True, unique=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('consultation_fee >= 0', name='ck_doctors_consultation_fee_non_negative'),
    )
    op.create_index('ix_doctors_id', 'doctors', ['id'])
    op.create_index('ix_doctors_specialty', 'doctors', ['specialty'])

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_services_price_non_negative'),
        sa.CheckConstraint('duration_minutes > 0', name='ck_services_duration_positive'),
    )
    op.create_index('ix_services_id', 'services', ['id'])
    op.create_index('idx_services_name', 'services', ['name'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('scheduled_start', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('scheduled_end', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('idx_appointments_patient', 'appointments', ['patient_id'])
    op.create_index('idx_appointments_doctor', 'appointments', ['doctor_id'])
    op.create_index('idx_appointments_scheduled_start', 'appointments', ['scheduled_start'])

    op.create_table(
        'appointment_services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'appointment_id', sa.Integer(),
            sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_time', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint('appointment_id', 'service_id', name='uq_appointment_service_unique'),
        sa.CheckConstraint('quantity > 0', name='ck_appointment_services_quantity_positive'),
        sa.CheckConstraint('price_at_time >= 0', name='ck_appointment_services_price_non_negative'),
    )
    op.create_index('ix_appointment_services_id', 'appointment_services', ['id'])
    op.create_index('idx_apptsvc_appointment', 'appointment_services', ['appointment_id'])
    op.create_index('idx_apptsvc_service', 'appointment_services', ['service_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'appointment_id', sa.Integer(),
            sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, unique=True
        ),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('amount_due', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('issued_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total_amount >= 0', name='ck_invoices_total_non_negative'),
        sa.CheckConstraint('amount_due >= 0', name='ck_invoices_amount_due_non_negative'),
        sa.CheckConstraint('amount_due <= total_amount', name='ck_invoices_amount_due_within_total'),
        sa.CheckConstraint(
            "status IN ('pending', 'partial', 'paid', 'cancelled')",
            name='ck_invoices_status_valid'
        ),
    )
    op.create_index('ix_invoices_id', 'invoices', ['id'])
    op.create_index('idx_invoices_patient', 'invoices', ['patient_id'])
    op.create_index('idx_invoices_status', 'invoices', ['status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('paid_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_date', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('reference', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('paid_amount > 0', name='ck_payments_paid_amount_positive'),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'card', 'insurance', 'mobile_money', 'bank_transfer', 'other')",
            name='ck_payments_method_valid'
        ),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('idx_payments_invoice', 'payments', ['invoice_id'])
    op.create_index('idx_payments_date', 'payments', ['payment_date'])


def downgrade() -> None:
    """Drop all billing tables (children first)."""
    op.drop_table('payments')
    op.drop_table('invoices')
    op.drop_table('appointment_services')
    op.drop_table('appointments')
    op.drop_table('services')
    op.drop_table('doctors')
    op.drop_table('patients')
