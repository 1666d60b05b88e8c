#!/usr/bin/env python3
"""
Database reset script for the clinic billing backend.

Drops every table, migrates the schema back up to head with Alembic and, with
--seed, loads a small sample clinic: two patients, two doctors, the basic
service catalog, two invoiced appointments and one partial mobile money
payment.

Only runs against SQLite databases unless --force is given.
"""

import os
import sys
from datetime import datetime

# Add backend/src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'backend', 'src'))

from alembic import command
from alembic.config import Config

from core.config import DATABASE_URL
from core.database import get_db_context
from services import (
    AppointmentService, CatalogService, DoctorService, InvoiceService, PatientService, PaymentService
)
from utils.datetime_utils import CLINIC_TZ

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'backend')


def reset_schema() -> None:
    """Downgrade to base and upgrade to head."""
    alembic_cfg = Config(os.path.join(BACKEND_DIR, 'alembic.ini'))
    alembic_cfg.set_main_option('script_location', os.path.join(BACKEND_DIR, 'alembic'))
    alembic_cfg.set_main_option('sqlalchemy.url', DATABASE_URL)

    command.downgrade(alembic_cfg, 'base')
    command.upgrade(alembic_cfg, 'head')


def seed_sample_data() -> None:
    """Load the sample clinic through the services so every invariant is enforced."""
    with get_db_context() as db:
        mary = PatientService.create_patient(
            db, 'Mary Achieng', medical_record_number='MRN-000100',
            phone_number='+254711000001', email='mary.achieng@example.com',
            insurance_provider='NHIF', insurance_number='NHIF-123456'
        )
        john = PatientService.create_patient(
            db, 'John Kamau', medical_record_number='MRN-000101',
            phone_number='+254711000002', email='john.kamau@example.com'
        )
        alice = DoctorService.create_doctor(
            db, 'Dr. Alice Mwangi', specialty='General Medicine', license_number='LIC-GEN-001',
            consultation_fee='1500.00', bio='Experienced GP with a focus on family medicine.'
        )
        peter = DoctorService.create_doctor(
            db, 'Dr. Peter Otieno', specialty='Pediatrics', license_number='LIC-PED-002',
            consultation_fee='1800.00', bio='Child health specialist.'
        )

        catalog = {
            code: CatalogService.create_service(db, code, name, price, minutes, description)
            for code, name, description, price, minutes in [
                ('CONS', 'Consultation', 'General consultation with a clinician', '1200.00', 30),
                ('VACC', 'Vaccination', 'Routine vaccination service', '800.00', 15),
                ('BLOOD', 'Blood Test (Basic)', 'Basic blood panel', '1500.00', 20),
                ('XRAY', 'X-Ray', 'Chest / limb X-Ray', '2000.00', 25),
            ]
        }

        first = AppointmentService.create_appointment(
            db, mary.id, alice.id,
            datetime(2025, 9, 22, 9, 0, tzinfo=CLINIC_TZ), datetime(2025, 9, 22, 9, 30, tzinfo=CLINIC_TZ),
            reason='Fever and cough'
        )
        second = AppointmentService.create_appointment(
            db, john.id, peter.id,
            datetime(2025, 9, 23, 11, 0, tzinfo=CLINIC_TZ), datetime(2025, 9, 23, 11, 30, tzinfo=CLINIC_TZ),
            reason='Routine check'
        )
        AppointmentService.add_service_line(db, first.id, catalog['CONS'].id)
        AppointmentService.add_service_line(db, first.id, catalog['BLOOD'].id)
        AppointmentService.add_service_line(db, second.id, catalog['CONS'].id)

        invoice = InvoiceService.create_invoice(db, first.id)
        InvoiceService.create_invoice(db, second.id)

        invoice, _ = PaymentService.apply_payment(
            db, invoice.id, '1000.00', 'mobile_money',
            reference='MTK-TRX-1001', notes='Partial payment received via mobile money'
        )
        print(f"   Invoice {invoice.id}: total={invoice.total_amount} due={invoice.amount_due} status={invoice.status}")


def reset_database() -> None:
    """Reset (and optionally seed) the configured database."""
    print("🔄 Resetting clinic billing database...")
    print(f"Database URL: {DATABASE_URL}")

    if not DATABASE_URL.startswith('sqlite') and '--force' not in sys.argv:
        print("❌ ERROR: Refusing to reset a non-SQLite database without --force")
        sys.exit(1)

    reset_schema()
    print("✅ Schema migrated to head")

    if '--seed' in sys.argv:
        seed_sample_data()
        print("✅ Sample data loaded")


if __name__ == "__main__":
    reset_database()
