"""
Test configuration and shared fixtures for the clinic billing test suite.

Runs against TEST_DATABASE_URL (a temporary SQLite file unless set, e.g. to a
PostgreSQL database) with transaction-based isolation: each test gets a
clean database state via automatic rollback.
"""

import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator, List, Optional, Tuple

# Point the application at the test database before core.database is imported
if "TEST_DATABASE_URL" not in os.environ:
    os.environ["TEST_DATABASE_URL"] = "sqlite:///" + os.path.join(
        tempfile.mkdtemp(prefix="clinic_billing_"), "test.db"
    )
TEST_DATABASE_URL = os.environ["TEST_DATABASE_URL"]
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from alembic.config import Config
from alembic import command

from core.database import Base, create_db_engine
from models import Appointment, Doctor, Invoice, Patient, Service
from services import AppointmentService, InvoiceService
from utils.datetime_utils import clinic_now

BACKEND_DIR = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def db_engine():
    """
    Create a database engine for the test session.

    Uses NullPool so every connection is a fresh one.
    """
    engine = create_db_engine(TEST_DATABASE_URL, poolclass=NullPool)

    yield engine

    engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def setup_test_database(db_engine):
    """
    Setup test database schema using Alembic migrations.

    Runs once per session: drop everything, then migrate base -> head so the
    migrations themselves are exercised.
    """
    alembic_cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)

    with db_engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
        conn.commit()
    Base.metadata.drop_all(bind=db_engine)

    command.upgrade(alembic_cfg, "head")

    yield

    Base.metadata.drop_all(bind=db_engine)
    with db_engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
        conn.commit()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for a test with automatic rollback.

    The session joins an outer transaction that is rolled back after the
    test; session.commit()/rollback() inside application code only act on a
    savepoint.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> Generator[Callable[[], Session], None, None]:
    """
    Provide a factory of independent, committing sessions.

    For tests that need several connections at once (concurrency). Data is
    really committed, so every table is emptied afterwards.
    """
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)

    yield factory

    with db_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# Factories shared by the unit and integration tests

def create_patient(db: Session, full_name: str = "Amina Yusuf", **kwargs) -> Patient:
    patient = Patient(full_name=full_name, **kwargs)
    db.add(patient)
    db.flush()
    return patient


def create_doctor(db: Session, full_name: str = "Dr. Daniel Mensah", **kwargs) -> Doctor:
    kwargs.setdefault("specialty", "General Practice")
    kwargs.setdefault("consultation_fee", Decimal("1000.00"))
    doctor = Doctor(full_name=full_name, **kwargs)
    db.add(doctor)
    db.flush()
    return doctor


def create_service(
    db: Session,
    code: str = "CONS",
    price: str = "1000.00",
    name: Optional[str] = None,
    duration_minutes: int = 30,
    active: bool = True
) -> Service:
    service = Service(
        code=code,
        name=name or code.title(),
        price=Decimal(price),
        duration_minutes=duration_minutes,
        active=active
    )
    db.add(service)
    db.flush()
    return service


def create_appointment(
    db: Session,
    patient: Optional[Patient] = None,
    doctor: Optional[Doctor] = None,
    start: Optional[datetime] = None
) -> Appointment:
    patient = patient or create_patient(db)
    doctor = doctor or create_doctor(db)
    start = start or clinic_now().replace(microsecond=0) + timedelta(days=1)
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        scheduled_start=start,
        scheduled_end=start + timedelta(minutes=30),
        status="scheduled"
    )
    db.add(appointment)
    db.flush()
    return appointment


def create_invoiced_appointment(
    db: Session,
    lines: List[Tuple[str, str, int]] = (("CONS", "1000.00", 1),),
    patient: Optional[Patient] = None
) -> Tuple[Appointment, Invoice]:
    """
    Create an appointment with (code, price, quantity) lines and issue its invoice.

    Catalog services are created on the fly; codes must be unique per test.
    """
    appointment = create_appointment(db, patient=patient)
    for code, price, quantity in lines:
        service = db.query(Service).filter(Service.code == code).first() or create_service(db, code, price)
        AppointmentService.add_service_line(db, appointment.id, service.id, quantity=quantity)
    invoice = InvoiceService.create_invoice(db, appointment.id)
    return appointment, invoice
