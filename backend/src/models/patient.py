"""
Patient model representing individuals who receive treatment at the clinic.

Patients are owned by the scheduling subsystem; the billing engine only reads
them to stamp the invoice owner.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Patient(Base):
    """Patient entity. One patient has many appointments and invoices."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Full name of the patient."""

    medical_record_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True)
    """Clinic medical record number (e.g. "MRN-000100"), unique when present."""

    phone_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    insurance_provider: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    insurance_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointments = relationship("Appointment", back_populates="patient")
    """Relationship to all Appointment entities booked by this patient."""

    invoices = relationship("Invoice", back_populates="patient")
    """Relationship to all Invoice entities owned by this patient."""
