"""
Appointment model representing scheduled visits between patients and doctors.

Appointments are created by the scheduling subsystem. For billing they are
the anchor of the ledger: service lines attach to an appointment and exactly
one invoice can be issued per appointment.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, Index, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class AppointmentStatus(str, enum.Enum):
    """Lifecycle states of an appointment."""
    SCHEDULED = "scheduled"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Appointment(Base):
    """Appointment entity linking a patient and a doctor for a time slot."""

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="RESTRICT"))
    """Reference to the patient who has booked this appointment."""

    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="RESTRICT"))
    """Reference to the doctor seeing the patient."""

    scheduled_start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    scheduled_end: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    status: Mapped[str] = mapped_column(String(20), default=AppointmentStatus.SCHEDULED.value)
    """Current status. Valid values: see AppointmentStatus."""

    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")

    service_lines = relationship(
        "AppointmentServiceLine",
        back_populates="appointment",
        order_by="AppointmentServiceLine.id",
        cascade="all, delete-orphan",
    )
    """Billable service lines attached to this appointment."""

    invoice = relationship("Invoice", back_populates="appointment", uselist=False)
    """The invoice issued for this appointment, if any (1:1)."""

    __table_args__ = (
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_doctor', 'doctor_id'),
        Index('idx_appointments_scheduled_start', 'scheduled_start'),
    )
