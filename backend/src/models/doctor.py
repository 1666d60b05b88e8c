"""
Doctor model representing clinicians who see patients.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Doctor(Base):
    """Doctor entity. Appointments are booked against a doctor."""

    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    full_name: Mapped[str] = mapped_column(String(255))

    specialty: Mapped[Optional[str]] = mapped_column(String(150), nullable=True, index=True)

    license_number: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)
    """Professional license number, unique when present."""

    consultation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Informational fee; billing always uses the catalog price snapshot on the ledger line."""

    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    appointments = relationship("Appointment", back_populates="doctor")

    __table_args__ = (
        CheckConstraint('consultation_fee >= 0', name='ck_doctors_consultation_fee_non_negative'),
    )
