"""
Ledger line model: a service attached to an appointment with a price snapshot.

Lines are never updated after creation; a correction removes the line and
attaches it again.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, TIMESTAMP, Numeric, Integer, CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class AppointmentServiceLine(Base):
    """
    (appointment, service) pair with quantity and price_at_time.

    quantity x price_at_time over all lines of an appointment gives the
    invoice total at invoicing time.
    """

    __tablename__ = "appointment_services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"))

    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"))

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    """Number of units (> 0)."""

    price_at_time: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Unit price captured when the service was attached (>= 0)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    appointment = relationship("Appointment", back_populates="service_lines")
    service = relationship("Service", back_populates="lines")

    __table_args__ = (
        UniqueConstraint('appointment_id', 'service_id', name='uq_appointment_service_unique'),
        CheckConstraint('quantity > 0', name='ck_appointment_services_quantity_positive'),
        CheckConstraint('price_at_time >= 0', name='ck_appointment_services_price_non_negative'),
        Index('idx_apptsvc_appointment', 'appointment_id'),
        Index('idx_apptsvc_service', 'service_id'),
    )
