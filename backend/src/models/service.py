"""
Service model representing the clinic's catalog of billable services.

The catalog supplies the live price. Ledger lines copy that price at attach
time (price_at_time), so later catalog price changes never alter an
appointment's charges.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP, Numeric, Boolean, Integer, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Service(Base):
    """
    Catalog entry (Consultation, Vaccination, Blood Test, X-Ray, ...).

    Read-only from the billing engine's point of view.
    """

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    code: Mapped[str] = mapped_column(String(50), unique=True)
    """Short unique code, e.g. "CONS" or "XRAY"."""

    name: Mapped[str] = mapped_column(String(150))

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Current catalog price (>= 0)."""

    duration_minutes: Mapped[int] = mapped_column(Integer)
    """Expected duration, used by scheduling (> 0)."""

    active: Mapped[bool] = mapped_column(Boolean, default=True)
    """Inactive services stay referenced by old lines but cannot be attached to new ones."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    lines = relationship("AppointmentServiceLine", back_populates="service")

    __table_args__ = (
        CheckConstraint('price >= 0', name='ck_services_price_non_negative'),
        CheckConstraint('duration_minutes > 0', name='ck_services_duration_positive'),
        Index('idx_services_name', 'name'),
    )
