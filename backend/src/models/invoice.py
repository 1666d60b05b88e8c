"""
Invoice model: the billing record aggregating an appointment's charges.

total_amount is fixed when the invoice is issued. amount_due and status are
derived from the payment journal by ReconciliationService and must never be
written by any other code path (cancellation excepted).
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Numeric, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class InvoiceStatus(str, enum.Enum):
    """
    Invoice states.

    pending/partial/paid are a pure function of (total_amount, amount_due).
    cancelled is terminal and only reachable through the administrative
    cancel transition.
    """
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(Base):
    """One invoice per appointment, owned by the appointment's patient."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"),
        unique=True
    )
    """The invoiced appointment. Unique: one invoice per appointment."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="RESTRICT"))
    """Denormalized owner; always equal to the appointment's patient."""

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Sum of quantity x price_at_time at issue time (>= 0). Never recomputed."""

    amount_due: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """max(total_amount - sum(payments), 0). Maintained by reconciliation."""

    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.PENDING.value)
    """One of InvoiceStatus values."""

    issued_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointment = relationship("Appointment", back_populates="invoice")
    patient = relationship("Patient", back_populates="invoices")

    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.id",
        passive_deletes=True,
    )
    """Payment journal entries for this invoice."""

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED.value

    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='ck_invoices_total_non_negative'),
        CheckConstraint('amount_due >= 0', name='ck_invoices_amount_due_non_negative'),
        CheckConstraint('amount_due <= total_amount', name='ck_invoices_amount_due_within_total'),
        CheckConstraint(
            "status IN ('pending', 'partial', 'paid', 'cancelled')",
            name='ck_invoices_status_valid'
        ),
        Index('idx_invoices_patient', 'patient_id'),
        Index('idx_invoices_status', 'status'),
    )
