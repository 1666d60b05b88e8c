"""
Payment model: one entry in an invoice's payment journal.

Payments are immutable. A reversal deletes the entry; negative or zero
amounts are never stored.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Numeric, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class PaymentMethod(str, enum.Enum):
    """Closed set of accepted payment methods."""
    CASH = "cash"
    CARD = "card"
    INSURANCE = "insurance"
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class Payment(Base):
    """Payment applied to exactly one invoice."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"))

    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Strictly positive amount."""

    payment_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    payment_method: Mapped[str] = mapped_column(String(20))
    """One of PaymentMethod values."""

    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """External transaction id (e.g. mobile money receipt "MTK-TRX-1001")."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint('paid_amount > 0', name='ck_payments_paid_amount_positive'),
        CheckConstraint(
            "payment_method IN ('cash', 'card', 'insurance', 'mobile_money', 'bank_transfer', 'other')",
            name='ck_payments_method_valid'
        ),
        Index('idx_payments_invoice', 'invoice_id'),
        Index('idx_payments_date', 'payment_date'),
    )
