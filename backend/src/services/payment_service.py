"""
Service for the payment journal.

The only code allowed to add or remove payments. Every mutation locks the
invoice row, changes the journal and reconciles the invoice inside one
transaction, so readers either see the payment together with the updated
balance or neither.

Lock order is always: invoice row, then its payment rows.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.constants import MAX_REFERENCE_LENGTH
from core.exceptions import ConflictError, ConsistencyViolation, NotFoundError, ValidationError
from models.invoice import Invoice
from models.payment import Payment, PaymentMethod
from services.reconciliation_service import ReconciliationService
from utils.datetime_utils import clinic_now, ensure_clinic_tz
from utils.money_utils import to_money

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for applying and reversing payments."""

    @staticmethod
    def validate_amount(amount: Any) -> Decimal:
        """
        Validate a payment amount.

        Raises:
            ValidationError: If the amount is not a strictly positive money value
        """
        paid_amount = to_money(amount, field="paid_amount")
        if paid_amount <= 0:
            raise ValidationError(
                "Payment amount must be greater than zero",
                details={"paid_amount": str(paid_amount)},
                error_code="NON_POSITIVE_PAYMENT"
            )
        return paid_amount

    @staticmethod
    def validate_method(payment_method: Any) -> PaymentMethod:
        """
        Validate a payment method against the closed enum.

        Raises:
            ValidationError: If the method is unknown
        """
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            valid = ", ".join(m.value for m in PaymentMethod)
            raise ValidationError(
                f"Invalid payment method. Must be one of: {valid}",
                details={"payment_method": str(payment_method)},
                error_code="INVALID_PAYMENT_METHOD"
            )

    @staticmethod
    def apply_payment(
        db: Session,
        invoice_id: int,
        amount: Any,
        payment_method: Any,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        payment_date: Optional[datetime] = None
    ) -> tuple[Invoice, Payment]:
        """
        Append a payment to an invoice's journal and reconcile the invoice.

        Input is validated before any lock is taken. The caller commits (see
        core.database.commit_billing_transaction).

        Args:
            db: Database session
            invoice_id: ID of the invoice being paid
            amount: Strictly positive amount
            payment_method: One of PaymentMethod values
            reference: Optional external transaction id
            notes: Optional free text
            payment_date: When the money was received (defaults to now)

        Returns:
            Tuple of (reconciled invoice, created payment)

        Raises:
            ValidationError: Non-positive amount, unknown method, cancelled invoice
            NotFoundError: If the invoice does not exist
            ConflictError: If the invoice is locked by another transaction too long
        """
        paid_amount = PaymentService.validate_amount(amount)
        method = PaymentService.validate_method(payment_method)
        if reference is not None and len(reference) > MAX_REFERENCE_LENGTH:
            raise ValidationError(
                f"Reference must be at most {MAX_REFERENCE_LENGTH} characters",
                details={"field": "reference"}
            )

        try:
            invoice = ReconciliationService.lock_invoice(db, invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})

            if invoice.is_cancelled:
                raise ValidationError(
                    "Cannot apply a payment to a cancelled invoice",
                    details={"invoice_id": invoice_id},
                    error_code="INVOICE_CANCELLED"
                )

            payment = Payment(
                invoice_id=invoice.id,
                paid_amount=paid_amount,
                payment_method=method.value,
                payment_date=ensure_clinic_tz(payment_date) or clinic_now(),
                reference=reference,
                notes=notes
            )
            db.add(payment)
            db.flush()

            invoice = ReconciliationService.reconcile(db, invoice.id)
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Conflict while applying payment to invoice {invoice_id}: {e}")
            raise ConflictError(details={"invoice_id": invoice_id}) from e

        logger.info(
            f"Applied payment {payment.id} of {paid_amount} ({method.value}) to invoice {invoice.id}: "
            f"amount_due={invoice.amount_due}, status={invoice.status}"
        )
        return invoice, payment

    @staticmethod
    def reverse_payment(db: Session, payment_id: int) -> Invoice:
        """
        Remove a payment from the journal and reconcile its former invoice.

        Reversing a payment of a cancelled invoice is allowed: the entry is
        removed but the invoice's balance and status stay frozen.

        Args:
            db: Database session
            payment_id: ID of the payment to reverse

        Returns:
            The reconciled invoice

        Raises:
            NotFoundError: If the payment does not exist (or was reversed concurrently)
            ConflictError: If the invoice is locked by another transaction too long
            ConsistencyViolation: If the payment's invoice does not exist
        """
        try:
            payment = db.query(Payment).filter(Payment.id == payment_id).first()
            if payment is None:
                raise NotFoundError("Payment not found", details={"payment_id": payment_id})
            invoice_id = payment.invoice_id

            invoice = ReconciliationService.lock_invoice(db, invoice_id)
            if invoice is None:
                raise ConsistencyViolation(
                    "Payment references a missing invoice",
                    details={"payment_id": payment_id, "invoice_id": invoice_id}
                )

            # Re-read under the invoice lock: a concurrent reversal may have won
            payment = db.query(Payment).filter(
                Payment.id == payment_id
            ).populate_existing().with_for_update().first()
            if payment is None:
                raise NotFoundError("Payment not found", details={"payment_id": payment_id})

            reversed_amount = payment.paid_amount
            db.delete(payment)
            db.flush()

            invoice = ReconciliationService.reconcile(db, invoice_id)
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Conflict while reversing payment {payment_id}: {e}")
            raise ConflictError(details={"payment_id": payment_id}) from e

        logger.info(
            f"Reversed payment {payment_id} of {reversed_amount} on invoice {invoice_id}: "
            f"amount_due={invoice.amount_due}, status={invoice.status}"
        )
        return invoice

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Payment:
        """
        Get a payment by ID.

        Raises:
            NotFoundError: If the payment does not exist
        """
        payment = db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            raise NotFoundError("Payment not found", details={"payment_id": payment_id})
        return payment

    @staticmethod
    def list_payments(db: Session, invoice_id: int) -> List[Payment]:
        """
        List an invoice's payments, oldest first.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        exists = db.query(Invoice.id).filter(Invoice.id == invoice_id).first()
        if exists is None:
            raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
        return db.query(Payment).filter(
            Payment.invoice_id == invoice_id
        ).order_by(Payment.id).all()
