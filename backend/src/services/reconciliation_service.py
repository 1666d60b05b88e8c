"""
Reconciliation engine for invoices.

Keeps every invoice's amount_due and status consistent with its payment
journal:

    amount_due = max(total_amount - sum(paid_amount), 0)
    status     = paid     if amount_due == 0
                 partial  if 0 < amount_due < total_amount
                 pending  if amount_due == total_amount

Reconciliation runs synchronously inside the same transaction that inserted
or deleted a payment, while that transaction holds the invoice row lock.
Cancelled invoices are never recomputed.
"""

import logging
from decimal import Decimal
from typing import List, Dict, Any

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.config import BILLING_LOCK_TIMEOUT_MS
from core.exceptions import ConflictError, ConsistencyViolation
from models.invoice import Invoice, InvoiceStatus
from models.payment import Payment
from utils.money_utils import from_db

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Service for invoice balance and status reconciliation."""

    @staticmethod
    def compute_amount_due(total_amount: Decimal, paid_total: Decimal) -> Decimal:
        """
        Outstanding balance clamped at zero.

        Overpayment is accepted; the surplus is not tracked as credit.
        """
        return max(from_db(total_amount) - from_db(paid_total), Decimal("0.00"))

    @staticmethod
    def derive_status(total_amount: Decimal, amount_due: Decimal) -> InvoiceStatus:
        """
        Derive the payment status from the balance.

        A zero-total invoice is paid by construction.
        """
        total_amount = from_db(total_amount)
        amount_due = from_db(amount_due)
        if amount_due == 0:
            return InvoiceStatus.PAID
        if amount_due < total_amount:
            return InvoiceStatus.PARTIAL
        return InvoiceStatus.PENDING

    @staticmethod
    def get_paid_total(db: Session, invoice_id: int) -> Decimal:
        """Sum of all payments currently in the invoice's journal."""
        result = db.query(func.coalesce(func.sum(Payment.paid_amount), 0)).filter(
            Payment.invoice_id == invoice_id
        ).scalar()
        return from_db(result)

    @staticmethod
    def lock_invoice(db: Session, invoice_id: int) -> Invoice | None:
        """
        Take the row lock on an invoice for the rest of the transaction.

        Concurrent operations on the same invoice queue behind this lock;
        other invoices are unaffected. Waiting longer than
        BILLING_LOCK_TIMEOUT_MS aborts the transaction.

        Args:
            db: Database session (transaction owned by the caller)
            invoice_id: ID of the invoice to lock

        Returns:
            The locked invoice, or None if it does not exist

        Raises:
            ConflictError: If the lock could not be acquired
        """
        try:
            if db.get_bind().dialect.name == "postgresql":
                # SET LOCAL cannot take bind parameters
                db.execute(text(f"SET LOCAL lock_timeout = '{int(BILLING_LOCK_TIMEOUT_MS)}ms'"))
            invoice = db.query(Invoice).filter(
                Invoice.id == invoice_id
            ).populate_existing().with_for_update().first()
        except OperationalError as e:
            # Lock timeout, deadlock or SQLite busy: another transaction is modifying this invoice
            db.rollback()
            logger.warning(f"Could not lock invoice {invoice_id}: {e}")
            raise ConflictError(details={"invoice_id": invoice_id}) from e
        return invoice

    @staticmethod
    def reconcile(db: Session, invoice_id: int) -> Invoice:
        """
        Recompute amount_due and status of an invoice from its payments.

        Must be called after the payment insert/delete has been flushed, in
        the same transaction, with the invoice row already locked (the lock
        is re-requested here, which is a no-op for the holder).

        Args:
            db: Database session
            invoice_id: ID of the invoice to reconcile

        Returns:
            The reconciled invoice (unchanged if cancelled)

        Raises:
            ConsistencyViolation: If the invoice vanished or the numbers are impossible
        """
        invoice = ReconciliationService.lock_invoice(db, invoice_id)
        if invoice is None:
            raise ConsistencyViolation(
                "Invoice disappeared during reconciliation",
                details={"invoice_id": invoice_id}
            )

        if invoice.is_cancelled:
            logger.warning(f"Skipping reconciliation of cancelled invoice {invoice_id}")
            return invoice

        total_amount = from_db(invoice.total_amount)
        if total_amount < 0:
            raise ConsistencyViolation(
                "Invoice total is negative",
                details={"invoice_id": invoice_id, "total_amount": str(total_amount)}
            )

        paid_total = ReconciliationService.get_paid_total(db, invoice_id)
        if paid_total < 0:
            raise ConsistencyViolation(
                "Payment journal sums to a negative amount",
                details={"invoice_id": invoice_id, "paid_total": str(paid_total)}
            )

        amount_due = ReconciliationService.compute_amount_due(total_amount, paid_total)
        if amount_due > total_amount:
            raise ConsistencyViolation(
                "Computed amount due exceeds invoice total",
                details={"invoice_id": invoice_id, "amount_due": str(amount_due)}
            )

        if paid_total > total_amount:
            logger.info(
                f"Invoice {invoice_id} overpaid by {paid_total - total_amount}; "
                f"surplus is not carried as credit"
            )

        new_status = ReconciliationService.derive_status(total_amount, amount_due)
        invoice.amount_due = amount_due
        invoice.status = new_status.value
        db.flush()

        logger.info(
            f"Reconciled invoice {invoice_id}: paid_total={paid_total}, "
            f"amount_due={amount_due}, status={new_status.value}"
        )
        return invoice

    @staticmethod
    def find_inconsistent_invoices(db: Session) -> List[Dict[str, Any]]:
        """
        Read-only audit of the ledger invariant.

        Returns:
            One dict per non-cancelled invoice whose stored amount_due/status
            differ from what its payments imply (empty when consistent)
        """
        paid_totals = db.query(
            Payment.invoice_id,
            func.coalesce(func.sum(Payment.paid_amount), 0)
        ).group_by(Payment.invoice_id).all()
        paid_by_invoice: Dict[int, Decimal] = {
            invoice_id: from_db(total) for invoice_id, total in paid_totals
        }

        invoices = db.query(Invoice).filter(
            Invoice.status != InvoiceStatus.CANCELLED.value
        ).order_by(Invoice.id).all()

        drifted: List[Dict[str, Any]] = []
        for invoice in invoices:
            paid_total = paid_by_invoice.get(invoice.id, Decimal("0.00"))
            expected_due = ReconciliationService.compute_amount_due(invoice.total_amount, paid_total)
            expected_status = ReconciliationService.derive_status(invoice.total_amount, expected_due)
            if from_db(invoice.amount_due) != expected_due or invoice.status != expected_status.value:
                drifted.append({
                    "invoice_id": invoice.id,
                    "stored_amount_due": from_db(invoice.amount_due),
                    "expected_amount_due": expected_due,
                    "stored_status": invoice.status,
                    "expected_status": expected_status.value,
                })
        return drifted
