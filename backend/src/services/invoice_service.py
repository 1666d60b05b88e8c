"""
Invoice service: issuing, reading and cancelling invoices.

An invoice is issued exactly once per appointment. Its total_amount is the
sum of the appointment's line totals at that moment and is never recomputed;
lines attached later are not billed by this invoice.

amount_due/status are owned by ReconciliationService. The only other write
to status is the administrative cancellation below.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from core.constants import MAX_MONEY_AMOUNT
from core.exceptions import ConflictError, NotFoundError, ValidationError
from models import Appointment, Invoice, InvoiceStatus
from services.appointment_service import AppointmentService
from services.reconciliation_service import ReconciliationService
from utils.datetime_utils import clinic_now

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service class for invoice operations."""

    @staticmethod
    def _already_invoiced(appointment_id: int, invoice_id: Optional[int] = None) -> ValidationError:
        details = {"appointment_id": appointment_id}
        if invoice_id is not None:
            details["invoice_id"] = invoice_id
        return ValidationError(
            "Appointment has already been invoiced",
            details=details,
            error_code="INVOICE_ALREADY_EXISTS"
        )

    @staticmethod
    def create_invoice(db: Session, appointment_id: int, notes: Optional[str] = None) -> Invoice:
        """
        Issue the invoice for an appointment.

        Locks the appointment row so two concurrent attempts serialize; the
        loser sees the winner's invoice. A zero-total appointment yields an
        invoice that is already paid.

        Args:
            db: Database session
            appointment_id: Appointment to invoice
            notes: Optional invoice notes

        Returns:
            Created Invoice

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If the appointment already has an invoice or its
                lines total more than MAX_MONEY_AMOUNT
            ConflictError: If the appointment is locked by another transaction too long
        """
        try:
            appointment = db.query(Appointment).filter(
                Appointment.id == appointment_id
            ).with_for_update().first()
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Could not lock appointment {appointment_id} for invoicing: {e}")
            raise ConflictError(details={"appointment_id": appointment_id}) from e

        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointment_id": appointment_id})

        existing = db.query(Invoice.id).filter(Invoice.appointment_id == appointment_id).first()
        if existing:
            raise InvoiceService._already_invoiced(appointment_id, existing.id)

        total_amount = AppointmentService.compute_lines_total(db, appointment_id)
        if total_amount > MAX_MONEY_AMOUNT:
            raise ValidationError(
                f"Invoice total exceeds the maximum of {MAX_MONEY_AMOUNT}",
                details={"appointment_id": appointment_id, "total_amount": str(total_amount)},
                error_code="INVOICE_TOTAL_TOO_LARGE"
            )
        amount_due = total_amount
        status = ReconciliationService.derive_status(total_amount, amount_due)

        invoice = Invoice(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            total_amount=total_amount,
            amount_due=amount_due,
            status=status.value,
            issued_at=clinic_now(),
            notes=notes
        )
        try:
            with db.begin_nested():
                db.add(invoice)
                db.flush()
        except IntegrityError:
            # Unique appointment_id: another transaction invoiced it first
            logger.warning(f"Race detected while invoicing appointment {appointment_id}")
            raise InvoiceService._already_invoiced(appointment_id)

        logger.info(
            f"Issued invoice {invoice.id} for appointment {appointment_id}: "
            f"total={total_amount}, status={invoice.status}"
        )
        return invoice

    @staticmethod
    def get_invoice(db: Session, invoice_id: int) -> Invoice:
        """
        Get an invoice by ID.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
        return invoice

    @staticmethod
    def get_invoice_for_appointment(db: Session, appointment_id: int) -> Invoice:
        """
        Get the invoice issued for an appointment.

        Raises:
            NotFoundError: If the appointment has not been invoiced
        """
        invoice = db.query(Invoice).filter(Invoice.appointment_id == appointment_id).first()
        if not invoice:
            raise NotFoundError(
                "Invoice not found for appointment",
                details={"appointment_id": appointment_id}
            )
        return invoice

    @staticmethod
    def list_invoices(
        db: Session,
        patient_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[Invoice]:
        """
        List invoices, newest first.

        Raises:
            ValidationError: If status is not a known invoice status
        """
        query = db.query(Invoice)
        if patient_id is not None:
            query = query.filter(Invoice.patient_id == patient_id)
        if status is not None:
            try:
                status_value = InvoiceStatus(status).value
            except ValueError:
                valid = ", ".join(s.value for s in InvoiceStatus)
                raise ValidationError(
                    f"Invalid invoice status. Must be one of: {valid}",
                    details={"status": status}
                )
            query = query.filter(Invoice.status == status_value)
        return query.order_by(Invoice.issued_at.desc(), Invoice.id.desc()).all()

    @staticmethod
    def cancel_invoice(db: Session, invoice_id: int, reason: Optional[str] = None) -> Invoice:
        """
        Administratively cancel an invoice.

        Cancelled is terminal: reconciliation leaves the invoice alone from
        now on and no new payments are accepted. amount_due keeps its last
        value. Cancelling twice is a no-op.

        Raises:
            NotFoundError: If the invoice does not exist
            ConflictError: If the invoice is locked by another transaction too long
        """
        invoice = ReconciliationService.lock_invoice(db, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})

        if invoice.is_cancelled:
            return invoice

        previous_status = invoice.status
        invoice.status = InvoiceStatus.CANCELLED.value
        if reason:
            entry = f"Cancelled: {reason}"
            invoice.notes = f"{invoice.notes}\n{entry}" if invoice.notes else entry
        db.flush()

        logger.info(
            f"Cancelled invoice {invoice_id} (was {previous_status}, amount_due={invoice.amount_due})"
        )
        return invoice
