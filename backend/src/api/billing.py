"""
Billing API endpoints: invoices, payments and the consistency audit.

Every mutation runs in one transaction: the payment insert/delete and the
invoice reconciliation commit together or not at all. A 409 response means
another request was modifying the same invoice; clients retry after the
Retry-After delay.

These handlers are plain functions so that waiting on an invoice row lock
happens in FastAPI's threadpool rather than on the event loop.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.appointments import to_line_responses
from api.responses import (
    InvoiceAuditEntry, InvoiceAuditResponse, InvoiceDetailResponse, InvoiceListResponse,
    InvoiceResponse, PaymentAppliedResponse, PaymentListResponse, PaymentResponse
)
from core.database import commit_billing_transaction, get_db
from models import Invoice
from services import AppointmentService, InvoiceService, PaymentService, ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


class InvoiceCreateRequest(BaseModel):
    """Request model for issuing an invoice."""
    notes: Optional[str] = None


class CancelInvoiceRequest(BaseModel):
    """Request model for cancelling an invoice."""
    reason: Optional[str] = Field(None, max_length=500)


class PaymentCreateRequest(BaseModel):
    """Request model for applying a payment."""
    amount: Decimal = Field(..., description="Strictly positive amount")
    payment_method: str = Field(
        ..., description="'cash', 'card', 'insurance', 'mobile_money', 'bank_transfer' or 'other'"
    )
    reference: Optional[str] = Field(None, description="External transaction id")
    notes: Optional[str] = None
    payment_date: Optional[datetime] = None


def _to_detail_response(db: Session, invoice: Invoice) -> InvoiceDetailResponse:
    lines = AppointmentService.list_service_lines(db, invoice.appointment_id)
    payments = PaymentService.list_payments(db, invoice.id)
    return InvoiceDetailResponse(
        **InvoiceResponse.model_validate(invoice).model_dump(),
        lines=to_line_responses(lines),
        payments=[PaymentResponse.model_validate(p) for p in payments]
    )


@router.post(
    "/appointments/{appointment_id}/invoice",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED
)
def create_invoice(
    appointment_id: int,
    request: Optional[InvoiceCreateRequest] = None,
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """
    Issue the invoice for an appointment.

    The total is fixed from the appointment's current lines. Fails with 422
    INVOICE_ALREADY_EXISTS if the appointment was already invoiced.
    """
    notes = request.notes if request else None
    invoice = InvoiceService.create_invoice(db, appointment_id, notes=notes)
    commit_billing_transaction(db)
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    patient_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """List invoices, newest first, optionally by patient and status."""
    invoices = InvoiceService.list_invoices(db, patient_id=patient_id, status=status_filter)
    return InvoiceListResponse(invoices=[InvoiceResponse.model_validate(i) for i in invoices])


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetailResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db)
) -> InvoiceDetailResponse:
    """Get an invoice with its lines and payments."""
    invoice = InvoiceService.get_invoice(db, invoice_id)
    return _to_detail_response(db, invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
def cancel_invoice(
    invoice_id: int,
    request: Optional[CancelInvoiceRequest] = None,
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Cancel an invoice. Cancelled invoices accept no further payments."""
    reason = request.reason if request else None
    invoice = InvoiceService.cancel_invoice(db, invoice_id, reason=reason)
    commit_billing_transaction(db)
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices/{invoice_id}/payments", response_model=PaymentListResponse)
def list_invoice_payments(
    invoice_id: int,
    db: Session = Depends(get_db)
) -> PaymentListResponse:
    """List an invoice's payment journal, oldest first."""
    payments = PaymentService.list_payments(db, invoice_id)
    return PaymentListResponse(
        invoice_id=invoice_id,
        payments=[PaymentResponse.model_validate(p) for p in payments]
    )


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentAppliedResponse,
    status_code=status.HTTP_201_CREATED
)
def apply_payment(
    invoice_id: int,
    request: PaymentCreateRequest,
    db: Session = Depends(get_db)
) -> PaymentAppliedResponse:
    """Apply a payment and return the reconciled invoice."""
    invoice, payment = PaymentService.apply_payment(
        db,
        invoice_id=invoice_id,
        amount=request.amount,
        payment_method=request.payment_method,
        reference=request.reference,
        notes=request.notes,
        payment_date=request.payment_date
    )
    commit_billing_transaction(db)
    return PaymentAppliedResponse(
        invoice=InvoiceResponse.model_validate(invoice),
        payment=PaymentResponse.model_validate(payment)
    )


@router.delete("/payments/{payment_id}", response_model=InvoiceResponse)
def reverse_payment(
    payment_id: int,
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Reverse a payment and return its invoice after reconciliation."""
    invoice = PaymentService.reverse_payment(db, payment_id)
    commit_billing_transaction(db)
    return InvoiceResponse.model_validate(invoice)


@router.get("/audit", response_model=InvoiceAuditResponse)
def audit_invoices(db: Session = Depends(get_db)) -> InvoiceAuditResponse:
    """Report invoices whose stored balance differs from their payments."""
    drifted = ReconciliationService.find_inconsistent_invoices(db)
    return InvoiceAuditResponse(
        consistent=not drifted,
        drifted=[InvoiceAuditEntry(**entry) for entry in drifted]
    )
