"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
Money fields are Decimals and serialize as strings ("1000.00").
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class PatientResponse(BaseModel):
    """Response model for patient information."""
    id: int
    full_name: str
    medical_record_number: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_number: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DoctorResponse(BaseModel):
    """Response model for doctor information."""
    id: int
    full_name: str
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    consultation_fee: Decimal
    bio: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ServiceResponse(BaseModel):
    """Response model for a catalog service."""
    id: int
    code: str
    name: str
    description: Optional[str] = None
    price: Decimal
    duration_minutes: int
    active: bool

    model_config = ConfigDict(from_attributes=True)


class ServiceListResponse(BaseModel):
    """Response model for listing catalog services."""
    services: List[ServiceResponse]


class AppointmentResponse(BaseModel):
    """Response model for appointment information."""
    id: int
    patient_id: int
    doctor_id: int
    scheduled_start: datetime
    scheduled_end: datetime
    status: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ServiceLineResponse(BaseModel):
    """Response model for a ledger line (service attached to an appointment)."""
    id: int
    appointment_id: int
    service_id: int
    quantity: int
    price_at_time: Decimal
    line_total: Decimal


class ServiceLineListResponse(BaseModel):
    """Response model for an appointment's ledger lines."""
    appointment_id: int
    lines: List[ServiceLineResponse]
    total: Decimal


class PaymentResponse(BaseModel):
    """Response model for a payment journal entry."""
    id: int
    invoice_id: int
    paid_amount: Decimal
    payment_method: str
    payment_date: datetime
    reference: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    """Response model for invoice state."""
    id: int
    appointment_id: int
    patient_id: int
    total_amount: Decimal
    amount_due: Decimal
    status: str
    issued_at: datetime
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceListResponse(BaseModel):
    """Response model for listing invoices."""
    invoices: List[InvoiceResponse]


class InvoiceDetailResponse(InvoiceResponse):
    """Invoice with the appointment's ledger lines and its payment journal."""
    lines: List[ServiceLineResponse]
    payments: List[PaymentResponse]


class PaymentListResponse(BaseModel):
    """Response model for an invoice's payment journal."""
    invoice_id: int
    payments: List[PaymentResponse]


class PaymentAppliedResponse(BaseModel):
    """Response model for a newly applied payment."""
    invoice: InvoiceResponse
    payment: PaymentResponse


class InvoiceAuditEntry(BaseModel):
    """One invoice whose stored balance differs from its payments."""
    invoice_id: int
    stored_amount_due: Decimal
    expected_amount_due: Decimal
    stored_status: str
    expected_status: str


class InvoiceAuditResponse(BaseModel):
    """Response model for the invoice consistency audit."""
    consistent: bool
    drifted: List[InvoiceAuditEntry]
