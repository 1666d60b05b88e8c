"""
Services package for billing business logic.

Service classes take a Session as first argument and only flush; the caller
owns the transaction boundary.
"""

from .patient_service import PatientService
from .doctor_service import DoctorService
from .catalog_service import CatalogService
from .appointment_service import AppointmentService
from .reconciliation_service import ReconciliationService
from .invoice_service import InvoiceService
from .payment_service import PaymentService

__all__ = [
    "PatientService",
    "DoctorService",
    "CatalogService",
    "AppointmentService",
    "ReconciliationService",
    "InvoiceService",
    "PaymentService",
]
