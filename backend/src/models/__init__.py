# Package initialization
# Import all models to ensure relationships are properly established
from .patient import Patient
from .doctor import Doctor
from .service import Service
from .appointment import Appointment, AppointmentStatus
from .appointment_service_line import AppointmentServiceLine
from .invoice import Invoice, InvoiceStatus
from .payment import Payment, PaymentMethod

__all__ = [
    "Patient",
    "Doctor",
    "Service",
    "Appointment",
    "AppointmentStatus",
    "AppointmentServiceLine",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentMethod",
]
