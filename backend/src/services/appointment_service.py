"""
Appointment service for appointments and their billable service lines.

Appointments are supplied by the scheduling side of the clinic. The billing
engine cares about the ledger lines attached to them: which catalog services
were consumed, in what quantity, and at what price snapshot.

Lines added after an appointment has been invoiced are recorded but do not
change the existing invoice's total.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import MAX_LINE_QUANTITY
from core.exceptions import NotFoundError, ValidationError
from models import Appointment, AppointmentServiceLine, AppointmentStatus
from services.catalog_service import CatalogService
from services.doctor_service import DoctorService
from services.patient_service import PatientService
from utils.datetime_utils import ensure_clinic_tz
from utils.money_utils import from_db, line_total, to_money

logger = logging.getLogger(__name__)


class AppointmentService:
    """
    Service class for appointment operations.

    Contains the appointment and ledger-line logic the invoicing flow
    depends on.
    """

    @staticmethod
    def create_appointment(
        db: Session,
        patient_id: int,
        doctor_id: int,
        scheduled_start: datetime,
        scheduled_end: datetime,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        status: str = AppointmentStatus.SCHEDULED.value
    ) -> Appointment:
        """
        Create an appointment.

        Args:
            db: Database session
            patient_id: Patient being seen
            doctor_id: Doctor seeing the patient
            scheduled_start: Start of the slot
            scheduled_end: End of the slot (must be after start)
            reason: Optional visit reason
            notes: Optional notes
            status: Initial status (defaults to scheduled)

        Returns:
            Created Appointment

        Raises:
            NotFoundError: If the patient or doctor does not exist
            ValidationError: If the slot is empty or the status is unknown
        """
        start = ensure_clinic_tz(scheduled_start)
        end = ensure_clinic_tz(scheduled_end)
        if start is None or end is None or end <= start:
            raise ValidationError(
                "Appointment end must be after its start",
                details={"scheduled_start": str(scheduled_start), "scheduled_end": str(scheduled_end)}
            )

        try:
            status = AppointmentStatus(status).value
        except ValueError:
            raise ValidationError(
                "Invalid appointment status",
                details={"status": str(status)}
            )

        PatientService.get_patient(db, patient_id)
        DoctorService.get_doctor(db, doctor_id)

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            scheduled_start=start,
            scheduled_end=end,
            status=status,
            reason=reason,
            notes=notes
        )
        db.add(appointment)
        db.flush()

        logger.info(f"Created appointment {appointment.id} for patient {patient_id} with doctor {doctor_id}")
        return appointment

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Get an appointment by ID.

        Raises:
            NotFoundError: If the appointment does not exist
        """
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointment_id": appointment_id})
        return appointment

    @staticmethod
    def add_service_line(
        db: Session,
        appointment_id: int,
        service_id: int,
        quantity: int = 1,
        price_at_time: Any = None
    ) -> AppointmentServiceLine:
        """
        Attach a catalog service to an appointment.

        The catalog's current price is captured as price_at_time unless an
        explicit snapshot is given. Lines are never updated afterwards.

        Args:
            db: Database session
            appointment_id: Appointment consuming the service
            service_id: Catalog service
            quantity: Number of units (1..MAX_LINE_QUANTITY)
            price_at_time: Optional explicit unit price snapshot (>= 0)

        Returns:
            Created line

        Raises:
            NotFoundError: If the appointment or service does not exist
            ValidationError: Bad quantity or price, inactive service, or the
                service is already attached to this appointment
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "Quantity must be a positive integer",
                details={"quantity": str(quantity)}
            )
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"Quantity cannot exceed {MAX_LINE_QUANTITY}",
                details={"quantity": str(quantity)},
                error_code="QUANTITY_TOO_LARGE"
            )

        snapshot: Optional[Decimal] = None
        if price_at_time is not None:
            snapshot = to_money(price_at_time, field="price_at_time")
            if snapshot < 0:
                raise ValidationError(
                    "Price cannot be negative",
                    details={"price_at_time": str(snapshot)}
                )

        AppointmentService.get_appointment(db, appointment_id)
        service = CatalogService.get_service(db, service_id)
        if not service.active:
            raise ValidationError(
                "Service is no longer offered",
                details={"service_id": service_id},
                error_code="SERVICE_INACTIVE"
            )

        if snapshot is None:
            snapshot = from_db(service.price)

        existing = db.query(AppointmentServiceLine.id).filter(
            AppointmentServiceLine.appointment_id == appointment_id,
            AppointmentServiceLine.service_id == service_id
        ).first()
        duplicate_error = ValidationError(
            "Service is already attached to this appointment",
            details={"appointment_id": appointment_id, "service_id": service_id},
            error_code="DUPLICATE_SERVICE_LINE"
        )
        if existing:
            raise duplicate_error

        line = AppointmentServiceLine(
            appointment_id=appointment_id,
            service_id=service_id,
            quantity=quantity,
            price_at_time=snapshot
        )
        try:
            with db.begin_nested():
                db.add(line)
                db.flush()
        except IntegrityError:
            # Concurrent attach of the same pair
            raise duplicate_error

        logger.info(
            f"Attached service {service_id} x{quantity} at {snapshot} to appointment {appointment_id}"
        )
        return line

    @staticmethod
    def remove_service_line(db: Session, appointment_id: int, service_id: int) -> None:
        """
        Detach a service from an appointment.

        Raises:
            NotFoundError: If no such line exists
        """
        line = db.query(AppointmentServiceLine).filter(
            AppointmentServiceLine.appointment_id == appointment_id,
            AppointmentServiceLine.service_id == service_id
        ).first()
        if not line:
            raise NotFoundError(
                "Service line not found",
                details={"appointment_id": appointment_id, "service_id": service_id}
            )
        db.delete(line)
        db.flush()
        logger.info(f"Removed service {service_id} from appointment {appointment_id}")

    @staticmethod
    def list_service_lines(db: Session, appointment_id: int) -> List[AppointmentServiceLine]:
        """List an appointment's lines in attach order."""
        AppointmentService.get_appointment(db, appointment_id)
        return db.query(AppointmentServiceLine).filter(
            AppointmentServiceLine.appointment_id == appointment_id
        ).order_by(AppointmentServiceLine.id).all()

    @staticmethod
    def compute_lines_total(db: Session, appointment_id: int) -> Decimal:
        """Sum of quantity x price_at_time over the appointment's lines (0 when none)."""
        lines = db.query(AppointmentServiceLine).filter(
            AppointmentServiceLine.appointment_id == appointment_id
        ).all()
        return sum((line_total(line.quantity, line.price_at_time) for line in lines), Decimal("0.00"))
