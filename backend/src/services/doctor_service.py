"""
Doctor service for the clinic directory.
"""

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from models import Doctor
from utils.money_utils import to_money

logger = logging.getLogger(__name__)


class DoctorService:
    """Service class for doctor operations."""

    @staticmethod
    def create_doctor(
        db: Session,
        full_name: str,
        specialty: Optional[str] = None,
        license_number: Optional[str] = None,
        consultation_fee: Any = "0.00",
        bio: Optional[str] = None
    ) -> Doctor:
        """
        Create a new doctor.

        Raises:
            ValidationError: Blank name, negative fee or duplicate license number
        """
        if not full_name or not full_name.strip():
            raise ValidationError("Doctor name is required", details={"field": "full_name"})

        fee = to_money(consultation_fee, field="consultation_fee")
        if fee < 0:
            raise ValidationError(
                "Consultation fee cannot be negative",
                details={"consultation_fee": str(fee)}
            )

        doctor = Doctor(
            full_name=full_name.strip(),
            specialty=specialty,
            license_number=license_number,
            consultation_fee=fee,
            bio=bio
        )
        try:
            with db.begin_nested():
                db.add(doctor)
                db.flush()
        except IntegrityError:
            raise ValidationError(
                "License number already exists",
                details={"license_number": license_number},
                error_code="DUPLICATE_LICENSE_NUMBER"
            )

        logger.info(f"Created doctor {doctor.id}")
        return doctor

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Doctor:
        """
        Get a doctor by ID.

        Raises:
            NotFoundError: If the doctor does not exist
        """
        doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found", details={"doctor_id": doctor_id})
        return doctor
