"""
Patient service for the clinic directory.

Patients are registered by the scheduling side of the clinic; billing only
needs them to exist so invoices can be stamped with their owner.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from models import Patient

logger = logging.getLogger(__name__)


class PatientService:
    """Service class for patient operations."""

    @staticmethod
    def create_patient(
        db: Session,
        full_name: str,
        medical_record_number: Optional[str] = None,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
        insurance_provider: Optional[str] = None,
        insurance_number: Optional[str] = None
    ) -> Patient:
        """
        Create a new patient record.

        Args:
            db: Database session
            full_name: Patient's full name
            medical_record_number: Optional clinic MRN, unique when present
            phone_number: Optional phone number
            email: Optional email
            insurance_provider: Optional insurer name
            insurance_number: Optional policy number

        Returns:
            Created Patient object

        Raises:
            ValidationError: If the name is blank or the MRN is already taken
        """
        if not full_name or not full_name.strip():
            raise ValidationError("Patient name is required", details={"field": "full_name"})

        patient = Patient(
            full_name=full_name.strip(),
            medical_record_number=medical_record_number,
            phone_number=phone_number,
            email=email,
            insurance_provider=insurance_provider,
            insurance_number=insurance_number
        )
        try:
            with db.begin_nested():
                db.add(patient)
                db.flush()
        except IntegrityError:
            raise ValidationError(
                "Medical record number already exists",
                details={"medical_record_number": medical_record_number},
                error_code="DUPLICATE_MEDICAL_RECORD_NUMBER"
            )

        logger.info(f"Created patient {patient.id}")
        return patient

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Patient:
        """
        Get a patient by ID.

        Raises:
            NotFoundError: If the patient does not exist
        """
        patient = db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise NotFoundError("Patient not found", details={"patient_id": patient_id})
        return patient
