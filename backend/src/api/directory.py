"""
Clinic directory API endpoints: patients and doctors.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import DoctorResponse, PatientResponse
from core.database import commit_billing_transaction, get_db
from services import DoctorService, PatientService

logger = logging.getLogger(__name__)

router = APIRouter()


class PatientCreateRequest(BaseModel):
    """Request model for registering a patient."""
    full_name: str = Field(..., min_length=1, max_length=255)
    medical_record_number: Optional[str] = Field(None, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    insurance_provider: Optional[str] = Field(None, max_length=150)
    insurance_number: Optional[str] = Field(None, max_length=100)


class DoctorCreateRequest(BaseModel):
    """Request model for registering a doctor."""
    full_name: str = Field(..., min_length=1, max_length=255)
    specialty: Optional[str] = Field(None, max_length=150)
    license_number: Optional[str] = Field(None, max_length=100)
    consultation_fee: Decimal = Field(Decimal("0.00"))
    bio: Optional[str] = None


@router.post("/patients", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    request: PatientCreateRequest,
    db: Session = Depends(get_db)
) -> PatientResponse:
    """Register a patient."""
    patient = PatientService.create_patient(db, **request.model_dump())
    commit_billing_transaction(db)
    return PatientResponse.model_validate(patient)


@router.get("/patients/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: int,
    db: Session = Depends(get_db)
) -> PatientResponse:
    """Get a patient."""
    return PatientResponse.model_validate(PatientService.get_patient(db, patient_id))


@router.post("/doctors", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    request: DoctorCreateRequest,
    db: Session = Depends(get_db)
) -> DoctorResponse:
    """Register a doctor."""
    doctor = DoctorService.create_doctor(db, **request.model_dump())
    commit_billing_transaction(db)
    return DoctorResponse.model_validate(doctor)


@router.get("/doctors/{doctor_id}", response_model=DoctorResponse)
def get_doctor(
    doctor_id: int,
    db: Session = Depends(get_db)
) -> DoctorResponse:
    """Get a doctor."""
    return DoctorResponse.model_validate(DoctorService.get_doctor(db, doctor_id))
