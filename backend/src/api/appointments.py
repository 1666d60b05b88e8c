"""
Appointment and ledger line API endpoints.

Handlers are plain functions: on SQLite every transaction opens with
BEGIN IMMEDIATE and may wait behind a billing transaction, which must not
happen on the event loop.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import (
    AppointmentResponse, ServiceLineListResponse, ServiceLineResponse
)
from core.constants import MAX_LINE_QUANTITY
from core.database import commit_billing_transaction, get_db
from models import AppointmentServiceLine, AppointmentStatus
from services import AppointmentService
from utils.money_utils import line_total

logger = logging.getLogger(__name__)

router = APIRouter()


class AppointmentCreateRequest(BaseModel):
    """Request model for creating an appointment."""
    patient_id: int
    doctor_id: int
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class ServiceLineCreateRequest(BaseModel):
    """Request model for attaching a service to an appointment."""
    service_id: int
    quantity: int = Field(1, gt=0, le=MAX_LINE_QUANTITY, description="Number of units")
    price_at_time: Optional[Decimal] = Field(
        None, description="Explicit price snapshot; defaults to the current catalog price"
    )


def to_line_response(line: AppointmentServiceLine) -> ServiceLineResponse:
    """Build the response for a ledger line, including its total."""
    return ServiceLineResponse(
        id=line.id,
        appointment_id=line.appointment_id,
        service_id=line.service_id,
        quantity=line.quantity,
        price_at_time=line.price_at_time,
        line_total=line_total(line.quantity, line.price_at_time)
    )


def to_line_responses(lines: List[AppointmentServiceLine]) -> List[ServiceLineResponse]:
    return [to_line_response(line) for line in lines]


@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: AppointmentCreateRequest,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Create an appointment."""
    appointment = AppointmentService.create_appointment(
        db,
        patient_id=request.patient_id,
        doctor_id=request.doctor_id,
        scheduled_start=request.scheduled_start,
        scheduled_end=request.scheduled_end,
        reason=request.reason,
        notes=request.notes,
        status=request.status.value
    )
    commit_billing_transaction(db)
    return AppointmentResponse.model_validate(appointment)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Get an appointment."""
    return AppointmentResponse.model_validate(AppointmentService.get_appointment(db, appointment_id))


@router.get("/appointments/{appointment_id}/services", response_model=ServiceLineListResponse)
def list_appointment_services(
    appointment_id: int,
    db: Session = Depends(get_db)
) -> ServiceLineListResponse:
    """List the services attached to an appointment with the running total."""
    lines = AppointmentService.list_service_lines(db, appointment_id)
    return ServiceLineListResponse(
        appointment_id=appointment_id,
        lines=to_line_responses(lines),
        total=AppointmentService.compute_lines_total(db, appointment_id)
    )


@router.post(
    "/appointments/{appointment_id}/services",
    response_model=ServiceLineResponse,
    status_code=status.HTTP_201_CREATED
)
def add_appointment_service(
    appointment_id: int,
    request: ServiceLineCreateRequest,
    db: Session = Depends(get_db)
) -> ServiceLineResponse:
    """Attach a catalog service to an appointment, snapshotting its price."""
    line = AppointmentService.add_service_line(
        db,
        appointment_id=appointment_id,
        service_id=request.service_id,
        quantity=request.quantity,
        price_at_time=request.price_at_time
    )
    commit_billing_transaction(db)
    return to_line_response(line)


@router.delete(
    "/appointments/{appointment_id}/services/{service_id}",
    status_code=status.HTTP_204_NO_CONTENT
)
def remove_appointment_service(
    appointment_id: int,
    service_id: int,
    db: Session = Depends(get_db)
) -> None:
    """Detach a service from an appointment."""
    AppointmentService.remove_service_line(db, appointment_id, service_id)
    commit_billing_transaction(db)
