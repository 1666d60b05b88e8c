"""
Service catalog API endpoints.

Price changes only affect lines attached afterwards.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import ServiceListResponse, ServiceResponse
from core.database import commit_billing_transaction, get_db
from services import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter()


class ServiceCreateRequest(BaseModel):
    """Request model for adding a catalog service."""
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=150)
    price: Decimal
    duration_minutes: int
    description: Optional[str] = None


class PriceUpdateRequest(BaseModel):
    """Request model for changing a catalog price."""
    price: Decimal


@router.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    request: ServiceCreateRequest,
    db: Session = Depends(get_db)
) -> ServiceResponse:
    """Add a service to the catalog."""
    service = CatalogService.create_service(
        db,
        code=request.code,
        name=request.name,
        price=request.price,
        duration_minutes=request.duration_minutes,
        description=request.description
    )
    commit_billing_transaction(db)
    return ServiceResponse.model_validate(service)


@router.get("/services", response_model=ServiceListResponse)
def list_services(
    active_only: bool = Query(True, description="Hide deactivated services"),
    db: Session = Depends(get_db)
) -> ServiceListResponse:
    """List catalog services ordered by code."""
    services = CatalogService.list_services(db, active_only=active_only)
    return ServiceListResponse(services=[ServiceResponse.model_validate(s) for s in services])


@router.get("/services/{service_id}", response_model=ServiceResponse)
def get_service(
    service_id: int,
    db: Session = Depends(get_db)
) -> ServiceResponse:
    """Get a catalog service."""
    return ServiceResponse.model_validate(CatalogService.get_service(db, service_id))


@router.put("/services/{service_id}/price", response_model=ServiceResponse)
def update_service_price(
    service_id: int,
    request: PriceUpdateRequest,
    db: Session = Depends(get_db)
) -> ServiceResponse:
    """Change a service's catalog price."""
    service = CatalogService.update_price(db, service_id, request.price)
    commit_billing_transaction(db)
    return ServiceResponse.model_validate(service)


@router.post("/services/{service_id}/deactivate", response_model=ServiceResponse)
def deactivate_service(
    service_id: int,
    db: Session = Depends(get_db)
) -> ServiceResponse:
    """Retire a service from the catalog."""
    service = CatalogService.deactivate_service(db, service_id)
    commit_billing_transaction(db)
    return ServiceResponse.model_validate(service)
