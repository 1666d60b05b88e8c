"""
Service catalog management.

The catalog holds the live price of each billable service. Changing a price
here never touches existing appointment lines, which carry their own
price_at_time snapshot.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import MAX_CODE_LENGTH
from core.exceptions import NotFoundError, ValidationError
from models import Service
from utils.money_utils import to_money

logger = logging.getLogger(__name__)


class CatalogService:
    """Service class for catalog operations."""

    @staticmethod
    def _validate_price(price: Any) -> Any:
        amount = to_money(price, field="price")
        if amount < 0:
            raise ValidationError("Price cannot be negative", details={"price": str(amount)})
        return amount

    @staticmethod
    def create_service(
        db: Session,
        code: str,
        name: str,
        price: Any,
        duration_minutes: int,
        description: Optional[str] = None
    ) -> Service:
        """
        Add a service to the catalog.

        Args:
            db: Database session
            code: Short unique code (e.g. "XRAY")
            name: Display name
            price: Catalog price (>= 0)
            duration_minutes: Expected duration (> 0)
            description: Optional description

        Returns:
            Created Service

        Raises:
            ValidationError: Invalid price, duration, code, or duplicate code
        """
        if not code or not code.strip() or len(code.strip()) > MAX_CODE_LENGTH:
            raise ValidationError(
                f"Service code is required and must be at most {MAX_CODE_LENGTH} characters",
                details={"field": "code"}
            )
        if not name or not name.strip():
            raise ValidationError("Service name is required", details={"field": "name"})
        amount = CatalogService._validate_price(price)
        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError(
                "Duration must be greater than zero",
                details={"duration_minutes": duration_minutes}
            )

        service = Service(
            code=code.strip().upper(),
            name=name.strip(),
            description=description,
            price=amount,
            duration_minutes=duration_minutes,
            active=True
        )
        try:
            with db.begin_nested():
                db.add(service)
                db.flush()
        except IntegrityError:
            raise ValidationError(
                "Service code already exists",
                details={"code": service.code},
                error_code="DUPLICATE_SERVICE_CODE"
            )

        logger.info(f"Created catalog service {service.id} ({service.code}) at {amount}")
        return service

    @staticmethod
    def get_service(db: Session, service_id: int) -> Service:
        """
        Get a catalog service by ID.

        Raises:
            NotFoundError: If the service does not exist
        """
        service = db.query(Service).filter(Service.id == service_id).first()
        if not service:
            raise NotFoundError("Service not found", details={"service_id": service_id})
        return service

    @staticmethod
    def list_services(db: Session, active_only: bool = True) -> List[Service]:
        """List catalog services ordered by code."""
        query = db.query(Service)
        if active_only:
            query = query.filter(Service.active.is_(True))
        return query.order_by(Service.code).all()

    @staticmethod
    def update_price(db: Session, service_id: int, price: Any) -> Service:
        """
        Change the live catalog price.

        Lines already attached to appointments keep their snapshot.

        Raises:
            NotFoundError: If the service does not exist
            ValidationError: If the price is invalid
        """
        amount = CatalogService._validate_price(price)
        service = CatalogService.get_service(db, service_id)
        old_price = service.price
        service.price = amount
        db.flush()
        logger.info(f"Catalog price of service {service_id} changed from {old_price} to {amount}")
        return service

    @staticmethod
    def deactivate_service(db: Session, service_id: int) -> Service:
        """
        Retire a service from the catalog.

        Existing lines keep referencing it; it can no longer be attached.
        """
        service = CatalogService.get_service(db, service_id)
        if service.active:
            service.active = False
            db.flush()
            logger.info(f"Deactivated catalog service {service_id}")
        return service
