from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.core.exceptions import NotFoundError
from cleanouts.models.service import Service
from cleanouts.schemas.service import Service as ServiceSchema

router = APIRouter(prefix="/services", tags=["Services"])


@router.get("", response_model=List[ServiceSchema])
def list_services(db: Session = Depends(get_db)):
    """Active services, alphabetically."""
    return (
        db.query(Service)
        .filter(Service.is_active == True)  # noqa: E712
        .order_by(Service.name)
        .all()
    )


@router.get("/{service_id}", response_model=ServiceSchema)
def get_service(service_id: UUID, db: Session = Depends(get_db)):
    service = db.query(Service).filter(Service.id == service_id, Service.is_active == True).first()  # noqa: E712
    if not service:
        raise NotFoundError("Service not found")
    return service
