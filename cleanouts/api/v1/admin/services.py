import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_availability_cache, get_current_admin_user
from cleanouts.core.exceptions import NotFoundError
from cleanouts.models.service import Service
from cleanouts.models.user import User
from cleanouts.schemas.common import PaginatedResponse
from cleanouts.schemas.service import Service as ServiceSchema, ServiceCreate, ServiceUpdate
from cleanouts.services.availability_cache import AvailabilityCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/services", tags=["Admin - Services"])


def _get_service_or_404(service_id: UUID, db: Session) -> Service:
    service = db.query(Service).filter(Service.id == service_id).first()
    if not service:
        raise NotFoundError("Service not found")
    return service


# ---------------------------------------------------------------------------
# Service CRUD
# ---------------------------------------------------------------------------


@router.post("", response_model=ServiceSchema, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    service = Service(**data.model_dump())
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info("Service %s created by %s", service.id, current_user.id)
    return service


@router.get("", response_model=PaginatedResponse[ServiceSchema])
def list_services(
    include_inactive: bool = Query(True),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    query = db.query(Service)
    if not include_inactive:
        query = query.filter(Service.is_active == True)  # noqa: E712

    total = query.count()
    services = query.order_by(Service.name).offset((page - 1) * limit).limit(limit).all()
    return PaginatedResponse(
        data=services,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.patch("/{service_id}", response_model=ServiceSchema)
def update_service(
    service_id: UUID,
    data: ServiceUpdate,
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    current_user: User = Depends(get_current_admin_user),
):
    service = _get_service_or_404(service_id, db)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(service, field, value)
    db.commit()
    db.refresh(service)
    # Cached availability embeds service name and pricing
    cache.clear()
    return service


@router.delete("/{service_id}")
def delete_service(
    service_id: UUID,
    db: Session = Depends(get_db),
    cache: AvailabilityCache = Depends(get_availability_cache),
    current_user: User = Depends(get_current_admin_user),
):
    """Soft delete; existing bookings keep their service."""
    service = _get_service_or_404(service_id, db)
    service.is_active = False
    db.commit()
    cache.clear()
    logger.info("Service %s deactivated by %s", service.id, current_user.id)
    return {"id": str(service.id), "is_active": False}
