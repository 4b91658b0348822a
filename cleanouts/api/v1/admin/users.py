import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_current_admin_user
from cleanouts.core.exceptions import NotFoundError, ValidationError
from cleanouts.models.user import User
from cleanouts.schemas.common import PaginatedResponse
from cleanouts.schemas.user import Role, User as UserSchema, UserAdminUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["Admin - Users"])


def _get_user_or_404(user_id: UUID, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Customer accounts
# ---------------------------------------------------------------------------


@router.get("", response_model=PaginatedResponse[UserSchema])
def list_users(
    search: Optional[str] = Query(None, min_length=1, max_length=100, description="Matches name or email"),
    role: Optional[Role] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Profiles newest first, optionally filtered by a case-insensitive search."""
    query = db.query(User)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    total = query.count()
    users = (
        query.order_by(User.created_at.desc(), User.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=users,
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{user_id}", response_model=UserSchema)
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    return _get_user_or_404(user_id, db)


@router.patch("/{user_id}", response_model=UserSchema)
def update_user(
    user_id: UUID,
    data: UserAdminUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Change a profile's role or active flag. Admins cannot demote or deactivate themselves."""
    user = _get_user_or_404(user_id, db)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if user.id == current_user.id and (changes.get("role", "admin") != "admin" or changes.get("is_active") is False):
        raise ValidationError("Cannot demote or deactivate your own account", code="SELF_MODIFICATION")

    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("User %s updated by %s: %s", user.id, current_user.id, changes)
    return user


@router.delete("/{user_id}", response_model=UserSchema)
def deactivate_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Soft delete; the profile and its bookings stay, sign-in is refused."""
    user = _get_user_or_404(user_id, db)
    if user.id == current_user.id:
        raise ValidationError("Cannot deactivate your own account", code="SELF_MODIFICATION")

    user.is_active = False
    db.commit()
    db.refresh(user)
    logger.info("User %s deactivated by %s", user.id, current_user.id)
    return user
