from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from cleanouts.core.config import settings
from cleanouts.core.exceptions import AuthError, PermissionDeniedError
from cleanouts.core.security import decode_token, full_name_from_claims, role_from_claims
from cleanouts.db.session import get_db
from cleanouts.models.user import User
from cleanouts.services.availability_cache import AvailabilityCache
from cleanouts.services.payments import PaymentGateway, StripeGateway
from cleanouts.utils.timeslots import business_now

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Verify the identity-provider bearer token and return the caller's profile.

    The profile row is created on first sight and its email kept in step with
    the token claims. Deactivated profiles are refused.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Authorization header required")

    claims = decode_token(credentials.credentials)
    if claims is None:
        raise AuthError("Invalid or expired token")

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise AuthError("Invalid token subject")

    email = claims.get("email")
    role = role_from_claims(claims)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        user = User(id=user_id, email=email, full_name=full_name_from_claims(claims), role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
    elif user.email != email or (role == "admin" and user.role != "admin"):
        # Claims can grant admin; anything else about the role is managed locally
        user.email = email
        if role == "admin":
            user.role = role
        db.commit()
        db.refresh(user)

    if not user.is_active:
        raise PermissionDeniedError("Account is deactivated", code="ACCOUNT_DEACTIVATED")
    return user


def get_current_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return current_user


def get_availability_cache(request: Request) -> AvailabilityCache:
    cache = getattr(request.app.state, "availability_cache", None)
    if cache is None:
        cache = AvailabilityCache(
            ttl_seconds=settings.AVAILABILITY_CACHE_TTL_SECONDS,
            sweep_interval_seconds=settings.AVAILABILITY_CACHE_SWEEP_SECONDS,
        )
        request.app.state.availability_cache = cache
    return cache


def get_payment_gateway() -> PaymentGateway:
    return StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)


def get_clock() -> Callable[[], datetime]:
    """Wall clock in the business timezone."""
    return business_now
