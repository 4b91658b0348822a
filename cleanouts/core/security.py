from typing import Any, Dict, Optional

from jose import jwt, JWTError
from cleanouts.core.config import settings


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Returns the verified claims of an identity-provider token, or None if invalid/expired."""
    options = {"verify_aud": settings.AUTH_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


def role_from_claims(claims: Dict[str, Any]) -> str:
    """
    Resolve the caller's role.

    Checks ``app_metadata.role`` (server controlled), then ``user_metadata.role``,
    then a top-level ``role`` claim, and finally the ADMIN_EMAILS allow-list.
    """
    for source in (claims.get("app_metadata") or {}, claims.get("user_metadata") or {}):
        if source.get("role") == "admin":
            return "admin"
    if claims.get("role") == "admin":
        return "admin"
    email = (claims.get("email") or "").lower()
    if email and email in {e.lower() for e in settings.ADMIN_EMAILS}:
        return "admin"
    return "user"


def full_name_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    metadata = claims.get("user_metadata") or {}
    return metadata.get("full_name") or metadata.get("name")
