from typing import Literal, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict
from datetime import datetime

Role = Literal["user", "admin"]


# Properties returned via API (GET /me, admin user list)
class User(BaseModel):
    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Admin: PATCH /admin/users/{id}
class UserAdminUpdate(BaseModel):
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# Compact user for nested responses (admin booking view)
class UserSummary(BaseModel):
    id: UUID
    full_name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Public author line on reviews; never carries the email
class ReviewAuthor(BaseModel):
    id: UUID
    full_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
