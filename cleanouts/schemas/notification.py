from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, UUID4
from datetime import datetime


class NotificationBase(BaseModel):
    title: str
    message: str
    type: str
    reference_id: Optional[UUID4] = None


class Notification(NotificationBase):
    id: UUID4
    user_id: UUID
    is_read: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
