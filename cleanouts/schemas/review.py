from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, UUID4
from datetime import datetime

from cleanouts.schemas.service import ServiceSummary
from cleanouts.schemas.user import ReviewAuthor


# Review: Create (POST /reviews)
class ReviewCreate(BaseModel):
    booking_id: UUID4
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1, max_length=1000)


class Review(BaseModel):
    id: UUID4
    booking_id: UUID
    service_id: UUID
    user_id: UUID
    rating: int
    comment: str
    created_at: Optional[datetime] = None
    user: Optional[ReviewAuthor] = None
    service: Optional[ServiceSummary] = None

    model_config = ConfigDict(from_attributes=True)
