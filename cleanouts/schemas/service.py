from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, UUID4
from decimal import Decimal
from datetime import datetime


class ServiceBase(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    base_price: Decimal = Field(ge=0, le=10000)
    price_per_hour: Decimal = Field(ge=0, le=1000)
    image_url: Optional[str] = None


# Service: Create (admin POST /admin/services)
class ServiceCreate(ServiceBase):
    is_active: bool = True


# Service: Update (admin PATCH /admin/services/{id})
class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=500)
    base_price: Optional[Decimal] = Field(None, ge=0, le=10000)
    price_per_hour: Optional[Decimal] = Field(None, ge=0, le=1000)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class Service(ServiceBase):
    id: UUID4
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Compact service for nested booking responses
class ServiceSummary(BaseModel):
    id: UUID4
    name: str
    base_price: Decimal
    price_per_hour: Decimal
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
