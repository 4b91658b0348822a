from typing import Any, Dict, Optional, List, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper: used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error body produced by the domain exception handlers
class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None
