# app/shared/schemas/common.py
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Base para payloads JSON en camelCase, aceptando también snake_case"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class BaseResponse(CamelModel):
    success: bool
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class ErrorResponse(BaseResponse):
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PaginationInfo(CamelModel):
    current_page: int
    page_size: int
    total_elements: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, size: int, total: int) -> "PaginationInfo":
        total_pages = (total + size - 1) // size if size else 0
        return cls(
            current_page=page,
            page_size=size,
            total_elements=total,
            total_pages=total_pages,
            has_next=page + 1 < total_pages,
            has_previous=page > 0
        )


class LocationRef(CamelModel):
    """Referencia a ubicación como unión etiquetada (tipo, id)"""
    id: int
    type: str
    name: Optional[str] = None
