"""Catalog schemas for the read-only product listing."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel


class VariantResponse(BaseModel):
    """Schema for variant responses."""

    id: int
    sku: str
    label: Optional[str] = None
    price: Decimal
    price_retail: Optional[Decimal] = None
    price_wholesale: Optional[Decimal] = None
    attributes: dict[str, Any] = {}
    is_active: bool

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    """Schema for product responses."""

    id: int
    category_id: int
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    variants: list[VariantResponse] = []

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    """Schema for paginated product list responses."""

    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    pages: int
