"""Read-only catalog listing for review screens."""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from catalog_import.database import get_db
from catalog_import.exceptions import ResourceNotFoundError
from catalog_import.schemas.catalog import ProductListResponse, ProductResponse
from catalog_import.services.catalog import CatalogRepository

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    active: Optional[bool] = Query(None, description="Filter by active status"),
    search: Optional[str] = Query(None, description="Search in product name and variant SKUs"),
    db: Session = Depends(get_db),
):
    """
    List catalog products with their variants.

    Query Parameters:
    - page: Page number (default: 1)
    - page_size: Items per page (default: 50, max: 100)
    - category_id: Only products of this category
    - active: Filter by active status
    - search: Case-insensitive match on name or SKU
    """
    total, items = CatalogRepository(db).list_products(
        skip=(page - 1) * page_size,
        limit=page_size,
        category_id=category_id,
        active=active,
        search=search,
    )
    pages = math.ceil(total / page_size) if total > 0 else 1

    return ProductListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        pages=pages,
    )


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: int, db: Session = Depends(get_db)):
    """Get a single product with its variants."""
    product = CatalogRepository(db).get_product(product_id)
    if not product:
        raise ResourceNotFoundError("product", product_id)

    return product
