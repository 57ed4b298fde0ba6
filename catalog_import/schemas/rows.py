"""Canonical row model shared by every parser and the commit engine."""
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

IssueLevel = Literal["warning", "error"]
RowSource = Literal["delimited", "spreadsheet", "document"]


class Issue(BaseModel):
    """A data problem attached to a row or to the whole file."""

    level: IssueLevel
    code: str
    message: str
    row_key: Optional[str] = None
    field: Optional[str] = None


class ColumnMapping(BaseModel):
    """Header name for each canonical field of a delimited file."""

    category: Optional[str] = None
    product: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    wholesale_price: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None


class ProductName(BaseModel):
    """Product naming: original text, grouping base name and display name."""

    original: str
    base: str
    display: str
    description: Optional[str] = None


class VariantData(BaseModel):
    sku: str
    sku_generated: bool = False
    price: Decimal = Decimal("0")
    price_retail: Optional[Decimal] = None
    price_wholesale: Optional[Decimal] = None
    label: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class ImageRef(BaseModel):
    url: str
    source: str
    source_id: Optional[str] = None
    quality: Optional[float] = None


class PriceStrategy(str, Enum):
    """How a spreadsheet row's retail price is chosen."""

    SALE = "sale"
    MAX_LOCATION = "maxLocation"


class SpreadsheetPricing(BaseModel):
    """Spreadsheet-only pricing inputs, kept so prices can be re-resolved at commit."""

    sale_price: Decimal = Decimal("0")
    location_prices: dict[str, Decimal] = Field(default_factory=dict)
    location_stock: dict[str, Decimal] = Field(default_factory=dict)


class CanonicalRow(BaseModel):
    """One candidate product variant, independent of the file format it came from."""

    row_key: str
    source: RowSource
    position: int
    page: Optional[int] = None
    category: str
    product: ProductName
    variant: VariantData
    image: Optional[ImageRef] = None
    issues: list[Issue] = Field(default_factory=list)
    needs_review: bool = False
    confidence: Optional[float] = None
    product_key: str
    fingerprint: str
    target_product_id: Optional[int] = None
    spreadsheet: Optional[SpreadsheetPricing] = None

    @property
    def has_errors(self) -> bool:
        return any(issue.level == "error" for issue in self.issues)

    def issue_codes(self) -> set[str]:
        return {issue.code for issue in self.issues}
