"""Import pipeline request and response schemas."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from catalog_import.models.import_job import JobStatus, RowStatus, SourceType
from catalog_import.schemas.rows import CanonicalRow, Issue, PriceStrategy


class PriceMode(str, Enum):
    """Which price becomes a variant's selling price."""

    RETAIL = "retail"
    WHOLESALE = "wholesale"


class ParseResponse(BaseModel):
    """Staged job returned after parsing an upload."""

    job_id: UUID
    checksum: str
    source_type: str
    rows: list[CanonicalRow]
    warnings: list[Issue]
    errors: list[Issue]
    columns: Optional[list[str]] = None
    mapping: Optional[dict[str, Any]] = None
    needs_review_count: int
    ready_rows_count: int
    total_rows: int


class GroupOverride(BaseModel):
    """Reviewer decisions for one product group (keyed by product key)."""

    product_id: Optional[int] = Field(None, description="Attach the group to this existing product")
    category: Optional[str] = Field(None, min_length=1, max_length=500)
    labels: dict[str, str] = Field(
        default_factory=dict, description="Row fingerprint or row key -> new variant label"
    )


class CommitOptions(BaseModel):
    """Spreadsheet commit options; immutable once a commit starts."""

    price_strategy: PriceStrategy = PriceStrategy.SALE
    wholesale_location: Optional[str] = None
    skip_price_zero: bool = True
    skip_missing_image: bool = False

    class Config:
        frozen = True


class CommitRequest(BaseModel):
    """Request to apply a staged job to the catalog."""

    price_mode: PriceMode = PriceMode.RETAIL
    checksum: str = Field(..., min_length=1, max_length=64)
    allow_needs_review: bool = False
    overrides: dict[str, GroupOverride] = Field(default_factory=dict)
    commit_options: Optional[CommitOptions] = None


class CommitDetail(BaseModel):
    row_id: Optional[int] = None
    row_key: str
    sku: Optional[str] = None
    status: str
    message: Optional[str] = None


class CreatedEntities(BaseModel):
    categories: list[int] = Field(default_factory=list)
    products: list[int] = Field(default_factory=list)
    variants: list[int] = Field(default_factory=list)


class CommitReport(BaseModel):
    """Outcome of a commit: counters, per-row details and created entity ids."""

    job_id: Optional[UUID] = None
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    details: list[CommitDetail] = Field(default_factory=list)
    created_entities: CreatedEntities = Field(default_factory=CreatedEntities)


class UndoRequest(BaseModel):
    """Undo a committed job; the latest committed job when job_id is omitted."""

    job_id: Optional[UUID] = None


class UndoResponse(BaseModel):
    job_id: UUID
    status: str
    reverted: dict[str, int]


class ImportRowResponse(BaseModel):
    """Staged row as stored."""

    id: int
    position: int
    row_key: str
    status: RowStatus
    sku: Optional[str] = None
    product_key: Optional[str] = None
    needs_review: bool
    confidence: Optional[float] = None
    data: dict[str, Any]
    issues: Optional[list[dict[str, Any]]] = None

    class Config:
        from_attributes = True


class ImportJobResponse(BaseModel):
    """Import job with its rows."""

    id: UUID
    source_type: SourceType
    status: JobStatus
    checksum: str
    filename: Optional[str] = None
    file_size: Optional[int] = None
    mapping: Optional[dict[str, Any]] = None
    totals: Optional[dict[str, Any]] = None
    report: Optional[dict[str, Any]] = None
    warnings: Optional[list[dict[str, Any]]] = None
    errors: Optional[list[dict[str, Any]]] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    committed_at: Optional[datetime] = None
    undone_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    rows: list[ImportRowResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SuggestionRequest(BaseModel):
    """Find existing products a row group could be attached to."""

    category: str = Field("", max_length=500)
    base_name: str = Field("", max_length=500)
    label: Optional[str] = None
    attributes: Optional[dict[str, Any]] = None


class ProductSuggestion(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None
    score: float
    variant_match: Optional[int] = None


class SuggestionResponse(BaseModel):
    items: list[ProductSuggestion] = Field(default_factory=list)
    ambiguous: bool = False
    potential_duplicate: bool = False
