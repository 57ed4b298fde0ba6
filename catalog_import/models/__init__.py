"""Database models."""
from catalog_import.models.catalog import Category, Product, Variant
from catalog_import.models.import_job import (
    ImportJob,
    ImportRow,
    JobStatus,
    RowStatus,
    SourceType,
)
from catalog_import.models.webhook import Webhook

__all__ = [
    "Category",
    "Product",
    "Variant",
    "ImportJob",
    "ImportRow",
    "JobStatus",
    "RowStatus",
    "SourceType",
    "Webhook",
]
