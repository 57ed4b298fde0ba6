"""
Undo of a committed import.

Undo only reverts what the commit created: created variants, products and
categories are soft-deactivated. Entities the commit updated keep their
post-commit values; there is no snapshot to restore them from.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from catalog_import.exceptions import UndoUnavailableError
from catalog_import.models.import_job import JobStatus
from catalog_import.services.catalog import CatalogRepository
from catalog_import.services.staging import StagingStore, utcnow

logger = logging.getLogger(__name__)


@dataclass
class UndoResult:
    job_id: UUID
    reverted: dict[str, int] = field(default_factory=dict)


def undo_import(db: Session, job_id: Optional[Union[str, UUID]] = None) -> UndoResult:
    """
    Revert a committed import job.

    Args:
        db: Database session
        job_id: Job to revert; the most recently committed job when omitted

    Returns:
        UndoResult with the number of deactivated entities per kind
    """
    store = StagingStore(db)
    job = store.get_job(job_id) if job_id else store.latest_committed_job()

    if job.status != JobStatus.COMMITTED:
        raise UndoUnavailableError(
            "IMPORT_NOT_COMMITTED",
            "Only committed imports can be undone",
            {"id": str(job.id), "status": job.status.value},
        )

    created = (job.report or {}).get("created_entities") or {}
    categories = created.get("categories") or []
    products = created.get("products") or []
    variants = created.get("variants") or []
    if not (categories or products or variants):
        raise UndoUnavailableError(
            "IMPORT_UNDO_UNAVAILABLE",
            "Import created nothing that can be undone",
            {"id": str(job.id)},
        )

    repo = CatalogRepository(db)
    try:
        reverted = {
            "variants": repo.deactivate_variants(variants),
            "products": repo.deactivate_products(products),
            "categories": repo.deactivate_categories(categories),
        }
        undone_at = utcnow()
        moved = store.transition_job(
            job,
            JobStatus.COMMITTED,
            JobStatus.UNDONE,
            undone_at=undone_at,
            report={**job.report, "undone_at": undone_at.isoformat(), "reverted": reverted},
        )
        if not moved:
            raise UndoUnavailableError(
                "IMPORT_NOT_COMMITTED",
                "Import job was undone by another request",
                {"id": str(job.id)},
            )
        db.commit()
    except UndoUnavailableError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception(f"❌ Undo of import job {job_id} failed, rolled back")
        raise

    logger.info(f"↩️ Import job {job.id} undone: {reverted}")
    return UndoResult(job_id=job.id, reverted=reverted)
