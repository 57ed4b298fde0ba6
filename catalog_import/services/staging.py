"""Staging store: persisted import jobs and their candidate rows."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from catalog_import.exceptions import JobNotFoundError
from catalog_import.models.import_job import ImportJob, ImportRow, JobStatus, RowStatus, SourceType
from catalog_import.schemas.rows import CanonicalRow, Issue

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_uuid(job_id: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id))
    except ValueError:
        return None


class StagingStore:
    """
    Job and row persistence.

    create_job commits on its own. The update methods only flush so the
    commit engine can land row statuses and the job transition in the same
    transaction as the catalog writes.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_job(
        self,
        source_type: Union[SourceType, str],
        checksum: str,
        rows: list[CanonicalRow],
        warnings: Optional[list[Issue]] = None,
        errors: Optional[list[Issue]] = None,
        mapping: Optional[dict[str, Any]] = None,
        filename: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> ImportJob:
        """
        Persist a parsed upload as a STAGED job.

        Args:
            source_type: Parser format tag
            checksum: SHA-256 of the raw upload; fixed for the job's lifetime
            rows: Canonical rows in file order
            warnings: File and row level warnings
            errors: File and row level errors
            mapping: Column mapping or detected columns
            filename: Original upload name
            file_size: Upload size in bytes

        Returns:
            The created ImportJob
        """
        warnings = warnings or []
        errors = errors or []
        job = ImportJob(
            source_type=SourceType(source_type),
            status=JobStatus.STAGED,
            checksum=checksum,
            filename=filename,
            file_size=file_size,
            mapping=mapping,
            warnings=[issue.model_dump(exclude_none=True) for issue in warnings],
            errors=[issue.model_dump(exclude_none=True) for issue in errors],
            totals={
                "parsed": {
                    "rows": len(rows),
                    "ready": sum(1 for row in rows if not row.has_errors),
                    "errors": sum(1 for row in rows if row.has_errors),
                    "warnings": len(warnings),
                    "needs_review": sum(1 for row in rows if row.needs_review),
                }
            },
        )
        for row in rows:
            job.rows.append(
                ImportRow(
                    position=row.position,
                    row_key=row.row_key,
                    status=RowStatus.ERROR if row.has_errors else RowStatus.READY,
                    sku=row.variant.sku,
                    product_key=row.product_key,
                    needs_review=row.needs_review,
                    confidence=row.confidence,
                    data=row.model_dump(mode="json", exclude={"issues"}),
                    issues=[issue.model_dump(exclude_none=True) for issue in row.issues],
                )
            )

        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"✅ Staged import job {job.id}: source={job.source_type.value}, rows={len(rows)}")
        return job

    def get_job(self, job_id: Union[str, UUID]) -> ImportJob:
        uuid = _as_uuid(job_id)
        job = None
        if uuid is not None:
            job = self.db.query(ImportJob).filter(ImportJob.id == uuid).first()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def latest_committed_job(self) -> ImportJob:
        job = (
            self.db.query(ImportJob)
            .filter(ImportJob.status == JobStatus.COMMITTED)
            .order_by(ImportJob.committed_at.desc(), ImportJob.created_at.desc())
            .first()
        )
        if job is None:
            raise JobNotFoundError()
        return job

    def ready_rows(self, job: ImportJob) -> list[ImportRow]:
        return (
            self.db.query(ImportRow)
            .filter(ImportRow.job_id == job.id, ImportRow.status == RowStatus.READY)
            .order_by(ImportRow.position, ImportRow.id)
            .all()
        )

    @staticmethod
    def load_row(record: ImportRow) -> CanonicalRow:
        """Rebuild the canonical row from its stored JSON."""
        return CanonicalRow.model_validate({**record.data, "issues": record.issues or []})

    def bulk_update_row_status(self, row_ids: list[int], status: RowStatus) -> None:
        if not row_ids:
            return
        self.db.query(ImportRow).filter(ImportRow.id.in_(row_ids)).update(
            {ImportRow.status: status}, synchronize_session="fetch"
        )
        self.db.flush()

    def transition_job(
        self,
        job: ImportJob,
        from_status: JobStatus,
        to_status: JobStatus,
        **values: Any,
    ) -> bool:
        """
        Move a job between statuses with a conditional UPDATE.

        The write only lands when the stored status is still from_status, so
        of two overlapping requests at most one wins. Extra column values are
        written in the same statement. Returns whether the job moved.
        """
        self.db.flush()
        moved = (
            self.db.query(ImportJob)
            .filter(ImportJob.id == job.id, ImportJob.status == from_status)
            .update({"status": to_status, **values}, synchronize_session=False)
        )
        if moved != 1:
            logger.warning(
                f"⚠️ Import job {job.id} is no longer {from_status.value}, "
                f"not moving it to {to_status.value}"
            )
            return False
        self.db.refresh(job)
        return True

    def update_job_totals_and_report(
        self,
        job: ImportJob,
        totals: dict[str, Any],
        report: dict[str, Any],
        mapping: Optional[dict[str, Any]] = None,
        status: Optional[JobStatus] = None,
        **values: Any,
    ) -> bool:
        """
        Store a job's totals and report.

        With status, the write also moves the job out of STAGED and only
        lands if the job is still STAGED. Returns whether it landed.
        """
        values = {"totals": totals, "report": report, **values}
        if mapping is not None:
            values["mapping"] = mapping
        if status is not None:
            return self.transition_job(job, JobStatus.STAGED, status, **values)
        for key, value in values.items():
            setattr(job, key, value)
        self.db.flush()
        return True

    def mark_failed(self, job_id: Union[str, UUID], note: str) -> bool:
        """Move a STAGED job to FAILED and record the failure note in its report."""
        job = self.get_job(job_id)
        failed_at = utcnow()
        moved = self.transition_job(
            job,
            JobStatus.STAGED,
            JobStatus.FAILED,
            failed_at=failed_at,
            error_message=note,
            report={**(job.report or {}), "failure": {"message": note, "failed_at": failed_at.isoformat()}},
        )
        if moved:
            logger.error(f"❌ Import job {job.id} marked FAILED: {note}")
        return moved
