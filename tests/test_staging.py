"""Tests for the staging store."""
import pytest

from catalog_import.exceptions import JobNotFoundError
from catalog_import.models import ImportRow, JobStatus, RowStatus, SourceType
from catalog_import.services.staging import StagingStore

CSV = (
    "Category,Product,SKU,Price\n"
    "Pipes,Pipe PPR DN20,P-20,120\n"
    "Pipes,Pipe PPR DN25,P-25,\n"
    "Fittings,Coupling,,45\n"
)


def test_create_job_persists_rows_and_totals(db, stage_csv):
    job = stage_csv(CSV)

    assert job.status == JobStatus.STAGED
    assert job.source_type == SourceType.DELIMITED
    assert len(job.checksum) == 64
    assert job.totals["parsed"] == {
        "rows": 3,
        "ready": 2,
        "errors": 1,
        "warnings": 1,
        "needs_review": 1,
    }
    assert [row.status for row in job.rows] == [RowStatus.READY, RowStatus.ERROR, RowStatus.READY]
    assert job.rows[1].issues[0]["code"] == "PRICE_INVALID"


def test_ready_rows_and_load_row(db, stage_csv):
    job = stage_csv(CSV)
    store = StagingStore(db)

    ready = store.ready_rows(job)

    assert [row.row_key for row in ready] == ["csv-2", "csv-4"]
    row = store.load_row(ready[1])
    assert row.variant.sku_generated
    assert "SKU_GENERATED" in row.issue_codes()


def test_get_job_not_found(db):
    store = StagingStore(db)

    with pytest.raises(JobNotFoundError):
        store.get_job("not-a-uuid")
    with pytest.raises(JobNotFoundError):
        store.get_job("00000000-0000-0000-0000-000000000000")


def test_latest_committed_job_requires_one(db, stage_csv):
    stage_csv(CSV)

    with pytest.raises(JobNotFoundError):
        StagingStore(db).latest_committed_job()


def test_bulk_update_and_mark_failed(db, stage_csv):
    job = stage_csv(CSV)
    store = StagingStore(db)
    row_ids = [row.id for row in store.ready_rows(job)]

    store.bulk_update_row_status(row_ids, RowStatus.SKIPPED)
    assert store.mark_failed(job.id, "boom") is True
    db.commit()

    db.refresh(job)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "boom"
    assert job.failed_at is not None
    assert job.report["failure"]["message"] == "boom"
    statuses = {row.status for row in db.query(ImportRow).filter(ImportRow.id.in_(row_ids))}
    assert statuses == {RowStatus.SKIPPED}


def test_status_transition_only_leaves_staged_once(db, stage_csv):
    job = stage_csv(CSV)
    store = StagingStore(db)

    first = store.update_job_totals_and_report(
        job, totals={"committed": 1}, report={"summary": "first"}, status=JobStatus.COMMITTED
    )
    second = store.update_job_totals_and_report(
        job, totals={"committed": 2}, report={"summary": "second"}, status=JobStatus.COMMITTED
    )
    failed = store.mark_failed(job.id, "late failure")
    db.commit()

    db.refresh(job)
    assert (first, second, failed) == (True, False, False)
    assert job.status == JobStatus.COMMITTED
    assert job.report == {"summary": "first"}
    assert job.error_message is None
