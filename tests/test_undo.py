"""Tests for undoing committed imports."""
from decimal import Decimal

import pytest

from catalog_import.exceptions import JobNotFoundError, UndoUnavailableError
from catalog_import.models import Category, JobStatus, Product, Variant
from catalog_import.services.commit import CommitEngine
from catalog_import.services.undo import undo_import

CATALOG = (
    "Category,Product,SKU,Price\n"
    "Pipes,Pipe PPR DN20,P-20,120\n"
    "Pipes,Pipe PPR DN25,P-25,150\n"
    "Fittings,Coupling PPR 20,C-20,45\n"
)


def commit(db, job):
    return CommitEngine(db).commit(job.id, "retail", job.checksum)


def active_count(db, model):
    return db.query(model).filter(model.is_active == True).count()  # noqa: E712


def test_undo_deactivates_created_entities(db, stage_csv):
    job = stage_csv(CATALOG)
    commit(db, job)

    result = undo_import(db, job.id)

    assert result.job_id == job.id
    assert result.reverted == {"variants": 3, "products": 2, "categories": 2}
    assert active_count(db, Variant) == 0
    assert active_count(db, Product) == 0
    assert active_count(db, Category) == 0
    assert db.query(Variant).count() == 3

    db.refresh(job)
    assert job.status == JobStatus.UNDONE
    assert job.undone_at is not None
    assert job.report["reverted"]["variants"] == 3


def test_undo_defaults_to_latest_committed_job(db, stage_csv):
    first = stage_csv(CATALOG)
    commit(db, first)
    second = stage_csv(CATALOG + "Fittings,Elbow PPR 20,E-20,30\n")
    commit(db, second)

    result = undo_import(db)

    assert result.job_id == second.id
    assert result.reverted == {"variants": 1, "products": 1, "categories": 0}
    assert active_count(db, Variant) == 3


def test_undo_keeps_updates(db, stage_csv):
    commit(db, stage_csv(CATALOG))
    second = stage_csv(CATALOG.replace("P-20,120", "P-20,130") + "Pipes,Pipe PPR DN32,P-32,180\n")
    commit(db, second)

    result = undo_import(db, second.id)

    assert result.reverted == {"variants": 1, "products": 0, "categories": 0}
    updated = db.query(Variant).filter(Variant.sku == "P-20").one()
    assert updated.is_active
    assert updated.price == Decimal("130")
    assert not db.query(Variant).filter(Variant.sku == "P-32").one().is_active


def test_undo_twice_is_rejected(db, stage_csv):
    job = stage_csv(CATALOG)
    commit(db, job)
    undo_import(db, job.id)

    with pytest.raises(UndoUnavailableError) as exc:
        undo_import(db, job.id)

    assert exc.value.code == "IMPORT_NOT_COMMITTED"
    assert exc.value.status_code == 409


def test_undo_of_staged_job_is_rejected(db, stage_csv):
    job = stage_csv(CATALOG)

    with pytest.raises(UndoUnavailableError) as exc:
        undo_import(db, job.id)

    assert exc.value.code == "IMPORT_NOT_COMMITTED"


def test_update_only_commit_cannot_be_undone(db, stage_csv):
    commit(db, stage_csv(CATALOG))
    second = stage_csv(CATALOG.replace("P-20,120", "P-20,130"))
    commit(db, second)

    with pytest.raises(UndoUnavailableError) as exc:
        undo_import(db, second.id)

    assert exc.value.code == "IMPORT_UNDO_UNAVAILABLE"
    db.refresh(second)
    assert second.status == JobStatus.COMMITTED


def test_undo_without_committed_jobs(db):
    with pytest.raises(JobNotFoundError):
        undo_import(db)
