"""Catalog import API endpoints: parse, review, commit, undo."""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from catalog_import.api.deps import require_admin
from catalog_import.config import get_settings
from catalog_import.database import get_db
from catalog_import.exceptions import AppError, CommitFailedError, FileTooLargeError
from catalog_import.schemas.imports import (
    CommitReport,
    CommitRequest,
    ImportJobResponse,
    ParseResponse,
    SuggestionRequest,
    SuggestionResponse,
    UndoRequest,
    UndoResponse,
)
from catalog_import.schemas.rows import ColumnMapping
from catalog_import.services.audit import trigger_webhooks
from catalog_import.services.commit import CommitEngine
from catalog_import.services.normalize import checksum_bytes
from catalog_import.services.parsers import get_parser
from catalog_import.services.staging import StagingStore
from catalog_import.services.suggestions import suggest_products
from catalog_import.services.undo import undo_import

router = APIRouter(
    prefix="/api/imports",
    tags=["imports"],
    dependencies=[Depends(require_admin)],
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


async def read_upload(file: UploadFile, limit: int) -> bytes:
    """Read an upload in chunks, enforcing the size limit."""
    chunks = []
    size = 0
    content = await file.read(CHUNK_SIZE)
    while content:
        size += len(content)
        if size > limit:
            logger.warning(f"❌ File too large: {file.filename} exceeds {limit} bytes")
            raise FileTooLargeError(limit)
        chunks.append(content)
        content = await file.read(CHUNK_SIZE)
    return b"".join(chunks)


def parse_mapping(raw: Optional[str]) -> Optional[ColumnMapping]:
    if not raw:
        return None
    try:
        return ColumnMapping.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise AppError("INVALID_MAPPING", "Column mapping is not valid JSON", 400, {"reason": str(e)})


@router.post("/parse/{source_format}", response_model=ParseResponse)
async def parse_upload(
    source_format: str,
    file: UploadFile = File(...),
    mapping: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """
    Parse an upload and stage it as an import job.

    Formats: delimited (CSV/TSV), spreadsheet (XLSX), document (PDF).
    Malformed content becomes row issues; nothing touches the catalog.
    """
    logger.info(f"📁 Parsing upload: format={source_format}, filename={file.filename}")
    parser = get_parser(source_format, parse_mapping(mapping))

    raw = await read_upload(file, get_settings().max_upload_bytes)
    # Parsing and staging are blocking; keep them off the event loop.
    result = await run_in_threadpool(parser.parse, raw)
    checksum = checksum_bytes(raw)

    job = await run_in_threadpool(
        StagingStore(db).create_job,
        source_type=source_format,
        checksum=checksum,
        rows=result.rows,
        warnings=result.warnings,
        errors=result.errors,
        mapping=result.mapping if result.mapping is not None else {"columns": result.columns},
        filename=file.filename,
        file_size=len(raw),
    )

    await trigger_webhooks(
        "import.parsed",
        {"id": str(job.id), "source_type": source_format, "totals": job.totals},
        db,
    )

    return ParseResponse(
        job_id=job.id,
        checksum=checksum,
        source_type=source_format,
        rows=result.rows,
        warnings=result.warnings,
        errors=result.errors,
        columns=result.columns,
        mapping=result.mapping,
        needs_review_count=result.needs_review_count,
        ready_rows_count=result.ready_rows_count,
        total_rows=len(result.rows),
    )


@router.post("/undo", response_model=UndoResponse)
async def undo(request: Optional[UndoRequest] = None, db: Session = Depends(get_db)):
    """
    Undo a committed import (the latest one when no job_id is given).

    Only entities created by the commit are deactivated.
    """
    result = await run_in_threadpool(undo_import, db, request.job_id if request else None)
    await trigger_webhooks(
        "import.undone",
        {"id": str(result.job_id), "reverted": result.reverted},
        db,
    )
    return UndoResponse(job_id=result.job_id, status="UNDONE", reverted=result.reverted)


@router.post("/product-suggestions", response_model=SuggestionResponse)
def product_suggestions(request: SuggestionRequest, db: Session = Depends(get_db)):
    """Rank existing products of a category as override targets."""
    return suggest_products(
        db,
        request.category,
        request.base_name,
        label=request.label,
        attributes=request.attributes,
    )


@router.get("/{job_id}", response_model=ImportJobResponse)
def get_import_job(job_id: str, db: Session = Depends(get_db)):
    """Get a staged import job with its rows."""
    return StagingStore(db).get_job(job_id)


@router.post("/{job_id}/commit", response_model=CommitReport)
async def commit_import(job_id: str, request: CommitRequest, db: Session = Depends(get_db)):
    """
    Apply a staged job to the catalog in one transaction.

    The checksum returned by the parse call must be presented; rows flagged
    for review block the commit unless allow_needs_review is set.
    """
    engine = CommitEngine(db)
    try:
        report = await run_in_threadpool(
            engine.commit,
            job_id,
            price_mode=request.price_mode,
            checksum=request.checksum,
            allow_needs_review=request.allow_needs_review,
            overrides=request.overrides,
            commit_options=request.commit_options,
        )
    except CommitFailedError as e:
        await trigger_webhooks("import.commit_failed", {"id": e.details.get("id")}, db)
        raise

    await trigger_webhooks(
        "import.committed",
        {
            "id": str(report.job_id),
            "created": report.created,
            "updated": report.updated,
            "skipped": report.skipped,
            "failed": report.failed,
        },
        db,
    )
    return report
