"""
Commit engine: applies a staged import job to the catalog.

A commit is one unit of work. Catalog writes, row status changes and the
job's transition to COMMITTED are flushed into a single session transaction
and committed together. The transition is a conditional UPDATE from STAGED,
so a request that loses a race to another commit rolls back and is rejected.
Any other exception rolls everything back and the job is marked FAILED in a
separate transaction.
"""
import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from catalog_import.config import Settings, get_settings
from catalog_import.exceptions import CommitFailedError, CommitPreconditionError
from catalog_import.models.catalog import Product, Variant
from catalog_import.models.import_job import ImportJob, ImportRow, JobStatus, RowStatus, SourceType
from catalog_import.schemas.imports import (
    CommitDetail,
    CommitOptions,
    CommitReport,
    CreatedEntities,
    GroupOverride,
    PriceMode,
)
from catalog_import.schemas.rows import CanonicalRow
from catalog_import.services.catalog import CatalogRepository
from catalog_import.services.normalize import (
    build_product_key,
    generate_variant_sku,
    is_generated_sku,
    normalize_sku,
)
from catalog_import.services.parsers.spreadsheet import (
    resolve_retail_price,
    resolve_wholesale_price,
)
from catalog_import.services.resolver import find_variant_match, resolve
from catalog_import.services.staging import StagingStore, utcnow
from catalog_import.services.variant import merge_attributes

logger = logging.getLogger(__name__)

REJECTED_STATUSES = {
    JobStatus.COMMITTED: ("IMPORT_ALREADY_COMMITTED", "Import job is already committed"),
    JobStatus.UNDONE: ("IMPORT_ALREADY_UNDONE", "Import job was undone"),
    JobStatus.FAILED: ("IMPORT_FAILED", "Import job failed and cannot be committed"),
}


def selling_price(row: CanonicalRow, price_mode: PriceMode) -> Decimal:
    """Wholesale price in wholesale mode when the row has one, else retail."""
    retail = row.variant.price_retail if row.variant.price_retail is not None else row.variant.price
    if price_mode == PriceMode.WHOLESALE and row.variant.price_wholesale is not None:
        return row.variant.price_wholesale
    return retail


def apply_override(row: CanonicalRow, override: Optional[GroupOverride]) -> CanonicalRow:
    """Apply a reviewer override; a category rename recomputes the product key."""
    if override is None:
        return row
    if override.category:
        row.category = override.category
        row.product_key = build_product_key(override.category, row.product.base)
    if override.product_id is not None:
        row.target_product_id = override.product_id
    label = override.labels.get(row.fingerprint) or override.labels.get(row.row_key)
    if label:
        row.variant.label = label
    return row


class CommitEngine:
    """
    Apply staged rows to the catalog.

    Args:
        db: Database session; the engine commits or rolls it back itself
        settings: Resolver thresholds; defaults to the cached settings
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.store = StagingStore(db)

    def commit(
        self,
        job_id: Union[str, UUID],
        price_mode: Union[PriceMode, str],
        checksum: str,
        allow_needs_review: bool = False,
        overrides: Optional[dict[str, GroupOverride]] = None,
        commit_options: Optional[CommitOptions] = None,
    ) -> CommitReport:
        job = self.store.get_job(job_id)
        self._check_preconditions(job, checksum, allow_needs_review)

        price_mode = PriceMode(price_mode)
        options = commit_options or CommitOptions()
        overrides = overrides or {}
        job_key = str(job.id)

        logger.info(f"🚀 Committing import job {job_key}: price_mode={price_mode.value}")
        try:
            report = self._apply(job, price_mode, overrides, options)
            self.db.commit()
        except CommitPreconditionError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception(f"❌ Commit of import job {job_key} failed, rolled back")
            # Exception text can carry SQL and parameters; it stays in the log.
            self.store.mark_failed(job_key, f"Commit failed: {type(e).__name__}")
            self.db.commit()
            raise CommitFailedError(job_key) from e

        logger.info(
            f"🏁 Import job {job_key} committed: created={report.created}, "
            f"updated={report.updated}, skipped={report.skipped}, failed={report.failed}"
        )
        return report

    def _check_preconditions(self, job: ImportJob, checksum: str, allow_needs_review: bool) -> None:
        if job.status in REJECTED_STATUSES:
            code, message = REJECTED_STATUSES[job.status]
            raise CommitPreconditionError(code, message, {"id": str(job.id), "status": job.status.value})

        if (checksum or "").strip().lower() != job.checksum.lower():
            raise CommitPreconditionError(
                "IMPORT_CHECKSUM_MISMATCH",
                "Checksum does not match the staged upload",
                {"id": str(job.id)},
            )

        if not allow_needs_review:
            flagged = [row.row_key for row in self.store.ready_rows(job) if row.needs_review]
            if flagged:
                raise CommitPreconditionError(
                    "IMPORT_NEEDS_REVIEW",
                    f"{len(flagged)} rows need review",
                    {"id": str(job.id), "rows": flagged[:50]},
                )

    def _apply(
        self,
        job: ImportJob,
        price_mode: PriceMode,
        overrides: dict[str, GroupOverride],
        options: CommitOptions,
    ) -> CommitReport:
        records = self.store.ready_rows(job)
        repo = CatalogRepository(self.db)
        report = CommitReport(job_id=job.id)
        outcomes: dict[int, tuple[RowStatus, Optional[str]]] = {}
        groups: "OrderedDict[str, list[tuple[ImportRow, CanonicalRow]]]" = OrderedDict()

        for record in records:
            row = apply_override(self.store.load_row(record), overrides.get(record.product_key))

            if job.source_type == SourceType.SPREADSHEET and row.spreadsheet is not None:
                retail = resolve_retail_price(row.spreadsheet, options.price_strategy)
                row.variant.price = retail
                row.variant.price_retail = retail
                row.variant.price_wholesale = resolve_wholesale_price(
                    row.spreadsheet, options.wholesale_location
                )
                if options.skip_price_zero and retail <= 0:
                    outcomes[record.id] = (RowStatus.SKIPPED, "Price is zero")
                    continue
                if options.skip_missing_image and row.image is None:
                    outcomes[record.id] = (RowStatus.SKIPPED, "Image is missing")
                    continue

            groups.setdefault(row.product_key, []).append((record, row))

        for product_key, members in groups.items():
            self._commit_group(repo, product_key, members, price_mode, outcomes, report.created_entities)

        committed_at = utcnow()
        by_status: dict[RowStatus, list[int]] = {}
        for record in records:
            status, message = outcomes[record.id]
            by_status.setdefault(status, []).append(record.id)
            report.details.append(
                CommitDetail(
                    row_id=record.id,
                    row_key=record.row_key,
                    sku=record.sku,
                    status=status.value,
                    message=message,
                )
            )
        report.created = len(by_status.get(RowStatus.CREATED, []))
        report.updated = len(by_status.get(RowStatus.UPDATED, []))
        report.skipped = len(by_status.get(RowStatus.SKIPPED, []))
        report.failed = len(by_status.get(RowStatus.FAILED, []))

        for status, row_ids in by_status.items():
            self.store.bulk_update_row_status(row_ids, status)

        summary = {
            "created": report.created,
            "updated": report.updated,
            "skipped": report.skipped,
            "failed": report.failed,
        }
        moved = self.store.update_job_totals_and_report(
            job,
            totals={**(job.totals or {}), "committed": {**summary, "rows": len(records)}},
            report={
                "details": [detail.model_dump() for detail in report.details],
                "summary": summary,
                "created_entities": report.created_entities.model_dump(),
                "committed_at": committed_at.isoformat(),
                "price_mode": price_mode.value,
                "commit_options": options.model_dump(mode="json"),
            },
            mapping={
                **(job.mapping or {}),
                "overrides": {key: value.model_dump() for key, value in overrides.items()},
                "commit_options": options.model_dump(mode="json"),
            },
            status=JobStatus.COMMITTED,
            committed_at=committed_at,
        )
        if not moved:
            code, message = REJECTED_STATUSES[JobStatus.COMMITTED]
            raise CommitPreconditionError(code, message, {"id": str(job.id)})
        return report

    def _commit_group(
        self,
        repo: CatalogRepository,
        product_key: str,
        members: list[tuple[ImportRow, CanonicalRow]],
        price_mode: PriceMode,
        outcomes: dict[int, tuple[RowStatus, Optional[str]]],
        created: CreatedEntities,
    ) -> None:
        first = members[0][1]
        target_id = next(
            (row.target_product_id for _, row in members if row.target_product_id is not None), None
        )

        product: Optional[Product] = None
        if target_id is not None:
            product = repo.get_product(target_id)
            if product is None:
                logger.warning(f"⚠️ Override target product {target_id} not found for {product_key}")
                for record, _ in members:
                    outcomes[record.id] = (RowStatus.FAILED, f"Target product {target_id} not found")
                return
            repo.update_product(
                product,
                name=first.product.base,
                description=first.product.description,
                image=first.image,
                rename_threshold=self.settings.match_threshold,
            )
        else:
            category, category_created = repo.ensure_category(first.category)
            if category_created:
                created.categories.append(category.id)

            product = repo.find_product_by_slug(product_key)
            if product is None:
                resolution = resolve(
                    repo.products_in_category(category.id),
                    first.product.base,
                    category_id=category.id,
                    label=first.variant.label,
                    attributes=first.variant.attributes,
                    threshold=self.settings.match_threshold,
                    ambiguous_gap=self.settings.ambiguous_gap,
                )
                if resolution.ambiguous:
                    logger.warning(f"⚠️ Ambiguous product match for {product_key}, skipping group")
                    for record, _ in members:
                        outcomes[record.id] = (RowStatus.SKIPPED, "Ambiguous product match")
                    return
                if resolution.best is not None:
                    product = resolution.best.product

            if product is None:
                product = repo.create_product(
                    category,
                    first.product.base,
                    product_key,
                    first.product.description,
                    first.image,
                )
                created.products.append(product.id)
            else:
                repo.update_product(
                    product,
                    name=first.product.base,
                    description=first.product.description,
                    image=first.image,
                    rename_threshold=self.settings.match_threshold,
                )

        for record, row in members:
            variant = self._find_variant(repo, product, product_key, row)
            if variant is not None:
                self._update_variant(repo, variant, row, price_mode)
                outcomes[record.id] = (RowStatus.UPDATED, None)
                continue

            variant = repo.create_variant(
                product,
                sku=self._variant_sku(product_key, row),
                price=selling_price(row, price_mode),
                price_retail=row.variant.price_retail if row.variant.price_retail is not None else row.variant.price,
                price_wholesale=row.variant.price_wholesale,
                label=row.variant.label,
                attributes=row.variant.attributes,
            )
            created.variants.append(variant.id)
            outcomes[record.id] = (RowStatus.CREATED, None)

    @staticmethod
    def _variant_sku(product_key: str, row: CanonicalRow) -> str:
        if row.variant.sku_generated or not row.variant.sku:
            return generate_variant_sku(product_key, row.variant.label or "", row.variant.attributes.get("unit") or "")
        return row.variant.sku

    def _find_variant(
        self, repo: CatalogRepository, product: Product, product_key: str, row: CanonicalRow
    ) -> Optional[Variant]:
        variant = repo.find_variant_by_sku(row.variant.sku)
        if variant is not None:
            return variant

        variant = find_variant_match(product, row.variant.label, row.variant.attributes)
        # A variant holding a different real SKU is a different variant.
        if variant is not None and (row.variant.sku_generated or is_generated_sku(variant.sku)):
            return variant

        if row.variant.sku_generated:
            return repo.find_variant_by_sku(self._variant_sku(product_key, row))
        return None

    @staticmethod
    def _update_variant(
        repo: CatalogRepository, variant: Variant, row: CanonicalRow, price_mode: PriceMode
    ) -> None:
        retail = row.variant.price_retail if row.variant.price_retail is not None else row.variant.price
        variant.price = selling_price(row, price_mode)
        variant.price_retail = retail
        if row.variant.price_wholesale is not None:
            variant.price_wholesale = row.variant.price_wholesale
        variant.attributes = merge_attributes(variant.attributes, row.variant.attributes)
        if row.variant.label:
            variant.label = row.variant.label
        variant.is_active = True

        incoming = normalize_sku(row.variant.sku)
        if (
            not row.variant.sku_generated
            and incoming
            and is_generated_sku(variant.sku)
            and repo.find_variant_by_sku(incoming) is None
        ):
            variant.sku = incoming
        repo.db.flush()
