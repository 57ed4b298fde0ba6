"""Product-target suggestions for the review screen."""
from typing import Optional

from sqlalchemy.orm import Session

from catalog_import.config import Settings, get_settings
from catalog_import.schemas.imports import ProductSuggestion, SuggestionResponse
from catalog_import.services.catalog import CatalogRepository
from catalog_import.services.normalize import normalize_whitespace
from catalog_import.services.resolver import resolve


def suggest_products(
    db: Session,
    category: str,
    base_name: str,
    settings: Optional[Settings] = None,
    label: Optional[str] = None,
    attributes: Optional[dict] = None,
) -> SuggestionResponse:
    """Rank existing products of a category as attach targets for a row group."""
    settings = settings or get_settings()
    category = normalize_whitespace(category)
    base_name = normalize_whitespace(base_name)
    if not category or not base_name:
        return SuggestionResponse()

    repo = CatalogRepository(db)
    found = repo.find_category(category)
    if found is None:
        return SuggestionResponse()

    resolution = resolve(
        repo.products_in_category(found.id),
        base_name,
        category_id=found.id,
        label=label,
        attributes=attributes,
        threshold=settings.match_threshold,
        ambiguous_gap=settings.ambiguous_gap,
    )
    items = [
        ProductSuggestion(
            id=match.product.id,
            name=match.product.name,
            slug=match.product.slug,
            score=round(match.score, 4),
            variant_match=match.variant.id if match.variant else None,
        )
        for match in resolution.matches
        if match.score >= settings.suggestion_min_score
    ][: settings.suggestion_limit]

    return SuggestionResponse(
        items=items,
        ambiguous=resolution.ambiguous,
        potential_duplicate=resolution.potential_duplicate,
    )
