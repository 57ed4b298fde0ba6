"""
Fuzzy product resolution.

Maps a row's base product name onto existing catalog products so re-imports
update products instead of duplicating them. When two candidates score
almost equally the match is ambiguous and no product is chosen.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from catalog_import.config import get_settings
from catalog_import.models.catalog import Product, Variant
from catalog_import.services.normalize import normalize_whitespace
from catalog_import.services.variant import normalize_text, tokenize_name

VARIANT_BONUS = 0.2
CONTAINMENT_SCORE = 0.75
MATCH_ATTRIBUTES = ("dn", "diameter_mm", "length_m", "thread", "size")


@dataclass
class ProductMatch:
    product: Product
    score: float
    variant: Optional[Variant] = None


@dataclass
class Resolution:
    matches: list[ProductMatch] = field(default_factory=list)
    eligible: list[ProductMatch] = field(default_factory=list)
    best: Optional[ProductMatch] = None
    ambiguous: bool = False

    @property
    def potential_duplicate(self) -> bool:
        """Several products clear the threshold but one clearly wins."""
        return not self.ambiguous and len(self.eligible) > 1


def _normalize_label(value: str) -> str:
    text = normalize_whitespace(value).replace("•", " ").replace("·", " ")
    for char in "×хХ":
        text = text.replace(char, "x")
    return normalize_whitespace(text).lower()


def _attribute_value(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return normalize_whitespace(value).lower()
    return None


def _same_attribute(left: Any, right: Any) -> bool:
    left, right = _attribute_value(left), _attribute_value(right)
    if left is None or right is None or type(left) is not type(right):
        return False
    if isinstance(left, float):
        return abs(left - right) < 0.05
    return left == right


def _attributes_match(row_attributes: Optional[dict], variant_attributes: Optional[dict]) -> bool:
    if not row_attributes or not variant_attributes:
        return False
    keys = [key for key in MATCH_ATTRIBUTES if row_attributes.get(key) is not None]
    if not keys:
        return False
    return all(_same_attribute(row_attributes[key], variant_attributes.get(key)) for key in keys)


def find_variant_match(
    product: Product, label: Optional[str] = None, attributes: Optional[dict] = None
) -> Optional[Variant]:
    """Find a variant of product with the same label or the same size attributes."""
    row_label = _normalize_label(label) if label else ""
    for variant in product.variants:
        if row_label and variant.label and _normalize_label(variant.label) == row_label:
            return variant
        if _attributes_match(attributes, variant.attributes):
            return variant
    return None


def _jaccard(left: list[str], right: list[str]) -> float:
    if not left or not right:
        return 0.0
    left_set, right_set = set(left), set(right)
    return len(left_set & right_set) / len(left_set | right_set)


def score_name_similarity(left: str, right: str) -> float:
    score = _jaccard(tokenize_name(left), tokenize_name(right))
    normalized_left = normalize_text(left)
    normalized_right = normalize_text(right)
    if normalized_left and normalized_right:
        if normalized_left in normalized_right or normalized_right in normalized_left:
            score = max(score, CONTAINMENT_SCORE)
    return score


def score_product(
    product: Product,
    base_name: str,
    label: Optional[str] = None,
    attributes: Optional[dict] = None,
) -> ProductMatch:
    variant = find_variant_match(product, label, attributes)
    score = score_name_similarity(base_name, product.name or "")
    if variant is not None:
        score += VARIANT_BONUS
    return ProductMatch(product=product, score=max(0.0, min(1.0, score)), variant=variant)


def rank_products(
    candidates: Iterable[Product],
    base_name: str,
    label: Optional[str] = None,
    attributes: Optional[dict] = None,
) -> list[ProductMatch]:
    """Score candidates, drop zero scores, best first (stable on ties)."""
    matches = [score_product(product, base_name, label, attributes) for product in candidates]
    matches = [match for match in matches if match.score > 0]
    matches.sort(key=lambda match: match.score, reverse=True)
    return matches


def resolve(
    candidates: Iterable[Product],
    target_base_name: str,
    *,
    category_id: Optional[int] = None,
    label: Optional[str] = None,
    attributes: Optional[dict] = None,
    threshold: Optional[float] = None,
    ambiguous_gap: Optional[float] = None,
) -> Resolution:
    """
    Resolve a base product name against candidate products.

    Args:
        candidates: Existing products to consider
        target_base_name: Base name of the incoming row group
        category_id: Restrict candidates to this category
        label: Variant label of the incoming row
        attributes: Variant attributes of the incoming row
        threshold: Minimum score for a match to be eligible
        ambiguous_gap: Top-two eligible scores closer than this are ambiguous

    Returns:
        Resolution with all matches, eligible matches, the best match and
        the ambiguity flag
    """
    settings = get_settings()
    if threshold is None:
        threshold = settings.match_threshold
    if ambiguous_gap is None:
        ambiguous_gap = settings.ambiguous_gap

    if category_id is not None:
        candidates = [product for product in candidates if product.category_id == category_id]

    matches = rank_products(candidates, target_base_name, label, attributes)
    eligible = [match for match in matches if match.score >= threshold]
    best = eligible[0] if eligible else None
    ambiguous = len(eligible) > 1 and abs(eligible[0].score - eligible[1].score) < ambiguous_gap

    return Resolution(
        matches=matches,
        eligible=eligible,
        best=None if ambiguous else best,
        ambiguous=ambiguous,
    )
