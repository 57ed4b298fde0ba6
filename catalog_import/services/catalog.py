"""Catalog read/write interface used by the commit engine, undo and the products API."""
import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from catalog_import.models.catalog import Category, Product, Variant
from catalog_import.schemas.rows import ImageRef
from catalog_import.services.normalize import fold, normalize_sku, normalize_whitespace, slugify
from catalog_import.services.parsers.spreadsheet import estimate_image_quality
from catalog_import.services.resolver import score_name_similarity

logger = logging.getLogger(__name__)

IMAGE_UPGRADE_MARGIN = 0.05
RENAME_THRESHOLD = 0.82


def should_rename(current: str, incoming: str, threshold: float = RENAME_THRESHOLD) -> bool:
    """A product takes the incoming name only when it is a close respelling of the current one."""
    current = normalize_whitespace(current).lower()
    incoming = normalize_whitespace(incoming).lower()
    if not incoming:
        return False
    if not current:
        return True
    if current == incoming:
        return False
    return score_name_similarity(current, incoming) >= threshold


class CatalogRepository:
    """
    Catalog access scoped to one session.

    Writes only flush; committing is the caller's job so a whole import
    lands (or rolls back) as one transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self._categories: dict[str, Category] = {}
        self._category_products: dict[int, list[Product]] = {}

    # Categories

    def find_category(self, name: str) -> Optional[Category]:
        """Match by slug first, then by case-insensitive name."""
        key = fold(name)
        if key in self._categories:
            return self._categories[key]

        slug = slugify(name)
        category = None
        if slug:
            category = self.db.query(Category).filter(Category.slug == slug).first()
        if category is None:
            category = (
                self.db.query(Category)
                .filter(func.lower(Category.name) == name.strip().lower())
                .first()
            )
        if category is not None:
            self._categories[key] = category
        return category

    def create_category(self, name: str) -> Category:
        max_order = self.db.query(func.max(Category.sort_order)).scalar() or 0
        category = Category(
            name=name,
            slug=self.unique_slug(Category, slugify(name)),
            sort_order=max_order + 1,
            is_active=True,
        )
        self.db.add(category)
        self.db.flush()
        self._categories[fold(name)] = category
        self._category_products[category.id] = []
        logger.info(f"📁 Created category {category.id}: {name}")
        return category

    def ensure_category(self, name: str) -> tuple[Category, bool]:
        """Return (category, created)."""
        category = self.find_category(name)
        if category is not None:
            if not category.is_active:
                category.is_active = True
            return category, False
        return self.create_category(name), True

    # Products

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(Product.id == product_id).first()

    def find_product_by_slug(self, slug: str) -> Optional[Product]:
        if not slug:
            return None
        return self.db.query(Product).filter(Product.slug == slug).first()

    def products_in_category(self, category_id: int) -> list[Product]:
        if category_id not in self._category_products:
            self._category_products[category_id] = (
                self.db.query(Product)
                .options(selectinload(Product.variants))
                .filter(Product.category_id == category_id)
                .order_by(Product.id)
                .all()
            )
        return self._category_products[category_id]

    def create_product(
        self,
        category: Category,
        name: str,
        slug: str,
        description: Optional[str] = None,
        image: Optional[ImageRef] = None,
    ) -> Product:
        siblings = self.products_in_category(category.id)
        max_order = (
            self.db.query(func.max(Product.sort_order))
            .filter(Product.category_id == category.id)
            .scalar()
            or 0
        )
        product = Product(
            category_id=category.id,
            name=name,
            slug=self.unique_slug(Product, slug or slugify(f"{category.name}-{name}")),
            description=description,
            image_url=image.url if image else None,
            image_source=image.source if image else None,
            sort_order=max_order + 1,
            is_active=True,
        )
        self.db.add(product)
        self.db.flush()
        siblings.append(product)
        logger.info(f"📦 Created product {product.id}: {name}")
        return product

    def update_product(
        self,
        product: Product,
        name: Optional[str] = None,
        description: Optional[str] = None,
        image: Optional[ImageRef] = None,
        rename_threshold: float = RENAME_THRESHOLD,
    ) -> None:
        """Refresh name, description and image; the image only changes when clearly better."""
        if name and should_rename(product.name or "", name, rename_threshold):
            logger.info(f"✏️ Renamed product {product.id}: {product.name!r} -> {name!r}")
            product.name = name
        if description:
            product.description = description
        if image and self._is_better_image(product.image_url, image):
            product.image_url = image.url
            product.image_source = image.source
        if not product.is_active:
            product.is_active = True

    @staticmethod
    def _is_better_image(current_url: Optional[str], image: ImageRef) -> bool:
        if not current_url:
            return True
        incoming = image.quality if image.quality is not None else estimate_image_quality(image.url)
        return incoming > estimate_image_quality(current_url) + IMAGE_UPGRADE_MARGIN

    # Variants

    def find_variant_by_sku(self, sku: str) -> Optional[Variant]:
        sku = normalize_sku(sku)
        if not sku:
            return None
        return self.db.query(Variant).filter(Variant.sku == sku).first()

    def create_variant(
        self,
        product: Product,
        sku: str,
        price: Decimal,
        price_retail: Optional[Decimal] = None,
        price_wholesale: Optional[Decimal] = None,
        label: Optional[str] = None,
        attributes: Optional[dict[str, Any]] = None,
    ) -> Variant:
        variant = Variant(
            product=product,
            sku=normalize_sku(sku),
            label=label,
            price=price,
            price_retail=price_retail,
            price_wholesale=price_wholesale,
            attributes=attributes or {},
            is_active=True,
        )
        self.db.add(variant)
        self.db.flush()
        return variant

    # Undo

    def deactivate(self, model, ids: list[int]) -> int:
        """Soft-deactivate rows of model by id; returns the number touched."""
        if not ids:
            return 0
        return (
            self.db.query(model)
            .filter(model.id.in_(ids))
            .update({model.is_active: False}, synchronize_session="fetch")
        )

    def deactivate_variants(self, ids: list[int]) -> int:
        return self.deactivate(Variant, ids)

    def deactivate_products(self, ids: list[int]) -> int:
        return self.deactivate(Product, ids)

    def deactivate_categories(self, ids: list[int]) -> int:
        return self.deactivate(Category, ids)

    # Listing

    def list_products(
        self,
        skip: int = 0,
        limit: int = 20,
        category_id: Optional[int] = None,
        active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> tuple[int, list[Product]]:
        query = self.db.query(Product)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if active is not None:
            query = query.filter(Product.is_active == active)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(Product.name).like(pattern),
                    Product.variants.any(func.lower(Variant.sku).like(pattern)),
                )
            )

        total = query.count()
        products = (
            query.options(selectinload(Product.variants))
            .order_by(Product.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return total, products

    # Helpers

    def unique_slug(self, model, base: str, exclude_id: Optional[int] = None) -> Optional[str]:
        """base, base-2, base-3, ... whichever is free."""
        if not base:
            return None
        slug = base
        suffix = 2
        while True:
            existing = self.db.query(model.id).filter(model.slug == slug).first()
            if existing is None or existing[0] == exclude_id:
                return slug
            slug = f"{base}-{suffix}"
            suffix += 1
