"""Catalog models: categories, products and their variants."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from catalog_import.database import Base

PRICE = Numeric(14, 4)


class Category(Base):
    """Catalog category."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(500), nullable=False)
    slug = Column(String(500), nullable=True, unique=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    products = relationship("Product", back_populates="category")

    __table_args__ = (Index("idx_categories_name_lower", func.lower(name)),)

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"


class Product(Base):
    """Catalog product; variants carry SKUs and prices."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    slug = Column(String(500), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(2048), nullable=True)
    image_source = Column(String(100), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    category = relationship("Category", back_populates="products")
    variants = relationship(
        "Variant", back_populates="product", order_by="Variant.id"
    )

    def __repr__(self):
        return f"<Product(id={self.id}, slug='{self.slug}', name='{self.name}')>"


class Variant(Base):
    """Sellable variant of a product."""

    __tablename__ = "variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String(255), nullable=False, unique=True)
    label = Column(String(500), nullable=True)
    price = Column(PRICE, nullable=False)
    price_retail = Column(PRICE, nullable=True)
    price_wholesale = Column(PRICE, nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<Variant(id={self.id}, sku='{self.sku}', price={self.price})>"
