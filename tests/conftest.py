"""Pytest configuration and fixtures."""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from catalog_import.database import Base, get_db
from catalog_import.main import app
from catalog_import.models import Category, Product, Variant
from catalog_import.services.normalize import checksum_bytes
from catalog_import.services.parsers import DelimitedTextParser
from catalog_import.services.staging import StagingStore


@pytest.fixture
def test_db():
    """Create a test database for testing."""
    # In-memory SQLite shared across threads (TestClient runs the app in a worker thread)
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db):
    def override_get_db():
        session = test_db()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(db):
    def factory(name="Pipes", slug=None, is_active=True):
        category = Category(name=name, slug=slug, is_active=is_active, sort_order=0)
        db.add(category)
        db.commit()
        return category

    return factory


@pytest.fixture
def make_product(db):
    def factory(category, name, slug=None, variants=()):
        product = Product(category_id=category.id, name=name, slug=slug, is_active=True)
        db.add(product)
        db.flush()
        for sku, label, price, attributes in variants:
            db.add(
                Variant(
                    product_id=product.id,
                    sku=sku,
                    label=label,
                    price=Decimal(str(price)),
                    price_retail=Decimal(str(price)),
                    attributes=attributes or {},
                    is_active=True,
                )
            )
        db.commit()
        db.refresh(product)
        return product

    return factory


@pytest.fixture
def stage_csv(db):
    """Parse delimited text and stage it; returns the job."""

    def factory(text, mapping=None):
        raw = text.encode("utf-8")
        result = DelimitedTextParser(mapping=mapping).parse(raw)
        return StagingStore(db).create_job(
            source_type="delimited",
            checksum=checksum_bytes(raw),
            rows=result.rows,
            warnings=result.warnings,
            errors=result.errors,
            mapping=result.mapping,
            filename="catalog.csv",
            file_size=len(raw),
        )

    return factory
