"""Tests for the PDF price-list parser (on extracted page text)."""
from decimal import Decimal

import pytest

from catalog_import.exceptions import UnreadableFileError
from catalog_import.services.parsers import DocumentParser
from catalog_import.services.parsers.document import (
    extract_price,
    extract_sku,
    is_category_heading,
    is_table_page,
    split_product_and_label,
)


def table_page(count, start=20):
    lines = ["ТРУБЫ"]
    for offset in range(count):
        lines.append(f"Pipe PPR DN{start + offset} AB{1000 + start + offset} {100 + offset}")
    return "\n".join(lines)


def test_every_document_row_needs_review():
    result = DocumentParser().parse_pages([table_page(10)])

    assert len(result.rows) == 10
    assert result.needs_review_count == 10


def test_table_rows_are_segmented():
    result = DocumentParser().parse_pages([table_page(2)])
    first = result.rows[0]

    assert first.row_key == "pdf-1-1"
    assert first.page == 1
    assert first.category == "ТРУБЫ"
    assert first.variant.sku == "AB1020"
    assert first.variant.price == Decimal("100")
    assert first.variant.label == "DN20"
    assert first.product.base == "Pipe PPR"
    assert first.confidence == 1.0
    assert first.issues == []


def test_category_heading_carries_across_pages():
    second_page = "Pipe PPR DN40 AB1040 140\nPipe PPR DN50 AB1050 150"

    result = DocumentParser().parse_pages([table_page(2), second_page])

    carried = result.rows[2]
    assert carried.row_key == "pdf-2-1"
    assert carried.position == 3
    assert carried.category == "ТРУБЫ"


def test_card_page_blocks():
    page = "ФИТИНГИ\n\nCoupling PPR 20\nAB2001\nPrice 45 сом\n\nElbow PPR 25\n90 сом\n"

    result = DocumentParser().parse_pages([page])

    assert len(result.rows) == 2
    coupling, elbow = result.rows
    assert coupling.category == "ФИТИНГИ"
    assert coupling.variant.sku == "AB2001"
    assert coupling.variant.price == Decimal("45")
    assert elbow.variant.price == Decimal("90")
    assert elbow.variant.sku_generated
    assert "SKU_GENERATED" in elbow.issue_codes()


def test_price_only_line_is_low_confidence_error():
    page = table_page(3) + "\n150"

    result = DocumentParser().parse_pages([page])

    row = result.rows[-1]
    assert {"LOW_CONFIDENCE", "NAME_MISSING"} <= row.issue_codes()
    assert row.has_errors


def test_sku_digits_are_not_read_as_a_price():
    table = "Кран шаровой AB1234 450\nКран шаровой AB1235"
    card = "Ball valve\nAB3001\n"

    priced, unpriced = DocumentParser().parse_pages([table]).rows
    (card_row,) = DocumentParser().parse_pages([card]).rows

    assert priced.variant.price == Decimal("450")
    assert unpriced.variant.sku == "AB1235"
    assert unpriced.variant.price_retail is None
    assert "PRICE_INVALID" in unpriced.issue_codes()
    assert card_row.variant.sku == "AB3001"
    assert "PRICE_INVALID" in card_row.issue_codes()


def test_empty_document():
    result = DocumentParser().parse_pages(["", "   "])

    assert result.rows == []
    assert [issue.code for issue in result.warnings] == ["EMPTY_DOCUMENT"]


def test_unreadable_pdf():
    with pytest.raises(UnreadableFileError):
        DocumentParser().parse(b"this is not a pdf")


def test_helpers():
    assert is_category_heading("ТРУБЫ И ФИТИНГИ")
    assert not is_category_heading("Трубы")
    assert not is_category_heading("DN 20")

    assert is_table_page(["a 1 2", "b", "c"])
    assert not is_table_page(["a 1", "b", "c"])
    assert not is_table_page([])

    assert split_product_and_label("Valve - brass") == ("Valve", "brass")
    assert split_product_and_label("Valve (brass)") == ("Valve", "brass")
    assert split_product_and_label("Valve") == ("Valve", "")

    assert extract_sku("item ab1234 here") == "AB1234"
    assert extract_sku("no code") == ""

    price, match = extract_price("DN20 costs 1 200 or 1250,50 сом")
    assert price == Decimal("1250.50")
    assert match is not None
    assert extract_price("none") == (None, None)
