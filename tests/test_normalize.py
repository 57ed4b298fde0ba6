"""Tests for string normalization and variant extraction."""
from decimal import Decimal

import pytest

from catalog_import.services.normalize import (
    build_product_key,
    coerce_attribute_value,
    generate_stable_sku,
    generate_variant_sku,
    is_generated_sku,
    normalize_sku,
    normalize_whitespace,
    parse_price,
    slugify,
)
from catalog_import.services.variant import (
    build_row_fingerprint,
    extract_variant_attributes,
    merge_attributes,
    tokenize_name,
)


def test_normalize_whitespace_replaces_special_spaces():
    assert normalize_whitespace("  Pipe PPR   20  ") == "Pipe PPR 20"
    assert normalize_whitespace("") == ""
    assert normalize_whitespace(None) == ""


def test_slugify_transliterates_cyrillic():
    assert slugify("Трубы ППР") == "truby-ppr"
    assert slugify("  Hello,   World!! ") == "hello-world"
    assert slugify("") == ""


def test_product_key_equal_for_equivalent_names():
    assert build_product_key("Трубы", "Труба  ППР") == build_product_key(" трубы ", "труба ППР")
    assert build_product_key("Pipes", "Pipe") != build_product_key("Fittings", "Pipe")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 250,50 сом", Decimal("1250.50")),
        ("1.250,50", Decimal("1250.50")),
        ("1,250.50", Decimal("1250.50")),
        ("12,5", Decimal("12.5")),
        ("1,250", Decimal("1250")),
        ("99.999", Decimal("99.999")),
        (150, Decimal("150")),
        (19.9, Decimal("19.9")),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "n/a", "сом", True])
def test_parse_price_missing(raw):
    assert parse_price(raw) is None


def test_coerce_attribute_value():
    assert coerce_attribute_value("12") == 12
    assert coerce_attribute_value("0,5") == 0.5
    assert coerce_attribute_value(" red ") == "red"
    assert coerce_attribute_value("") == ""


def test_sku_helpers():
    assert normalize_sku(" ab 12-3 ") == "AB12-3"

    stable = generate_stable_sku("Pipes", "Pipe", "DN20", Decimal("10"))
    assert stable == generate_stable_sku(" pipes ", "PIPE", "dn20", Decimal("10"))
    assert len(stable) == 64

    generated = generate_variant_sku("pipes-pipe", "DN20")
    assert generated.startswith("GEN-")
    assert is_generated_sku(generated)
    assert is_generated_sku(generated.lower())
    assert not is_generated_sku("AB1234")
    assert not is_generated_sku(None)


def test_extract_variant_attributes():
    extraction = extract_variant_attributes("Труба PPR DN20 4м белая")

    assert extraction.attributes["dn"] == 20.0
    assert extraction.attributes["length_m"] == 4.0
    assert extraction.attributes["color"] == "white"
    assert extraction.attributes["material"] == "ppr"
    assert extraction.label == "DN20 • 4m"
    assert "DN20" not in extraction.base_name
    assert extraction.base_name == "Труба PPR белая"


def test_extract_variant_attributes_size_and_thread():
    extraction = extract_variant_attributes('Уголок 1/2" 20х30')

    assert extraction.attributes["thread"] == '1/2"'
    assert extraction.attributes["size"] == "20x30"


def test_extract_variant_attributes_plain_name():
    extraction = extract_variant_attributes("Cement")

    assert extraction.base_name == "Cement"
    assert extraction.label == ""
    assert extraction.attributes == {}
    assert extraction.confidence == 0.3


def test_tokenize_maps_lookalikes():
    # Cyrillic "С" and "Р" typed instead of Latin letters compare equal
    assert tokenize_name("СР pipe") == tokenize_name("CP PIPE")


def test_row_fingerprint_is_stable():
    first = build_row_fingerprint("pipes-pipe", "DN20", Decimal("10"))
    assert first == build_row_fingerprint("pipes-pipe", "DN20", Decimal("10"))
    assert first != build_row_fingerprint("pipes-pipe", "DN25", Decimal("10"))


def test_merge_attributes_keeps_existing_values():
    merged = merge_attributes(
        {"color": "white", "nested": {"a": 1}},
        {"color": "", "dn": 20, "nested": {"b": 2}},
    )
    assert merged == {"color": "white", "dn": 20, "nested": {"a": 1, "b": 2}}
