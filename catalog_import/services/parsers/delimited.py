"""Delimited text (CSV / TSV) parser."""
import csv
import logging
from io import StringIO
from typing import Optional

from catalog_import.exceptions import UnreadableFileError
from catalog_import.schemas.rows import (
    CanonicalRow,
    ColumnMapping,
    ProductName,
    VariantData,
)
from catalog_import.services.normalize import (
    build_product_key,
    coerce_attribute_value,
    generate_stable_sku,
    normalize_header,
    normalize_sku,
    normalize_whitespace,
    parse_price,
)
from catalog_import.services.parsers.base import BaseParser, ParseResult, make_issue
from catalog_import.services.variant import build_row_fingerprint, extract_variant_attributes

logger = logging.getLogger(__name__)

DELIMITERS = [",", ";", "\t"]
SAMPLE_LINES = 10

# Substrings matched against lower-cased headers, first hit wins.
HEADER_ALIASES = {
    "category": ["category", "катег", "группа", "раздел"],
    "product": ["product", "товар", "наименован", "назван", "name", "item", "позиция"],
    "sku": ["sku", "артикул", "article", "код", "code", "арт"],
    "label": ["variant", "вариант", "label", "размер", "size", "модель", "model"],
    "description": ["description", "описани", "desc"],
    "wholesale_price": ["wholesale", "оптов", "опт"],
    "price": ["retail", "розниц", "price", "цена", "стоим"],
}
REQUIRED_FIELDS = ("category", "product", "price")


def decode_bytes(raw: bytes) -> str:
    """Decode an upload as UTF-8 (BOM tolerant), falling back to cp1251."""
    if b"\x00" in raw:
        raise UnreadableFileError("File looks binary, not delimited text")
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        return raw.decode("cp1251")
    except UnicodeDecodeError as e:
        raise UnreadableFileError("File encoding is not supported", {"reason": str(e)})


def detect_delimiter(text: str) -> str:
    """Pick the delimiter that splits the first lines most consistently."""
    lines = [line for line in text.splitlines() if line.strip()][:SAMPLE_LINES]
    if not lines:
        return ","

    best = ","
    best_score = 0
    for delimiter in DELIMITERS:
        counts = [line.count(delimiter) for line in lines]
        if not counts[0]:
            continue
        consistent = sum(1 for count in counts if count == counts[0])
        score = consistent * counts[0]
        if score > best_score:
            best, best_score = delimiter, score
    return best


def suggest_mapping(headers: list[str]) -> ColumnMapping:
    """Infer the column mapping from header names."""
    normalized = [(header, normalize_header(header)) for header in headers]
    used: set[str] = set()
    mapping = {}

    for field_name, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            match = next(
                (
                    header
                    for header, lowered in normalized
                    if header not in used and alias in lowered
                ),
                None,
            )
            if match:
                mapping[field_name] = match
                used.add(match)
                break

    return ColumnMapping(**mapping)


class DelimitedTextParser(BaseParser):
    """
    Parse delimited text into canonical rows.

    Args:
        mapping: Optional explicit column mapping; inferred from headers when absent
    """

    source_type = "delimited"

    def __init__(self, mapping: Optional[ColumnMapping] = None):
        super().__init__()
        self.mapping = mapping

    def parse(self, raw: bytes) -> ParseResult:
        text = decode_bytes(raw)
        delimiter = detect_delimiter(text)
        logger.info(f"📄 Parsing delimited file: delimiter={delimiter!r}, size={len(raw)}")

        try:
            records = [
                record
                for record in csv.reader(StringIO(text), delimiter=delimiter)
                if any(cell.strip() for cell in record)
            ]
        except csv.Error as e:
            raise UnreadableFileError("File is not valid delimited text", {"reason": str(e)})

        result = ParseResult()
        if not records:
            result.warnings.append(make_issue("warning", "EMPTY_FILE", "File contains no rows"))
            result.columns = []
            return result

        headers = [
            normalize_whitespace(header) or f"column_{index + 1}"
            for index, header in enumerate(records[0])
        ]
        mapping = self.mapping or suggest_mapping(headers)
        result.columns = headers
        result.mapping = mapping.model_dump()

        for field_name in REQUIRED_FIELDS:
            column = getattr(mapping, field_name)
            if not column or column not in headers:
                result.errors.append(
                    make_issue(
                        "error",
                        "MAPPING_MISSING",
                        f"No column mapped for {field_name}",
                        field=field_name,
                    )
                )

        mapped_columns = {column for column in mapping.model_dump().values() if column}
        for index, record in enumerate(records[1:], start=2):
            values = {
                header: normalize_whitespace(record[position]) if position < len(record) else ""
                for position, header in enumerate(headers)
            }
            row = self._build_row(index, values, mapping, mapped_columns)
            result.rows.append(row)
            result.warnings.extend(i for i in row.issues if i.level == "warning")
            result.errors.extend(i for i in row.issues if i.level == "error")

        logger.info(
            f"✅ Delimited file parsed: rows={len(result.rows)}, ready={result.ready_rows_count}"
        )
        return result

    def _build_row(
        self,
        position: int,
        values: dict[str, str],
        mapping: ColumnMapping,
        mapped_columns: set[str],
    ) -> CanonicalRow:
        row_key = f"csv-{position}"
        issues = []

        def value_of(field_name: str) -> str:
            column = getattr(mapping, field_name)
            return values.get(column, "") if column else ""

        category = value_of("category")
        if not category:
            issues.append(
                make_issue("error", "CATEGORY_MISSING", "Category is missing", row_key, "category")
            )
            category = self.default_category

        name = value_of("product")
        if not name:
            issues.append(
                make_issue("error", "NAME_MISSING", "Product name is missing", row_key, "product")
            )
            name = self.default_product

        price = parse_price(value_of("price"))
        if price is None:
            issues.append(
                make_issue("error", "PRICE_INVALID", "Price is missing or invalid", row_key, "price")
            )
        wholesale = parse_price(value_of("wholesale_price"))

        extraction = extract_variant_attributes(name)
        base_name = extraction.base_name or name
        label = value_of("label") or extraction.label or None

        attributes = dict(extraction.attributes)
        for column, value in values.items():
            if column not in mapped_columns and value:
                attributes[column] = coerce_attribute_value(value)

        sku = normalize_sku(value_of("sku"))
        sku_generated = not sku
        if sku_generated:
            sku = generate_stable_sku(category, base_name, label or "", price or "")
            issues.append(
                make_issue("warning", "SKU_GENERATED", "SKU was generated", row_key, "sku")
            )
            logger.warning(f"⚠️ Generated SKU for row {row_key}")

        product_key = build_product_key(category, base_name)
        return CanonicalRow(
            row_key=row_key,
            source="delimited",
            position=position,
            category=category,
            product=ProductName(
                original=name,
                base=base_name,
                display=name,
                description=value_of("description") or None,
            ),
            variant=VariantData(
                sku=sku,
                sku_generated=sku_generated,
                price=price or 0,
                price_retail=price,
                price_wholesale=wholesale,
                label=label,
                attributes=attributes,
            ),
            issues=issues,
            needs_review=sku_generated,
            confidence=extraction.confidence,
            product_key=product_key,
            fingerprint=build_row_fingerprint(product_key, label, price),
        )
