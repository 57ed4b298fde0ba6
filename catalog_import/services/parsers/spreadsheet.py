"""
Spreadsheet parser for point-of-sale catalog exports.

The export carries one row per item with a sale price plus optional
per-location price and stock columns ("Цена в «Store 1»", "Price in Store 1").
Rows are normalized here; the per-location prices travel with the row so the
retail and wholesale prices can be re-resolved when the job is committed.
"""
import hashlib
import logging
import re
from decimal import Decimal
from io import BytesIO
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from catalog_import.exceptions import UnreadableFileError
from catalog_import.schemas.rows import (
    CanonicalRow,
    ImageRef,
    PriceStrategy,
    ProductName,
    SpreadsheetPricing,
    VariantData,
)
from catalog_import.services.normalize import (
    build_product_key,
    map_lookalikes,
    normalize_whitespace,
    parse_price,
    safe_string,
)
from catalog_import.services.parsers.base import BaseParser, ParseResult, make_issue
from catalog_import.services.variant import build_row_fingerprint, extract_variant_attributes

logger = logging.getLogger(__name__)

PREFERRED_SHEETS = ("sheet1", "sheet 1")
MAX_ROWS = 100000
MIN_SKU_LENGTH = 4
LOW_QUALITY_THRESHOLD = 0.45

HEADERS = {
    "name": ("наименование", "name"),
    "type": ("тип", "type"),
    "code": ("код товара", "product code"),
    "barcode": ("штрих-код", "barcode"),
    "article": ("артикул", "article"),
    "description": ("описание", "description"),
    "categories": ("категории", "categories"),
    "expiry": ("срок годности", "expiry"),
    "image": ("изображение", "image"),
    "sale_price": ("цена продажи", "sale price"),
    "purchase_price": ("цена закупки", "purchase price"),
    "discount": ("скидка", "discount"),
    "cost": ("себестоимость", "cost"),
    "min_stock": ("минимальный остаток", "min stock"),
    "unit": ("единица измерения", "unit"),
    "weighted": ("весовой товар", "weighted"),
    "free_price": ("товар по свободной цене", "free price"),
    "supplier": ("поставщик", "supplier"),
    "country": ("страна", "country"),
    "taxes": ("налоги", "taxes"),
    "tax_exempt": ("не облагается налогом", "tax exempt"),
    "stock_total": ("общий остаток", "total stock"),
}

PRICE_PREFIXES = ("цена в", "price in")
STOCK_PREFIXES = ("остаток в", "stock in")

_HEADER_QUOTES = re.compile(r"[«»\"]")
_URL = re.compile(r"https?://[^\s,;]+", re.I)
_CATEGORY_SEPARATORS = re.compile(r"[;,|/]")
_SIZE_PARAMS = ("w", "width", "h", "height", "size", "max", "maxWidth", "maxHeight")

TEXT_ATTRIBUTES = ("type", "unit", "code", "barcode", "article", "supplier", "country", "taxes", "expiry")
NUMBER_ATTRIBUTES = {
    "min_stock": "min_stock",
    "discount": "discount",
    "purchase_price": "cost_price",
    "cost": "cost_value",
    "stock_total": "stock_total",
}
FLAG_ATTRIBUTES = {"weighted": "is_weighted", "free_price": "free_price", "tax_exempt": "tax_exempt"}


def header_key(value: str) -> str:
    return _HEADER_QUOTES.sub("", normalize_whitespace(value)).lower()


def parse_location_header(header: str, prefixes: tuple[str, ...]) -> Optional[str]:
    """Return the location name of a per-location column, or None."""
    label = _HEADER_QUOTES.sub("", normalize_whitespace(header))
    for prefix in prefixes:
        if label.lower().startswith(prefix):
            location = label[len(prefix):].strip()
            return location or None
    return None


def resolve_retail_price(pricing: SpreadsheetPricing, strategy: Union[PriceStrategy, str]) -> Decimal:
    """
    Pick the retail price of a row.

    sale uses the sale price and falls back to the highest location price;
    maxLocation does the reverse. Returns zero when neither is positive.
    """
    strategy = PriceStrategy(strategy)
    sale = pricing.sale_price if pricing.sale_price > 0 else Decimal("0")
    max_location = max(
        (price for price in pricing.location_prices.values() if price > 0),
        default=Decimal("0"),
    )
    if strategy == PriceStrategy.MAX_LOCATION:
        return max_location if max_location > 0 else sale
    return sale if sale > 0 else max_location


def resolve_wholesale_price(pricing: SpreadsheetPricing, location: Optional[str]) -> Optional[Decimal]:
    """Wholesale price is the price at an explicitly chosen location."""
    if not location:
        return None
    return pricing.location_prices.get(location)


def normalize_spreadsheet_sku(value: Any) -> str:
    """Upper-case, strip, map Cyrillic look-alikes; too-short values are discarded."""
    text = safe_string(value).replace(" ", "").upper()
    if not text:
        return ""
    sanitized = re.sub(r"[^A-Z0-9_-]", "", map_lookalikes(text))
    return sanitized if len(sanitized) >= MIN_SKU_LENGTH else ""


def split_categories(value: Any) -> list[str]:
    parts = []
    for part in _CATEGORY_SEPARATORS.split(safe_string(value)):
        part = normalize_whitespace(part)
        if part and part not in parts:
            parts.append(part)
    return parts


def estimate_image_quality(url: str) -> float:
    """Rough 0..1 quality score from size query parameters and path hints."""
    try:
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
    except ValueError:
        return 0.5

    max_dimension = 0
    for key in _SIZE_PARAMS:
        for value in params.get(key, []):
            match = re.match(r"\d+", value)
            if match:
                max_dimension = max(max_dimension, int(match.group(0)))

    score = 0.6
    if max_dimension >= 1200:
        score = 1.0
    elif max_dimension >= 800:
        score = 0.85
    elif max_dimension >= 500:
        score = 0.7
    elif max_dimension > 0:
        score = 0.4

    path = parsed.path.lower()
    if re.search(r"thumb|thumbnail|small|preview|mini|icon", path):
        score -= 0.2
    if re.search(r"original|large|full|xl|hd", path):
        score += 0.1
    return max(0.0, min(1.0, round(score, 4)))


def image_source_id(url: str) -> Optional[str]:
    last = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return re.sub(r"\.[a-z0-9]+$", "", last, flags=re.I) or None


def _number(value: Any) -> Optional[Union[int, float]]:
    parsed = parse_price(value)
    if parsed is None:
        return None
    return int(parsed) if parsed == parsed.to_integral_value() else float(parsed)


def _flag(value: Any) -> Optional[bool]:
    text = safe_string(value).upper()
    if not text:
        return None
    return text in ("YES", "ДА", "TRUE", "1")


class SpreadsheetParser(BaseParser):
    """
    Parse a spreadsheet export.

    Args:
        price_strategy: Retail price strategy applied while parsing
        wholesale_location: Location whose price becomes the wholesale price
    """

    source_type = "spreadsheet"

    def __init__(
        self,
        price_strategy: Union[PriceStrategy, str] = PriceStrategy.SALE,
        wholesale_location: Optional[str] = None,
    ):
        super().__init__()
        self.price_strategy = PriceStrategy(price_strategy)
        self.wholesale_location = wholesale_location

    def parse(self, raw: bytes) -> ParseResult:
        try:
            workbook = load_workbook(BytesIO(raw), read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError) as e:
            logger.error(f"❌ Failed to open workbook: {e}")
            raise UnreadableFileError("File is not a readable spreadsheet", {"reason": str(e)})

        try:
            if not workbook.sheetnames:
                raise UnreadableFileError("Workbook contains no sheets")
            sheet_name = next(
                (name for name in workbook.sheetnames if name.strip().lower() in PREFERRED_SHEETS),
                workbook.sheetnames[0],
            )
            logger.info(f"📊 Parsing sheet '{sheet_name}'")
            records = [list(values) for values in workbook[sheet_name].iter_rows(values_only=True)]
        finally:
            workbook.close()

        return self.parse_records(records)

    def parse_records(self, records: list[list[Any]]) -> ParseResult:
        """Normalize a header row followed by data rows."""
        result = ParseResult()
        if not records:
            result.warnings.append(make_issue("warning", "EMPTY_SHEET", "Sheet is empty"))
            result.columns = []
            return result

        headers = [safe_string(value) or f"column_{index + 1}" for index, value in enumerate(records[0])]
        result.columns = headers
        index = {header_key(header): position for position, header in enumerate(headers)}
        columns = {
            field_name: next((index[alias] for alias in aliases if alias in index), None)
            for field_name, aliases in HEADERS.items()
        }
        price_columns = {}
        stock_columns = {}
        for position, header in enumerate(headers):
            location = parse_location_header(header, PRICE_PREFIXES)
            if location:
                price_columns[position] = location
                continue
            location = parse_location_header(header, STOCK_PREFIXES)
            if location:
                stock_columns[position] = location
        result.mapping = {
            "price_locations": list(price_columns.values()),
            "stock_locations": list(stock_columns.values()),
        }

        if columns["name"] is None:
            result.errors.append(
                make_issue("error", "HEADERS_MISSING", "Missing name column", field="name")
            )
        if columns["sale_price"] is None and not price_columns:
            result.errors.append(
                make_issue(
                    "error",
                    "HEADERS_MISSING",
                    "Missing sale price column or any per-location price column",
                    field="price",
                )
            )
        if result.errors:
            return result

        data_rows = records[1:MAX_ROWS + 1]
        if not data_rows:
            result.warnings.append(make_issue("warning", "EMPTY_SHEET", "Sheet contains headers only"))

        for offset, values in enumerate(data_rows):
            if not any(safe_string(value) for value in values):
                continue

            def cell(field_name: str) -> Any:
                position = columns[field_name]
                if position is None or position >= len(values):
                    return None
                return values[position]

            pricing = SpreadsheetPricing(
                sale_price=parse_price(cell("sale_price")) or Decimal("0"),
                location_prices={
                    location: price
                    for position, location in price_columns.items()
                    if position < len(values)
                    and (price := parse_price(values[position])) is not None
                    and price > 0
                },
                location_stock={
                    location: stock
                    for position, location in stock_columns.items()
                    if position < len(values)
                    and (stock := parse_price(values[position])) is not None
                },
            )
            row = self._build_row(offset + 2, cell, pricing)
            result.rows.append(row)
            result.warnings.extend(i for i in row.issues if i.level == "warning")
            result.errors.extend(i for i in row.issues if i.level == "error")

        if not result.rows:
            result.warnings.append(make_issue("warning", "NO_ROWS", "No rows detected in sheet"))
        logger.info(
            f"✅ Spreadsheet parsed: rows={len(result.rows)}, needs_review={result.needs_review_count}"
        )
        return result

    def _build_row(self, position: int, cell, pricing: SpreadsheetPricing) -> CanonicalRow:
        row_key = f"sheet-{position}"
        issues = []

        name = safe_string(cell("name"))
        if not name:
            issues.append(
                make_issue("error", "NAME_MISSING", "Product name is required", row_key, "name")
            )

        categories = split_categories(cell("categories"))
        category_missing = not categories
        if category_missing:
            issues.append(
                make_issue("warning", "CATEGORY_MISSING", "Category is missing", row_key, "category")
            )
        category = categories[0] if categories else self.default_category

        price = resolve_retail_price(pricing, self.price_strategy)
        if price <= 0:
            issues.append(
                make_issue("warning", "PRICE_ZERO", "Price is missing or zero", row_key, "price")
            )
        wholesale = resolve_wholesale_price(pricing, self.wholesale_location)

        unit = safe_string(cell("unit"))
        sku = ""
        for candidate in (cell("article"), cell("barcode"), cell("code")):
            sku = normalize_spreadsheet_sku(candidate)
            if sku:
                break
        sku_generated = not sku
        if sku_generated:
            seed = "|".join(
                normalize_whitespace(part).lower()
                for part in (name, category, safe_string(cell("barcode")), unit)
            )
            sku = "GEN-" + hashlib.sha1(seed.encode("utf-8")).hexdigest().upper()
            issues.append(
                make_issue("warning", "SKU_GENERATED", "Missing SKU, generated a fallback", row_key, "sku")
            )

        extraction = extract_variant_attributes(name)
        attributes = self._attributes(cell, categories, pricing)
        attributes.update(extraction.attributes)

        image = None
        urls = _URL.findall(safe_string(cell("image")))
        if urls:
            quality = estimate_image_quality(urls[0])
            image = ImageRef(
                url=urls[0],
                source="spreadsheet",
                source_id=image_source_id(urls[0]),
                quality=quality,
            )
            if quality < LOW_QUALITY_THRESHOLD:
                issues.append(
                    make_issue("warning", "IMAGE_LOW_QUALITY", "Image looks low quality", row_key, "image")
                )
        else:
            issues.append(make_issue("warning", "IMAGE_MISSING", "Image is missing", row_key, "image"))

        needs_review = (
            sku_generated
            or price <= 0
            or category_missing
            or image is None
            or image.quality < LOW_QUALITY_THRESHOLD
            or not name
        )

        confidence = 0.95
        if not name:
            confidence = 0.1
        elif category_missing:
            confidence = 0.5
        elif sku_generated or price <= 0:
            confidence = 0.75

        display_name = name or self.default_product
        base_name = extraction.base_name or display_name
        label = extraction.label or None
        product_key = build_product_key(category, base_name)

        return CanonicalRow(
            row_key=row_key,
            source="spreadsheet",
            position=position,
            category=category,
            product=ProductName(
                original=display_name,
                base=base_name,
                display=base_name,
                description=safe_string(cell("description")) or None,
            ),
            variant=VariantData(
                sku=sku,
                sku_generated=sku_generated,
                price=price,
                price_retail=price,
                price_wholesale=wholesale,
                label=label,
                attributes=attributes,
            ),
            image=image,
            issues=issues,
            needs_review=needs_review,
            confidence=confidence,
            product_key=product_key,
            fingerprint=build_row_fingerprint(product_key, label, price, unit),
            spreadsheet=pricing,
        )

    def _attributes(self, cell, categories: list[str], pricing: SpreadsheetPricing) -> dict:
        attributes: dict[str, Any] = {}
        for field_name in TEXT_ATTRIBUTES:
            value = safe_string(cell(field_name))
            if value:
                attributes[field_name] = value
        for field_name, key in NUMBER_ATTRIBUTES.items():
            value = _number(cell(field_name))
            if value is not None:
                attributes[key] = value
        for field_name, key in FLAG_ATTRIBUTES.items():
            value = _flag(cell(field_name))
            if value is not None:
                attributes[key] = value

        if len(categories) > 1:
            attributes["categories"] = categories
        if pricing.location_stock:
            attributes["stock_by_location"] = {
                location: _number(stock) for location, stock in pricing.location_stock.items()
            }
        if pricing.location_prices:
            attributes["prices_by_location"] = {
                location: _number(price) for location, price in pricing.location_prices.items()
            }
        return attributes
