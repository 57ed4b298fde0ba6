"""
Price-list document (PDF) parser.

Typeset price lists come in two layouts: table pages with one product per
line, and card pages where each product is a block of lines separated by a
blank line. All-caps lines without digits are category headings and apply
to every following row until the next heading, across pages.

Text extraction is unreliable, so every row produced here needs review.
"""
import logging
import re
from decimal import Decimal
from io import BytesIO
from typing import Optional

import pdfplumber

from catalog_import.exceptions import UnreadableFileError
from catalog_import.schemas.rows import CanonicalRow, ProductName, VariantData
from catalog_import.services.normalize import (
    build_product_key,
    generate_stable_sku,
    normalize_whitespace,
    parse_price,
)
from catalog_import.services.parsers.base import BaseParser, ParseResult, make_issue
from catalog_import.services.variant import build_row_fingerprint, extract_variant_attributes

logger = logging.getLogger(__name__)

SKU_PATTERN = re.compile(r"\b[A-Z]{1,3}\d{3,6}\b", re.I)
PRICE_PATTERN = re.compile(r"(\d{2,6}(?:[.,]\d{1,2})?)\s*(сом|kgs)?", re.I)
HEADING_PATTERN = re.compile(r"^[^\dA-Za-zА-Яа-яЁё]*[A-ZА-ЯЁ][A-ZА-ЯЁ\s-]{2,}$")
NUMBER_PATTERN = re.compile(r"\d+")
LABEL_SEPARATORS = (" - ", " — ", " – ", " / ", " | ", ": ")
TABLE_PAGE_RATIO = 0.3
LOW_CONFIDENCE = 0.6


def is_category_heading(line: str) -> bool:
    text = normalize_whitespace(line)
    if len(text) < 3 or re.search(r"\d", text):
        return False
    return bool(HEADING_PATTERN.match(text))


def is_table_page(lines: list[str]) -> bool:
    """A page is table-like when enough lines carry two or more numbers."""
    if not lines:
        return False
    numeric = sum(1 for line in lines if len(NUMBER_PATTERN.findall(line)) >= 2)
    return numeric / len(lines) >= TABLE_PAGE_RATIO


def split_product_and_label(value: str) -> tuple[str, str]:
    text = normalize_whitespace(value)
    if not text:
        return "", ""
    for separator in LABEL_SEPARATORS:
        if separator in text:
            product, _, label = text.partition(separator)
            return product.strip(), label.strip()
    match = re.match(r"^(.*)\(([^)]+)\)$", text)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return text, ""


def extract_sku(value: str) -> str:
    match = SKU_PATTERN.search(value)
    return match.group(0).upper() if match else ""


def strip_sku(value: str) -> str:
    return SKU_PATTERN.sub(" ", value, count=1)


def extract_price(value: str) -> tuple[Optional[Decimal], Optional[re.Match]]:
    """The last price-looking number on a line wins; callers strip the SKU first."""
    matches = list(PRICE_PATTERN.finditer(value))
    if not matches:
        return None, None
    last = matches[-1]
    return parse_price(last.group(1)), last


class DocumentParser(BaseParser):
    """Parse PDF price lists through pdfplumber page text."""

    source_type = "document"

    def parse(self, raw: bytes) -> ParseResult:
        try:
            with pdfplumber.open(BytesIO(raw)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            logger.error(f"❌ Failed to read PDF: {e}")
            raise UnreadableFileError("File is not a readable PDF document", {"reason": str(e)})

        logger.info(f"📄 Extracted text from {len(pages)} PDF pages")
        return self.parse_pages(pages)

    def parse_pages(self, pages: list[str]) -> ParseResult:
        """Segment extracted page texts into rows."""
        result = ParseResult()
        if not any(page.strip() for page in pages):
            result.warnings.append(make_issue("warning", "EMPTY_DOCUMENT", "No text found in document"))
            return result

        self._category = ""
        for page_number, text in enumerate(pages, start=1):
            lines = [normalize_whitespace(line) for line in text.splitlines()]
            content = [line for line in lines if line]
            if not content:
                continue

            if is_table_page(content):
                entries = self._table_entries(content)
            else:
                entries = self._card_entries(lines)

            for index, (category, title, label, sku, price, confidence) in enumerate(entries, start=1):
                row = self._build_row(
                    row_key=f"pdf-{page_number}-{index}",
                    position=len(result.rows) + 1,
                    page=page_number,
                    category=category,
                    title=title,
                    label=label,
                    sku=sku,
                    price=price,
                    confidence=confidence,
                )
                result.rows.append(row)
                result.warnings.extend(i for i in row.issues if i.level == "warning")
                result.errors.extend(i for i in row.issues if i.level == "error")

        if not result.rows:
            result.warnings.append(make_issue("warning", "NO_ROWS", "No rows detected in document"))
        logger.info(f"✅ Document parsed: rows={len(result.rows)}")
        return result

    def _table_entries(self, lines: list[str]):
        for line in lines:
            if is_category_heading(line):
                self._category = line
                continue

            sku = extract_sku(line)
            stripped = strip_sku(line) if sku else line
            price, price_match = extract_price(stripped)
            if price_match:
                stripped = stripped[: price_match.start()] + " " + stripped[price_match.end():]
            title, label = split_product_and_label(stripped)
            if not title and price is None:
                continue

            confidence = 0.0
            if price is not None:
                confidence += 0.4
            if sku:
                confidence += 0.3
            if title:
                confidence += 0.3
            yield self._category, title, label, sku, price, round(confidence, 2)

    def _card_entries(self, lines: list[str]):
        blocks: list[list[str]] = []
        current: list[str] = []
        for line in lines:
            if not line:
                if current:
                    blocks.append(current)
                    current = []
                continue
            current.append(line)
        if current:
            blocks.append(current)

        for block in blocks:
            if is_category_heading(block[0]):
                self._category = block[0]
                block = block[1:]
                if not block:
                    continue

            text = " ".join(block)
            sku = extract_sku(text)
            price, _ = extract_price(strip_sku(text) if sku else text)
            if not sku and price is None:
                continue

            title = next((line for line in block if re.search(r"[A-Za-zА-Яа-яЁё]", line)), "")
            label = block[1] if len(block) > 1 and block[1] != title else ""

            confidence = 0.3
            if sku:
                confidence += 0.2
            if price is not None:
                confidence += 0.3
            if title:
                confidence += 0.2
            yield self._category, title, label, sku, price, round(confidence, 2)

    def _build_row(
        self,
        row_key: str,
        position: int,
        page: int,
        category: str,
        title: str,
        label: str,
        sku: str,
        price: Optional[Decimal],
        confidence: float,
    ) -> CanonicalRow:
        issues = []
        if confidence < LOW_CONFIDENCE:
            issues.append(make_issue("warning", "LOW_CONFIDENCE", "Low confidence row parse", row_key))
        if not title:
            issues.append(
                make_issue("error", "NAME_MISSING", "Product name is required", row_key, "product")
            )
        if price is None:
            issues.append(
                make_issue("error", "PRICE_INVALID", "Price is missing or invalid", row_key, "price")
            )

        category = category or self.default_category
        extraction = extract_variant_attributes(title)
        base_name = extraction.base_name or title or self.default_product
        label = label or extraction.label or ""

        sku_generated = not sku
        if sku_generated:
            sku = generate_stable_sku(category, base_name, label or title, price or "")
            logger.warning(f"⚠️ Missing SKU on page {page}, generated {sku[:12]}")
            issues.append(
                make_issue("warning", "SKU_GENERATED", "Missing SKU, generated a fallback", row_key, "sku")
            )

        product_key = build_product_key(category, base_name)
        return CanonicalRow(
            row_key=row_key,
            source="document",
            position=position,
            page=page,
            category=category,
            product=ProductName(
                original=title or self.default_product,
                base=base_name,
                display=base_name,
            ),
            variant=VariantData(
                sku=sku,
                sku_generated=sku_generated,
                price=price or 0,
                price_retail=price,
                label=label or None,
                attributes=dict(extraction.attributes),
            ),
            issues=issues,
            needs_review=True,
            confidence=confidence,
            product_key=product_key,
            fingerprint=build_row_fingerprint(product_key, label or None, price),
        )
