"""
Variant extraction from free-text product names.

Price lists usually encode the variant inside the name ("Pipe PPR DN20 4m").
The helpers here split such a name into a base product name used for
grouping, a short display label, and numeric attributes used for variant
deduplication.
"""
import hashlib
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union

from catalog_import.services.normalize import (
    fold,
    map_lookalikes,
    normalize_whitespace,
)

LABEL_SEPARATOR = " • "

_BOUNDARY = r"(?=\s|$|[.,;:])"

_DN = re.compile(r"\b(?:DN|ДУ)\s*[-:]?\s*(\d+(?:[.,]\d+)?)", re.I)
_F_DIAMETER = re.compile(r"[ФF]\s*[-:]?\s*(\d+(?:[.,]\d+)?)", re.I)
_D_DIAMETER = re.compile(r"\bD\s*[-:]?\s*(\d+(?:[.,]\d+)?)(?:\s*(?:мм|mm))?", re.I)
_THREAD_FRACTION = re.compile(r"\b(\d+\s*\d/\d|\d/\d)\s*(?:\"|″)?")
_THREAD_INCHES = re.compile(r"\b(\d+(?:[.,]\d+)?)\s*(?:\"|″)" + _BOUNDARY)
_LENGTH = re.compile(r"(?:^|\s)(\d+(?:[.,]\d+)?)\s*(?:м|m)" + _BOUNDARY, re.I)
_SIZE = re.compile(r"(\d+(?:[.,]\d+)?)\s*[xх×]\s*(\d+(?:[.,]\d+)?)", re.I)

_VARIANT_TOKENS = [
    re.compile(r"\b(?:DN|ДУ)\s*[-:]?\s*\d+(?:[.,]\d+)?\b", re.I),
    re.compile(r"[ФF]\s*[-:]?\s*\d+(?:[.,]\d+)?", re.I),
    re.compile(r"\bD\s*[-:]?\s*\d+(?:[.,]\d+)?\s*(?:мм|mm)?" + _BOUNDARY, re.I),
    re.compile(r"\b\d+(?:[.,]\d+)?\s*(?:мм|mm)" + _BOUNDARY, re.I),
    re.compile(r"\b\d+(?:[.,]\d+)?\s*(?:м|m)" + _BOUNDARY, re.I),
    re.compile(r"\b\d+(?:\s*\d/\d|/\d)\s*(?:\"|″)?" + _BOUNDARY),
    re.compile(r"\b\d+(?:[.,]\d+)?\s*[xх×]\s*\d+(?:[.,]\d+)?\b", re.I),
]

_COLORS = [
    (re.compile(r"черн|чёрн|black"), "black"),
    (re.compile(r"бел|white"), "white"),
    (re.compile(r"сер|grey|gray"), "grey"),
    (re.compile(r"красн|\bred\b"), "red"),
    (re.compile(r"син|blue"), "blue"),
    (re.compile(r"зел|green"), "green"),
]

_MATERIALS = [
    (re.compile(r"\bпп\b|ppr|pp-r|полипропил"), "ppr"),
    (re.compile(r"пвх|pvc"), "pvc"),
    (re.compile(r"латун|brass"), "brass"),
    (re.compile(r"сталь|steel"), "steel"),
    (re.compile(r"\bмед|медь|copper"), "copper"),
    (re.compile(r"алюм|alumin"), "aluminium"),
]


@dataclass
class VariantExtraction:
    base_name: str
    label: str
    attributes: dict[str, Union[str, float]] = field(default_factory=dict)
    confidence: float = 0.0


def _number_label(value: str) -> str:
    return value.replace(",", ".")


def _to_number(value: str) -> Optional[float]:
    try:
        return float(_number_label(value))
    except ValueError:
        return None


def _detect(patterns, value: str) -> Optional[str]:
    lower = value.lower()
    for pattern, name in patterns:
        if pattern.search(lower):
            return name
    return None


def _remove_variant_tokens(value: str) -> str:
    text = re.sub(r"[×хХ]", "x", value)
    for pattern in _VARIANT_TOKENS:
        text = pattern.sub(" ", text)
    text = normalize_whitespace(re.sub(r"[\[\](),;:|/\"]+", " ", text))

    seen = set()
    tokens = []
    for token in text.split(" "):
        if not token or token.lower() in seen:
            continue
        seen.add(token.lower())
        tokens.append(token)
    return normalize_whitespace(" ".join(tokens))


def extract_variant_attributes(name: str) -> VariantExtraction:
    """Split a product name into base name, variant label and attributes."""
    original = normalize_whitespace(name)
    if not original:
        return VariantExtraction(base_name="", label="", confidence=0.1)

    working = re.sub(r"[×хХ]", "x", original)
    attrs: dict[str, Union[str, float]] = {}
    label_parts: list[str] = []

    def push_label(part: Optional[str]) -> None:
        part = normalize_whitespace(part or "")
        if part and part not in label_parts:
            label_parts.append(part)

    match = _DN.search(working)
    if match:
        number = _to_number(match.group(1))
        if number is not None:
            attrs["dn"] = number
        push_label(f"DN{_number_label(match.group(1))}")

    diameter_label = None
    match = _F_DIAMETER.search(working)
    if match:
        number = _to_number(match.group(1))
        if number is not None:
            attrs["diameter_mm"] = number
        diameter_label = f"Ф{_number_label(match.group(1))}"
    else:
        match = _D_DIAMETER.search(working)
        if match:
            number = _to_number(match.group(1))
            if number is not None:
                attrs["diameter_mm"] = number
            suffix = "mm" if re.search(r"мм|mm", match.group(0), re.I) else ""
            diameter_label = f"D{_number_label(match.group(1))}{suffix}"
    push_label(diameter_label)

    fraction = _THREAD_FRACTION.search(working)
    inches = _THREAD_INCHES.search(working)
    if fraction:
        thread = normalize_whitespace(fraction.group(1))
        if re.search(r"[\"″]", fraction.group(0)):
            thread = f'{thread}"'
        attrs["thread"] = thread
        push_label(thread)
    elif inches:
        attrs["thread"] = f'{_number_label(inches.group(1))}"'
        push_label(attrs["thread"])

    match = _LENGTH.search(working)
    if match:
        number = _to_number(match.group(1))
        if number is not None:
            attrs["length_m"] = number
        push_label(f"{_number_label(match.group(1))}m")

    match = _SIZE.search(working)
    if match:
        attrs["size"] = f"{_number_label(match.group(1))}x{_number_label(match.group(2))}"
        push_label(attrs["size"])

    color = _detect(_COLORS, original)
    if color:
        attrs["color"] = color
    material = _detect(_MATERIALS, original)
    if material:
        attrs["material"] = material

    base_name = _remove_variant_tokens(original) or original
    label = LABEL_SEPARATOR.join(label_parts)

    confidence = 0.4 + min(len(attrs) * 0.1, 0.4)
    if not label and not attrs:
        confidence = 0.3

    return VariantExtraction(
        base_name=base_name,
        label=label,
        attributes=attrs,
        confidence=min(confidence, 0.95),
    )


def normalize_text(value: str) -> str:
    """Upper-case comparison form with unified quotes, dashes and look-alikes."""
    text = normalize_whitespace(value)
    text = re.sub(r"[«»“”„‟]", '"', text)
    text = re.sub(r"[‐‑–—]", "-", text)
    text = re.sub(r"[×хХ]", "x", text)
    return map_lookalikes(text).upper()


def tokenize_name(value: str) -> list[str]:
    """Comparison tokens of a name; single-character tokens are dropped."""
    normalized = re.sub(r"[^\w ]|_", " ", normalize_text(value))
    return [token for token in normalized.split() if len(token) > 1]


def build_row_fingerprint(
    product_key: str,
    label: Optional[str] = None,
    price_retail: Optional[Decimal] = None,
    unit: Optional[str] = None,
) -> str:
    """Stable identity of a row across re-parses of the same file."""
    seed = "::".join(
        [
            product_key,
            label or "",
            "" if price_retail is None else str(price_retail),
            fold(unit or ""),
        ]
    )
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()


def merge_attributes(
    existing: Optional[dict[str, Any]], incoming: Optional[dict[str, Any]]
) -> dict[str, Any]:
    """Overlay incoming attributes on existing ones; blanks never erase values."""
    merged = dict(existing or {})
    for key, value in (incoming or {}).items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_attributes(current, value)
        else:
            merged[key] = value
    return merged
