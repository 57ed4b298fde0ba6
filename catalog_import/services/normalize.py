"""
String-cleaning primitives shared by the parsers, the resolver and the
commit engine.

All functions are total over strings: empty or missing input normalizes to
an empty string (or None for prices), which callers treat as "missing".
"""
import hashlib
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

_SPECIAL_SPACES = re.compile(r"[\u00A0\u2007\u202F]")
_WHITESPACE = re.compile(r"\s+")
_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")

TRANSLIT = {
    "а": "a", "б": "b", "в": "v", "г": "g", "ғ": "g", "д": "d", "е": "e",
    "ё": "e", "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "қ": "k",
    "л": "l", "м": "m", "н": "n", "ң": "ng", "о": "o", "ө": "o", "п": "p",
    "р": "r", "с": "s", "т": "t", "у": "u", "ү": "u", "ұ": "u", "ф": "f",
    "х": "h", "һ": "h", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "sch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya", "і": "i",
}

# Cyrillic letters that look like Latin ones; SKUs and names typed on mixed
# keyboard layouts compare equal after mapping.
CYRILLIC_LOOKALIKES = {
    "А": "A", "В": "B", "Е": "E", "К": "K", "М": "M", "Н": "H", "О": "O",
    "Р": "P", "С": "C", "Т": "T", "Х": "X", "У": "Y",
    "а": "A", "в": "B", "е": "E", "к": "K", "м": "M", "н": "H", "о": "O",
    "р": "P", "с": "C", "т": "T", "х": "X", "у": "Y",
}


def normalize_whitespace(value: str) -> str:
    """Replace non-breaking spaces, collapse runs of whitespace and trim."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", _SPECIAL_SPACES.sub(" ", value)).strip()


def fold(value: str) -> str:
    """Comparison form: whitespace-normalized and case-folded."""
    return normalize_whitespace(value).casefold()


def normalize_header(value: str) -> str:
    return normalize_whitespace(value).lower()


def safe_string(value: Any) -> str:
    """Coerce a cell value of any type to a normalized string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return normalize_whitespace(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return normalize_whitespace(str(value))


def map_lookalikes(value: str) -> str:
    return "".join(CYRILLIC_LOOKALIKES.get(char, char) for char in value)


def slugify(value: str) -> str:
    """
    Build a URL-safe slug.

    Cyrillic letters are transliterated; anything else that is not an ASCII
    letter or digit becomes a single hyphen.
    """
    normalized = normalize_whitespace(value).lower()
    if not normalized:
        return ""

    parts = []
    for char in normalized:
        if ("a" <= char <= "z") or ("0" <= char <= "9"):
            parts.append(char)
        elif char in TRANSLIT:
            parts.append(TRANSLIT[char])
        else:
            parts.append("-")

    return re.sub(r"-+", "-", "".join(parts)).strip("-")


def build_product_key(category: str, base_name: str) -> str:
    """Deterministic grouping key for rows of the same logical product."""
    return slugify(f"{category}::{base_name}")


def coerce_attribute_value(value: str) -> Union[str, int, float]:
    """Turn numeric-looking strings ("12", "0,5") into numbers."""
    normalized = normalize_whitespace(value)
    if not normalized:
        return ""
    numeric = normalized.replace(" ", "").replace(",", ".")
    if _NUMERIC.match(numeric):
        number = float(numeric)
        return int(number) if number.is_integer() and "." not in numeric else number
    return normalized


def parse_price(value: Any) -> Optional[Decimal]:
    """
    Parse a price cell into a Decimal without rounding.

    Accepts currency suffixes, spaces as thousands separators, and either
    "," or "." as the decimal mark. When both appear, the last one is the
    decimal mark. Returns None when no number can be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    raw = _SPECIAL_SPACES.sub(" ", str(value)).strip()
    if not raw:
        return None

    stripped = re.sub(r"[^\d.,-]", "", raw)
    if not re.search(r"\d", stripped):
        return None

    has_dot = "." in stripped
    has_comma = "," in stripped
    if has_dot and has_comma:
        decimal_index = max(stripped.rfind("."), stripped.rfind(","))
        integer_part = re.sub(r"[.,]", "", stripped[:decimal_index])
        normalized = f"{integer_part}.{stripped[decimal_index + 1:]}"
    elif has_comma:
        head, _, tail = stripped.rpartition(",")
        if head.count(",") or len(tail) == 3:
            normalized = stripped.replace(",", "")
        else:
            normalized = f"{head}.{tail}"
    else:
        normalized = stripped if stripped.count(".") <= 1 else stripped.replace(".", "")

    try:
        return Decimal(normalized)
    except InvalidOperation:
        return None


def normalize_sku(value: str) -> str:
    return normalize_whitespace(value).replace(" ", "").upper()


def generate_stable_sku(
    category: str, product: str, label: str = "", price: Any = ""
) -> str:
    """Fallback SKU for rows that came without one; stable across re-parses."""
    seed = "|".join(
        fold(part) for part in (category, product, label or "", str(price or ""))
    )
    return hashlib.sha256(seed.encode("utf-8")).hexdigest().upper()


def generate_variant_sku(product_key: str, label: str = "", unit: str = "") -> str:
    """SKU assigned to catalog variants created from rows without a real SKU."""
    seed = "::".join([product_key, label or "", fold(unit or "")])
    return "GEN-" + hashlib.sha1(seed.encode("utf-8")).hexdigest().upper()


def is_generated_sku(value: Optional[str]) -> bool:
    return bool(value) and normalize_sku(value).startswith("GEN-")


def checksum_bytes(raw: bytes) -> str:
    """Content checksum stored on every import job."""
    return hashlib.sha256(raw).hexdigest()
