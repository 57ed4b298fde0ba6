"""Common contract for the import format parsers."""
from dataclasses import dataclass, field
from typing import Optional

from catalog_import.config import get_settings
from catalog_import.schemas.rows import CanonicalRow, Issue


@dataclass
class ParseResult:
    """Output of every parser: canonical rows plus file-level issues."""

    rows: list[CanonicalRow] = field(default_factory=list)
    warnings: list[Issue] = field(default_factory=list)
    errors: list[Issue] = field(default_factory=list)
    columns: Optional[list[str]] = None
    mapping: Optional[dict] = None

    @property
    def needs_review_count(self) -> int:
        return sum(1 for row in self.rows if row.needs_review)

    @property
    def ready_rows_count(self) -> int:
        return sum(1 for row in self.rows if not row.has_errors)


def make_issue(
    level: str,
    code: str,
    message: str,
    row_key: Optional[str] = None,
    field: Optional[str] = None,
) -> Issue:
    return Issue(level=level, code=code, message=message, row_key=row_key, field=field)


class BaseParser:
    """
    Parser base class.

    Subclasses implement parse(raw) and must never raise for malformed
    content; only structurally unreadable input raises UnreadableFileError.
    """

    source_type: str = ""

    def __init__(self):
        settings = get_settings()
        self.default_category = settings.default_category_name
        self.default_product = settings.default_product_name

    def parse(self, raw: bytes) -> ParseResult:
        raise NotImplementedError
