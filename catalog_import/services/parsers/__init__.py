"""Format parsers turning uploaded files into canonical rows."""
from typing import Optional

from catalog_import.exceptions import UnsupportedFormatError
from catalog_import.schemas.rows import ColumnMapping
from catalog_import.services.parsers.base import BaseParser, ParseResult
from catalog_import.services.parsers.delimited import DelimitedTextParser
from catalog_import.services.parsers.document import DocumentParser
from catalog_import.services.parsers.spreadsheet import SpreadsheetParser

PARSERS = {
    "delimited": DelimitedTextParser,
    "spreadsheet": SpreadsheetParser,
    "document": DocumentParser,
}


def get_parser(source_type: str, mapping: Optional[ColumnMapping] = None) -> BaseParser:
    """Return a parser instance for a source format."""
    if source_type not in PARSERS:
        raise UnsupportedFormatError(source_type)
    if source_type == "delimited":
        return DelimitedTextParser(mapping=mapping)
    return PARSERS[source_type]()


__all__ = [
    "BaseParser",
    "ParseResult",
    "DelimitedTextParser",
    "SpreadsheetParser",
    "DocumentParser",
    "get_parser",
]
