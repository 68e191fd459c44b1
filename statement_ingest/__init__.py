"""
Thai Bank Statement Ingestion

Turns KBank and SCB statement exports (PDF or CSV) into deduplicable expense
records and assigns categories from family rules and built-in keyword hints.
"""

__version__ = "1.0.0"
__author__ = "BillBuddy Team"

from .core.runner import parse_statement, validate_document
from .core.detectors import detect_bank
from .core.categorize import Categorizer, rule_from_transaction
from .core.fingerprint import file_hash, transaction_fingerprint
from .core.preview import build_import_preview
from .models.schema import (
    ParsedTransaction, ParseResult, ParseOptions, ParseErrorCode, SourceFormat,
    Category, CategoryRule, MatchType, FamilySnapshot, CategorizeResult, ImportPreview
)

__all__ = [
    "parse_statement",
    "validate_document",
    "detect_bank",
    "Categorizer",
    "rule_from_transaction",
    "file_hash",
    "transaction_fingerprint",
    "build_import_preview",
    "ParsedTransaction",
    "ParseResult",
    "ParseOptions",
    "ParseErrorCode",
    "SourceFormat",
    "Category",
    "CategoryRule",
    "MatchType",
    "FamilySnapshot",
    "CategorizeResult",
    "ImportPreview"
]
