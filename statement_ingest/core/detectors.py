"""
Bank-format detection and statement-level metadata.
"""
import re
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging

import yaml
from pydantic import ValidationError
from rapidfuzz import fuzz

from .normalize import buddhist_to_gregorian
from ..models.schema import BankFormat, ParsedTransaction

logger = logging.getLogger(__name__)

BANKS_DIR = Path(__file__).parent.parent / "patterns" / "banks"

# Short markers such as "SCB" only count on an exact hit
FUZZY_MIN_MARKER_LENGTH = 6
FUZZY_THRESHOLD = 90

THAI_MONTHS = {
    'มกราคม': 1, 'กุมภาพันธ์': 2, 'มีนาคม': 3, 'เมษายน': 4,
    'พฤษภาคม': 5, 'มิถุนายน': 6, 'กรกฎาคม': 7, 'สิงหาคม': 8,
    'กันยายน': 9, 'ตุลาคม': 10, 'พฤศจิกายน': 11, 'ธันวาคม': 12,
}

THAI_MONTH_ABBREVIATIONS = {
    'ม.ค.': 1, 'ก.พ.': 2, 'มี.ค.': 3, 'เม.ย.': 4, 'พ.ค.': 5, 'มิ.ย.': 6,
    'ก.ค.': 7, 'ส.ค.': 8, 'ก.ย.': 9, 'ต.ค.': 10, 'พ.ย.': 11, 'ธ.ค.': 12,
}

ENGLISH_MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11, 'december': 12,
}

DATE_RANGE_PATTERN = re.compile(r'(\d{2})/(\d{2})/(\d{4})\s*[-–]\s*\d{2}/\d{2}/\d{4}')

ACCOUNT_PATTERNS = [
    re.compile(r'บัญชี[:\s]*(\d{3}[-\s]?\d[-\s]?\d{5}[-\s]?\d)', re.IGNORECASE),
    re.compile(r'Account[:\s#]*(\d{3}[-\s]?\d[-\s]?\d{5}[-\s]?\d)', re.IGNORECASE),
    re.compile(r'(\d{3}-\d-\d{5}-\d)'),
    re.compile(r'(\d{3}-\d{6}-\d)'),
]


def _month_name_pattern(names: Iterable[str], word_boundary: bool = False) -> re.Pattern:
    # Longest first so a full name is never shadowed by a shorter one
    alternatives = '|'.join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    prefix = r'\b' if word_boundary else ''
    return re.compile(prefix + r'(' + alternatives + r')\s*(\d{4})', re.IGNORECASE)


_THAI_MONTH_RE = _month_name_pattern(list(THAI_MONTHS) + list(THAI_MONTH_ABBREVIATIONS))
_ENGLISH_MONTH_RE = _month_name_pattern(ENGLISH_MONTHS, word_boundary=True)


class BankFormatRegistry:
    """Loads bank export formats and detects which bank produced a document."""

    def __init__(self, formats_dir: Path = None):
        self.formats_dir = Path(formats_dir) if formats_dir else BANKS_DIR
        self.formats: Dict[str, BankFormat] = {}
        self._load_formats()

    def _load_formats(self):
        """Load all available bank formats."""
        if not self.formats_dir.exists():
            logger.warning(f"Bank formats directory not found: {self.formats_dir}")
            return

        for yaml_file in sorted(self.formats_dir.glob("*.yaml")):
            try:
                with open(yaml_file, 'r', encoding='utf-8') as f:
                    bank_format = BankFormat(**(yaml.safe_load(f) or {}))
            except (OSError, yaml.YAMLError, ValidationError) as e:
                logger.error(f"Error loading bank format {yaml_file}: {e}")
                continue
            self.formats[bank_format.bank_id] = bank_format
            logger.debug(f"Loaded bank format: {bank_format.bank_id}")

    def get_format(self, bank_id: str) -> Optional[BankFormat]:
        """Get a bank format by ID."""
        return self.formats.get(bank_id.strip().lower())

    def list_formats(self) -> List[str]:
        """List all available bank IDs."""
        return list(self.formats.keys())

    def marker_hits(self, text: str, bank_format: BankFormat) -> int:
        """Count how many of a bank's markers appear in the text."""
        lowered = text.lower()
        hits = 0
        for marker in bank_format.markers:
            needle = marker.lower()
            if needle in lowered:
                hits += 1
            elif len(needle) >= FUZZY_MIN_MARKER_LENGTH:
                if fuzz.partial_ratio(needle, lowered) >= FUZZY_THRESHOLD:
                    hits += 1
        return hits

    def detect_bank(self, text: str) -> Optional[str]:
        """
        Detect which bank format a document belongs to.

        Args:
            text: Extracted document text

        Returns:
            Bank ID with the most marker hits, None when nothing matches
        """
        if not text:
            return None

        best_id, best_hits = None, 0
        for bank_id, bank_format in self.formats.items():
            hits = self.marker_hits(text, bank_format)
            logger.debug(f"Bank {bank_id}: {hits}/{len(bank_format.markers)} markers")
            if hits > best_hits:
                best_id, best_hits = bank_id, hits

        if best_id:
            logger.info(f"Document matches bank format: {best_id}")
        else:
            logger.warning("No matching bank format found")
        return best_id


def detect_bank(text: str) -> Optional[str]:
    """
    Convenience function to detect the bank of a document's text.

    Args:
        text: Extracted document text

    Returns:
        Bank ID if found, None otherwise
    """
    registry = BankFormatRegistry()
    return registry.detect_bank(text)


def _format_month(year: int, month: int) -> Optional[str]:
    if not 1 <= month <= 12:
        return None
    return f"{buddhist_to_gregorian(year):04d}-{month:02d}"


def detect_statement_month(text: str) -> Optional[str]:
    """
    Find the statement period in document text.

    Thai month names (full or abbreviated) win over English ones, which win
    over a ``DD/MM/YYYY - DD/MM/YYYY`` period. Buddhist Era years are converted.

    Returns:
        ``YYYY-MM`` or None
    """
    if not text:
        return None

    match = _THAI_MONTH_RE.search(text)
    if match:
        name = match.group(1)
        month = THAI_MONTHS.get(name) or THAI_MONTH_ABBREVIATIONS[name]
        return _format_month(int(match.group(2)), month)

    match = _ENGLISH_MONTH_RE.search(text)
    if match:
        return _format_month(int(match.group(2)), ENGLISH_MONTHS[match.group(1).lower()])

    for match in DATE_RANGE_PATTERN.finditer(text):
        month = _format_month(int(match.group(3)), int(match.group(2)))
        if month:
            return month

    return None


def month_of_mode(transactions: List[ParsedTransaction]) -> Optional[str]:
    """Most frequent ``YYYY-MM`` among transactions; ties go to the later month."""
    if not transactions:
        return None

    counts = Counter(tx.date_time.strftime('%Y-%m') for tx in transactions)
    return max(counts.items(), key=lambda item: (item[1], item[0]))[0]


def detect_account_number(text: str) -> Optional[str]:
    """First account number found in the text, with whitespace removed."""
    if not text:
        return None

    for pattern in ACCOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return re.sub(r'\s', '', match.group(1))
    return None
