"""
Data normalization and cleaning functions.
"""
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional
import logging

from ..models.schema import DESCRIPTION_MAX_LENGTH, DESCRIPTION_PLACEHOLDER

logger = logging.getLogger(__name__)

BUDDHIST_ERA_OFFSET = 543
BUDDHIST_ERA_THRESHOLD = 2500
TWO_DIGIT_YEAR_PIVOT = 50

_DAY_FIRST_RE = re.compile(r'^(\d{1,2})([/-])(\d{1,2})\2(\d{2}|\d{4})$')
_YEAR_FIRST_RE = re.compile(r'^(\d{4})([/-])(\d{1,2})\2(\d{1,2})$')
_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')

# Thai block, ASCII letters/digits and whitespace survive description normalization
_NON_DESCRIPTION_CHARS = re.compile(r"[^\u0E00-\u0E7Fa-zA-Z0-9\s]")


def buddhist_to_gregorian(year: int) -> int:
    """
    Convert a Buddhist Era year to Gregorian when it falls in the BE band.

    Args:
        year: Four-digit year as printed

    Returns:
        Gregorian year
    """
    if year > BUDDHIST_ERA_THRESHOLD:
        return year - BUDDHIST_ERA_OFFSET
    return year


def expand_year(year: int) -> int:
    """Expand a two-digit year and apply the Buddhist Era correction."""
    if year < 100:
        year = 1900 + year if year > TWO_DIGIT_YEAR_PIVOT else 2000 + year
    return buddhist_to_gregorian(year)


def _parse_time(time_token: Optional[str]) -> tuple:
    if not time_token or not time_token.strip():
        return 0, 0, 0

    match = _TIME_RE.match(time_token.strip())
    if not match:
        logger.debug(f"Ignoring malformed time token: {time_token!r}")
        return 0, 0, 0

    hour, minute, second = (int(part or 0) for part in match.groups())
    if hour > 23 or minute > 59 or second > 59:
        logger.debug(f"Ignoring out-of-range time token: {time_token!r}")
        return 0, 0, 0
    return hour, minute, second


def normalize_datetime(date_token: str, time_token: Optional[str] = None) -> datetime:
    """
    Merge a statement date token and optional time token into one timestamp.

    Accepts day-first ``D/M/Y`` or ``D-M-Y`` with two or four digit years and
    year-first ``YYYY-MM-DD``. Buddhist Era years are converted. The result is
    naive local civil time.

    Args:
        date_token: Raw date text
        time_token: Raw time text, ``H:MM`` or ``H:MM:SS``; midnight when absent

    Returns:
        datetime object

    Raises:
        ValueError: the date token is malformed or not a calendar date
    """
    if not date_token or not date_token.strip():
        raise ValueError("Empty date token")

    cleaned = date_token.strip()

    match = _DAY_FIRST_RE.match(cleaned)
    if match:
        day, _, month, year = match.groups()
    else:
        match = _YEAR_FIRST_RE.match(cleaned)
        if not match:
            raise ValueError(f"Unrecognized date token: {date_token!r}")
        year, _, month, day = match.groups()

    hour, minute, second = _parse_time(time_token)
    return datetime(expand_year(int(year)), int(month), int(day), hour, minute, second)


def parse_datetime(date_token: str, time_token: Optional[str] = None) -> Optional[datetime]:
    """Like :func:`normalize_datetime` but returns None on malformed input."""
    try:
        return normalize_datetime(date_token, time_token)
    except ValueError as e:
        logger.debug(f"Could not parse date {date_token!r} {time_token!r}: {e}")
        return None


def normalize_money(value: str) -> Decimal:
    """
    Normalize money values by removing separators, currency signs and sign.

    Args:
        value: Raw money string

    Returns:
        Non-negative Decimal with two decimal places (0.00 when unparseable)
    """
    if not value or not value.strip():
        return Decimal('0.00')

    # Remove commas, spaces and the baht sign
    cleaned = re.sub(r'[,\s฿]', '', value.strip())

    # Handle parentheses
    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]

    match = re.search(r'-?\d+\.?\d*', cleaned)
    if not match:
        logger.warning(f"Could not extract numeric value from: {value}")
        return Decimal('0.00')

    try:
        amount = Decimal(match.group())
    except InvalidOperation:
        logger.warning(f"Could not extract numeric value from: {value}")
        return Decimal('0.00')

    return abs(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def normalize_text(value: str) -> str:
    """
    Normalize text by trimming and cleaning.

    Args:
        value: Raw text string

    Returns:
        Cleaned text string
    """
    if not value:
        return ""

    # Remove extra whitespace
    cleaned = re.sub(r'\s+', ' ', value.strip())

    return cleaned


def normalize_description(description: str) -> str:
    """
    Canonical form of a description for fingerprinting and rule matching.

    Lowercases, drops everything outside Thai script, ASCII letters/digits and
    whitespace, then collapses whitespace runs.
    """
    if not description:
        return ""

    stripped = _NON_DESCRIPTION_CHARS.sub('', description.lower())
    return normalize_text(stripped)


def truncate_description(description: str, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Collapse whitespace and bound the length; never returns an empty string."""
    cleaned = normalize_text(description)
    if not cleaned:
        return DESCRIPTION_PLACEHOLDER
    return cleaned[:max_length].rstrip()
