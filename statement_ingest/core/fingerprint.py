"""
Content-hash identities for transactions and uploaded files.
"""
import hashlib
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .normalize import normalize_description

FIELD_DELIMITER = "|"


def _amount_text(amount: Union[Decimal, float, int, str]) -> str:
    value = Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return f"{value:.2f}"


def transaction_fingerprint(date_time: datetime, amount: Union[Decimal, float, int, str],
                            channel: str, description: str) -> str:
    """
    Compute a stable SHA-256 fingerprint for a transaction.

    Two exports of the same transaction produce the same fingerprint even when
    whitespace or punctuation in the description differs.

    Args:
        date_time: Transaction timestamp (naive local time)
        amount: Transaction amount
        channel: Channel label
        description: Raw description text

    Returns:
        64 character hex digest
    """
    payload = FIELD_DELIMITER.join([
        date_time.isoformat(),
        _amount_text(amount),
        channel,
        normalize_description(description),
    ])
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def file_hash(data: bytes) -> str:
    """SHA-256 hex digest of the raw uploaded bytes."""
    return hashlib.sha256(data).hexdigest()
