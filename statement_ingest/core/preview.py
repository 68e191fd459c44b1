"""
Import preview: mark rows the family already has before committing.
"""
from typing import List, Set
import logging

from .providers import DuplicateSetProvider
from ..models.schema import ImportPreview, ParsedTransaction, ParseResult, PreviewRow

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 10


def build_import_preview(family_id: str, result: ParseResult, duplicates: DuplicateSetProvider,
                         file_hash: str, limit: int = PREVIEW_LIMIT) -> ImportPreview:
    """
    Summarize a parse result against the family's known fingerprints.

    Args:
        family_id: Family the upload belongs to
        result: Successful parse result
        duplicates: Source of already-imported fingerprints
        file_hash: Hash of the uploaded bytes
        limit: Number of rows to include in the preview

    Returns:
        ImportPreview with counts over all transactions and the first ``limit`` rows
    """
    if limit < 0:
        raise ValueError(f"Preview limit must be non-negative: {limit}")

    fingerprints = [tx.fingerprint for tx in result.transactions]
    known: Set[str] = set(duplicates.known_fingerprints(family_id, fingerprints))
    duplicate_count = sum(1 for fp in fingerprints if fp in known)

    rows = [
        PreviewRow(
            index=i,
            date_time=tx.date_time,
            amount=tx.amount,
            item_type=tx.item_type,
            channel=tx.channel,
            description=tx.description_raw,
            is_duplicate=tx.fingerprint in known,
        )
        for i, tx in enumerate(result.transactions[:limit])
    ]

    logger.info(
        f"Import preview for family {family_id}: {len(fingerprints)} transactions, "
        f"{duplicate_count} duplicates"
    )

    return ImportPreview(
        file_hash=file_hash,
        statement_month=result.statement_month,
        account_number=result.account_number,
        total_transactions=len(fingerprints),
        duplicate_count=duplicate_count,
        new_transaction_count=len(fingerprints) - duplicate_count,
        preview=rows,
    )


def new_transactions(family_id: str, transactions: List[ParsedTransaction],
                     duplicates: DuplicateSetProvider) -> List[ParsedTransaction]:
    """Transactions whose fingerprints the family has not stored yet."""
    known = set(duplicates.known_fingerprints(family_id, [tx.fingerprint for tx in transactions]))
    return [tx for tx in transactions if tx.fingerprint not in known]
