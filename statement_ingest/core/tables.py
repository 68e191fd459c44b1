"""
Transaction-row recognition for PDF text and CSV exports.
"""
import csv
import io
import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
import logging

from .loader import UnreadableDocumentError
from .normalize import normalize_money, normalize_text, parse_datetime
from ..models.schema import BankFormat, CsvLayout

logger = logging.getLogger(__name__)

MIN_CSV_FIELDS = 4

# DATE [TIME] AMOUNT [BALANCE...] REST; trailing amounts must carry two decimals
PDF_ROW_PATTERN = re.compile(
    r'^(?P<date>\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2})'
    r'\s+(?:(?P<time>\d{1,2}:\d{2}(?::\d{2})?)\s+)?'
    r'(?P<amounts>\d[\d,]*(?:\.\d+)?(?:\s+\d[\d,]*\.\d{2})*)'
    r'(?:\s+(?P<rest>.*))?$'
)


class RowReason(str, Enum):
    """Why a line did or did not become a row."""
    OK = "ok"
    NO_MATCH = "no-match"
    BAD_DATE = "bad-date"
    NO_AMOUNT = "no-amount"
    HEADER = "header"
    TOO_FEW_FIELDS = "too-few-fields"
    MISSING_TIME = "missing-time"


class RawRow:
    """A recognized statement row before flow classification."""
    def __init__(self, line_no: int, date_time: datetime, amount: Decimal,
                 remainder: str, amounts: Optional[List[Decimal]] = None,
                 item_type: Optional[str] = None, channel: Optional[str] = None,
                 is_inflow: bool = False):
        self.line_no = line_no
        self.date_time = date_time
        self.amount = amount
        self.remainder = remainder
        self.amounts = amounts or [amount]
        self.item_type = item_type
        self.channel = channel
        self.is_inflow = is_inflow

    def __repr__(self):
        return (f"RawRow(line_no={self.line_no}, date_time={self.date_time.isoformat()}, "
                f"amount={self.amount}, inflow={self.is_inflow})")


class RowDecision:
    """Outcome of recognizing one line or record; ``row`` is set only when accepted."""
    def __init__(self, line_no: int, text: str, reason: RowReason, row: Optional[RawRow] = None):
        self.line_no = line_no
        self.text = text
        self.reason = reason
        self.row = row

    @property
    def accepted(self) -> bool:
        return self.row is not None

    def __repr__(self):
        return f"RowDecision(line_no={self.line_no}, reason={self.reason.value})"


class PdfLineRecognizer:
    """Recognizes one transaction per line of extracted PDF text."""

    def __init__(self, pattern: re.Pattern = PDF_ROW_PATTERN):
        self.pattern = pattern

    def decisions(self, text: str) -> List[RowDecision]:
        """
        Run every non-blank line through the row pattern.

        Args:
            text: Merged page text

        Returns:
            One decision per non-blank line, in document order
        """
        results = []
        for line_no, raw_line in enumerate(text.splitlines(), 1):
            line = normalize_text(raw_line)
            if not line:
                continue
            results.append(self._decide(line_no, line))
        return results

    def recognize(self, text: str) -> List[RawRow]:
        return [d.row for d in self.decisions(text) if d.accepted]

    def _decide(self, line_no: int, line: str) -> RowDecision:
        match = self.pattern.match(line)
        if not match:
            return RowDecision(line_no, line, RowReason.NO_MATCH)

        date_token = match.group('date')
        time_token = match.group('time')
        date_time = parse_datetime(date_token, time_token)
        if date_time is None:
            return RowDecision(line_no, line, RowReason.BAD_DATE)

        amounts = [normalize_money(token) for token in match.group('amounts').split()]
        amount = next((value for value in amounts if value > 0), None)
        if amount is None:
            logger.debug(f"Line {line_no}: no positive amount")
            return RowDecision(line_no, line, RowReason.NO_AMOUNT)

        row = RawRow(
            line_no=line_no,
            date_time=date_time,
            amount=amount,
            amounts=amounts,
            remainder=(match.group('rest') or "").strip(),
        )
        return RowDecision(line_no, line, RowReason.OK, row)


class CsvRowRecognizer:
    """Recognizes rows of a bank CSV export using the bank's column layouts."""

    def __init__(self, bank_format: BankFormat):
        self.bank_format = bank_format
        self.layouts = sorted(bank_format.csv.layouts, key=lambda layout: layout.min_fields,
                              reverse=True)

    def records(self, text: str) -> List[tuple]:
        """Split CSV text into ``(line_no, fields)`` pairs, dropping blank records."""
        reader = csv.reader(io.StringIO(text))
        records = []
        for fields in reader:
            cells = [cell.strip() for cell in fields]
            if any(cells):
                records.append((reader.line_num, cells))
        return records

    def decisions(self, text: str) -> List[RowDecision]:
        """
        Decide every record of the export; the first record is the header.

        Raises:
            UnreadableDocumentError: fewer than two non-blank records
        """
        records = self.records(text)
        if len(records) < 2:
            raise UnreadableDocumentError("CSV file appears to be empty or invalid")

        header_line, header = records[0]
        results = [RowDecision(header_line, ','.join(header), RowReason.HEADER)]
        for line_no, fields in records[1:]:
            results.append(self._decide(line_no, fields))
        return results

    def recognize(self, text: str) -> List[RawRow]:
        return [d.row for d in self.decisions(text) if d.accepted]

    def _layout_for(self, field_count: int) -> Optional[CsvLayout]:
        if field_count < MIN_CSV_FIELDS:
            return None
        for layout in self.layouts:
            if field_count >= layout.min_fields:
                return layout
        return None

    def _decide(self, line_no: int, fields: List[str]) -> RowDecision:
        text = ','.join(fields)
        layout = self._layout_for(len(fields))
        if layout is None:
            return RowDecision(line_no, text, RowReason.TOO_FEW_FIELDS)

        def cell(name: str) -> str:
            index = layout.columns.get(name)
            if index is None or index >= len(fields):
                return ""
            return fields[index]

        date_token = cell('date')
        time_token = cell('time') or None
        if time_token is None and self.bank_format.csv.time_required:
            return RowDecision(line_no, text, RowReason.MISSING_TIME)

        date_time = parse_datetime(date_token, time_token)
        if date_time is None:
            return RowDecision(line_no, text, RowReason.BAD_DATE)

        withdrawal = normalize_money(cell('withdrawal'))
        deposit = normalize_money(cell('deposit'))
        # Withdrawal wins when both columns are filled
        amount = withdrawal if withdrawal > 0 else deposit
        if amount <= 0:
            return RowDecision(line_no, text, RowReason.NO_AMOUNT)

        row = RawRow(
            line_no=line_no,
            date_time=date_time,
            amount=amount,
            amounts=[withdrawal, deposit],
            remainder=normalize_text(cell('description')),
            item_type=cell('item_type') or None,
            channel=cell('channel') or None,
            is_inflow=deposit > 0 and withdrawal == 0,
        )
        return RowDecision(line_no, text, RowReason.OK, row)
